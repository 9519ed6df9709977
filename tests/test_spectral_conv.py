# tests/test_spectral_conv.py
import jax
import jax.numpy as jnp
import numpy as np
import pytest

from fno_layers import (FourierTransform, ModeTruncationError, OperatorConv, ShapeMismatchError,
                        SpectralConv, UnsupportedTransformError, evaluate, initialize_parameters,
                        initialize_state, parameter_count)
from fno_layers.evaluate import count_parameters


def reference_conv_1d(x, w, modes):
    """NumPy spectral conv on (b, c, s) input."""
    x = np.asarray(x, dtype=np.float64)
    s = x.shape[-1]
    x_ft = np.fft.rfft(x, axis=-1)[..., :modes]
    y_ft = np.einsum("oim,bim->bom", np.asarray(w, dtype=np.float64), x_ft)
    out = np.zeros(y_ft.shape[:2] + (s // 2 + 1,), dtype=complex)
    out[..., :modes] = y_ft
    return np.fft.irfft(out, n=s, axis=-1)


def test_scenario_channel_first():
    layer = OperatorConv((2, 5), (16,), FourierTransform, permuted=True)
    x = jax.random.normal(jax.random.PRNGKey(1), (4, 2, 32))
    params = initialize_parameters(jax.random.PRNGKey(0), layer)
    state = initialize_state(jax.random.PRNGKey(0), layer)
    y, new_state = evaluate(layer, x, params, state)
    assert y.shape == (4, 5, 32)
    assert new_state is state
    assert parameter_count(layer) == 16 * 2 * 5 == 160
    assert params["weights"].shape == (5, 2, 16)
    assert count_parameters(params) == 160


def test_scenario_channel_last():
    layer = SpectralConv((2, 5), (16,))
    x = jax.random.normal(jax.random.PRNGKey(1), (4, 32, 2))
    params = layer.init(jax.random.PRNGKey(0), x)
    y = layer.apply(params, x)
    assert y.shape == (4, 32, 5)


def test_matches_numpy_reference():
    layer = OperatorConv((3, 4), (6,), FourierTransform, permuted=True)
    x = jax.random.normal(jax.random.PRNGKey(2), (2, 3, 20))
    params = initialize_parameters(jax.random.PRNGKey(3), layer)
    y, _ = evaluate(layer, x, params, {})
    expected = reference_conv_1d(x, params["weights"], 6)
    np.testing.assert_allclose(y, expected, rtol=1e-4, atol=1e-5)


@pytest.mark.parametrize("modes, spatial", [((16,), (32,)), ((4, 3), (10, 8)), ((2, 2, 2), (4, 5, 6))])
def test_layout_equivalence(modes, spatial):
    N = len(modes)
    first = OperatorConv((3, 2), modes, FourierTransform, permuted=True)
    last = OperatorConv((3, 2), modes, FourierTransform, permuted=False)
    x_first = jax.random.normal(jax.random.PRNGKey(4), (2, 3) + spatial)
    x_last = jnp.moveaxis(x_first, 1, -1)
    params = initialize_parameters(jax.random.PRNGKey(5), first)
    y_first, _ = evaluate(first, x_first, params, {})
    y_last, _ = evaluate(last, x_last, params, {})
    assert y_last.shape == (2,) + spatial + (2,)
    np.testing.assert_allclose(jnp.moveaxis(y_last, -1, 1), y_first, rtol=1e-6, atol=1e-6)
    assert N == y_first.ndim - 2


def test_mode_truncation_boundary():
    layer = SpectralConv((2, 2), (16,), permuted=True)
    params = initialize_parameters(jax.random.PRNGKey(0), layer)
    # 30 points -> 16 bins
    y, _ = evaluate(layer, jnp.ones((1, 2, 30)), params, {})
    assert y.shape == (1, 2, 30)
    # 28 points -> 15 bins
    with pytest.raises(ModeTruncationError):
        evaluate(layer, jnp.ones((1, 2, 28)), params, {})


def test_mode_truncation_non_last_axis():
    layer = SpectralConv((1, 1), (8, 2), permuted=True)
    params = initialize_parameters(jax.random.PRNGKey(0), layer)
    evaluate(layer, jnp.ones((1, 1, 8, 4)), params, {})
    with pytest.raises(ModeTruncationError):
        evaluate(layer, jnp.ones((1, 1, 7, 64)), params, {})


@pytest.mark.parametrize("shape, modes, permuted", [
    ((3, 2, 17), (5,), True),
    ((3, 9, 6, 2), (4, 3), False),
    ((1, 2, 4, 4, 4), (2, 2, 2), True),
])
def test_zero_weights_give_zero_output(shape, modes, permuted):
    layer = SpectralConv((2, 3), modes, permuted=permuted)
    params = {"weights": jnp.zeros(layer.weight_shape)}
    x = jax.random.normal(jax.random.PRNGKey(6), shape)
    y, _ = evaluate(layer, x, params, {})
    assert not np.any(np.asarray(y))


def test_channel_mismatch():
    layer = SpectralConv((2, 5), (4,), permuted=True)
    params = initialize_parameters(jax.random.PRNGKey(0), layer)
    with pytest.raises(ShapeMismatchError):
        evaluate(layer, jnp.ones((4, 3, 32)), params, {})
    with pytest.raises(ShapeMismatchError):
        evaluate(layer, jnp.ones((2, 32)), params, {})


def test_weight_shape_mismatch():
    layer = SpectralConv((2, 5), (4,), permuted=True)
    with pytest.raises(ShapeMismatchError):
        evaluate(layer, jnp.ones((4, 2, 32)), {"weights": jnp.ones((5, 2, 3))}, {})


def test_invalid_configuration():
    with pytest.raises(ModeTruncationError):
        SpectralConv((2, 5), (0,))
    with pytest.raises(ValueError):
        SpectralConv((2, 0), (4,))
    with pytest.raises(UnsupportedTransformError):
        OperatorConv((2, 5), (4,), "wavelet")


def test_weight_initialization_scale():
    ones = lambda key, shape, dtype: jnp.ones(shape, dtype)
    layer = SpectralConv((2, 5), (3, 2), init_weight=ones)
    params = initialize_parameters(jax.random.PRNGKey(0), layer)
    w = params["weights"]
    assert w.shape == (5, 2, 6)
    assert w.dtype == jnp.float32
    np.testing.assert_allclose(w, 0.1)


def test_default_initialization_is_real_and_random():
    layer = SpectralConv((4, 4), (8,))
    w = initialize_parameters(jax.random.PRNGKey(0), layer)["weights"]
    assert not jnp.iscomplexobj(w)
    assert float(jnp.std(w)) > 0
    assert float(jnp.max(jnp.abs(w))) <= 1.0 / 16


def test_transform_by_name():
    layer = OperatorConv((2, 5), (16,), "fourier", permuted=True)
    assert layer.tform == FourierTransform((16,))
    assert "OperatorConv[FourierTransform]" in layer.display_name
    assert "permuted=True" in layer.display_name


def test_gradients_match_plain_fft():
    layer = SpectralConv((2, 3), (5,), permuted=True)
    x = jax.random.normal(jax.random.PRNGKey(7), (2, 2, 16))
    params = initialize_parameters(jax.random.PRNGKey(8), layer)

    def loss(params, x):
        y, _ = evaluate(layer, x, params, {})
        return jnp.sum(y ** 2)

    def loss_ref(params, x):
        x_ft = jnp.fft.rfft(x, axis=-1)[..., :5]
        y_ft = jnp.einsum("oim,bim->bom", params["weights"].astype(jnp.complex64), x_ft)
        y_ft = jnp.pad(y_ft, ((0, 0), (0, 0), (0, 9 - 5)))
        return jnp.sum(jnp.fft.irfft(y_ft, n=16, axis=-1) ** 2)

    g_params, g_x = jax.grad(loss, argnums=(0, 1))(params, x)
    r_params, r_x = jax.grad(loss_ref, argnums=(0, 1))(params, x)
    np.testing.assert_allclose(g_params["weights"], r_params["weights"], rtol=1e-4, atol=1e-5)
    np.testing.assert_allclose(g_x, r_x, rtol=1e-4, atol=1e-5)


def test_jit_forward():
    layer = SpectralConv((2, 5), (6, 6))
    x = jax.random.normal(jax.random.PRNGKey(9), (3, 16, 12, 2))
    params = initialize_parameters(jax.random.PRNGKey(0), layer)
    fwd = jax.jit(lambda p, x: evaluate(layer, x, p, {})[0])
    np.testing.assert_allclose(fwd(params, x), evaluate(layer, x, params, {})[0],
                               rtol=1e-5, atol=1e-6)


def test_functional_weight_shape_mismatch():
    from fno_layers.functional import operator_conv
    with pytest.raises(ShapeMismatchError):
        operator_conv(jnp.ones((4, 2, 32)), FourierTransform((4,)), jnp.ones((5, 3, 4)))
    with pytest.raises(ShapeMismatchError):
        operator_conv(jnp.ones((4, 2, 32)), FourierTransform((4,)), jnp.ones((5, 2)))
