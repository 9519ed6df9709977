import logging

import jax.numpy as jnp

from .errors import ShapeMismatchError
from .transform import forward_transform, inverse_transform

logger = logging.getLogger(__name__)


def truncate_modes(x_ft, modes):
    """Keep the first ``modes[i]`` bins along each trailing spectral axis."""
    index = (slice(None), slice(None)) + tuple(slice(0, m) for m in modes)
    return x_ft[index]


def pad_modes(y_ft, bins):
    """Zero-pad truncated modes back up to the full ``bins`` shape."""
    pad = [(0, 0), (0, 0)] + [(0, f - m) for m, f in zip(y_ft.shape[2:], bins)]
    return jnp.pad(y_ft, pad)


def operator_conv(x, tform, weights):
    """Mode-truncated channel mixing.

    x:       (batch, in_channels, s_1, ..., s_N)
    weights: (out_channels, in_channels, prod(modes))
    returns: (batch, out_channels, s_1, ..., s_N)
    """
    N = tform.ndim
    if x.ndim != N + 2:
        raise ShapeMismatchError(
            f"Expected input of rank {N + 2} (batch, channels, {N} spatial axes), "
            f"got shape {x.shape}")
    batch, in_chs, *spatial = x.shape
    spatial = tuple(spatial)
    if weights.ndim != 3 or weights.shape[1:] != (in_chs, tform.prod_modes):
        raise ShapeMismatchError(
            f"Weight shape {weights.shape} does not match (out, {in_chs}, "
            f"{tform.prod_modes}) for input shape {x.shape}")
    out_chs = weights.shape[0]
    bins = tform.check_modes(spatial)
    logger.debug(f"operator_conv: x={x.shape} bins={bins} modes={tform.modes}")

    axes = tuple(range(2, N + 2))
    x_ft = forward_transform(tform, x.astype(tform.real_dtype), axes, spatial)
    x_ft = truncate_modes(x_ft, tform.modes)
    x_ft = x_ft.reshape(batch, in_chs, tform.prod_modes)

    # real weights promoted to the transform's complex type
    y_ft = jnp.einsum("oim,bim->bom", weights.astype(tform.dtype), x_ft)
    y_ft = y_ft.reshape((batch, out_chs) + tform.modes)
    y_ft = pad_modes(y_ft, bins)

    return inverse_transform(tform, y_ft, axes, spatial)
