"""Integral-kernel operator layers.

An :class:`IntegralKernel` evaluates

    v(z_i) = sum_j w_j K(z_i, z_j) u(z_j)

where ``(z_j, w_j)`` come from a quadrature rule over the sampling grid of
``u`` and ``K`` is a learned network returning an ``(out, in)`` channel
matrix for every pair of points. The quadrature rule is injected: any
callable ``rule(spatial_shape) -> (points, weights)`` with ``points`` of
shape ``(n, ndim)`` and ``weights`` of shape ``(n,)``, ``n`` being the number
of grid points, can be used.
"""
import logging
import math
from typing import Any, Callable, Optional, Tuple

import jax.numpy as jnp
import numpy as np
from flax import linen as nn

from .activations import get_activation_fn
from .errors import ShapeMismatchError
from .fno_jax.kernel import pointwise
from .fno_jax.spectral_conv import check_channels
from .layout import Layout, from_canonical, to_canonical

logger = logging.getLogger(__name__)


def _grid(axes_points):
    mesh = np.meshgrid(*axes_points, indexing="ij")
    return np.stack([m.ravel() for m in mesh], axis=-1)


def uniform_quadrature(spatial_shape):
    """Rectangle rule on the periodic grid ``z = i / s`` over ``[0, 1)^d``."""
    points = _grid([np.arange(s) / s for s in spatial_shape])
    weights = np.full(points.shape[0], 1.0 / math.prod(spatial_shape))
    return points, weights


def trapezoid_quadrature(spatial_shape):
    """Tensor-product trapezoid rule on ``[0, 1]^d`` including the end points."""
    axes_points, axes_weights = [], []
    for s in spatial_shape:
        if s < 2:
            raise ShapeMismatchError(f"Trapezoid rule needs 2 points per axis, got {spatial_shape}")
        w = np.full(s, 1.0 / (s - 1))
        w[[0, -1]] *= 0.5
        axes_points.append(np.linspace(0.0, 1.0, s))
        axes_weights.append(w)
    weights = _grid(axes_weights).prod(axis=-1)
    return _grid(axes_points), weights


QUADRATURE_RULES = {
    "uniform": uniform_quadrature,
    "trapezoid": trapezoid_quadrature,
}


def resolve_quadrature(rule) -> Callable:
    """Map a rule name or callable to a quadrature rule."""
    if isinstance(rule, str):
        key = rule.lower().strip()
        if key not in QUADRATURE_RULES:
            raise ValueError(f"Unknown quadrature rule '{rule}'. Available: {sorted(QUADRATURE_RULES)}")
        return QUADRATURE_RULES[key]
    if callable(rule):
        return rule
    raise ValueError(f"Quadrature rule must be a name or a callable, got {rule!r}")


def dense_length(widths) -> int:
    return sum(a * b + b for a, b in zip(widths[:-1], widths[1:]))


class KernelNetwork(nn.Module):
    """MLP on concatenated point pairs ``(z_i, z_j)``; linear output layer."""
    widths: Tuple[int, ...]
    activation: Any = 'gelu'

    @nn.compact
    def __call__(self, pairs):
        act = get_activation_fn(self.activation)
        x = pairs
        for width in self.widths[1:-1]:
            x = act(nn.Dense(width)(x))
        return nn.Dense(self.widths[-1])(x)


class IntegralKernel(nn.Module):
    """Kernel integral over the input grid, with a learned channel kernel.

    Attributes:
      ch: ``(in_channels, out_channels)``.
      ndim: spatial rank of the input.
      quad_rule: quadrature rule name or callable, see the module docstring.
      kernel: module mapping pairs ``(n, n, 2 * ndim)`` to ``(n, n, out * in)``;
        a :class:`KernelNetwork` with ``hidden`` widths when ``None``.
      hidden: hidden widths of the default kernel network.
      kernel_activation: activation of the default kernel network.
      permuted: ``True`` takes ``(batch, ch, *spatial)``, ``False`` takes
        ``(batch, *spatial, ch)``.
    """
    ch: Tuple[int, int]
    ndim: int = 1
    quad_rule: Any = 'uniform'
    kernel: Optional[nn.Module] = None
    hidden: Tuple[int, ...] = (32,)
    kernel_activation: Any = 'gelu'
    permuted: bool = False

    def __post_init__(self):
        check_channels(self.ch)
        if self.ndim < 1:
            raise ValueError(f"ndim must be positive, got {self.ndim}")
        resolve_quadrature(self.quad_rule)
        get_activation_fn(self.kernel_activation)
        super().__post_init__()

    @property
    def layout(self) -> Layout:
        return Layout.from_permuted(self.permuted)

    @property
    def kernel_widths(self) -> Tuple[int, ...]:
        in_chs, out_chs = check_channels(self.ch)
        return (2 * self.ndim,) + tuple(self.hidden) + (in_chs * out_chs,)

    def parameter_length(self):
        if self.kernel is None:
            return dense_length(self.kernel_widths)
        if hasattr(self.kernel, "parameter_length"):
            return self.kernel.parameter_length()
        # unknown user kernel; count from the params instead
        return None

    @nn.compact
    def __call__(self, x):
        in_chs, out_chs = check_channels(self.ch)
        if x.ndim != self.ndim + 2:
            raise ShapeMismatchError(
                f"Expected input of rank {self.ndim + 2} for {self.ndim} spatial axes, got {x.shape}")
        x = to_canonical(x, self.layout, self.ndim)
        if x.shape[1] != in_chs:
            raise ShapeMismatchError(f"Expected {in_chs} input channels, got shape {x.shape}")
        batch, spatial = x.shape[0], x.shape[2:]

        points, weights = resolve_quadrature(self.quad_rule)(spatial)
        n = math.prod(spatial)
        points = jnp.asarray(points, dtype=x.dtype)
        weights = jnp.asarray(weights, dtype=x.dtype)
        if points.shape != (n, self.ndim) or weights.shape != (n,):
            raise ShapeMismatchError(
                f"Quadrature rule for grid {spatial} returned points {points.shape} and "
                f"weights {weights.shape}, expected {(n, self.ndim)} and {(n,)}")
        logger.debug(f"IntegralKernel: input {x.shape}, {n} quadrature points")

        pairs = jnp.concatenate([
            jnp.broadcast_to(points[:, None, :], (n, n, self.ndim)),
            jnp.broadcast_to(points[None, :, :], (n, n, self.ndim)),
        ], axis=-1)
        kernel = self.kernel
        if kernel is None:
            kernel = KernelNetwork(self.kernel_widths, self.kernel_activation, name="kernel_net")
        k = kernel(pairs).reshape(n, n, out_chs, in_chs)

        u = x.reshape(batch, in_chs, n)
        y = jnp.einsum("ijoc,j,bcj->boi", k, weights, u)
        y = y.reshape((batch, out_chs) + tuple(spatial))
        return from_canonical(y, self.layout, self.ndim)


class IntegralKernelOperator(nn.Module):
    """Lifting -> stack of ``activation(bypass(x) + integral(x))`` -> projection.

    Laid out like :class:`FourierNeuralOperator`: ``chs[0]`` input channels,
    ``chs[1:-2]`` the block widths, ``chs[-2]`` the projection hidden width
    and ``chs[-1]`` the output channels. Every block pairs a pointwise bypass
    with an :class:`IntegralKernel`.
    """
    chs: Tuple[int, ...] = (2, 64, 64, 64, 64, 64, 128, 1)
    ndim: int = 1
    quad_rule: Any = 'uniform'
    hidden: Tuple[int, ...] = (32,)
    kernel_activation: Any = 'gelu'
    activation: Any = 'gelu'
    allow_fast_activation: bool = False
    permuted: bool = False

    def __post_init__(self):
        if len(self.chs) < 4:
            raise ValueError(f"chs needs at least 4 entries, got {self.chs}")
        for c in self.chs:
            check_channels((c, c))
        if self.ndim < 1:
            raise ValueError(f"ndim must be positive, got {self.ndim}")
        resolve_quadrature(self.quad_rule)
        get_activation_fn(self.activation)
        get_activation_fn(self.kernel_activation)
        super().__post_init__()

    @property
    def layout(self) -> Layout:
        return Layout.from_permuted(self.permuted)

    def parameter_length(self) -> int:
        chs = self.chs
        n = dense_length(chs[:2]) + dense_length(chs[-3:])
        for a, b in zip(chs[1:-3], chs[2:-2]):
            n += dense_length((a, b))
            n += dense_length((2 * self.ndim,) + tuple(self.hidden) + (a * b,))
        return n

    @nn.compact
    def __call__(self, x):
        act = get_activation_fn(self.activation, fast=self.allow_fast_activation)

        x = pointwise(self.chs[1], self.ndim, self.layout, name="lifting")(x)

        for i in range(1, len(self.chs) - 3):
            ch = (self.chs[i], self.chs[i + 1])
            local = pointwise(ch[1], self.ndim, self.layout, name=f"bypass_{i - 1}")(x)
            integral = IntegralKernel(ch, self.ndim, self.quad_rule, hidden=self.hidden,
                                      kernel_activation=self.kernel_activation,
                                      permuted=self.permuted, name=f"integral_{i - 1}")(x)
            x = act(local + integral)

        x = pointwise(self.chs[-2], self.ndim, self.layout, name="projection_0")(x)
        x = act(x)
        x = pointwise(self.chs[-1], self.ndim, self.layout, name="projection_1")(x)
        return x
