"""Spectral transforms used by the operator convolution.

A transform descriptor fixes the retained modes per spatial axis and the
complex element type the spectral mixing runs in. Each variant supplies its
own reverse-mode derivative through ``forward_vjp``/``inverse_vjp``; the
``forward_transform``/``inverse_transform`` wrappers register those with
``jax.custom_vjp`` so the host autodiff never traces into the FFT primitive.

Only reverse mode is defined. ``jax.grad`` composes to any order, and
``jax.vmap`` works, but forward-mode transformations (``jax.jvp``,
``jax.jacfwd``, ``jax.hessian``) raise ``TypeError`` on every layer built on
these transforms. Use ``jax.jacrev`` or nested ``jax.grad`` instead.
"""
import math
from dataclasses import dataclass
from functools import partial
from typing import Any, Sequence, Tuple

import jax
import jax.numpy as jnp
import numpy as np

from .errors import ModeTruncationError, ShapeMismatchError, UnsupportedTransformError


@dataclass(frozen=True)
class AbstractTransform:
    """Transform descriptor: retained modes per axis and complex element type."""
    modes: Tuple[int, ...]
    dtype: Any = jnp.complex64

    def __post_init__(self):
        modes = self.modes
        if isinstance(modes, np.ndarray):
            if modes.ndim > 1:
                raise ModeTruncationError(f"Modes must be a flat sequence, got shape {modes.shape}")
            modes = np.atleast_1d(modes).tolist()
        modes = tuple(modes) if isinstance(modes, Sequence) else (modes,)
        if len(modes) == 0:
            raise ModeTruncationError("At least one spatial axis of modes is required")
        for m in modes:
            if not isinstance(m, (int, np.integer)) or isinstance(m, bool):
                raise ModeTruncationError(f"Mode counts must be integers, got {modes}")
            if m < 1:
                raise ModeTruncationError(f"Mode counts must be positive, got {modes}")
        dtype = np.dtype(self.dtype)
        if not np.issubdtype(dtype, np.complexfloating):
            raise ValueError(f"Transform element type must be complex, got {dtype}")
        object.__setattr__(self, "modes", tuple(int(m) for m in modes))
        object.__setattr__(self, "dtype", dtype)

    @property
    def ndim(self) -> int:
        return len(self.modes)

    @property
    def prod_modes(self) -> int:
        return math.prod(self.modes)

    @property
    def real_dtype(self):
        return np.finfo(self.dtype).dtype

    def forward(self, x, axes):
        raise UnsupportedTransformError(f"{type(self).__name__} has no forward transform")

    def inverse(self, x_ft, axes, lengths):
        raise UnsupportedTransformError(f"{type(self).__name__} has no inverse transform")

    def frequency_bins(self, spatial_shape) -> Tuple[int, ...]:
        raise UnsupportedTransformError(
            f"{type(self).__name__} has no frequency-bin computation")

    def forward_vjp(self, cotangent, axes, lengths):
        raise UnsupportedTransformError(
            f"{type(self).__name__} has no registered forward derivative")

    def inverse_vjp(self, cotangent, axes, lengths):
        raise UnsupportedTransformError(
            f"{type(self).__name__} has no registered inverse derivative")

    def check_modes(self, spatial_shape):
        """Raise if the input spatial size cannot supply the retained modes."""
        spatial_shape = tuple(spatial_shape)
        if len(spatial_shape) != self.ndim:
            raise ShapeMismatchError(
                f"Expected {self.ndim} spatial axes, got shape {spatial_shape}")
        bins = self.frequency_bins(spatial_shape)
        for axis, (m, f, s) in enumerate(zip(self.modes, bins, spatial_shape)):
            if m > f:
                raise ModeTruncationError(
                    f"Axis {axis}: {m} modes requested but spatial size {s} "
                    f"yields only {f} frequency bins")
        return bins


@dataclass(frozen=True)
class FourierTransform(AbstractTransform):
    """Real-input multi-dimensional FFT (``rfftn``/``irfftn``)."""

    def forward(self, x, axes):
        return jnp.fft.rfftn(x.astype(self.real_dtype), axes=axes).astype(self.dtype)

    def inverse(self, x_ft, axes, lengths):
        # the half spectrum alone is ambiguous about odd/even lengths
        y = jnp.fft.irfftn(x_ft.astype(self.dtype), s=lengths, axes=axes)
        return y.astype(self.real_dtype)

    def frequency_bins(self, spatial_shape):
        *head, last = spatial_shape
        return tuple(head) + (last // 2 + 1,)

    def forward_vjp(self, cotangent, axes, lengths):
        # transpose of x -> fftn(x)[..., :n//2+1] for real x
        last = axes[-1]
        pad = [(0, 0)] * cotangent.ndim
        pad[last] = (0, lengths[-1] - cotangent.shape[last])
        full = jnp.fft.fftn(jnp.pad(cotangent.astype(self.dtype), pad), axes=axes)
        return jnp.real(full).astype(self.real_dtype)

    def inverse_vjp(self, cotangent, axes, lengths):
        x = jnp.fft.rfftn(cotangent.astype(self.real_dtype), axes=axes)
        last = axes[-1]
        n_bins = x.shape[last]
        # interior bins stand for a conjugate pair, DC and Nyquist for one term
        mask = np.full(n_bins, 2.0)
        mask[0] = 1.0
        if lengths[-1] % 2 == 0:
            mask[-1] = 1.0
        shape = [1] * x.ndim
        shape[last] = n_bins
        mask = jnp.asarray(mask.reshape(shape), dtype=self.real_dtype)
        out = mask * x / math.prod(lengths)
        # JAX convention for complex cotangents
        return jnp.conj(out).astype(self.dtype)


@partial(jax.custom_vjp, nondiff_argnums=(0, 2, 3))
def forward_transform(tform, x, axes, lengths):
    """Differentiable forward transform of ``x`` along ``axes``."""
    return tform.forward(x, axes)


def _forward_transform_fwd(tform, x, axes, lengths):
    return forward_transform(tform, x, axes, lengths), None


def _forward_transform_bwd(tform, axes, lengths, _, cotangent):
    return (tform.forward_vjp(cotangent, axes, lengths),)


forward_transform.defvjp(_forward_transform_fwd, _forward_transform_bwd)


@partial(jax.custom_vjp, nondiff_argnums=(0, 2, 3))
def inverse_transform(tform, x_ft, axes, lengths):
    """Differentiable inverse transform back to spatial ``lengths``."""
    return tform.inverse(x_ft, axes, lengths)


def _inverse_transform_fwd(tform, x_ft, axes, lengths):
    return inverse_transform(tform, x_ft, axes, lengths), None


def _inverse_transform_bwd(tform, axes, lengths, _, cotangent):
    return (tform.inverse_vjp(cotangent, axes, lengths),)


inverse_transform.defvjp(_inverse_transform_fwd, _inverse_transform_bwd)


TRANSFORMS = {
    "fourier": FourierTransform,
}


def resolve_transform_type(transform_type):
    """Map a transform name or class to a registered transform class."""
    if isinstance(transform_type, str):
        key = transform_type.lower().strip()
        if key not in TRANSFORMS:
            raise UnsupportedTransformError(
                f"Unknown transform '{transform_type}'. Available: {sorted(TRANSFORMS)}")
        return TRANSFORMS[key]
    if isinstance(transform_type, type) and issubclass(transform_type, AbstractTransform):
        if transform_type is AbstractTransform:
            raise UnsupportedTransformError("AbstractTransform is not a concrete transform")
        return transform_type
    raise UnsupportedTransformError(f"Unsupported transform type: {transform_type!r}")


def make_transform(kind, modes, dtype=jnp.complex64) -> AbstractTransform:
    """Build a transform descriptor, e.g. ``make_transform("fourier", (16,))``."""
    return resolve_transform_type(kind)(modes, dtype)
