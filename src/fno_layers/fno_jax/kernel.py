from typing import Any, Callable, Tuple

import jax.numpy as jnp
from flax import linen as nn

from ..activations import get_activation_fn, identity
from ..layout import Layout, from_canonical, to_canonical
from ..transform import FourierTransform, resolve_transform_type
from .spectral_conv import DEFAULT_WEIGHT_INIT, OperatorConv, check_channels


class PointwiseConv(nn.Module):
    """1x1-window convolution over a channel-first tensor."""
    features: int
    ndim: int

    @nn.compact
    def __call__(self, x):
        # x: (batch, channels, *spatial); nn.Conv wants features last
        x = from_canonical(x, Layout.CHANNEL_LAST, self.ndim)
        x = nn.Conv(self.features, kernel_size=(1,) * self.ndim)(x)
        return to_canonical(x, Layout.CHANNEL_LAST, self.ndim)


def pointwise(features: int, ndim: int, layout: Layout, name: str = None) -> nn.Module:
    """Channel mixing without spatial extent for the given layout."""
    if layout is Layout.CHANNEL_FIRST:
        return PointwiseConv(features, ndim, name=name)
    return nn.Dense(features, name=name)


class OperatorKernel(nn.Module):
    """FNO building block: ``activation(bypass(x) + conv(x))``.

    ``bypass`` is a pointwise layer (``nn.Dense`` for channel-last input, a
    1x1 ``nn.Conv`` for channel-first input) and ``conv`` an
    :class:`OperatorConv`. The two paths are independent and summed before
    the activation.
    """
    ch: Tuple[int, int]
    modes: Tuple[int, ...]
    transform_type: Any = FourierTransform
    activation: Any = identity
    allow_fast_activation: bool = False
    permuted: bool = False
    dtype: Any = jnp.complex64
    init_weight: Callable = DEFAULT_WEIGHT_INIT

    def __post_init__(self):
        check_channels(self.ch)
        resolve_transform_type(self.transform_type)(self.modes, self.dtype)
        get_activation_fn(self.activation)
        super().__post_init__()

    @property
    def layout(self) -> Layout:
        return Layout.from_permuted(self.permuted)

    @property
    def tform(self):
        return resolve_transform_type(self.transform_type)(self.modes, self.dtype)

    def parameter_length(self) -> int:
        in_chs, out_chs = check_channels(self.ch)
        # kernel + bias of the bypass
        bypass = in_chs * out_chs + out_chs
        return bypass + self.tform.prod_modes * in_chs * out_chs

    def setup(self):
        self.bypass = pointwise(check_channels(self.ch)[1], self.tform.ndim, self.layout)
        self.conv = OperatorConv(self.ch, self.modes, self.transform_type, self.dtype,
                                 self.init_weight, self.permuted)
        self.act = get_activation_fn(self.activation, fast=self.allow_fast_activation)

    def __call__(self, x):
        # spectral path first so channel mismatches surface as ShapeMismatchError
        spectral = self.conv(x)
        local = self.bypass(x)
        return self.act(local + spectral)


def SpectralKernel(ch, modes, activation=identity, **kwargs) -> OperatorKernel:
    """``OperatorKernel`` with a complex64 Fourier transform."""
    return OperatorKernel(ch, modes, FourierTransform, activation, dtype=jnp.complex64,
                          **kwargs)
