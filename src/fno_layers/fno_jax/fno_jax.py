from typing import Any, Callable, Tuple

import jax.numpy as jnp
from flax import linen as nn

from ..activations import get_activation_fn
from ..layout import Layout
from ..transform import FourierTransform, resolve_transform_type
from .kernel import OperatorKernel, pointwise
from .spectral_conv import DEFAULT_WEIGHT_INIT, check_channels


class FourierNeuralOperator(nn.Module):
    """Lifting -> stack of operator kernels -> two-layer projection.

    ``chs`` lists the channel widths along the network: ``chs[0]`` input
    channels, ``chs[1]`` lifted width, ``chs[1:-2]`` the kernel widths,
    ``chs[-2]`` the projection hidden width and ``chs[-1]`` the output
    channels. The default builds four 64-wide kernels.
    """
    chs: Tuple[int, ...] = (2, 64, 64, 64, 64, 64, 128, 1)
    modes: Tuple[int, ...] = (16,)
    activation: Any = 'gelu'
    allow_fast_activation: bool = False
    permuted: bool = False
    transform_type: Any = FourierTransform
    dtype: Any = jnp.complex64
    init_weight: Callable = DEFAULT_WEIGHT_INIT

    def __post_init__(self):
        if len(self.chs) < 4:
            raise ValueError(f"chs needs at least 4 entries, got {self.chs}")
        for c in self.chs:
            check_channels((c, c))
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
        chs = self.chs
        dense = lambda a, b: a * b + b
        n = dense(chs[0], chs[1]) + dense(chs[-3], chs[-2]) + dense(chs[-2], chs[-1])
        prod_modes = self.tform.prod_modes
        for a, b in zip(chs[1:-3], chs[2:-2]):
            n += dense(a, b) + prod_modes * a * b
        return n

    @nn.compact
    def __call__(self, x):
        ndim = self.tform.ndim
        act = get_activation_fn(self.activation, fast=self.allow_fast_activation)

        # lift to the kernel width
        x = pointwise(self.chs[1], ndim, self.layout, name="lifting")(x)

        for i in range(1, len(self.chs) - 3):
            x = OperatorKernel((self.chs[i], self.chs[i + 1]), self.modes, self.transform_type,
                               self.activation, self.allow_fast_activation, self.permuted,
                               self.dtype, self.init_weight, name=f"kernel_{i - 1}")(x)

        # project to the output channels
        x = pointwise(self.chs[-2], ndim, self.layout, name="projection_0")(x)
        x = act(x)
        x = pointwise(self.chs[-1], ndim, self.layout, name="projection_1")(x)
        return x
