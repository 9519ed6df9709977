import math
from typing import Any, Callable, Tuple

import jax.numpy as jnp
from flax import linen as nn

from ..errors import ShapeMismatchError
from ..functional import operator_conv
from ..layout import Layout, channel_axis, from_canonical, to_canonical
from ..transform import FourierTransform, resolve_transform_type

# weights are laid out as (out_channels, in_channels, modes)
DEFAULT_WEIGHT_INIT = nn.initializers.glorot_uniform(in_axis=1, out_axis=0)


def check_channels(ch) -> Tuple[int, int]:
    """Validate an ``(in_channels, out_channels)`` pair."""
    if len(tuple(ch)) != 2:
        raise ValueError(f"Channels must be an (in, out) pair, got {ch}")
    in_chs, out_chs = (int(c) for c in ch)
    if in_chs < 1 or out_chs < 1:
        raise ValueError(f"Channel counts must be positive, got {ch}")
    return in_chs, out_chs


class OperatorConv(nn.Module):
    """Spectral convolution with a pluggable transform.

    Transforms the input, keeps the first ``modes[i]`` frequency bins along
    each spatial axis, mixes channels per retained mode with learned real
    weights, zero-pads and transforms back.

    Attributes:
      ch: ``(in_channels, out_channels)``, e.g. ``(64, 64)``.
      modes: modes kept per spatial axis; its length is the spatial rank.
      transform_type: an ``AbstractTransform`` subclass or registered name.
      dtype: complex element type the mixing runs in.
      init_weight: ``(key, shape, dtype)`` initializer for the weights.
      permuted: ``True`` takes ``(batch, ch, x_1, ..., x_d)``, ``False`` takes
        ``(batch, x_1, ..., x_d, ch)``. Fixed once the layer is built.

    Example::

      layer = OperatorConv((2, 5), (16,), FourierTransform, permuted=True)
      params = layer.init(key, jnp.ones((4, 2, 32)))
    """
    ch: Tuple[int, int]
    modes: Tuple[int, ...]
    transform_type: Any = FourierTransform
    dtype: Any = jnp.complex64
    init_weight: Callable = DEFAULT_WEIGHT_INIT
    permuted: bool = False

    def __post_init__(self):
        check_channels(self.ch)
        # raises on bad modes or an unknown transform
        resolve_transform_type(self.transform_type)(self.modes, self.dtype)
        super().__post_init__()

    @property
    def tform(self):
        return resolve_transform_type(self.transform_type)(self.modes, self.dtype)

    @property
    def in_chs(self) -> int:
        return int(self.ch[0])

    @property
    def out_chs(self) -> int:
        return int(self.ch[1])

    @property
    def prod_modes(self) -> int:
        return math.prod(self.tform.modes)

    @property
    def layout(self) -> Layout:
        return Layout.from_permuted(self.permuted)

    @property
    def weight_shape(self):
        return (self.out_chs, self.in_chs, self.prod_modes)

    @property
    def display_name(self) -> str:
        return (f"OperatorConv[{resolve_transform_type(self.transform_type).__name__}]"
                f"({self.in_chs} => {self.out_chs}, {self.tform.modes}; "
                f"permuted={self.permuted})")

    def parameter_length(self) -> int:
        return self.prod_modes * self.in_chs * self.out_chs

    def _init_weights(self, rng, shape):
        scale = 1.0 / (self.in_chs * self.out_chs)
        return scale * self.init_weight(rng, shape, self.tform.real_dtype)

    def setup(self):
        self.weights = self.param('weights', self._init_weights, self.weight_shape)

    def init_weights(self):
        """Touch the weights so ``init`` can run without a sample input."""
        return self.weights

    def __call__(self, x):
        tform = self.tform
        N = tform.ndim
        if x.ndim != N + 2:
            raise ShapeMismatchError(
                f"{self.display_name} expects rank {N + 2} input, got shape {x.shape}")
        in_chs = x.shape[channel_axis(self.layout, N)]
        if in_chs != self.in_chs:
            raise ShapeMismatchError(
                f"{self.display_name} expects {self.in_chs} input channels, got {in_chs} "
                f"(input shape {x.shape})")
        x = to_canonical(x, self.layout, N)
        y = operator_conv(x, tform, self.weights)
        return from_canonical(y, self.layout, N)


def SpectralConv(ch, modes, **kwargs) -> OperatorConv:
    """``OperatorConv`` with a complex64 Fourier transform."""
    return OperatorConv(ch, modes, transform_type=FourierTransform, dtype=jnp.complex64,
                        **kwargs)
