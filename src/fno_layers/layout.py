"""Conversions between the supported tensor layouts.

The mixing core works on the channel-first form ``(batch, channels, *spatial)``.
Channel-last inputs ``(batch, *spatial, channels)`` are permuted into it and
back. The layout of a layer is fixed when the layer is constructed.
"""
import enum

import jax.numpy as jnp


class Layout(enum.Enum):
    CHANNEL_FIRST = "channel_first"  # (batch, channels, *spatial)
    CHANNEL_LAST = "channel_last"    # (batch, *spatial, channels)

    @classmethod
    def from_permuted(cls, permuted: bool) -> "Layout":
        return cls.CHANNEL_FIRST if permuted else cls.CHANNEL_LAST


def channel_axis(layout: Layout, ndim: int) -> int:
    return 1 if layout is Layout.CHANNEL_FIRST else ndim + 1


def to_canonical_perm(ndim: int):
    return (0, ndim + 1) + tuple(range(1, ndim + 1))


def from_canonical_perm(ndim: int):
    return (0,) + tuple(range(2, ndim + 2)) + (1,)


def to_canonical(x, layout: Layout, ndim: int):
    """Move ``x`` into the channel-first layout used by the mixing core."""
    if layout is Layout.CHANNEL_FIRST:
        return x
    return jnp.transpose(x, to_canonical_perm(ndim))


def from_canonical(y, layout: Layout, ndim: int):
    """Inverse of :func:`to_canonical`."""
    if layout is Layout.CHANNEL_FIRST:
        return y
    return jnp.transpose(y, from_canonical_perm(ndim))
