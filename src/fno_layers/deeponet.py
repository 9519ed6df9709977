from typing import Any, Tuple

import jax.numpy as jnp
from flax import linen as nn

from .activations import get_activation_fn, identity
from .errors import ShapeMismatchError


class MLP(nn.Module):
    """Dense chain ``widths[0] -> ... -> widths[-1]``, activation after every layer."""
    widths: Tuple[int, ...]
    activation: Any = identity

    @nn.compact
    def __call__(self, x):
        if x.shape[-1] != self.widths[0]:
            raise ShapeMismatchError(
                f"Expected {self.widths[0]} input features, got shape {x.shape}")
        act = get_activation_fn(self.activation)
        for width in self.widths[1:]:
            x = act(nn.Dense(width)(x))
        return x


class DeepONet(nn.Module):
    """
    Branch-trunk operator network:
      G(u)(y) = sum_k B_k(u) * T_k(y)

    u: (batch, branch[0]) sensor values of the input function
    y: (n_points, trunk[0]) or (batch, n_points, trunk[0]) query coordinates
    returns: (batch, n_points)
    """
    branch: Tuple[int, ...] = (64, 32, 32, 16)
    trunk: Tuple[int, ...] = (1, 8, 8, 16)
    branch_activation: Any = identity
    trunk_activation: Any = identity

    def __post_init__(self):
        if len(self.branch) < 2 or len(self.trunk) < 2:
            raise ValueError("branch and trunk need an input and at least one layer width")
        if self.branch[-1] != self.trunk[-1]:
            raise ShapeMismatchError(
                f"Branch and trunk latent sizes differ: {self.branch[-1]} != {self.trunk[-1]}")
        super().__post_init__()

    def parameter_length(self) -> int:
        n = 0
        for widths in (self.branch, self.trunk):
            n += sum(a * b + b for a, b in zip(widths[:-1], widths[1:]))
        return n

    @nn.compact
    def __call__(self, u, y):
        b = MLP(self.branch, self.branch_activation, name="branch")(u)  # (B, P)
        t = MLP(self.trunk, self.trunk_activation, name="trunk")(y)     # (N, P) | (B, N, P)
        if t.ndim == 2:
            return jnp.einsum("bp,np->bn", b, t)
        if t.shape[0] != b.shape[0]:
            raise ShapeMismatchError(
                f"Batch of u ({b.shape[0]}) and y ({t.shape[0]}) differ")
        return jnp.einsum("bp,bnp->bn", b, t)
