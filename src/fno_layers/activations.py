from functools import partial

from flax import linen as nn


def identity(x):
    return x


def exact_gelu(x):
    return nn.gelu(x, approximate=False)


ACTIVATIONS = {
    'identity': identity,
    'relu': nn.relu,
    'gelu': exact_gelu,
    'tanh': nn.tanh,
    'sigmoid': nn.sigmoid,
    'silu': nn.silu,
    'swish': nn.swish,
    'elu': nn.elu,
    'leaky_relu': nn.leaky_relu,
    'softplus': nn.softplus,
}

# cheaper approximations, swapped in when fast activations are allowed
FAST_ACTIVATIONS = {
    exact_gelu: partial(nn.gelu, approximate=True),
}


def get_activation_fn(activation, fast: bool = False):
    """Resolve an activation given by name or as a callable."""
    if activation is None:
        activation = identity
    if isinstance(activation, str):
        key = activation.lower()
        if key not in ACTIVATIONS:
            raise ValueError(f"Unknown activation function: {activation}")
        activation = ACTIVATIONS[key]
    elif not callable(activation):
        raise ValueError(f"Activation must be a name or a callable, got {activation!r}")
    if fast:
        return FAST_ACTIVATIONS.get(activation, activation)
    return activation
