import logging

import flax.linen as nn

from .deeponet import DeepONet
from .fno_jax import (FourierNeuralOperator, OperatorConv, OperatorKernel, SpectralConv,
                      SpectralKernel)
from .integral_kernel import IntegralKernel, IntegralKernelOperator

logger = logging.getLogger(__name__)

# config keys holding tuples; YAML hands them over as lists
_TUPLE_KEYS = ("ch", "modes", "chs", "branch", "trunk", "hidden")


def make_operator_jax(kind: str, **kwargs) -> nn.Module:
    """
    Factory to create operator layers and models from config entries.
    Returns a flax.linen.Module with init and apply.
    """
    kind = kind.lower()
    for key in _TUPLE_KEYS:
        if isinstance(kwargs.get(key), list):
            kwargs[key] = tuple(kwargs[key])
    logger.info(f"Building operator: kind={kind}, params={kwargs}")
    if kind == "spectral_conv":
        return SpectralConv(**kwargs)
    elif kind == "operator_conv":
        return OperatorConv(**kwargs)
    elif kind == "spectral_kernel":
        return SpectralKernel(**kwargs)
    elif kind == "operator_kernel":
        return OperatorKernel(**kwargs)
    elif kind == "fno":
        return FourierNeuralOperator(**kwargs)
    elif kind == "deeponet":
        return DeepONet(**kwargs)
    elif kind == "integral_kernel":
        return IntegralKernel(**kwargs)
    elif kind == "integral_kernel_operator":
        return IntegralKernelOperator(**kwargs)
    else:
        raise ValueError(f"Unknown operator kind: {kind}")
