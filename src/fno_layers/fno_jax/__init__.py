from .spectral_conv import OperatorConv, SpectralConv
from .kernel import OperatorKernel, SpectralKernel, PointwiseConv
from .fno_jax import FourierNeuralOperator

__all__ = [
    "OperatorConv", "SpectralConv",
    "OperatorKernel", "SpectralKernel", "PointwiseConv",
    "FourierNeuralOperator",
]
