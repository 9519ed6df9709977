"""Neural operator layers (FNO spectral convolutions, integral kernels, DeepONet) for JAX/Flax."""
__version__ = "0.1.0"

from .errors import (OperatorError, ShapeMismatchError, ModeTruncationError,
                     UnsupportedTransformError)
from .transform import (AbstractTransform, FourierTransform, forward_transform,
                        inverse_transform, make_transform)
from .layout import Layout
from .functional import operator_conv
from .fno_jax import (OperatorConv, SpectralConv, OperatorKernel, SpectralKernel,
                      PointwiseConv, FourierNeuralOperator)
from .deeponet import DeepONet
from .integral_kernel import (IntegralKernel, IntegralKernelOperator, trapezoid_quadrature,
                              uniform_quadrature)
from .evaluate import (initialize_parameters, initialize_state, parameter_count,
                       evaluate)
from .operator_jax import make_operator_jax
