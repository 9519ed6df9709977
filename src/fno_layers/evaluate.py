"""Parameter/state lifecycle of the operator layers.

Thin functional wrappers over Flax ``init``/``apply`` giving every layer the
same contract: parameters and state are created once, and evaluation maps
``(x, params, state)`` to ``(y, state)`` with the state passed through
untouched.
"""
import logging

import jax
from flax import errors as flax_errors
from flax.core.frozen_dict import unfreeze

from .errors import ShapeMismatchError

logger = logging.getLogger(__name__)


def _as_inputs(x):
    # multi-input layers (DeepONet) take a tuple of arrays
    return x if isinstance(x, tuple) else (x,)


def init_variables(rng, layer, x=None) -> dict:
    """All variable collections of ``layer``."""
    if x is not None:
        return unfreeze(layer.init(rng, *_as_inputs(x)))
    if hasattr(layer, "init_weights"):
        return unfreeze(layer.init(rng, method=type(layer).init_weights))
    raise ValueError(f"{type(layer).__name__} needs a sample input to initialize")


def initialize_parameters(rng, layer, x=None) -> dict:
    """Draw the trainable parameters of ``layer``.

    ``OperatorConv`` knows its weight shape from its configuration; composite
    layers infer their bypass widths from a sample input ``x``.
    """
    params = init_variables(rng, layer, x).get("params", {})
    logger.info(f"Initialized {type(layer).__name__} with {count_parameters(params)} parameters")
    return params


def initialize_state(rng, layer, x=None) -> dict:
    """Non-trainable collections; empty for every layer in this package."""
    if x is None and hasattr(layer, "init_weights"):
        return {}
    variables = init_variables(rng, layer, x)
    return {k: v for k, v in variables.items() if k != "params"}


def count_parameters(params) -> int:
    return sum(int(p.size) for p in jax.tree_util.tree_leaves(params))


def parameter_count(layer, params=None) -> int:
    """Closed-form parameter count, independent of the parameter values."""
    length = layer.parameter_length() if hasattr(layer, "parameter_length") else None
    if length is not None:
        return length
    if params is None:
        raise ValueError(f"{type(layer).__name__} has no closed-form parameter count; "
                         "pass its params")
    return count_parameters(params)


def evaluate(layer, x, params, state):
    """Apply ``layer`` to ``x``; returns ``(y, state)`` with ``state`` unchanged."""
    try:
        y = layer.apply({"params": params, **state}, *_as_inputs(x))
    except flax_errors.ScopeParamShapeError as e:
        raise ShapeMismatchError(str(e)) from e
    return y, state
