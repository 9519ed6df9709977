# scripts/run_operator.py
import argparse
import logging
import os
import time

import jax
import jax.numpy as jnp
from flax.serialization import to_bytes

from fno_layers.util import load_config, set_logger
from fno_layers.operator_jax import make_operator_jax
from fno_layers.evaluate import (initialize_parameters, initialize_state, parameter_count,
                                 evaluate)


def make_inputs(key, cfg):
    """Random inputs with the shapes listed under ``input`` in the config."""
    shapes = cfg["input"]["shape"]
    if shapes and isinstance(shapes[0], (list, tuple)):
        keys = jax.random.split(key, len(shapes))
        return tuple(jax.random.normal(k, tuple(s)) for k, s in zip(keys, shapes))
    return jax.random.normal(key, tuple(shapes))


def main():
    parser = argparse.ArgumentParser(description="Build an operator layer and run a forward pass")
    parser.add_argument("--config", type=str, required=True,
                        help="Path to YAML config file.")
    parser.add_argument("--outdir", type=str, default="results",
                        help="Directory to save outputs (default: results)")
    parser.add_argument("--logfile", type=str, default=None,
                        help="Optional file to log output")
    parser.add_argument("--log_level", type=str, default="INFO",
                        help="Logging level (default: INFO)")
    parser.add_argument("--save", action="store_true",
                        help="Serialize the initialized params to <outdir>/params.msgpack")
    parser.add_argument("--repeats", type=int, default=10,
                        help="Number of timed forward passes")
    args = parser.parse_args()

    set_logger(logfile=args.logfile, level=args.log_level)
    logging.info(f"Starting run: config={args.config}")

    cfg = load_config(args.config)
    model_cfg = cfg["model"]

    model = make_operator_jax(kind=model_cfg["kind"], **model_cfg.get("params", {}))

    key = jax.random.PRNGKey(cfg.get("seed", 0))
    init_key, data_key = jax.random.split(key)
    x = make_inputs(data_key, cfg)

    params = initialize_parameters(init_key, model, x)
    state = initialize_state(init_key, model, x)
    logging.info(f"Parameter count: {parameter_count(model, params)}")

    forward = jax.jit(lambda p, s, x: evaluate(model, x, p, s))
    y, state = forward(params, state, x)
    y.block_until_ready()

    start = time.time()
    for _ in range(args.repeats):
        y, state = forward(params, state, x)
    y.block_until_ready()
    elapsed = (time.time() - start) / max(args.repeats, 1)

    in_shapes = [a.shape for a in x] if isinstance(x, tuple) else x.shape
    logging.info(f"Input shape(s): {in_shapes}")
    logging.info(f"Output shape:   {y.shape}")
    logging.info(f"Output mean    = {float(jnp.mean(y)):.6f}")
    logging.info(f"Forward time   = {elapsed * 1e3:.3f} ms")

    if args.save:
        os.makedirs(args.outdir, exist_ok=True)
        path = os.path.join(args.outdir, "params.msgpack")
        with open(path, "wb") as f:
            f.write(to_bytes(params))
        logging.info(f"Saved params to {path}")


if __name__ == '__main__':
    main()
