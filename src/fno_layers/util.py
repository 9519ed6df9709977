import yaml
import logging

LOG_FORMAT = "%(asctime)s %(levelname)s: %(message)s"


def load_config(path: str) -> dict:
    """Load a YAML run config (``model``, ``input``, ``seed``)."""
    with open(path, 'r') as f:
        cfg = yaml.safe_load(f)
    if cfg is None:
        return {}
    if not isinstance(cfg, dict):
        raise ValueError(f"Config {path} must be a mapping, got {type(cfg).__name__}")
    return cfg


def set_logger(logfile: str = None, level=logging.INFO):
    """Configure root logger; ``level`` may be a name such as ``"DEBUG"``."""
    if isinstance(level, str):
        name = level
        level = logging.getLevelName(name.upper())
        if not isinstance(level, int):
            raise ValueError(f"Unknown log level: {name}")
    logger = logging.getLogger()
    logger.setLevel(level)
    fmt = logging.Formatter(LOG_FORMAT)
    ch = logging.StreamHandler()
    ch.setFormatter(fmt)
    logger.addHandler(ch)
    if logfile:
        fh = logging.FileHandler(logfile)
        fh.setFormatter(fmt)
        logger.addHandler(fh)
    return logger
