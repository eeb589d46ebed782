"""Package-wide constants and environment-driven settings.

Settings are read once, at import time:

- `LAZYPPL_ENABLE_X64` (default `"1"`): turn on JAX double precision when
  `lazyppl` is imported. Tree labels are always doubles, but the TFP
  transforms in `lazyppl.distributions` follow JAX's dtype rules.
- `LAZYPPL_LOG_EVERY` (default `10000`): number of chain steps between
  DEBUG progress records emitted by the samplers; `0` turns them off.
"""

import os
import warnings

import jax
import numpy as np

# `score(0)` is replaced by this weight so that log-weights stay finite.
LOG_SCORE_FLOOR = -300.0
SCORE_FLOOR = float(np.exp(LOG_SCORE_FLOOR))


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() not in ("0", "false", "no", "off", "")


def _env_count(name: str, default: int) -> int:
    value = int(os.environ.get(name, default))
    if value < 0:
        raise ValueError(f"{name} must be a non-negative integer, got {value}")
    return value


ENABLE_X64 = _env_flag("LAZYPPL_ENABLE_X64", True)
LOG_EVERY = _env_count("LAZYPPL_LOG_EVERY", 10000)


def apply_jax_config() -> None:
    """Apply the JAX settings selected by the environment."""
    if ENABLE_X64:
        jax.config.update("jax_enable_x64", True)


def check_x64() -> None:
    """Warn when JAX runs in single precision.

    Quantile transforms of labels close to 0 or 1 overflow to infinities in
    float32, so distributions built on them lose their tails.
    """
    if not jax.config.jax_enable_x64:
        warnings.warn(
            "JAX x64 mode is disabled; distribution transforms will run in float32. "
            "Call jax.config.update('jax_enable_x64', True) or set LAZYPPL_ENABLE_X64=1."
        )
