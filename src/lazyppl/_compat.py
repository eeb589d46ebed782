"""Compatibility helpers for third-party API transitions.

Kept minimal; remove once TensorFlow Probability supports current JAX
releases directly.
"""

from __future__ import annotations

import jax


def ensure_jax_tfp_compat() -> None:
    """Install the shim TFP needs to import on JAX >= 0.7.

    TFP still looks up ``jax.interpreters.xla.pytype_aval_mappings``, which
    moved to ``jax.core.pytype_aval_mappings``.
    """

    xla_interpreter = jax.interpreters.xla
    if not hasattr(xla_interpreter, "pytype_aval_mappings"):
        xla_interpreter.pytype_aval_mappings = jax.core.pytype_aval_mappings
