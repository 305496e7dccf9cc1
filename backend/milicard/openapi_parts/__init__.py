"""Modular pieces for the programmatic OpenAPI builder.

The registry lives in ``constants``, schema/header fragments in ``helpers`` and
per-entity path generation in ``paths``.
"""

__all__ = [
    "constants",
    "helpers",
    "paths",
]
