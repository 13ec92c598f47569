"""
Utility modules for shared functionality across the codebase.

This package provides common utilities for:
- Linear algebra and ensemble conversions (linalg.py)
- Logging configuration (logging_config.py)
"""

from __future__ import annotations

from ensemble_da.utils.linalg import (
    as_vector,
    stack_ensemble,
    ensure_symmetric,
    assign_in_place,
    is_mutable_member,
    has_floating_dtype,
)

from ensemble_da.utils.logging_config import (
    get_logger,
    setup_logging,
)

__all__ = [
    # Linear algebra
    "as_vector",
    "stack_ensemble",
    "ensure_symmetric",
    "assign_in_place",
    "is_mutable_member",
    "has_floating_dtype",
    # Logging
    "get_logger",
    "setup_logging",
]
