"""
Input validation for Mermaid MCP tool parameters.

Provides reusable validators that produce clear error messages for all
parameters received from LLM callers.
"""

from __future__ import annotations

from typing import Any

from mermaid_mcp.errors import InvalidArguments


# ---------------------------------------------------------------------------
# Validation result
# ---------------------------------------------------------------------------

class ValidationError(InvalidArguments):
    """Raised when input validation fails."""


MIN_DIMENSION = 1
MAX_DIMENSION = 16384


# ---------------------------------------------------------------------------
# Primitive validators
# ---------------------------------------------------------------------------

def validate_string(value: Any, field_name: str, *, allow_empty: bool = True) -> str:
    """Ensure *value* is a string (optionally non-empty)."""
    if not isinstance(value, str):
        raise ValidationError(f"'{field_name}' must be a string, got {type(value).__name__}.")
    if not allow_empty and not value.strip():
        raise ValidationError(f"'{field_name}' must not be empty.")
    return value


def validate_int(
    value: Any,
    field_name: str,
    *,
    min_val: int | None = None,
    max_val: int | None = None,
) -> int:
    """Validate an integer value and optional range.

    Integral floats (``1920.0``) are accepted since JSON clients often send
    numbers that way.
    """
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValidationError(
            f"'{field_name}' must be an integer, got {type(value).__name__}."
        )
    if min_val is not None and value < min_val:
        raise ValidationError(
            f"'{field_name}' must be >= {min_val}, got {value}."
        )
    if max_val is not None and value > max_val:
        raise ValidationError(
            f"'{field_name}' must be <= {max_val}, got {value}."
        )
    return value


def validate_bool(value: Any, field_name: str) -> bool:
    """Ensure *value* is a boolean."""
    if not isinstance(value, bool):
        raise ValidationError(
            f"'{field_name}' must be a boolean, got {type(value).__name__}."
        )
    return value


def validate_dimension(value: Any, field_name: str) -> int:
    """Raster width/height in pixels."""
    return validate_int(value, field_name, min_val=MIN_DIMENSION, max_val=MAX_DIMENSION)


def validate_arguments_object(value: Any, tool_name: str) -> dict[str, Any]:
    """Ensure the raw tool arguments are a JSON object (``None`` means empty)."""
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValidationError(
            f"Arguments for '{tool_name}' must be an object, got {type(value).__name__}."
        )
    return value
