"""Domain identifiers shared across planes."""

from boxsafe.domain.ids import generate_run_id, validate_run_id, validate_run_token

__all__ = ["generate_run_id", "validate_run_id", "validate_run_token"]
