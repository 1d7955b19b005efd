"""Utility modules."""

from recipe_store.utils.ids import generate_id, now_ms
from recipe_store.utils.names import fold_case, unique_name

__all__ = ["generate_id", "now_ms", "fold_case", "unique_name"]
