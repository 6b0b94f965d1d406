from .context import PurgeContext
from .deletion import DeleteOutcome, delete_all, delete_with_finalizers
from .discovery import discover_all
from .identity import Category, categorize, deduplicate
from .runner import PurgeEngine, PurgeResult

__all__ = [
    "PurgeContext",
    "DeleteOutcome",
    "delete_all",
    "delete_with_finalizers",
    "discover_all",
    "Category",
    "categorize",
    "deduplicate",
    "PurgeEngine",
    "PurgeResult",
]
