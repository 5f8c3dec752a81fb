"""History loading, topology and invariant rules."""

from .loader import SnapshotError, dump_history, history_from_dict, load_history
from .model import Catalog, History, Step
from .rules import ArchRules, Violation

__all__ = [
    "ArchRules",
    "Catalog",
    "History",
    "SnapshotError",
    "Step",
    "Violation",
    "dump_history",
    "history_from_dict",
    "load_history",
]
