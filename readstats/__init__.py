"""readstats: reading-session statistics, streaks and milestones."""

from .cli import main
from .metrics import AggregateSnapshot, compute_snapshot
from .milestones import detect_milestones
from .streaks import compute_streak

__version__ = "0.1.0"

__all__ = [
    "main",
    "AggregateSnapshot",
    "compute_snapshot",
    "compute_streak",
    "detect_milestones",
    "__version__",
]
