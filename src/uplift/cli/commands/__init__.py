"""CLI command implementations, grouped by concern."""

from .history import history, strategy
from .patterns import candidates, patterns, pilot, promote, propose, retire, targets
from .run import evaluate, run

__all__ = [
    "candidates",
    "evaluate",
    "history",
    "patterns",
    "pilot",
    "promote",
    "propose",
    "retire",
    "run",
    "strategy",
    "targets",
]
