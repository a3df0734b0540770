"""Pattern registry, lifecycle transitions and the content mutation boundary."""

from uplift.lifecycle.candidates import (
    CandidateGenerator,
    CandidateProposal,
    CatalogCandidateGenerator,
    Effort,
)
from uplift.lifecycle.manager import ApplyResult, PatternLifecycleManager
from uplift.lifecycle.mutator import (
    ContentMutator,
    HttpContentMutator,
    InMemoryContentMutator,
    RetryingContentMutator,
    create_mutator,
)

__all__ = [
    "ApplyResult",
    "CandidateGenerator",
    "CandidateProposal",
    "CatalogCandidateGenerator",
    "ContentMutator",
    "Effort",
    "HttpContentMutator",
    "InMemoryContentMutator",
    "PatternLifecycleManager",
    "RetryingContentMutator",
    "create_mutator",
]
