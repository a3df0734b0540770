"""Exploratory-mode candidate generation.

When iterations stop producing meaningful improvement the strategy
optimizer switches to exploratory mode: instead of refining patterns that
are already in the registry it asks a CandidateGenerator for fresh
hypotheses, ranked by expected impact per unit of effort.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from uplift.core.models import Pattern


class Effort(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def weight(self) -> int:
        return {"low": 1, "medium": 2, "high": 3}[self.value]


_LOW_EFFORT_KEYWORDS = ("cta", "button", "headline", "copy")
_MEDIUM_EFFORT_KEYWORDS = ("layout", "placement", "order")
_HIGH_EFFORT_KEYWORDS = ("design", "visual", "video", "interactive")


def estimate_effort(name: str) -> Effort:
    """Keyword heuristic for how much work a pattern takes to build."""
    lowered = name.lower()
    if any(word in lowered for word in _LOW_EFFORT_KEYWORDS):
        return Effort.LOW
    if any(word in lowered for word in _HIGH_EFFORT_KEYWORDS):
        return Effort.HIGH
    if any(word in lowered for word in _MEDIUM_EFFORT_KEYWORDS):
        return Effort.MEDIUM
    return Effort.MEDIUM


@dataclass(frozen=True)
class CandidateProposal:
    """A pattern idea not yet in the registry."""

    name: str
    category: str
    hypothesis: str
    expected_impact: float
    effort: Effort

    @classmethod
    def from_dict(cls, data: dict) -> CandidateProposal:
        """Build a proposal; effort is estimated from the name when absent."""
        effort = data.get("effort")
        return cls(
            name=data["name"],
            category=data.get("category", "general"),
            hypothesis=data.get("hypothesis", ""),
            expected_impact=float(data.get("expected_impact", 0.0)),
            effort=Effort(effort) if effort else estimate_effort(data["name"]),
        )

    @property
    def score(self) -> float:
        return self.expected_impact / self.effort.weight

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "category": self.category,
            "hypothesis": self.hypothesis,
            "expected_impact": self.expected_impact,
            "effort": self.effort.value,
            "score": round(self.score, 2),
        }


class CandidateGenerator(ABC):
    """Source of new pattern proposals."""

    @abstractmethod
    def generate(self, existing: Iterable[Pattern], limit: int) -> list[CandidateProposal]:
        """Return up to ``limit`` proposals not already registered, best first."""
        ...


DEFAULT_CATALOG: tuple[CandidateProposal, ...] = (
    CandidateProposal(
        name="Social Proof",
        category="trust_building",
        hypothesis="Testimonials and usage counts near the CTA raise conversions.",
        expected_impact=12.0,
        effort=Effort.LOW,
    ),
    CandidateProposal(
        name="Interactive Elements",
        category="engagement",
        hypothesis="Calculators and quizzes keep visitors engaged long enough to convert.",
        expected_impact=15.0,
        effort=Effort.HIGH,
    ),
    CandidateProposal(
        name="Scarcity & Urgency",
        category="psychological_triggers",
        hypothesis="Limited-time offers and stock indicators prompt earlier decisions.",
        expected_impact=18.0,
        effort=Effort.LOW,
    ),
    CandidateProposal(
        name="Value Proposition",
        category="messaging",
        hypothesis="A sharper benefit-led headline clarifies why to act now.",
        expected_impact=14.0,
        effort=Effort.LOW,
    ),
    CandidateProposal(
        name="Progressive Disclosure",
        category="information_architecture",
        hypothesis="Revealing detail on demand reduces overwhelm on long pages.",
        expected_impact=11.0,
        effort=Effort.MEDIUM,
    ),
    CandidateProposal(
        name="Personalization",
        category="relevance",
        hypothesis="Content matched to referrer or segment feels more relevant.",
        expected_impact=20.0,
        effort=Effort.HIGH,
    ),
    CandidateProposal(
        name="Multimedia Content",
        category="engagement",
        hypothesis="Short product videos explain the offer faster than text.",
        expected_impact=16.0,
        effort=Effort.HIGH,
    ),
    CandidateProposal(
        name="Risk Reversal",
        category="trust_building",
        hypothesis="Guarantees and free trials remove the cost of a wrong decision.",
        expected_impact=13.0,
        effort=Effort.LOW,
    ),
)


class CatalogCandidateGenerator(CandidateGenerator):
    """Proposes entries from a fixed category-keyed catalog.

    Entries whose name matches a registered pattern (case-insensitive) are
    skipped. Ranking is by ``expected_impact / effort weight``, then by
    expected impact, then by name.
    """

    def __init__(self, catalog: Iterable[CandidateProposal] = DEFAULT_CATALOG) -> None:
        self.catalog = tuple(catalog)

    @property
    def categories(self) -> list[str]:
        return sorted({entry.category for entry in self.catalog})

    def generate(self, existing: Iterable[Pattern], limit: int) -> list[CandidateProposal]:
        taken = {pattern.name.strip().lower() for pattern in existing}
        fresh = [entry for entry in self.catalog if entry.name.lower() not in taken]
        fresh.sort(key=lambda entry: (-entry.score, -entry.expected_impact, entry.name))
        return fresh[: max(limit, 0)]
