"""Tests for uplift.lifecycle.candidates module."""

import pytest

from uplift.core.models import Pattern
from uplift.lifecycle.candidates import (
    DEFAULT_CATALOG,
    CandidateProposal,
    CatalogCandidateGenerator,
    Effort,
    estimate_effort,
)


class TestEstimateEffort:
    @pytest.mark.parametrize(
        ("name", "effort"),
        [
            ("Hero CTA", Effort.LOW),
            ("Rewrite headline", Effort.LOW),
            ("Video testimonial", Effort.HIGH),
            ("Visual refresh", Effort.HIGH),
            ("Pricing table layout", Effort.MEDIUM),
            ("Something new", Effort.MEDIUM),
        ],
    )
    def test_keywords(self, name, effort):
        assert estimate_effort(name) == effort

    def test_weights(self):
        assert [e.weight for e in (Effort.LOW, Effort.MEDIUM, Effort.HIGH)] == [1, 2, 3]


class TestCandidateProposal:
    def test_from_dict_estimates_missing_effort(self):
        proposal = CandidateProposal.from_dict({"name": "Sticky CTA", "expected_impact": 8})

        assert proposal.effort == Effort.LOW
        assert proposal.category == "general"
        assert proposal.score == 8.0

    def test_from_dict_keeps_explicit_effort(self):
        proposal = CandidateProposal.from_dict(
            {"name": "Sticky CTA", "expected_impact": 9, "effort": "high"}
        )
        assert proposal.score == pytest.approx(3.0)

    def test_to_dict(self):
        data = DEFAULT_CATALOG[0].to_dict()
        assert set(data) == {"name", "category", "hypothesis", "expected_impact", "effort", "score"}


class TestCatalogCandidateGenerator:
    def test_ranks_by_impact_per_effort(self):
        proposals = CatalogCandidateGenerator().generate([], limit=8)

        assert [p.name for p in proposals] == [
            "Scarcity & Urgency",
            "Value Proposition",
            "Risk Reversal",
            "Social Proof",
            "Personalization",
            "Progressive Disclosure",
            "Multimedia Content",
            "Interactive Elements",
        ]

    def test_limit(self):
        assert len(CatalogCandidateGenerator().generate([], limit=3)) == 3
        assert CatalogCandidateGenerator().generate([], limit=0) == []

    def test_skips_registered_names(self):
        existing = [Pattern(id="p1", name="scarcity & urgency "), Pattern(id="p2", name="Other")]

        names = [p.name for p in CatalogCandidateGenerator().generate(existing, limit=2)]

        assert names == ["Value Proposition", "Risk Reversal"]

    def test_ties_broken_by_impact_then_name(self):
        catalog = [
            CandidateProposal("Beta", "x", "", 4.0, Effort.LOW),
            CandidateProposal("Alpha", "x", "", 4.0, Effort.LOW),
            CandidateProposal("Gamma", "x", "", 8.0, Effort.MEDIUM),
        ]
        names = [p.name for p in CatalogCandidateGenerator(catalog).generate([], limit=3)]
        assert names == ["Gamma", "Alpha", "Beta"]

    def test_categories(self):
        categories = CatalogCandidateGenerator().categories
        assert categories == sorted(set(categories))
        assert len(categories) >= 1
