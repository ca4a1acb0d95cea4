"""Tests for topic decomposition."""

from ghostbrowse.research.decomposer import (
    core_phrase,
    decompose,
    lead_queries,
    unique_queries,
)


class TestCorePhrase:

    def test_stop_words_and_short_words_removed(self):
        assert core_phrase("What is the future of AI chips") == "future chips"

    def test_falls_back_to_topic(self):
        assert core_phrase("  AI  ") == "AI"

    def test_lowercased(self):
        assert core_phrase("Quantum Computing") == "quantum computing"


class TestDecompose:

    def test_five_labelled_sub_questions(self):
        subs = decompose("quantum computing", year=2025)
        assert [s.label for s in subs] == [
            "Overview & current state",
            "Key players & projects",
            "Technical details",
            "Challenges & risks",
            "Future outlook",
        ]
        assert all(2 <= len(s.queries) <= 3 for s in subs)

    def test_overview_leads_with_topic_and_year(self):
        subs = decompose("Quantum Computing", year=2025)
        assert subs[0].queries == (
            "Quantum Computing",
            "quantum computing 2025 overview",
            "quantum computing latest news",
        )

    def test_deterministic(self):
        assert decompose("rust async", year=2024) == decompose("rust async", year=2024)

    def test_to_dict(self):
        data = decompose("rust async", year=2024)[1].to_dict()
        assert data == {
            "label": "Key players & projects",
            "queries": ["rust async top companies projects", "rust async leading players market"],
        }


class TestQueryHelpers:

    def test_lead_queries_one_per_sub_question(self):
        subs = decompose("rust async", year=2024)
        assert lead_queries(subs) == [
            "rust async",
            "rust async top companies projects",
            "rust async how it works technical",
            "rust async challenges problems risks",
            "rust async future predictions trends",
        ]

    def test_unique_queries_dedupes(self):
        subs = decompose("rust async", year=2024)
        queries = unique_queries(subs + subs)
        assert len(queries) == 11
        assert len(set(queries)) == 11
