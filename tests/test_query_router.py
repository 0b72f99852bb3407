"""
Test suite for query router module.
"""

from unittest.mock import patch

import pytest
from conftest import BIBLE_PAGES
from venue_assistant.query_router import (
    NOT_READY_MESSAGE,
    SEPARATOR,
    extract_date,
    extract_subject,
)


class TestExtraction:
    """Test date and subject extraction from questions."""

    @pytest.mark.parametrize("question,expected", [
        ("What's on 2024-06-15?", "2024-06-15"),
        ("Anything on 15/06/2024?", "15/06/2024"),
        ("Is there a party on June 15th 2024?", "June 15th 2024"),
        ("Who plays on the 15th of June?", "15th June"),
        ("How many Pioneer CDJ 3000 does Studio 338 have?", None),
    ])
    def test_extract_date(self, question, expected):
        assert extract_date(question) == expected

    @pytest.mark.parametrize("question,expected", [
        ("How many Pioneer CDJ 3000 does Studio 338 have?", "Pioneer CDJ 3000"),
        ("How much does the haze machine cost to hire?", "haze machine"),
        ("What are the restrictions regarding decibel?", "decibel"),
        ("Tell me about the truss", "truss"),
        ("Is there parking?", None),
    ])
    def test_extract_subject(self, question, expected):
        assert extract_subject(question) == expected


class TestKnowledgeRouter:
    """Test KnowledgeRouter class."""

    def test_not_ready(self, router):
        """Test questions before initialization get the setup message."""
        assert router.answer("What's on 2024-06-15?") == NOT_READY_MESSAGE

    def test_initialize(self, router):
        assert router.initialize(document_pages=BIBLE_PAGES) is True
        assert router.index.generation == 1
        assert router.registry.version == "1.0.0"

    def test_initialize_from_path(self, router, tmp_path):
        path = tmp_path / "bible.txt"
        path.write_text("\f".join(BIBLE_PAGES), encoding="utf-8")

        assert router.initialize(document_path=str(path)) is True
        assert len(router.index.raw) == 2

    def test_exact_event(self, ready_router):
        answer = ready_router.answer("What's on 2024-06-15?")

        assert answer == (
            "On 2024-06-15: AMNESIA LONDON. Amnesia Ibiza comes to London. "
            "(Time: 12:00 - 23:00, Tickets: Available)"
        )

    def test_nearby_event(self, ready_router):
        answer = ready_router.answer("Anything on 16/06/2024?")

        assert answer.startswith("No event exactly on 2024-06-16, but nearby:\nOn 2024-06-15: AMNESIA LONDON.")

    def test_no_event(self, ready_router):
        answer = ready_router.answer("What's on June 25th 2024?")

        assert "I don't have information about an event on 2024-06-25" in answer

    def test_specification_lookup_only(self, ready_router):
        """Test an equipment question missing from the bible is answered from the catalog alone."""
        answer = ready_router.answer("How many Pioneer CDJ 3000 does Studio 338 have?")

        assert answer.startswith("From current specs for Pioneer CDJ-3000: quantity: 6")
        assert SEPARATOR not in answer
        assert "technical docs" not in answer

    def test_lookup_by_exact_id(self, ready_router):
        answer = ready_router.answer("robe-pointe")

        assert answer.startswith("From current specs for Robe Pointe: quantity: 12")

    def test_document_answer(self, ready_router):
        """Test a question's subject is searched in the technical bible."""
        answer = ready_router.answer("What are the restrictions regarding decibel?")

        assert "Decibel limit is 105dB at the desk" in answer

    def test_sources_are_merged(self, ready_router):
        """Test blocks from several sources are joined with the separator."""
        answer = ready_router.answer("Can we use the Robe Pointe on 2024-06-15?")

        calendar_block, spec_block = answer.split(SEPARATOR)
        assert calendar_block.startswith("On 2024-06-15: AMNESIA LONDON.")
        assert spec_block.startswith("From current specs for Robe Pointe")

    def test_nothing_found(self, ready_router):
        answer = ready_router.answer("Is there parking?")

        assert answer.startswith("I couldn't find specific information")
        assert "Studio 338" in answer

    def test_failing_source_is_skipped(self, ready_router):
        """Test one source raising does not break the others."""
        with patch.object(ready_router.registry, "find_items", side_effect=RuntimeError("boom")):
            answer = ready_router.answer("What's on 2024-06-15?")

        assert answer.startswith("On 2024-06-15: AMNESIA LONDON.")

    def test_missing_document_still_answers(self, router, tmp_path):
        """Test the router works without a technical bible."""
        assert router.initialize(document_path=str(tmp_path / "missing.json")) is True

        assert router.answer("robe-pointe").startswith("From current specs for Robe Pointe")
