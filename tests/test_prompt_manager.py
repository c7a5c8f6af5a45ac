"""Tests for PromptManager prompt assembly."""
from unittest.mock import MagicMock

import pytest

from conftest import section_row
from prompt_manager import PromptManager, build_analysis_user_prompt, count_words, format_score_level
from states import ScoringExample


class TestHelpers:
    """Test word counting and score formatting."""

    @pytest.mark.parametrize("text,expected", [
        ("Hello world", 2),
        ("  spaced   out\ttext\n", 3),
        ("", 0),
        (None, 0),
    ])
    def test_count_words(self, text, expected):
        assert count_words(text) == expected

    def test_format_score_level(self):
        assert format_score_level(7.0) == "7"
        assert format_score_level(6.5) == "6.5"

    def test_user_prompt_layout(self):
        examples = [ScoringExample(score_level=7.0, example_response="Good essay.", score_justification="Clear.")]

        prompt = build_analysis_user_prompt("Score it.", "My essay here", "Discuss cities.", examples)

        assert prompt == (
            "Score it.\n\n"
            'Question: "Discuss cities."\n\n'
            'Student Response: "My essay here"\n\n'
            "Word Count: 3\n\n"
            "Reference Scoring Examples:\n"
            "\nBand 7 Example:\n"
            'Response: "Good essay."\n'
            "Justification: Clear.\n"
            "\n"
        )

    def test_user_prompt_without_question_or_examples(self):
        prompt = build_analysis_user_prompt("Score it.", "Short", None, [])

        assert "Question:" not in prompt
        assert "Reference Scoring Examples" not in prompt
        assert prompt.endswith("Word Count: 1\n\n")


class TestBuildPrompt:
    """Test PromptManager.build_prompt."""

    def test_composes_sections_in_order(self, seeded_db):
        prompt = PromptManager(seeded_db).build_prompt(3, {
            "examName": "IELTS",
            "studentResponse": "Hello world",
            "partName": "task2",
        })

        assert prompt.system_prompt == "You are an examiner for IELTS."
        assert prompt.user_prompt == "Response: Hello world"
        assert prompt.instructions == "Score this task2 answer in about 200 words."

    def test_template_without_sections(self, seeded_db):
        prompt = PromptManager(seeded_db).build_prompt(1)
        assert (prompt.system_prompt, prompt.user_prompt, prompt.instructions) == ("", "", "")

    def test_duplicate_order_index_returns_none(self, seeded_db):
        seeded_db.tables["prompt_template_sections"].append(section_row(3, 2, "clash", "user"))
        assert PromptManager(seeded_db).build_prompt(3, {}) is None

    def test_storage_error_returns_none(self, seeded_db):
        seeded_db.fail_tables.add("prompt_template_sections")
        assert PromptManager(seeded_db).build_prompt(3, {}) is None


class TestCompleteAnalysisPrompt:
    """Test PromptManager.get_complete_analysis_prompt."""

    def test_full_prompt(self, seeded_db):
        result = PromptManager(seeded_db).get_complete_analysis_prompt(
            "IELTS", "writing", "task2", "Cities grow fast", "Discuss urban growth."
        )

        assert result.template_id == 3
        assert result.system_prompt == "You are an examiner for IELTS."
        assert result.user_prompt.startswith("Score this task2 answer in about 200 words.\n\n")
        assert 'Question: "Discuss urban growth."' in result.user_prompt
        assert 'Student Response: "Cities grow fast"' in result.user_prompt
        assert "Word Count: 3" in result.user_prompt
        assert "\nBand 5.5 Example:\n" in result.user_prompt
        assert result.user_prompt.index("Band 5.5") < result.user_prompt.index("Band 7 Example")
        assert [e.id for e in result.examples] == [10, 11]
        assert len(result.benchmarks) == 3

    def test_missing_calibration_is_fine(self, seeded_db):
        seeded_db.tables["scoring_examples"] = []
        seeded_db.fail_tables.add("score_benchmarks")

        result = PromptManager(seeded_db).get_complete_analysis_prompt("IELTS", "writing", "task2", "Essay")

        assert result is not None
        assert result.examples == []
        assert result.benchmarks == []
        assert "Reference Scoring Examples" not in result.user_prompt

    def test_unknown_exam_returns_none(self, seeded_db):
        assert PromptManager(seeded_db).get_complete_analysis_prompt("TOEFL", "writing", "task2", "Essay") is None

    def test_unexpected_error_returns_none(self, seeded_db):
        resolver = MagicMock()
        resolver.resolve.side_effect = RuntimeError("boom")

        manager = PromptManager(seeded_db, resolver=resolver)

        assert manager.get_complete_analysis_prompt("IELTS", "writing", "task2", "Essay") is None

    def test_unconfigured_client(self):
        assert PromptManager(None).get_complete_analysis_prompt("IELTS", "writing", "task2", "Essay") is None

    def test_idempotent(self, seeded_db):
        manager = PromptManager(seeded_db)
        first = manager.get_complete_analysis_prompt("IELTS", "writing", "task2", "Essay", "Q")
        second = manager.get_complete_analysis_prompt("IELTS", "writing", "task2", "Essay", "Q")
        assert first == second


class TestLegacyWrappers:
    """Test the IELTS writing/speaking adapters."""

    def test_writing(self, seeded_db):
        pair = PromptManager(seeded_db).get_writing_analysis_prompt("task2", "My essay")

        assert pair.system_prompt == "You are an examiner for IELTS."
        assert 'Student Response: "My essay"' in pair.user_prompt

    def test_speaking(self, seeded_db):
        pair = PromptManager(seeded_db).get_speaking_analysis_prompt("part1", "I like music")

        assert pair.system_prompt == "You are a speaking examiner for IELTS."
        assert pair.user_prompt.startswith("Assess the transcript.\n\n")

    def test_missing_template(self, seeded_db):
        assert PromptManager(seeded_db).get_speaking_analysis_prompt("part3", "Hi") is None


class TestTrackPromptUsage:
    """Test usage tracking delegation."""

    def test_records_usage(self, fake_db):
        manager = PromptManager(fake_db)
        manager.track_prompt_usage(3, 100, True)
        manager.track_prompt_usage(3, 300, False)

        row = fake_db.tables["prompt_usage_analytics"][0]
        assert (row["usage_count"], row["avg_processing_time"], row["success_rate"]) == (2, 200, 50)

    def test_never_raises(self, fake_db):
        fake_db.fail_tables.add("prompt_usage_analytics")
        assert PromptManager(fake_db).track_prompt_usage(3, 100, True) is None
