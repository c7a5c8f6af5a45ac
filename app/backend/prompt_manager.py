"""
Prompt Manager

Resolves the stored prompt template for an exam / skill / part, composes its
sections with runtime variables, attaches scoring calibration material and
records per-template usage analytics.

Storage problems are logged and surface as None / [] so request handlers can
fall back to a static prompt instead of failing the request.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from supabase import Client

from calibration import CalibrationRetriever
from config import IELTS_EXAM_NAME, LATEST_VERSION
from db_helpers import fetch_template_sections
from prompt_composer import SectionOrderConflict, compose_sections
from states import (
    AnalysisPrompt,
    BuiltPrompt,
    PromptPair,
    PromptTemplate,
    ScoreBenchmark,
    ScoringExample,
)
from template_resolver import TemplateResolver
from usage_tracker import UsageAnalyticsTracker

logger = logging.getLogger(__name__)


def count_words(text: str) -> int:
    return len((text or "").split())


def format_score_level(level: float) -> str:
    """7.0 -> '7', 6.5 -> '6.5'"""
    return str(int(level)) if float(level).is_integer() else str(level)


def build_analysis_user_prompt(
    instructions: str,
    student_response: str,
    question: Optional[str],
    examples: List[ScoringExample],
) -> str:
    """Lay out the user message: instructions, question, response, calibration examples."""
    user_prompt = f"{instructions}\n\n"

    if question:
        user_prompt += f'Question: "{question}"\n\n'

    user_prompt += f'Student Response: "{student_response}"\n\n'
    user_prompt += f"Word Count: {count_words(student_response)}\n\n"

    if examples:
        user_prompt += "Reference Scoring Examples:\n"
        for example in examples:
            user_prompt += f"\nBand {format_score_level(example.score_level)} Example:\n"
            user_prompt += f'Response: "{example.example_response}"\n'
            user_prompt += f"Justification: {example.score_justification}\n"
        user_prompt += "\n"

    return user_prompt


class PromptManager:
    """
    Entry point for prompt composition used by the feedback handlers.

    Construct one per Supabase client; collaborators can be injected for tests.

    Example:
        manager = PromptManager(create_supabase_client())
        prompt = manager.get_complete_analysis_prompt("IELTS", "writing", "task2", essay)
    """

    def __init__(
        self,
        client: Optional[Client],
        *,
        resolver: Optional[TemplateResolver] = None,
        calibration: Optional[CalibrationRetriever] = None,
        tracker: Optional[UsageAnalyticsTracker] = None,
    ):
        self._client = client
        self._resolver = resolver or TemplateResolver(client)
        self._calibration = calibration or CalibrationRetriever(client)
        self._tracker = tracker or UsageAnalyticsTracker(client)

    def get_prompt_template(
        self,
        exam_name: str,
        skill_name: str,
        part_name: Optional[str] = None,
        version: str = LATEST_VERSION,
    ) -> Optional[PromptTemplate]:
        """Resolve a template; version 'latest' picks the highest published version."""
        return self._resolver.resolve(exam_name, skill_name, part_name, version)

    def build_prompt(self, template_id: int, variables: Optional[Dict[str, Any]] = None) -> Optional[BuiltPrompt]:
        """
        Build the prompt text from a template's sections.

        Args:
            template_id: Template to compose
            variables: Runtime values; they override section defaults

        Returns:
            BuiltPrompt, or None if the sections could not be read or are misordered
        """
        sections = fetch_template_sections(self._client, template_id)
        if sections is None:
            return None

        try:
            composed = compose_sections(sections, variables or {})
        except SectionOrderConflict as e:
            logger.error(f"❌ Template {template_id} has conflicting section order: {e}")
            return None

        return BuiltPrompt(
            system_prompt=composed.system,
            user_prompt=composed.user,
            instructions=composed.instruction,
        )

    def get_scoring_examples(
        self,
        exam_name: str,
        skill_name: str,
        part_name: Optional[str] = None,
        score_levels: Optional[Sequence[float]] = None,
    ) -> List[ScoringExample]:
        return self._calibration.get_examples(exam_name, skill_name, part_name, score_levels)

    def get_score_benchmarks(
        self,
        exam_name: str,
        skill_name: str,
        part_name: Optional[str] = None,
    ) -> List[ScoreBenchmark]:
        return self._calibration.get_benchmarks(exam_name, skill_name, part_name)

    def get_complete_analysis_prompt(
        self,
        exam_name: str,
        skill_name: str,
        part_name: str,
        student_response: str,
        question: Optional[str] = None,
    ) -> Optional[AnalysisPrompt]:
        """
        Ready-to-send system and user prompts for analysing a student response.

        Returns None when no template resolves or it cannot be composed; the
        caller is expected to fall back to a static prompt.
        """
        try:
            template = self.get_prompt_template(exam_name, skill_name, part_name)
            if not template:
                return None

            prompt_data = self.build_prompt(template.id, {
                "examName": exam_name,
                "skillName": skill_name,
                "partName": part_name,
                "studentResponse": student_response,
                "question": question or "",
                "wordCount": count_words(student_response),
            })
            if not prompt_data:
                return None

            examples = self.get_scoring_examples(exam_name, skill_name, part_name)
            benchmarks = self.get_score_benchmarks(exam_name, skill_name, part_name)

            user_prompt = build_analysis_user_prompt(
                prompt_data.instructions,
                student_response,
                question,
                examples,
            )

            logger.info(
                f"✓ Analysis prompt ready for {exam_name}/{skill_name}/{part_name} "
                f"(template {template.id}, {len(examples)} example(s), {len(benchmarks)} benchmark(s))"
            )
            return AnalysisPrompt(
                template_id=template.id,
                system_prompt=prompt_data.system_prompt,
                user_prompt=user_prompt,
                examples=examples,
                benchmarks=benchmarks,
            )
        except Exception as e:
            logger.error(f"Error building analysis prompt: {e}", exc_info=True)
            return None

    def track_prompt_usage(self, template_id: int, processing_time_ms: float, success: bool) -> None:
        """Record one use of a template. Failures are logged, never raised."""
        self._tracker.record(template_id, processing_time_ms, success)

    # Older call sites only know the IELTS task / part

    def get_writing_analysis_prompt(
        self,
        task: str,
        text: str,
        question: Optional[str] = None,
    ) -> Optional[PromptPair]:
        result = self.get_complete_analysis_prompt(IELTS_EXAM_NAME, "writing", task, text, question)
        if not result:
            return None
        return PromptPair(system_prompt=result.system_prompt, user_prompt=result.user_prompt)

    def get_speaking_analysis_prompt(
        self,
        part: str,
        transcript: str,
        question: Optional[str] = None,
    ) -> Optional[PromptPair]:
        result = self.get_complete_analysis_prompt(IELTS_EXAM_NAME, "speaking", part, transcript, question)
        if not result:
            return None
        return PromptPair(system_prompt=result.system_prompt, user_prompt=result.user_prompt)
