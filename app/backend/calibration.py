"""
Scoring calibration material: verified worked examples and per-criterion
score benchmarks for an exam / skill / part.

Missing calibration data is normal for new templates, so every lookup
returns an empty list rather than failing. A malformed row is skipped on its
own without hiding the rest of the set.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence, Type, TypeVar

from pydantic import BaseModel, ValidationError
from supabase import Client

from states import ScoreBenchmark, ScoringExample

logger = logging.getLogger(__name__)

_EXAMPLE_COLUMNS = (
    "id, score_level, example_response, example_question, score_justification, "
    "criteria_breakdown, strengths, weaknesses"
)
_BENCHMARK_COLUMNS = (
    "id, criterion_name, score_level, description, key_features, typical_errors, improvement_tips"
)

RowModel = TypeVar("RowModel", bound=BaseModel)


def _identity_embeds(part_name: Optional[str]) -> str:
    embeds = "exam_types!inner (exam_name), skill_types!inner (skill_name)"
    if part_name:
        embeds += ", test_parts!inner (part_name)"
    return embeds


def _parse_rows(model: Type[RowModel], rows: List[Dict[str, Any]]) -> List[RowModel]:
    parsed = []
    for row in rows:
        try:
            parsed.append(model(**row))
        except ValidationError as e:
            logger.warning(f"⚠ Skipping malformed {model.__name__} row {row.get('id')}: {e.error_count()} error(s)")
    return parsed


class CalibrationRetriever:
    def __init__(self, client: Optional[Client]):
        self._client = client

    def get_examples(
        self,
        exam_name: str,
        skill_name: str,
        part_name: Optional[str] = None,
        score_levels: Optional[Sequence[float]] = None,
    ) -> List[ScoringExample]:
        """Verified scoring examples, ascending by score level."""
        if not self._client:
            logger.error("❌ Supabase not configured, cannot fetch scoring examples")
            return []

        try:
            query = (
                self._client.table("scoring_examples")
                .select(f"{_EXAMPLE_COLUMNS}, {_identity_embeds(part_name)}")
                .eq("exam_types.exam_name", exam_name)
                .eq("skill_types.skill_name", skill_name)
                .eq("is_verified", True)
            )
            if part_name:
                query = query.eq("test_parts.part_name", part_name)
            if score_levels:
                query = query.in_("score_level", list(score_levels))

            result = query.order("score_level").order("id").execute()
        except Exception as e:
            logger.error(f"Error fetching scoring examples: {e}", exc_info=True)
            return []

        examples = _parse_rows(ScoringExample, result.data or [])
        if score_levels:
            wanted = {float(level) for level in score_levels}
            examples = [e for e in examples if e.score_level in wanted]
        examples.sort(key=lambda e: (e.score_level, e.id if e.id is not None else 0))

        logger.info(f"Found {len(examples)} scoring example(s) for {exam_name}/{skill_name}/{part_name or '-'}")
        return examples

    def get_benchmarks(
        self,
        exam_name: str,
        skill_name: str,
        part_name: Optional[str] = None,
    ) -> List[ScoreBenchmark]:
        """Score benchmarks ordered by criterion, then level."""
        if not self._client:
            logger.error("❌ Supabase not configured, cannot fetch score benchmarks")
            return []

        try:
            query = (
                self._client.table("score_benchmarks")
                .select(f"{_BENCHMARK_COLUMNS}, {_identity_embeds(part_name)}")
                .eq("exam_types.exam_name", exam_name)
                .eq("skill_types.skill_name", skill_name)
            )
            if part_name:
                query = query.eq("test_parts.part_name", part_name)

            result = query.order("criterion_name").order("score_level").order("id").execute()
        except Exception as e:
            logger.error(f"Error fetching score benchmarks: {e}", exc_info=True)
            return []

        benchmarks = _parse_rows(ScoreBenchmark, result.data or [])
        benchmarks.sort(key=lambda b: (b.criterion_name, b.score_level, b.id if b.id is not None else 0))

        logger.info(f"Found {len(benchmarks)} score benchmark(s) for {exam_name}/{skill_name}/{part_name or '-'}")
        return benchmarks
