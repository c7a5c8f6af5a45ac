"""Shared fixtures: an in-memory stand-in for the supabase-py query builder."""
import copy
import os
import sys
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional

import pytest
from postgrest.exceptions import APIError

# Set test environment variables BEFORE importing app modules
os.environ.setdefault("SUPABASE_URL", "")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "")
os.environ.setdefault("LLM_PROVIDER", "openai")

# Add backend modules to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "app" / "backend"))


# =============================================================================
# Fake Supabase client
# =============================================================================

def _resolve(row: Dict[str, Any], path: str) -> List[Any]:
    """All values at a dotted path; embedded resources may be dicts or lists."""
    values = [row]
    for part in path.split("."):
        next_values = []
        for value in values:
            if isinstance(value, list):
                next_values.extend(v.get(part) for v in value if isinstance(v, dict))
            elif isinstance(value, dict):
                next_values.append(value.get(part))
        values = next_values
    return values


class FakeQuery:
    """Chainable query mimicking the parts of the PostgREST builder the backend uses."""

    def __init__(self, db: "FakeSupabase", table: str):
        self._db = db
        self._table = table
        self._columns = "*"
        self._filters: List[Callable[[Dict[str, Any]], bool]] = []
        self._embed_filters: List[tuple] = []
        self._orders: List[tuple] = []
        self._limit: Optional[int] = None
        self._insert: Optional[Dict[str, Any]] = None
        self._update: Optional[Dict[str, Any]] = None

    def select(self, columns: str = "*"):
        self._columns = columns
        return self

    def insert(self, payload: Dict[str, Any]):
        self._insert = payload
        return self

    def update(self, payload: Dict[str, Any]):
        self._update = payload
        return self

    def eq(self, column: str, value: Any):
        if "." in column:
            self._embed_filters.append((column, value))
        else:
            self._filters.append(lambda row: row.get(column) == value)
        return self

    def in_(self, column: str, values: List[Any]):
        wanted = list(values)
        self._filters.append(lambda row: row.get(column) in wanted)
        return self

    def order(self, column: str, desc: bool = False):
        self._orders.append((column, desc))
        return self

    def limit(self, count: int):
        self._limit = count
        return self

    def execute(self):
        self._db.calls.append(self._table)
        if self._table in self._db.fail_tables:
            raise ConnectionError(f"connection refused while reading {self._table}")

        if self._insert is not None:
            return SimpleNamespace(data=[self._db.insert_row(self._table, self._insert)])
        if self._update is not None:
            return SimpleNamespace(data=self._apply_update())
        return SimpleNamespace(data=self._select())

    def _matches(self, row: Dict[str, Any]) -> bool:
        return all(check(row) for check in self._filters)

    def _select(self) -> List[Dict[str, Any]]:
        rows = []
        for stored in self._db.tables.get(self._table, []):
            if not self._matches(stored):
                continue
            row = copy.deepcopy(stored)
            if not self._apply_embed_filters(row):
                continue
            rows.append(row)

        for column, desc in reversed(self._orders):
            rows.sort(key=lambda r: (r.get(column) is None, r.get(column)), reverse=desc)
        if self._limit is not None:
            rows = rows[: self._limit]
        return rows

    def _apply_embed_filters(self, row: Dict[str, Any]) -> bool:
        # !inner embeds drop the parent row; plain embeds are nulled instead
        for path, value in self._embed_filters:
            relation = path.split(".")[0]
            if value in _resolve(row, path):
                continue
            if f"{relation}!inner" in self._columns:
                return False
            row[relation] = None
        return True

    def _apply_update(self) -> List[Dict[str, Any]]:
        if self._db.before_update:
            self._db.before_update.pop(0)(self._db)
        updated = []
        for stored in self._db.tables.get(self._table, []):
            if self._matches(stored):
                stored.update(copy.deepcopy(self._update))
                updated.append(copy.deepcopy(stored))
        return updated


class FakeSupabase:
    """In-memory tables keyed by name, each a list of row dicts."""

    def __init__(self, tables: Optional[Dict[str, List[Dict[str, Any]]]] = None):
        self.tables: Dict[str, List[Dict[str, Any]]] = copy.deepcopy(tables or {})
        self.unique: Dict[str, List[str]] = {"prompt_usage_analytics": ["prompt_template_id"]}
        self.fail_tables: set = set()
        self.before_update: List[Callable[["FakeSupabase"], None]] = []
        self.calls: List[str] = []

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def insert_row(self, table: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        rows = self.tables.setdefault(table, [])
        for column in self.unique.get(table, []):
            if any(r.get(column) == payload.get(column) for r in rows):
                raise APIError({
                    "message": f'duplicate key value violates unique constraint "{table}_{column}_key"',
                    "code": "23505",
                    "hint": None,
                    "details": None,
                })
        row = {"id": max((r.get("id") or 0 for r in rows), default=0) + 1, **copy.deepcopy(payload)}
        rows.append(row)
        return copy.deepcopy(row)


# =============================================================================
# Row builders
# =============================================================================

IELTS = {"exam_name": "IELTS", "display_name": "IELTS Academic"}
TEF = {"exam_name": "TEF", "display_name": "TEF Canada"}
WRITING = {"skill_name": "writing", "display_name": "Writing"}
SPEAKING = {"skill_name": "speaking", "display_name": "Speaking"}


def part(name: str) -> Dict[str, Any]:
    return {"part_name": name, "display_name": name.title(), "description": None}


def template_row(
    id: int,
    version: str,
    exam: Dict[str, Any] = IELTS,
    skill: Dict[str, Any] = WRITING,
    test_part: Optional[str] = "task2",
    is_active: bool = True,
) -> Dict[str, Any]:
    return {
        "id": id,
        "template_name": f"{exam['exam_name']} {skill['skill_name']} analysis",
        "version": version,
        "description": None,
        "is_active": is_active,
        "exam_types": dict(exam),
        "skill_types": dict(skill),
        "test_parts": part(test_part) if test_part else None,
    }


def section_row(
    template_id: int,
    order_index: int,
    content: str,
    content_type: str,
    variables: Optional[Dict[str, Any]] = None,
    section_name: str = "section",
) -> Dict[str, Any]:
    return {
        "prompt_template_id": template_id,
        "order_index": order_index,
        "prompt_section_content": {
            "content": content,
            "content_type": content_type,
            "variables": variables,
            "prompt_sections": {"section_name": section_name},
        },
    }


def example_row(
    id: int,
    score_level: float,
    response: str,
    justification: str,
    verified: bool = True,
    test_part: Optional[str] = "task2",
) -> Dict[str, Any]:
    return {
        "id": id,
        "score_level": score_level,
        "example_response": response,
        "example_question": None,
        "score_justification": justification,
        "criteria_breakdown": None,
        "strengths": None,
        "weaknesses": ["limited range"],
        "is_verified": verified,
        "exam_types": {"exam_name": "IELTS"},
        "skill_types": {"skill_name": "writing"},
        "test_parts": {"part_name": test_part} if test_part else None,
    }


def benchmark_row(id: int, criterion: str, score_level: float) -> Dict[str, Any]:
    return {
        "id": id,
        "criterion_name": criterion,
        "score_level": score_level,
        "description": f"{criterion} at band {score_level}",
        "key_features": ["feature"],
        "typical_errors": None,
        "improvement_tips": None,
        "exam_types": {"exam_name": "IELTS"},
        "skill_types": {"skill_name": "writing"},
        "test_parts": {"part_name": "task2"},
    }


@pytest.fixture
def fake_db():
    """Empty fake Supabase client."""
    return FakeSupabase()


@pytest.fixture
def seeded_db():
    """IELTS writing task 2 with three template versions, sections and calibration data."""
    return FakeSupabase({
        "exam_types": [
            {"id": 1, **IELTS, "is_active": True},
            {"id": 2, **TEF, "is_active": True},
        ],
        "skill_types": [
            {"id": 1, **SPEAKING},
            {"id": 2, **WRITING},
        ],
        "test_parts": [
            {"id": 1, **part("task1"), "is_active": True, "exam_types": {"exam_name": "IELTS"}, "skill_types": {"skill_name": "writing"}},
            {"id": 2, **part("task2"), "is_active": True, "exam_types": {"exam_name": "IELTS"}, "skill_types": {"skill_name": "writing"}},
            {"id": 3, **part("part1"), "is_active": True, "exam_types": {"exam_name": "IELTS"}, "skill_types": {"skill_name": "speaking"}},
        ],
        "prompt_templates": [
            template_row(1, "1.0"),
            template_row(2, "1.1"),
            template_row(3, "2.0"),
            template_row(4, "3.0", is_active=False),
            template_row(5, "1.0", skill=SPEAKING, test_part="part1"),
        ],
        "prompt_template_sections": [
            section_row(3, 2, "Response: {studentResponse}", "user", section_name="response"),
            section_row(3, 1, "You are an examiner for {examName}.", "system", section_name="role"),
            section_row(3, 3, "Score this {partName} answer in about {limit} words.", "instruction", {"limit": 200}, "task"),
            section_row(5, 1, "You are a speaking examiner for {examName}.", "system"),
            section_row(5, 2, "Assess the transcript.", "instruction"),
        ],
        "scoring_examples": [
            example_row(11, 7.0, "A band seven essay.", "Clear position throughout."),
            example_row(10, 5.5, "A band five essay.", "Ideas are underdeveloped."),
            example_row(12, 8.0, "Unverified essay.", "Pending review.", verified=False),
            example_row(13, 6.5, "A task one report.", "Overview present.", test_part="task1"),
        ],
        "score_benchmarks": [
            benchmark_row(21, "Task Response", 7.0),
            benchmark_row(20, "Lexical Resource", 7.0),
            benchmark_row(22, "Lexical Resource", 6.0),
        ],
    })
