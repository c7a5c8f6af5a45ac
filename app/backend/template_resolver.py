"""
Template resolution by exam / skill / part / version.

Templates are versioned and immutable; publishing a change adds a new row.
"latest" picks the highest version among the active templates matching the
triple, an explicit version must match exactly one of them.
"""

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from supabase import Client

from config import LATEST_VERSION
from states import PromptTemplate

logger = logging.getLogger(__name__)

_TEMPLATE_COLUMNS = "id, template_name, version, description, is_active"
_EXAM_EMBED = "exam_types!inner (exam_name, display_name)"
_SKILL_EMBED = "skill_types!inner (skill_name, display_name)"


def version_key(version: str) -> Tuple[Tuple[int, int, str], ...]:
    """
    Sort key for version strings.

    Segments split on '.' or '-'; numeric segments compare as integers and rank
    above textual ones, so "10.0" > "9.0" and "1.10" > "1.9".
    """
    key = []
    for segment in re.split(r"[.\-]", (version or "").strip()):
        if segment.isdigit():
            key.append((1, int(segment), ""))
        else:
            key.append((0, 0, segment))
    return tuple(key)


def select_latest(templates: List[PromptTemplate]) -> Optional[PromptTemplate]:
    """Highest version wins; equal versions fall back to the highest id."""
    if not templates:
        return None
    return max(templates, key=lambda t: (version_key(t.version), t.id))


class TemplateResolver:
    """Looks up the prompt template for an exam/skill/part combination."""

    def __init__(self, client: Optional[Client]):
        self._client = client

    def resolve(
        self,
        exam_name: str,
        skill_name: str,
        part_name: Optional[str] = None,
        version: str = LATEST_VERSION,
    ) -> Optional[PromptTemplate]:
        if not self._client:
            logger.error("❌ Supabase not configured, cannot resolve prompt template")
            return None

        try:
            rows = self._fetch_candidates(exam_name, skill_name, part_name, version)
        except Exception as e:
            logger.error(f"Error fetching prompt template: {e}", exc_info=True)
            return None

        candidates = self._matching(rows, exam_name, skill_name, part_name)
        if not candidates:
            logger.warning(
                f"⚠ No active prompt template for {exam_name}/{skill_name}/{part_name or '-'} "
                f"(version: {version})"
            )
            return None

        if version == LATEST_VERSION:
            template = select_latest(candidates)
        else:
            exact = [t for t in candidates if t.version == version]
            if len(exact) != 1:
                logger.warning(
                    f"⚠ Expected exactly one template for {exam_name}/{skill_name}/{part_name or '-'} "
                    f"version {version}, found {len(exact)}"
                )
                return None
            template = exact[0]

        logger.info(f"✓ Resolved prompt template {template.id} ({template.template_name} v{template.version})")
        return template

    def _fetch_candidates(
        self,
        exam_name: str,
        skill_name: str,
        part_name: Optional[str],
        version: str,
    ) -> List[Dict[str, Any]]:
        part_embed = "test_parts!inner (part_name, display_name)" if part_name else "test_parts (part_name, display_name)"
        query = (
            self._client.table("prompt_templates")
            .select(f"{_TEMPLATE_COLUMNS}, {_EXAM_EMBED}, {_SKILL_EMBED}, {part_embed}")
            .eq("exam_types.exam_name", exam_name)
            .eq("skill_types.skill_name", skill_name)
            .eq("is_active", True)
        )
        if part_name:
            query = query.eq("test_parts.part_name", part_name)
        if version != LATEST_VERSION:
            query = query.eq("version", version)

        result = query.execute()
        return result.data or []

    @staticmethod
    def _matching(
        rows: List[Dict[str, Any]],
        exam_name: str,
        skill_name: str,
        part_name: Optional[str],
    ) -> List[PromptTemplate]:
        templates = []
        for row in rows:
            try:
                template = PromptTemplate.from_row(row)
            except (KeyError, ValueError) as e:
                logger.warning(f"Skipping unusable template row: {e}")
                continue
            if not template.is_active:
                continue
            if template.exam_type.exam_name != exam_name or template.skill_type.skill_name != skill_name:
                continue
            if part_name and (template.test_part is None or template.test_part.part_name != part_name):
                continue
            templates.append(template)
        return templates
