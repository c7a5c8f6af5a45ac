"""
Database Helper Functions for the prompt service

Provides helper functions for:
- Supabase client construction
- Exam / skill / part catalog lookups
- Template listings for the prompt admin view
- Ordered template sections (used for composition and preview)
"""

import logging
from typing import List, Dict, Any, Optional
from supabase import Client, create_client

from config import SUPABASE_URL, SUPABASE_SERVICE_KEY
from states import SectionContent

logger = logging.getLogger(__name__)


def create_supabase_client(url: str = SUPABASE_URL, key: str = SUPABASE_SERVICE_KEY) -> Optional[Client]:
    """Create a Supabase client, or None when the service is not configured."""
    if not url or not key:
        logger.warning("⚠ Supabase not configured - SUPABASE_URL or SUPABASE_SERVICE_KEY not set")
        logger.warning(f"   SUPABASE_URL: {'SET' if url else 'NOT SET'}")
        logger.warning(f"   SUPABASE_SERVICE_KEY: {'SET' if key else 'NOT SET'}")
        return None

    try:
        client = create_client(url, key)
        logger.info("✓ Supabase client initialized for prompt service")
        logger.info(f"   URL: {url}")
        return client
    except Exception as e:
        logger.error(f"❌ Could not initialize Supabase client: {e}")
        return None


def get_exam_types(client: Optional[Client]) -> List[Dict[str, Any]]:
    """Active exam types ordered by display name."""
    if not client:
        return []

    try:
        result = client.table("exam_types").select("*").eq("is_active", True).order("display_name").execute()
        return result.data or []
    except Exception as e:
        logger.error(f"Error fetching exam types: {e}", exc_info=True)
        return []


def get_skill_types(client: Optional[Client]) -> List[Dict[str, Any]]:
    """All skill types ordered by display name."""
    if not client:
        return []

    try:
        result = client.table("skill_types").select("*").order("display_name").execute()
        return result.data or []
    except Exception as e:
        logger.error(f"Error fetching skill types: {e}", exc_info=True)
        return []


def get_test_parts(client: Optional[Client], exam_name: str, skill_name: str) -> List[Dict[str, Any]]:
    """Active test parts for an exam and skill."""
    if not client:
        return []

    try:
        result = (
            client.table("test_parts")
            .select("id, part_name, display_name, description, exam_types!inner (exam_name), skill_types!inner (skill_name)")
            .eq("exam_types.exam_name", exam_name)
            .eq("skill_types.skill_name", skill_name)
            .eq("is_active", True)
            .order("part_name")
            .execute()
        )
        return result.data or []
    except Exception as e:
        logger.error(f"Error fetching test parts: {e}", exc_info=True)
        return []


def list_prompt_templates(
    client: Optional[Client],
    exam_name: str,
    skill_name: str,
    part_name: Optional[str] = None,
    include_inactive: bool = True,
) -> List[Dict[str, Any]]:
    """All versions of the templates for an exam/skill (and part), ordered by name.

    Unlike template resolution this includes inactive templates, so an admin
    can see every published version.
    """
    if not client:
        return []

    try:
        part_embed = "test_parts!inner (part_name, display_name, description)" if part_name else "test_parts (part_name, display_name, description)"
        query = (
            client.table("prompt_templates")
            .select(
                "id, template_name, version, description, is_active, "
                "exam_types!inner (exam_name, display_name), "
                f"skill_types!inner (skill_name, display_name), {part_embed}"
            )
            .eq("exam_types.exam_name", exam_name)
            .eq("skill_types.skill_name", skill_name)
        )
        if part_name:
            query = query.eq("test_parts.part_name", part_name)
        if not include_inactive:
            query = query.eq("is_active", True)

        result = query.order("template_name").order("version").execute()
        logger.info(f"Found {len(result.data or [])} template(s) for {exam_name}/{skill_name}/{part_name or '-'}")
        return result.data or []
    except Exception as e:
        logger.error(f"Error listing prompt templates: {e}", exc_info=True)
        return []


def _first(value: Any) -> Optional[Dict[str, Any]]:
    # Embedded resources come back as a dict or a list depending on the relationship
    if isinstance(value, list):
        return value[0] if value else None
    return value


def fetch_template_sections(client: Optional[Client], template_id: int) -> Optional[List[SectionContent]]:
    """Sections of a template in order_index order.

    Returns None when the sections could not be read (as opposed to an empty
    list for a template without sections).
    """
    if not client:
        logger.error("❌ Supabase not configured, cannot fetch prompt sections")
        return None

    try:
        result = (
            client.table("prompt_template_sections")
            .select(
                "order_index, prompt_section_content (content, content_type, variables, "
                "prompt_sections (section_name))"
            )
            .eq("prompt_template_id", template_id)
            .order("order_index")
            .execute()
        )
    except Exception as e:
        logger.error(f"Error fetching prompt sections for template {template_id}: {e}", exc_info=True)
        return None

    sections = []
    for row in result.data or []:
        content = _first(row.get("prompt_section_content")) or {}
        section = _first(content.get("prompt_sections")) or {}
        sections.append(
            SectionContent(
                order_index=row.get("order_index") or 0,
                role=content.get("content_type"),
                content=content.get("content"),
                variables=content.get("variables"),
                section_name=section.get("section_name"),
            )
        )

    sections.sort(key=lambda s: s.order_index)
    logger.debug(f"Fetched {len(sections)} section(s) for template {template_id}")
    return sections
