"""
Prompt section composition.

Stored templates are split into ordered, role-tagged sections. Each section's
text may contain `{key}` placeholders which are filled from the section's own
default variables and the caller's runtime variables (caller wins).

Placeholders have no escaping: a literal `{word}` in stored content is treated
as a placeholder and is only replaced when `word` is a known variable.
"""

import logging
import re
from typing import Any, Dict, Iterable, Mapping, Optional

from states import ComposedSections, SectionContent, SectionRole

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\{([^{}]+)\}")


class SectionOrderConflict(ValueError):
    """Two sections of one template share an order_index."""


def _stringify(value: Any) -> str:
    # None renders empty, bools lowercase
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def interpolate(text: str, variables: Optional[Mapping[str, Any]] = None) -> str:
    """Replace every `{key}` in text with variables[key]; unknown keys stay verbatim."""
    if not text:
        return ""
    if not variables:
        return text

    def _replace(match: "re.Match[str]") -> str:
        key = match.group(1)
        if key in variables:
            return _stringify(variables[key])
        return match.group(0)

    return _PLACEHOLDER.sub(_replace, text)


def compose_sections(
    sections: Iterable[SectionContent],
    overrides: Optional[Mapping[str, Any]] = None,
) -> ComposedSections:
    """
    Compose template sections into system / user / instruction text.

    Sections are applied in ascending order_index no matter what order they
    were fetched in. Each one is interpolated with its local variables merged
    under the overrides and appended (plus a blank line) to its role's bucket.

    Raises:
        SectionOrderConflict: if two sections share an order_index
    """
    ordered = sorted(sections, key=lambda s: s.order_index)
    seen = set()
    for section in ordered:
        if section.order_index in seen:
            raise SectionOrderConflict(f"Duplicate section order_index {section.order_index}")
        seen.add(section.order_index)

    buckets: Dict[SectionRole, str] = {role: "" for role in SectionRole}
    for section in ordered:
        merged: Dict[str, Any] = {**section.variables, **(overrides or {})}
        buckets[section.role] += interpolate(section.content, merged) + "\n\n"

    logger.debug(f"Composed {len(ordered)} section(s)")
    return ComposedSections(
        system=buckets[SectionRole.SYSTEM].strip(),
        user=buckets[SectionRole.USER].strip(),
        instruction=buckets[SectionRole.INSTRUCTION].strip(),
    )
