"""
Analytics helper functions for the prompt admin dashboard.
Reports per-template usage, mean processing time and success rate, plus an
overall summary across all templates.
"""

from typing import Dict, List, Any, Optional
import logging

from supabase import Client

logger = logging.getLogger(__name__)


def summarize_usage(records: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Combine per-template analytics rows into overall figures.

    Means are weighted by each template's usage_count, so a template used
    once does not count as much as one used a thousand times.
    """
    total_calls = sum(int(r.get("usage_count") or 0) for r in records)
    if total_calls == 0:
        return {
            "templates_tracked": len(records),
            "total_calls": 0,
            "avg_processing_time": None,
            "success_rate": None,
        }

    weighted_time = sum(float(r.get("avg_processing_time") or 0) * int(r.get("usage_count") or 0) for r in records)
    weighted_success = sum(float(r.get("success_rate") or 0) * int(r.get("usage_count") or 0) for r in records)

    return {
        "templates_tracked": len(records),
        "total_calls": total_calls,
        "avg_processing_time": round(weighted_time / total_calls, 2),
        "success_rate": round(weighted_success / total_calls, 2),
    }


def get_prompt_usage_report(client: Optional[Client], template_id: Optional[int] = None) -> Dict[str, Any]:
    """
    Get usage analytics for prompt templates.

    Returns:
    - templates: one entry per tracked template
      - template_id, template_name, version
      - usage_count: number of recorded calls
      - avg_processing_time: mean processing time in ms
      - success_rate: percentage of successful calls
      - last_used_at
    - summary: call-weighted totals across the listed templates
    """
    if not client:
        logger.error("Supabase not configured")
        return {"templates": [], "summary": summarize_usage([]), "error": "Database not configured"}

    try:
        query = client.table("prompt_usage_analytics").select(
            "prompt_template_id, usage_count, avg_processing_time, success_rate, last_used_at, "
            "prompt_templates (template_name, version)"
        )
        if template_id is not None:
            query = query.eq("prompt_template_id", template_id)
        else:
            query = query.order("usage_count", desc=True)

        result = query.execute()
        records = result.data or []

        templates = []
        for record in records:
            template = record.get("prompt_templates") or {}
            if isinstance(template, list):
                template = template[0] if template else {}
            templates.append({
                "template_id": record.get("prompt_template_id"),
                "template_name": template.get("template_name"),
                "version": template.get("version"),
                "usage_count": int(record.get("usage_count") or 0),
                "avg_processing_time": round(float(record.get("avg_processing_time") or 0), 2),
                "success_rate": round(float(record.get("success_rate") or 0), 2),
                "last_used_at": record.get("last_used_at"),
            })

        logger.info(f"✓ Usage report built for {len(templates)} template(s)")
        return {"templates": templates, "summary": summarize_usage(records)}
    except Exception as e:
        logger.error(f"Error building prompt usage report: {e}", exc_info=True)
        return {"templates": [], "summary": summarize_usage([]), "error": str(e)}
