"""
Per-template usage analytics (call count, mean processing time, success rate).

Concurrency: updates use optimistic concurrency on usage_count. The new
aggregates are computed from the row as read and written back with
`UPDATE ... WHERE id = :id AND usage_count = :seen`; if another writer got
there first nothing matches and the cycle is retried from a fresh read after
a randomized exponential backoff (tenacity), up to USAGE_TRACKING_MAX_RETRIES
attempts.
First use inserts the row and relies on the unique constraint on
prompt_template_id (see sql/prompt_management.sql) to detect a racing insert.

Tracking is best-effort: failures are logged and never reach the caller.
"""

import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from postgrest.exceptions import APIError
from supabase import Client
from tenacity import RetryError, retry, retry_if_result, stop_after_attempt, wait_random_exponential

from config import USAGE_TRACKING_MAX_RETRIES, USAGE_TRACKING_MAX_WAIT
from states import UsageAnalyticsRecord

logger = logging.getLogger(__name__)

ANALYTICS_TABLE = "prompt_usage_analytics"
UNIQUE_VIOLATION = "23505"


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def compute_usage_update(
    current: Optional[UsageAnalyticsRecord],
    processing_time_ms: float,
    success: bool,
) -> Dict[str, Any]:
    """
    Fold one call into the running aggregates.

    The prior success count is reconstructed from the stored percentage, so
    the rate can drift by rounding over very long histories.
    """
    usage_count = current.usage_count if current else 0
    avg_processing_time = current.avg_processing_time if current else 0.0
    success_rate = current.success_rate if current else 0.0

    new_count = usage_count + 1
    new_avg_time = (avg_processing_time * usage_count + processing_time_ms) / new_count
    prior_successes = _round_half_up(success_rate / 100 * usage_count)
    new_success_rate = (prior_successes + (1 if success else 0)) / new_count * 100

    return {
        "usage_count": new_count,
        "avg_processing_time": new_avg_time,
        "success_rate": new_success_rate,
        "last_used_at": datetime.now(timezone.utc).isoformat(),
    }


def _lost_race(stored: bool) -> bool:
    return stored is False


class UsageAnalyticsTracker:
    def __init__(
        self,
        client: Optional[Client],
        max_retries: int = USAGE_TRACKING_MAX_RETRIES,
        max_wait: float = USAGE_TRACKING_MAX_WAIT,
    ):
        self._client = client
        self._max_retries = max(1, max_retries)
        self._max_wait = max(0.0, max_wait)

    def get_record(self, template_id: int) -> Optional[UsageAnalyticsRecord]:
        """Current analytics row for a template, or None if it has never been used."""
        result = (
            self._client.table(ANALYTICS_TABLE)
            .select("id, prompt_template_id, usage_count, avg_processing_time, success_rate, last_used_at")
            .eq("prompt_template_id", template_id)
            .limit(1)
            .execute()
        )
        rows = result.data or []
        return UsageAnalyticsRecord(**rows[0]) if rows else None

    def record(self, template_id: int, processing_time_ms: float, success: bool) -> bool:
        """
        Record one use of a template.

        A lost race is retried after a short randomized exponential backoff so
        contending writers spread out instead of colliding again.

        Returns True when the update was stored, False when it was dropped.
        Never raises.
        """
        if not self._client:
            logger.warning("⚠ Supabase not configured, prompt usage not tracked")
            return False

        def _log_conflict(retry_state):
            logger.info(
                f"Concurrent usage update on template {template_id}, retrying "
                f"({retry_state.attempt_number}/{self._max_retries})"
            )

        attempt = retry(
            retry=retry_if_result(_lost_race),
            stop=stop_after_attempt(self._max_retries),
            wait=wait_random_exponential(multiplier=0.01, max=self._max_wait),
            before_sleep=_log_conflict,
        )(self._attempt)

        try:
            return attempt(template_id, processing_time_ms, success)
        except RetryError:
            logger.warning(f"⚠ Dropped usage update for template {template_id} after {self._max_retries} conflicting attempts")
            return False
        except Exception as e:
            logger.error(f"Error tracking prompt usage: {e}", exc_info=True)
            return False

    def _attempt(self, template_id: int, processing_time_ms: float, success: bool) -> bool:
        """One read-compute-write cycle; False means another writer got there first."""
        current = self.get_record(template_id)
        payload = compute_usage_update(current, processing_time_ms, success)

        if current is None:
            if self._try_insert(template_id, payload):
                logger.info(f"✓ Created usage analytics for template {template_id}")
                return True
            return False

        if self._try_update(current, payload):
            logger.debug(
                f"Usage analytics for template {template_id}: count={payload['usage_count']}, "
                f"avg={payload['avg_processing_time']:.1f}ms, success={payload['success_rate']:.1f}%"
            )
            return True
        return False

    def _try_insert(self, template_id: int, payload: Dict[str, Any]) -> bool:
        try:
            self._client.table(ANALYTICS_TABLE).insert({"prompt_template_id": template_id, **payload}).execute()
            return True
        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                return False
            raise

    def _try_update(self, current: UsageAnalyticsRecord, payload: Dict[str, Any]) -> bool:
        result = (
            self._client.table(ANALYTICS_TABLE)
            .update(payload)
            .eq("id", current.id)
            .eq("usage_count", current.usage_count)
            .execute()
        )
        return bool(result.data)
