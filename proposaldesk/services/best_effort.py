"""Fire-and-forget steps that must never fail the surrounding transaction."""
import logging
from typing import Any, Callable, Tuple

from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


def run_best_effort(session: Session, label: str, fn: Callable[..., Any], *args, **kwargs) -> Tuple[bool, Any]:
    """
    Run `fn` inside a SAVEPOINT and swallow any failure.

    On error only the savepoint is rolled back, so rows written earlier in the
    same transaction (the proposal header, its line items) survive. Returns
    (ok, result); result is None when the step failed.
    """
    try:
        with session.begin_nested():
            result = fn(*args, **kwargs)
            session.flush()
        return True, result
    except Exception as e:
        logger.warning(f"[BEST-EFFORT] {label} failed: {e}", exc_info=True)
        _record_failure(label)
        return False, None


def _record_failure(label: str) -> None:
    from proposaldesk.blueprints.metrics import best_effort_failures_total
    best_effort_failures_total.labels(step=label).inc()
