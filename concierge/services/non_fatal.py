from __future__ import annotations

from collections.abc import Awaitable
from typing import Any

from ..log_sanitizer import mask_session_id
from ..logging_config import logger


async def run_non_fatal(
    label: str, awaitable: Awaitable[Any], *, session_id: str | None = None
) -> bool:
    """
    Await a best-effort side effect. Failures are logged with a traceback and
    reported as False; they never propagate to the caller.
    """
    try:
        await awaitable
    except Exception:
        logger.warning(
            "non-fatal side effect '%s' failed (session=%s)",
            label,
            mask_session_id(session_id),
            exc_info=True,
        )
        return False
    return True


__all__ = ["run_non_fatal"]
