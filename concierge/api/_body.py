from __future__ import annotations

import json
from typing import Any

from fastapi import Request

from ..errors import ValidationError


async def read_json_body(request: Request, *, default: Any = None) -> Any:
    """Parse the raw body as JSON; an empty body yields `default`."""
    raw = await request.body()
    if not raw.strip():
        return default
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ValidationError(
            "Invalid JSON body",
            details=[{"field": "body", "message": str(exc), "type": "json_invalid"}],
        ) from exc
