from __future__ import annotations

import math
from typing import Literal

from pydantic import BaseModel, Field

from ..errors import ToolInputError


class CalcInput(BaseModel):
    values: list[float] = Field(..., min_length=1)
    op: Literal["sum", "avg", "min", "max"]


def calculate(params: CalcInput) -> float | int:
    values = params.values
    if params.op == "sum":
        result = math.fsum(values)
    elif params.op == "avg":
        result = math.fsum(values) / len(values)
    elif params.op == "min":
        result = min(values)
    else:
        result = max(values)
    if not math.isfinite(result):
        raise ToolInputError("Result is not a finite number")
    return int(result) if result.is_integer() else result


async def run_calc(session_id: str | None, params: CalcInput) -> float | int:
    return calculate(params)


__all__ = ["CalcInput", "calculate", "run_calc"]
