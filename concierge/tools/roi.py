from __future__ import annotations

import math
from typing import Any

from pydantic import Field

from ..schemas.base import CamelModel


class RoiInput(CamelModel):
    initial_investment: float = Field(..., ge=0)
    monthly_revenue: float = Field(..., ge=0)
    monthly_expenses: float = Field(..., ge=0)
    time_period: int = Field(..., ge=1, le=60, description="Months")


def _number(value: float) -> float | int:
    return int(value) if float(value).is_integer() else value


def _profitability(roi: float | None) -> tuple[str, str]:
    if roi is None or roi <= 0:
        return "Unprofitable", "Not recommended"
    if roi > 20:
        return "Excellent", "Highly recommended investment"
    if roi > 10:
        return "Good", "Solid investment opportunity"
    return "Marginal", "Consider alternatives"


def calculate_roi(params: RoiInput) -> dict[str, Any]:
    """
    Simple payback model: constant monthly profit over `time_period` months.

    `roi` is undefined without an investment and `paybackPeriod` is undefined
    when the business never makes a monthly profit; both are None then.
    """
    monthly_profit = params.monthly_revenue - params.monthly_expenses
    total_profit = monthly_profit * params.time_period

    roi: float | None = None
    if params.initial_investment > 0:
        roi = round((total_profit - params.initial_investment) / params.initial_investment * 100, 2)

    payback: float | None = None
    break_even: int | None = None
    if monthly_profit > 0:
        exact = params.initial_investment / monthly_profit
        payback = round(exact, 2)
        break_even = math.ceil(exact)

    profitability, recommendation = _profitability(roi)
    return {
        "monthlyProfit": _number(monthly_profit),
        "totalProfit": _number(total_profit),
        "roi": _number(roi) if roi is not None else None,
        "paybackPeriod": payback,
        "breakEvenMonth": break_even,
        "profitability": profitability,
        "recommendation": recommendation,
    }


async def run_roi(session_id: str | None, params: RoiInput) -> dict[str, Any]:
    return calculate_roi(params)


__all__ = ["RoiInput", "calculate_roi", "run_roi"]
