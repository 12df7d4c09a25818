# app/utils/working_days.py
from datetime import date, timedelta
from typing import Optional

COST_VARIANCE_TOLERANCE = 5.0  # percent


def count_working_days(start: Optional[date], end: Optional[date]) -> int:
    """Number of Monday-Friday days between start and end, both inclusive"""
    if not start or not end or start > end:
        return 0

    days = 0
    current = start
    while current <= end:
        if current.weekday() < 5:
            days += 1
        current += timedelta(days=1)
    return days


def cost_variance(estimated_cost: Optional[float], actual_cost: Optional[float]) -> dict:
    """
    Compare actual against estimated cost.

    Within 5% of the estimate is "on" budget, below is "under", above is "over".
    """
    estimated = float(estimated_cost or 0)
    actual = float(actual_cost or 0)
    variance = actual - estimated
    percentage = (variance / estimated) * 100 if estimated > 0 else 0.0

    if abs(percentage) <= COST_VARIANCE_TOLERANCE:
        status = "on"
    elif variance < 0:
        status = "under"
    else:
        status = "over"

    return {
        "estimated_cost": estimated,
        "actual_cost": actual,
        "variance": variance,
        "variance_percentage": round(percentage, 2),
        "status": status,
    }
