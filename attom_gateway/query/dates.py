"""Derived date parameters for time-windowed endpoints."""

from __future__ import annotations

from datetime import date, timedelta
from typing import Any

from attom_gateway.endpoints.models import DateWindow

SALES_WINDOW_DAYS = 365
TREND_WINDOW_YEARS = 5
DEFAULT_TREND_INTERVAL = "yearly"

# Parameters each window can supply on its own.
DERIVED_PARAMS: dict[DateWindow, frozenset[str]] = {
    DateWindow.sales_dates: frozenset({"startsalesearchdate", "endsalesearchdate"}),
    DateWindow.trend_years: frozenset({"interval", "startyear", "endyear"}),
}


def sales_date_range(today: date | None = None, days: int = SALES_WINDOW_DAYS) -> tuple[str, str]:
    """(start, end) as YYYY-MM-DD, ending today."""
    end = today or date.today()
    start = end - timedelta(days=days)
    return start.isoformat(), end.isoformat()


def trend_year_range(today: date | None = None, years: int = TREND_WINDOW_YEARS) -> tuple[int, int]:
    """(start year, end year), ending with the current year."""
    end_year = (today or date.today()).year
    return end_year - years, end_year


def apply_derived_params(
    window: DateWindow | None,
    params: dict[str, Any],
    today: date | None = None,
) -> dict[str, Any]:
    """Return ``params`` with any missing window parameters filled in.

    When either bound of a window is missing, both bounds are recomputed so
    the pair always describes one consistent window.
    """
    if window is None:
        return params

    result = dict(params)
    if window == DateWindow.sales_dates:
        if result.get("startsalesearchdate") is None or result.get("endsalesearchdate") is None:
            result["startsalesearchdate"], result["endsalesearchdate"] = sales_date_range(today)
    elif window == DateWindow.trend_years:
        if result.get("interval") is None:
            result["interval"] = DEFAULT_TREND_INTERVAL
        if result.get("startyear") is None or result.get("endyear") is None:
            result["startyear"], result["endyear"] = trend_year_range(today)
    return result
