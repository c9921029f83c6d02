from __future__ import annotations

from decimal import Decimal
from typing import Any

import pandas as pd

CURRENCY_COLUMNS = ("revenue", "prior_revenue")
PERCENTAGE_COLUMNS = ("revenue_pct_change", "quantity_pct_change")


def format_currency(value: Any, symbol: str = "$") -> str:
    """Render an amount as e.g. `$1,500.00` or `-$250.00`."""
    amount = Decimal(str(value)) if not isinstance(value, Decimal) else value
    sign = "-" if amount < 0 else ""
    return f"{sign}{symbol}{abs(amount):,.2f}"


def format_percentage(value: Any) -> str:
    """Render a ratio as a percentage string: 0.25 -> `25.00%`."""
    ratio = Decimal(str(value)) if not isinstance(value, Decimal) else value
    return f"{ratio:.2%}"


def format_report(result: pd.DataFrame, currency_symbol: str = "$") -> pd.DataFrame:
    """
    Return a presentation copy of a year-over-year result.

    Revenue columns become currency strings and percentage changes become
    percentage strings. Rank, department, product, year and quantities are
    passed through unchanged.
    """
    formatted = result.copy()
    for column in CURRENCY_COLUMNS:
        formatted[column] = [format_currency(v, currency_symbol) for v in result[column]]
    for column in PERCENTAGE_COLUMNS:
        formatted[column] = [format_percentage(v) for v in result[column]]
    return formatted
