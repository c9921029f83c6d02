from __future__ import annotations

import logging
from typing import Optional, Sequence

import pandas as pd

logger = logging.getLogger(__name__)


def filter_report(
    report_df: pd.DataFrame,
    departments: Optional[Sequence[str]] = None,
    start_year: Optional[int] = None,
    end_year: Optional[int] = None,
) -> pd.DataFrame:
    """
    Restrict a year-over-year report to some departments and/or years.

    - departments: keep rows whose department is one of these names
    - start_year:  keep rows with year >= start_year
    - end_year:    keep rows with year <= end_year

    Filters are AND combined. The report is filtered after the prior-year
    comparison, so the first kept year still carries its prior-year values.
    """
    if start_year is not None and end_year is not None and start_year > end_year:
        raise ValueError(f"start_year {start_year} must be on or before end_year {end_year}")

    if report_df.empty:
        return report_df

    mask = pd.Series(True, index=report_df.index)

    if departments:
        logger.info("Applying department filter: %s", list(departments))
        mask &= report_df["department"].isin(departments)

    if start_year is not None:
        mask &= report_df["year"] >= start_year

    if end_year is not None:
        mask &= report_df["year"] <= end_year

    return report_df.loc[mask].reset_index(drop=True)
