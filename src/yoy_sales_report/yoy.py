from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Iterable

import pandas as pd

from .exceptions import DataQualityError
from .quality import (
    InvalidRowPolicy,
    apply_invalid_row_policy,
    dedupe_on_key,
    drop_incomplete_rows,
    require_columns,
)

logger = logging.getLogger(__name__)

DEFAULT_TOP_N = 5

# Reported when there is no prior-year baseline to compare against.
NO_BASELINE_PCT_CHANGE = Decimal("1")

TRANSACTION_COLUMNS = ["product_id", "transaction_date", "unit_price", "quantity"]
PRODUCT_COLUMNS = ["product_id", "product_name", "department_id"]
DEPARTMENT_COLUMNS = ["department_id", "department_name"]

JOINED_COLUMNS = [
    "product_id",
    "product_name",
    "department_name",
    "transaction_date",
    "unit_price",
    "quantity",
]
AGGREGATE_COLUMNS = ["department", "product", "year", "revenue", "quantity"]
RANKED_COLUMNS = AGGREGATE_COLUMNS + ["rank"]
RESULT_COLUMNS = [
    "rank",
    "department",
    "product",
    "year",
    "revenue",
    "prior_revenue",
    "revenue_pct_change",
    "quantity",
    "prior_quantity",
    "quantity_pct_change",
]

_PARTITION = ["department", "year"]
_CONTINUITY_KEY = ["department", "product"]


class PriorYearScope(str, Enum):
    """Which rows the prior-year lookup may see."""

    # Every yearly aggregate, whatever its rank that year.
    ALL = "all"
    # Only rows that made the top N in the prior year.
    TOP_N = "top-n"


def _empty_frame(columns: list[str]) -> pd.DataFrame:
    return pd.DataFrame(columns=columns)


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise DataQualityError(f"Invalid unit_price value: {value!r}") from exc


def _sum_decimal(values: Iterable[Decimal]) -> Decimal:
    return sum(values, Decimal("0"))


def _normalize_transactions(transactions: pd.DataFrame) -> pd.DataFrame:
    """Parse dates, convert prices to Decimal and quantities to integers."""
    df = transactions.copy()
    try:
        df["transaction_date"] = pd.to_datetime(df["transaction_date"])
    except (ValueError, TypeError) as exc:
        raise DataQualityError("Unparseable transaction_date values in transactions") from exc

    try:
        quantity = pd.to_numeric(df["quantity"])
    except (ValueError, TypeError) as exc:
        raise DataQualityError("Non-numeric quantity values in transactions") from exc

    fractional = quantity % 1 != 0
    if fractional.any():
        msg = f"Found {int(fractional.sum())} transaction rows with a non-integer quantity."
        logger.error(msg)
        raise DataQualityError(msg)
    df["quantity"] = quantity.astype("int64")

    df["unit_price"] = df["unit_price"].map(_to_decimal).astype(object)
    return df


def stage_transactions(
    transactions: pd.DataFrame,
    products: pd.DataFrame,
    departments: pd.DataFrame,
    invalid_rows: InvalidRowPolicy = InvalidRowPolicy.KEEP,
) -> pd.DataFrame:
    """
    Join transactions to their product and department.

    Inner-join semantics: a transaction whose product_id has no product, or
    whose product has no department, is dropped without raising.
    """
    require_columns(transactions, TRANSACTION_COLUMNS, "Transactions")
    require_columns(products, PRODUCT_COLUMNS, "Products")
    require_columns(departments, DEPARTMENT_COLUMNS, "Departments")

    if transactions.empty:
        logger.info("No transactions to stage.")
        return _empty_frame(JOINED_COLUMNS)

    df = drop_incomplete_rows(transactions, TRANSACTION_COLUMNS, "transaction")
    if df.empty:
        return _empty_frame(JOINED_COLUMNS)

    df = _normalize_transactions(df)
    df = apply_invalid_row_policy(df, invalid_rows)

    products_df = drop_incomplete_rows(products[PRODUCT_COLUMNS], PRODUCT_COLUMNS, "product")
    products_df = dedupe_on_key(products_df, "product_id", "products")
    departments_df = drop_incomplete_rows(departments[DEPARTMENT_COLUMNS], DEPARTMENT_COLUMNS, "department")
    departments_df = dedupe_on_key(departments_df, "department_id", "departments")

    joined = df[TRANSACTION_COLUMNS].merge(
        products_df,
        on="product_id",
        how="inner",
        validate="many_to_one",
    )
    joined = joined.merge(
        departments_df,
        on="department_id",
        how="inner",
        validate="many_to_one",
    )

    unmatched = len(df) - len(joined)
    if unmatched:
        logger.info(
            "Excluded %d transaction rows without a matching product or department.",
            unmatched,
        )

    logger.info("Staged %d transaction rows.", len(joined))
    return joined[JOINED_COLUMNS].reset_index(drop=True)


def aggregate_yearly(joined: pd.DataFrame) -> pd.DataFrame:
    """
    Sum revenue and quantity per (department, product, calendar year).

    Revenue is accumulated as Decimal, quantity as int64.
    """
    if joined.empty:
        return _empty_frame(AGGREGATE_COLUMNS)

    df = joined.assign(
        year=pd.to_datetime(joined["transaction_date"]).dt.year.astype("int64"),
        line_revenue=[
            Decimal(int(quantity)) * price
            for quantity, price in zip(joined["quantity"], joined["unit_price"])
        ],
    )

    aggregates = (
        df.groupby(["department_name", "product_name", "year"], sort=True)
        .agg(
            revenue=("line_revenue", _sum_decimal),
            quantity=("quantity", "sum"),
        )
        .reset_index()
        .rename(columns={"department_name": "department", "product_name": "product"})
    )
    aggregates["quantity"] = aggregates["quantity"].astype("int64")

    logger.info("Built %d yearly aggregates.", len(aggregates))
    return aggregates[AGGREGATE_COLUMNS]


def rank_products(aggregates: pd.DataFrame, top_n: int = DEFAULT_TOP_N) -> pd.DataFrame:
    """
    Dense-rank products within each (department, year) and keep rank <= top_n.

    Ordering is revenue desc, then quantity desc. Products equal on both share
    a rank and the next distinct product gets the following rank.
    """
    if top_n < 1:
        raise ValueError(f"top_n must be at least 1, got {top_n}")

    if aggregates.empty:
        return _empty_frame(RANKED_COLUMNS)

    ordered = aggregates.sort_values(
        ["department", "year", "revenue", "quantity", "product"],
        ascending=[True, True, False, False, True],
        kind="mergesort",
    ).reset_index(drop=True)

    ranking_key = ordered[_PARTITION + ["revenue", "quantity"]]
    starts_new_value = (ranking_key != ranking_key.shift()).any(axis=1).astype("int64")
    ordered["rank"] = starts_new_value.groupby([ordered["department"], ordered["year"]]).cumsum()

    ranked = ordered.loc[ordered["rank"] <= top_n].reset_index(drop=True)
    logger.info(
        "Kept %d of %d aggregates ranked within the top %d.",
        len(ranked),
        len(ordered),
        top_n,
    )
    return ranked[RANKED_COLUMNS]


def pct_change(current: Any, prior: Any) -> Decimal:
    """
    Relative change from `prior` to `current`.

    Returns 1 (100%) when `prior` is zero: the "no baseline" sentinel, not a
    literal doubling.
    """
    prior_value = Decimal(prior)
    if prior_value == 0:
        return NO_BASELINE_PCT_CHANGE
    return (Decimal(current) - prior_value) / prior_value


def compare_year_over_year(
    ranked: pd.DataFrame,
    aggregates: pd.DataFrame,
    prior_year_scope: PriorYearScope = PriorYearScope.ALL,
) -> pd.DataFrame:
    """
    Attach prior-year revenue/quantity and percentage changes to ranked rows.

    The prior year of (department, product, year) is the row keyed
    (department, product, year - 1) in `aggregates`, or in `ranked` itself
    when `prior_year_scope` is TOP_N. Missing prior rows count as zero.
    """
    if ranked.empty:
        return _empty_frame(RESULT_COLUMNS)

    if prior_year_scope == PriorYearScope.ALL:
        history = aggregates
    elif prior_year_scope == PriorYearScope.TOP_N:
        history = ranked
    else:
        raise ValueError(f"Unsupported prior year scope: {prior_year_scope}")

    prior = (
        history[_CONTINUITY_KEY + ["year", "revenue", "quantity"]]
        .assign(year=history["year"].astype("int64") + 1)
        .rename(columns={"revenue": "prior_revenue", "quantity": "prior_quantity"})
    )

    result = ranked.assign(year=ranked["year"].astype("int64")).merge(
        prior,
        on=_CONTINUITY_KEY + ["year"],
        how="left",
        validate="one_to_one",
    )

    result["prior_revenue"] = [
        Decimal("0") if pd.isna(value) else value for value in result["prior_revenue"]
    ]
    result["prior_quantity"] = result["prior_quantity"].fillna(0).astype("int64")
    result["rank"] = result["rank"].astype("int64")
    result["quantity"] = result["quantity"].astype("int64")

    result["revenue_pct_change"] = [
        pct_change(current, prior_value)
        for current, prior_value in zip(result["revenue"], result["prior_revenue"])
    ]
    result["quantity_pct_change"] = [
        pct_change(int(current), int(prior_value))
        for current, prior_value in zip(result["quantity"], result["prior_quantity"])
    ]

    result = result.sort_values(
        ["department", "year", "rank", "product"],
        kind="mergesort",
    ).reset_index(drop=True)
    return result[RESULT_COLUMNS]


def run_yoy_top5_report(
    transactions: pd.DataFrame,
    products: pd.DataFrame,
    departments: pd.DataFrame,
    *,
    top_n: int = DEFAULT_TOP_N,
    prior_year_scope: PriorYearScope = PriorYearScope.ALL,
    invalid_rows: InvalidRowPolicy = InvalidRowPolicy.KEEP,
) -> pd.DataFrame:
    """
    Run the full year-over-year ranking on in-memory frames:

    1. Stage: inner join transactions -> products -> departments.
    2. Aggregate revenue and quantity per (department, product, year).
    3. Dense-rank within (department, year) and keep the top `top_n`.
    4. Compare every kept row with the same product's prior year.

    Returns raw numeric ResultRows ordered by department, year and rank.
    Every intermediate frame is local to this call.
    """
    joined = stage_transactions(transactions, products, departments, invalid_rows=invalid_rows)
    aggregates = aggregate_yearly(joined)
    ranked = rank_products(aggregates, top_n=top_n)
    result = compare_year_over_year(ranked, aggregates, prior_year_scope=prior_year_scope)
    logger.info("Year-over-year report has %d rows.", len(result))
    return result
