from __future__ import annotations

import logging
from enum import Enum
from typing import Sequence

import pandas as pd

from .exceptions import DataQualityError

logger = logging.getLogger(__name__)


class InvalidRowPolicy(str, Enum):
    """What to do with transactions carrying a negative unit price or quantity."""

    KEEP = "keep"
    DROP = "drop"
    ERROR = "error"


def require_columns(df: pd.DataFrame, required: Sequence[str], label: str) -> None:
    """Raise DataQualityError when `df` lacks any of the `required` columns."""
    missing = set(required) - set(df.columns)
    if missing:
        msg = f"{label} data is missing required columns: {', '.join(sorted(missing))}"
        logger.error(msg)
        raise DataQualityError(msg)


def drop_incomplete_rows(df: pd.DataFrame, columns: Sequence[str], label: str) -> pd.DataFrame:
    """Drop rows with a NULL in any of `columns`."""
    mask = df[list(columns)].isna().any(axis=1)
    null_count = int(mask.sum())
    if null_count == 0:
        return df

    logger.warning(
        "Dropping %d %s rows with NULL values in %s.",
        null_count,
        label,
        ", ".join(columns),
    )
    return df.loc[~mask].copy()


def dedupe_on_key(df: pd.DataFrame, key: str, label: str) -> pd.DataFrame:
    """
    Ensure `key` is unique in a reference table so that joins stay many-to-one.

    Duplicates are resolved by keeping the last row per key.
    """
    if df[key].is_unique:
        return df

    duplicated_ids = df.loc[df[key].duplicated(keep=False), key].dropna().unique()
    logger.warning(
        "Found %d non-unique %s values in %s. Example IDs: %s. Deduplicating by "
        "keeping the last row per %s.",
        len(duplicated_ids),
        key,
        label,
        ", ".join(map(str, duplicated_ids[:5])),
        key,
    )
    return df.drop_duplicates(subset=key, keep="last").reset_index(drop=True)


def apply_invalid_row_policy(transactions: pd.DataFrame, policy: InvalidRowPolicy) -> pd.DataFrame:
    """
    Handle transactions with a negative `unit_price` or `quantity`.

    - KEEP:  leave them in place (they reduce revenue and quantity sums)
    - DROP:  remove them and log how many were removed
    - ERROR: raise DataQualityError
    """
    if policy == InvalidRowPolicy.KEEP or transactions.empty:
        return transactions

    mask = (transactions["unit_price"] < 0) | (transactions["quantity"] < 0)
    invalid_count = int(mask.sum())
    if invalid_count == 0:
        return transactions

    if policy == InvalidRowPolicy.DROP:
        logger.warning(
            "Dropping %d transaction rows with a negative unit_price or quantity.",
            invalid_count,
        )
        return transactions.loc[~mask].copy()

    if policy == InvalidRowPolicy.ERROR:
        msg = f"Found {invalid_count} transaction rows with a negative unit_price or quantity."
        logger.error(msg)
        raise DataQualityError(msg)

    raise ValueError(f"Unsupported invalid row policy: {policy}")
