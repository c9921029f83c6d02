from __future__ import annotations

import io
import logging
from typing import List, Optional

import pandas as pd
from google.api_core.exceptions import GoogleAPIError
from google.cloud import storage

from .exceptions import DataLoadError, TooManyFilesError

logger = logging.getLogger(__name__)


def _list_parquet_blobs(bucket: storage.Bucket, prefix: str) -> list[storage.Blob]:
    """List `*.parquet` blobs under `prefix`, sorted by name."""
    try:
        blobs = [blob for blob in bucket.list_blobs(prefix=prefix) if blob.name.endswith(".parquet")]
    except GoogleAPIError as exc:
        msg = f"Failed to list transaction files in gs://{bucket.name}/{prefix}"
        logger.error(msg, exc_info=True)
        raise DataLoadError(msg) from exc

    return sorted(blobs, key=lambda blob: blob.name)


def load_transactions_parquet(
    project_id: str,
    bucket_name: str,
    prefix: str = "transactions/",
    max_files: Optional[int] = 500,
) -> pd.DataFrame:
    """
    Read every transaction Parquet file under a GCS prefix and return one
    Pandas DataFrame.

    GCS layout is expected to be:

        gs://{bucket_name}/{prefix}<anything>.parquet

    Expected schema:
      - product_id (STRING)
      - transaction_date (DATE or TIMESTAMP)
      - unit_price (DECIMAL or FLOAT)
      - quantity (INTEGER)
    """
    storage_client = storage.Client(project=project_id)
    bucket = storage_client.bucket(bucket_name)

    blobs = _list_parquet_blobs(bucket, prefix)
    if max_files is not None and len(blobs) > max_files:
        msg = (
            f"Prefix gs://{bucket_name}/{prefix} holds {len(blobs)} parquet files "
            f"which exceeds max_files={max_files}."
        )
        logger.error(msg)
        raise TooManyFilesError(msg)

    logger.info(
        "Loading transactions from %d file(s) in gs://%s/%s (max files=%s)",
        len(blobs),
        bucket_name,
        prefix,
        max_files,
    )

    frames: List[pd.DataFrame] = []

    for blob in blobs:
        full_uri = f"gs://{bucket_name}/{blob.name}"

        logger.debug("Downloading %s", full_uri)
        try:
            data = blob.download_as_bytes()
        except GoogleAPIError as exc:
            msg = f"Failed to download transaction file {full_uri}"
            logger.error(msg, exc_info=True)
            raise DataLoadError(msg) from exc

        try:
            frames.append(pd.read_parquet(io.BytesIO(data)))
        except Exception as exc:
            msg = f"Failed to read Parquet from {full_uri}"
            logger.error(msg, exc_info=True)
            raise DataLoadError(msg) from exc

    if not frames:
        logger.warning("No transaction files found under gs://%s/%s", bucket_name, prefix)
        return pd.DataFrame()

    df = pd.concat(frames, ignore_index=True)
    logger.info(
        "Loaded %d transaction rows from %d file(s) in bucket %s",
        len(df),
        len(frames),
        bucket_name,
    )
    return df
