import io
from unittest.mock import MagicMock

import pandas as pd
import pytest
from google.api_core.exceptions import GoogleAPIError

from yoy_sales_report import bq_client, gcs_client
from yoy_sales_report.exceptions import DataLoadError, DataQualityError, TooManyFilesError


def _fake_bigquery(monkeypatch, df: pd.DataFrame = None, error: Exception = None) -> MagicMock:
    client = MagicMock()
    if error is not None:
        client.query.side_effect = error
    else:
        client.query.return_value.result.return_value.to_dataframe.return_value = df
    monkeypatch.setattr(bq_client.bigquery, "Client", MagicMock(return_value=client))
    return client


def _fake_blob(name: str, df: pd.DataFrame = None) -> MagicMock:
    blob = MagicMock()
    blob.name = name
    if df is not None:
        buffer = io.BytesIO()
        df.to_parquet(buffer, index=False)
        blob.download_as_bytes.return_value = buffer.getvalue()
    return blob


def _fake_storage(monkeypatch, blobs: list) -> MagicMock:
    bucket = MagicMock()
    bucket.name = "sales-bucket"
    bucket.list_blobs.return_value = blobs
    client = MagicMock()
    client.bucket.return_value = bucket
    monkeypatch.setattr(gcs_client.storage, "Client", MagicMock(return_value=client))
    return bucket


def test_load_products_from_bigquery(monkeypatch):
    products = pd.DataFrame(
        {"product_id": ["TV"], "product_name": ["TV"], "department_id": ["D1"]}
    )
    client = _fake_bigquery(monkeypatch, df=products)

    df = bq_client.load_products("proj", "sales", "products")

    assert len(df) == 1
    query = client.query.call_args[0][0]
    assert "`proj.sales.products`" in query
    assert "department_id" in query


def test_missing_columns_raise_quality_error(monkeypatch):
    _fake_bigquery(monkeypatch, df=pd.DataFrame({"department_id": ["D1"]}))

    with pytest.raises(DataQualityError, match="department_name"):
        bq_client.load_departments("proj")


def test_bigquery_errors_are_wrapped(monkeypatch):
    _fake_bigquery(monkeypatch, error=GoogleAPIError("boom"))

    with pytest.raises(DataLoadError) as excinfo:
        bq_client.load_transactions("proj")

    assert isinstance(excinfo.value.__cause__, GoogleAPIError)


def test_load_transactions_parquet_reads_only_parquet_files(monkeypatch):
    part_1 = pd.DataFrame(
        {
            "product_id": ["TV"],
            "transaction_date": ["2023-01-01"],
            "unit_price": [500.0],
            "quantity": [1],
        }
    )
    part_2 = part_1.assign(product_id=["RADIO"])
    _fake_storage(
        monkeypatch,
        [
            _fake_blob("transactions/part-2.parquet", part_2),
            _fake_blob("transactions/_SUCCESS"),
            _fake_blob("transactions/part-1.parquet", part_1),
        ],
    )

    df = gcs_client.load_transactions_parquet("proj", "sales-bucket", prefix="transactions/")

    assert list(df["product_id"]) == ["TV", "RADIO"]


def test_too_many_files(monkeypatch):
    _fake_storage(monkeypatch, [_fake_blob(f"transactions/part-{i}.parquet") for i in range(3)])

    with pytest.raises(TooManyFilesError):
        gcs_client.load_transactions_parquet("proj", "sales-bucket", max_files=2)


def test_empty_prefix_returns_empty_frame(monkeypatch):
    _fake_storage(monkeypatch, [])

    df = gcs_client.load_transactions_parquet("proj", "sales-bucket")

    assert df.empty
