from typing import Any, Dict, List
from unittest.mock import MagicMock

import pytest

from redshift_data_client.config.settings import ConnectionConfig, DatabaseConfig, StaticAuthConfig
from redshift_data_client.db.client import RedshiftDataClient


def describe_response(statement_id: str, status: str, **extra: Any) -> Dict[str, Any]:
    d = {"Id": statement_id, "Status": status}
    d.update(extra)
    return d


class DescribeSequence:
    """Returns canned DescribeStatement responses in order, repeating the last."""

    def __init__(self, statement_id: str, statuses: List[str], **extra: Any):
        self.statement_id = statement_id
        self.statuses = list(statuses)
        self.extra = extra
        self.calls: List[str] = []

    def __call__(self, statement_id: str) -> Dict[str, Any]:
        self.calls.append(statement_id)
        idx = min(len(self.calls), len(self.statuses)) - 1
        return describe_response(self.statement_id, self.statuses[idx], **self.extra)


@pytest.fixture
def database_config():
    return DatabaseConfig(database="dev", cluster_id="analytics-cluster", db_user="awsuser")


@pytest.fixture
def connection_config(database_config):
    return ConnectionConfig(
        region="us-east-1",
        auth=StaticAuthConfig(access_key_id="AKIAEXAMPLE", secret_access_key="secret"),
        database=database_config,
    )


@pytest.fixture
def native():
    return MagicMock(name="redshift-data")


@pytest.fixture
def client(connection_config, native):
    c = RedshiftDataClient(connection_config, native_client=native, poll_timeout=2.0, poll_interval=0.01)
    yield c
    c.close()
