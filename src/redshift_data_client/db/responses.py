from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional

import pandas as pd

from redshift_data_client.exceptions.errors import ProviderError
from redshift_data_client.logging.logger import get_logger

log = get_logger("db.responses")


class StatementStatus(str, Enum):
    SUBMITTED = "SUBMITTED"
    PICKED = "PICKED"
    STARTED = "STARTED"
    FINISHED = "FINISHED"
    FAILED = "FAILED"
    ABORTED = "ABORTED"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL

    @property
    def is_success(self) -> bool:
        return self is StatementStatus.FINISHED

    @classmethod
    def parse(cls, value: Any) -> "StatementStatus":
        try:
            return cls(str(value).upper())
        except ValueError as e:
            raise ProviderError(f"Unknown statement status: {value!r}") from e


_TERMINAL = frozenset({StatementStatus.FINISHED, StatementStatus.FAILED, StatementStatus.ABORTED})


def _sub_index(sub_id: str) -> int:
    # Sub-statement ids are "<parent-id>:<1-based index>".
    _, _, idx = sub_id.rpartition(":")
    return int(idx) if idx.isdigit() else 0


@dataclass(frozen=True)
class SubStatement:
    id: str
    status: StatementStatus
    query_string: str = ""
    error: str = ""
    has_result_set: bool = False
    result_rows: int = -1
    result_size: int = -1
    redshift_query_id: Optional[int] = None

    @classmethod
    def from_response(cls, d: Dict[str, Any]) -> "SubStatement":
        return cls(
            id=d["Id"],
            status=StatementStatus.parse(d.get("Status", "SUBMITTED")),
            query_string=d.get("QueryString", "") or "",
            error=d.get("Error", "") or "",
            has_result_set=bool(d.get("HasResultSet", False)),
            result_rows=int(d.get("ResultRows", -1)),
            result_size=int(d.get("ResultSize", -1)),
            redshift_query_id=d.get("RedshiftQueryId"),
        )


@dataclass(frozen=True)
class StatementDescription:
    """Typed view of a DescribeStatement response."""

    id: str
    status: StatementStatus
    error: str = ""
    query_string: str = ""
    has_result_set: bool = False
    result_rows: int = -1
    result_size: int = -1
    redshift_query_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    duration_ns: int = -1
    database: str = ""
    cluster_identifier: str = ""
    workgroup_name: str = ""
    sub_statements: List[SubStatement] = field(default_factory=list)

    @classmethod
    def from_response(cls, d: Dict[str, Any]) -> "StatementDescription":
        if "Id" not in d:
            raise ProviderError("DescribeStatement response has no Id")
        subs = [SubStatement.from_response(s) for s in d.get("SubStatements", []) or []]
        subs.sort(key=lambda s: _sub_index(s.id))
        return cls(
            id=d["Id"],
            status=StatementStatus.parse(d.get("Status", "")),
            error=d.get("Error", "") or "",
            query_string=d.get("QueryString", "") or "",
            has_result_set=bool(d.get("HasResultSet", False)),
            result_rows=int(d.get("ResultRows", -1)),
            result_size=int(d.get("ResultSize", -1)),
            redshift_query_id=d.get("RedshiftQueryId"),
            created_at=d.get("CreatedAt"),
            updated_at=d.get("UpdatedAt"),
            duration_ns=int(d.get("Duration", -1)),
            database=d.get("Database", "") or "",
            cluster_identifier=d.get("ClusterIdentifier", "") or "",
            workgroup_name=d.get("WorkgroupName", "") or "",
            sub_statements=subs,
        )

    @property
    def is_batch(self) -> bool:
        return bool(self.sub_statements)

    @property
    def sub_statement_ids(self) -> List[str]:
        return [s.id for s in self.sub_statements]


@dataclass(frozen=True)
class ColumnMetadata:
    name: str
    type_name: str = ""
    label: str = ""
    nullable: int = 0
    precision: int = 0
    scale: int = 0
    schema_name: str = ""
    table_name: str = ""

    @classmethod
    def from_response(cls, d: Dict[str, Any]) -> "ColumnMetadata":
        return cls(
            name=d.get("name", "") or "",
            type_name=d.get("typeName", "") or "",
            label=d.get("label", "") or "",
            nullable=int(d.get("nullable", 0)),
            precision=int(d.get("precision", 0)),
            scale=int(d.get("scale", 0)),
            schema_name=d.get("schemaName", "") or "",
            table_name=d.get("tableName", "") or "",
        )


def field_to_py(v: Dict[str, Any]) -> Any:
    if not v:
        return None
    if v.get("isNull") is True:
        return None
    for k in ("stringValue", "longValue", "doubleValue", "booleanValue", "blobValue"):
        if k in v:
            return v[k]
    return None


def record_to_row(record: List[Dict[str, Any]]) -> List[Any]:
    return [field_to_py(x) for x in record]


PageFetcher = Callable[[str], Dict[str, Any]]


class ResultStream:
    """Lazily paged rows of a finished statement.

    Built from the first GetStatementResult page; later pages are requested
    through ``fetch_page(next_token)`` only when iteration reaches them. A
    stream can be iterated once.
    """

    def __init__(self, statement_id: str, first_page: Dict[str, Any], fetch_page: PageFetcher):
        self.statement_id = statement_id
        self.columns: List[ColumnMetadata] = [
            ColumnMetadata.from_response(c) for c in first_page.get("ColumnMetadata", []) or []
        ]
        self.total_num_rows: int = int(first_page.get("TotalNumRows", -1))
        self._first_page: Optional[Dict[str, Any]] = first_page
        self._fetch_page = fetch_page
        self._consumed = False
        self.pages_fetched = 1

    @property
    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]

    def _pages(self) -> Iterator[Dict[str, Any]]:
        page = self._first_page
        self._first_page = None
        while page is not None:
            yield page
            token = page.get("NextToken")
            if not token:
                return
            log.debug("Fetching next result page", extra={"statement_id": self.statement_id, "page": self.pages_fetched + 1})
            page = self._fetch_page(token)
            self.pages_fetched += 1

    def __iter__(self) -> Iterator[List[Any]]:
        if self._consumed:
            raise RuntimeError(f"Result stream for statement {self.statement_id} was already consumed")
        self._consumed = True
        for page in self._pages():
            for rec in page.get("Records", []) or []:
                yield record_to_row(rec)

    def fetchall(self) -> List[List[Any]]:
        return list(self)

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame(self.fetchall(), columns=self.column_names)
