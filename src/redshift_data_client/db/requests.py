from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from redshift_data_client.config.settings import DatabaseConfig
from redshift_data_client.db.utils import (
    PARAM_NAME_RE,
    POSITIONAL_PREFIX,
    bind_positional,
    inline_named,
    param_to_str,
)
from redshift_data_client.exceptions.errors import ValidationError

# BatchExecuteStatement accepts at most 40 SQL statements per call.
MAX_BATCH_STATEMENTS = 40

Parameters = Union[Mapping[str, Any], Sequence[Any], None]


@dataclass
class ParameterizedQuery:
    """SQL text plus ordered bind parameters.

    Named parameters are referenced as ``:name`` in the SQL. Positional values
    bind to ``?`` placeholders, which are rewritten to ``:param1 .. :paramN``.
    """

    sql: str
    parameters: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.sql, str) or not self.sql.strip():
            raise ValidationError("SQL text must be a non-empty string")
        for name in self.parameters:
            if not isinstance(name, str) or not PARAM_NAME_RE.match(name):
                raise ValidationError(f"Invalid parameter name: {name!r}")

    @classmethod
    def of(cls, sql: Union[str, "ParameterizedQuery"], parameters: Parameters = None) -> "ParameterizedQuery":
        if isinstance(sql, ParameterizedQuery):
            if parameters:
                raise ValidationError("Parameters given twice: both on the ParameterizedQuery and as an argument")
            return sql
        if parameters is None:
            return cls(sql=sql)
        if isinstance(parameters, Mapping):
            return cls(sql=sql, parameters=dict(parameters))
        if isinstance(parameters, (str, bytes)):
            raise ValidationError("Parameters must be a mapping or a sequence of values, not a string")
        values = list(parameters)
        if not isinstance(sql, str):
            raise ValidationError("SQL text must be a non-empty string")
        rewritten = bind_positional(sql, len(values))
        return cls(
            sql=rewritten,
            parameters={f"{POSITIONAL_PREFIX}{i}": v for i, v in enumerate(values, start=1)},
        )

    @property
    def has_parameters(self) -> bool:
        return bool(self.parameters)

    def sql_parameters(self) -> List[Dict[str, str]]:
        """Parameters in Data API ``SqlParameter`` shape, in insertion order."""
        return [{"name": name, "value": param_to_str(name, value)} for name, value in self.parameters.items()]

    def prepared_sql(self) -> str:
        """SQL with every parameter inlined as a literal."""
        if not self.parameters:
            return self.sql
        return inline_named(self.sql, self.parameters)


def parameters_from_request(sql_parameters: Sequence[Mapping[str, str]]) -> Dict[str, str]:
    """Inverse of ParameterizedQuery.sql_parameters (values come back as text)."""
    out: Dict[str, str] = {}
    for p in sql_parameters or []:
        name = p.get("name")
        if not name:
            raise ValidationError(f"SQL parameter without a name: {dict(p)}")
        out[name] = p.get("value", "")
    return out


def _target_args(db: DatabaseConfig) -> Dict[str, Any]:
    if not isinstance(db, DatabaseConfig):
        raise ValidationError(f"database_config must be a DatabaseConfig, got {type(db).__name__}")

    args: Dict[str, Any] = {"Database": db.database}
    if db.cluster_id:
        args["ClusterIdentifier"] = db.cluster_id
    else:
        args["WorkgroupName"] = db.workgroup_name

    if db.secret_arn:
        args["SecretArn"] = db.secret_arn
    elif db.db_user:
        args["DbUser"] = db.db_user
    return args


def build_execute_statement_request(
    query: ParameterizedQuery,
    db: DatabaseConfig,
    *,
    statement_name: Optional[str] = None,
    with_event: bool = False,
) -> Dict[str, Any]:
    args = _target_args(db)
    args["Sql"] = query.sql
    if query.has_parameters:
        args["Parameters"] = query.sql_parameters()
    if statement_name:
        args["StatementName"] = statement_name
    if with_event:
        args["WithEvent"] = True
    return args


def build_batch_execute_statement_request(
    queries: Sequence[ParameterizedQuery],
    db: DatabaseConfig,
    *,
    statement_name: Optional[str] = None,
    with_event: bool = False,
) -> Dict[str, Any]:
    if not queries:
        raise ValidationError("Batch must contain at least one SQL statement")
    if len(queries) > MAX_BATCH_STATEMENTS:
        raise ValidationError(f"Batch has {len(queries)} statements; the Data API accepts at most {MAX_BATCH_STATEMENTS}")

    args = _target_args(db)
    args["Sqls"] = [q.prepared_sql() for q in queries]
    if statement_name:
        args["StatementName"] = statement_name
    if with_event:
        args["WithEvent"] = True
    return args


def _require_id(statement_id: str) -> str:
    if not isinstance(statement_id, str) or not statement_id.strip():
        raise ValidationError("statement_id must be a non-empty string")
    return statement_id


def build_describe_statement_request(statement_id: str) -> Dict[str, Any]:
    return {"Id": _require_id(statement_id)}


def build_get_statement_result_request(statement_id: str, next_token: Optional[str] = None) -> Dict[str, Any]:
    args: Dict[str, Any] = {"Id": _require_id(statement_id)}
    if next_token:
        args["NextToken"] = next_token
    return args


def build_cancel_statement_request(statement_id: str) -> Dict[str, Any]:
    return {"Id": _require_id(statement_id)}
