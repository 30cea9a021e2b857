from __future__ import annotations

from concurrent.futures import Future
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union
import threading

from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from redshift_data_client.auth.credentials import credential_method, resolve_session
from redshift_data_client.config.settings import (
    DEFAULT_POLL_INTERVAL,
    DEFAULT_POLL_TIMEOUT,
    ConnectionConfig,
    DatabaseConfig,
    Settings,
)
from redshift_data_client.db.dispatcher import StatementDispatcher
from redshift_data_client.db.poller import PollOutcome, poll_statement
from redshift_data_client.db.requests import (
    Parameters,
    ParameterizedQuery,
    build_batch_execute_statement_request,
    build_cancel_statement_request,
    build_describe_statement_request,
    build_execute_statement_request,
    build_get_statement_result_request,
)
from redshift_data_client.db.responses import ResultStream, StatementDescription
from redshift_data_client.exceptions.errors import (
    ClientClosedError,
    ConfigurationError,
    ExecutionError,
    ProviderError,
    RedshiftDataError,
    ValidationError,
)
from redshift_data_client.logging.logger import get_logger

log = get_logger("db.client")

USER_AGENT_EXTRA = "redshift-data-client"

Statement = Union[str, ParameterizedQuery]
DatabaseConfigLike = Union[DatabaseConfig, Mapping[str, Any], None]

_EXECUTION_ERROR_CODES = {"ExecuteStatementException", "BatchExecuteStatementException"}


def translate_error(action: str, exc: Exception) -> RedshiftDataError:
    """Map a provider exception onto the client's error kinds."""
    if isinstance(exc, RedshiftDataError):
        return exc
    if isinstance(exc, ClientError):
        err = exc.response.get("Error", {}) or {}
        code = err.get("Code", "")
        msg = f"Error occurred while {action}: {err.get('Message') or exc}"
        if code == "ValidationException":
            return ValidationError(msg)
        if code in _EXECUTION_ERROR_CODES:
            return ExecutionError(msg)
        return ProviderError(msg, code=code or None)
    return ProviderError(f"Error occurred while {action}: {exc}")


def _build_native_client(config: ConnectionConfig):
    session = resolve_session(config.auth, config.region)
    botocore_config = Config(
        user_agent_extra=USER_AGENT_EXTRA,
        connect_timeout=config.connect_timeout,
        read_timeout=config.read_timeout,
        retries={"max_attempts": config.max_attempts, "mode": "standard"},
    )
    client = session.client("redshift-data", region_name=config.region, config=botocore_config)
    log.info(
        "Created Redshift Data API client",
        extra={"region": config.region, "credential_method": credential_method(session)},
    )
    return client


class RedshiftDataClient:
    """Non-blocking facade over the Redshift Data API.

    Every operation validates its arguments on the calling thread, then runs
    the network call on the client's dispatcher and returns a
    ``concurrent.futures.Future``. Failures are delivered through the future
    as RedshiftDataError subclasses. asyncio callers can await
    ``asyncio.wrap_future(client.execute_statement(...))``.

    The dispatcher and the botocore client are created per client and torn
    down by ``close()``. An injected dispatcher is left running on close.
    """

    def __init__(
        self,
        config: ConnectionConfig,
        *,
        poll_timeout: float = DEFAULT_POLL_TIMEOUT,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        with_event: bool = False,
        dispatcher: Optional[StatementDispatcher] = None,
        owns_dispatcher: Optional[bool] = None,
        native_client: Any = None,
    ):
        if not isinstance(config, ConnectionConfig):
            raise ConfigurationError(f"config must be a ConnectionConfig, got {type(config).__name__}")
        if poll_timeout <= 0 or poll_interval <= 0:
            raise ConfigurationError("poll_timeout and poll_interval must be positive")

        self.config = config
        self.poll_timeout = float(poll_timeout)
        self.poll_interval = float(poll_interval)
        self.with_event = with_event

        if native_client is None:
            try:
                native_client = _build_native_client(config)
            except (ConfigurationError, BotoCoreError, ValueError) as e:
                raise ConfigurationError(f"Error occurred while initializing the Redshift client: {e}") from e
        self._native = native_client

        self._owns_dispatcher = dispatcher is None if owns_dispatcher is None else owns_dispatcher
        self._dispatcher = dispatcher or StatementDispatcher()
        self._stop = threading.Event()
        self._close_lock = threading.Lock()
        self._closed = False

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> "RedshiftDataClient":
        if "dispatcher" not in kwargs:
            try:
                kwargs["dispatcher"] = StatementDispatcher(
                    max_workers=settings.max_workers,
                    keep_alive=settings.worker_keep_alive,
                )
            except ValueError as e:
                raise ConfigurationError(f"Invalid worker pool settings: {e}") from e
            kwargs["owns_dispatcher"] = True
        kwargs.setdefault("poll_timeout", settings.poll_timeout)
        kwargs.setdefault("poll_interval", settings.poll_interval)
        kwargs.setdefault("with_event", settings.with_event)
        return cls(settings.connection_config(), **kwargs)

    # -----------------------------
    # Plumbing
    # -----------------------------
    @property
    def closed(self) -> bool:
        return self._closed

    def _resolve_db(self, database_config: DatabaseConfigLike) -> DatabaseConfig:
        if database_config is None:
            return self.config.database
        if isinstance(database_config, DatabaseConfig):
            return database_config
        if isinstance(database_config, Mapping):
            return DatabaseConfig.from_dict(dict(database_config))
        raise ValidationError(f"database_config must be a DatabaseConfig or mapping, got {type(database_config).__name__}")

    def _dispatch(self, action: str, fn: Callable[..., Any], *args: Any) -> Future:
        if self._closed:
            raise ClientClosedError("The Redshift client is closed")
        return self._dispatcher.submit(self._guarded, action, fn, *args)

    @staticmethod
    def _guarded(action: str, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return fn(*args)
        except Exception as e:
            err = translate_error(action, e)
            if err is e:
                raise
            raise err from e

    def _describe_raw(self, statement_id: str) -> Dict[str, Any]:
        return self._native.describe_statement(**build_describe_statement_request(statement_id))

    def _poll(self, statement_id: str, timeout: float, poll_interval: float) -> PollOutcome:
        return poll_statement(self._describe_raw, statement_id, timeout, poll_interval, stop_event=self._stop)

    # -----------------------------
    # Operations
    # -----------------------------
    def execute_statement(
        self,
        sql: Statement,
        parameters: Parameters = None,
        database_config: DatabaseConfigLike = None,
        *,
        statement_name: Optional[str] = None,
    ) -> Future:
        """Submit one statement; the future resolves to its statement id."""
        db = self._resolve_db(database_config)
        query = ParameterizedQuery.of(sql, parameters)
        request = build_execute_statement_request(
            query, db, statement_name=statement_name, with_event=self.with_event
        )
        log.info(
            "Redshift execute_statement",
            extra={
                "database": db.database,
                "cluster_id": db.cluster_id,
                "workgroup": db.workgroup_name,
                "param_count": len(query.parameters),
                "sql_head": query.sql[:300],
            },
        )
        return self._dispatch("executing the statement", self._execute, request)

    def _execute(self, request: Dict[str, Any]) -> str:
        return self._native.execute_statement(**request)["Id"]

    def batch_execute_statement(
        self,
        sqls: Sequence[Statement],
        database_config: DatabaseConfigLike = None,
        *,
        statement_name: Optional[str] = None,
    ) -> Future:
        """Submit several statements as one transaction.

        The future resolves, once the batch has FINISHED, to the sub-statement
        ids in submission order.
        """
        if isinstance(sqls, (str, ParameterizedQuery)):
            raise ValidationError("batch_execute_statement expects a sequence of statements")
        db = self._resolve_db(database_config)
        queries = [ParameterizedQuery.of(s) for s in sqls]
        request = build_batch_execute_statement_request(
            queries, db, statement_name=statement_name, with_event=self.with_event
        )
        log.info(
            "Redshift batch_execute_statement",
            extra={"database": db.database, "cluster_id": db.cluster_id,
                   "workgroup": db.workgroup_name, "statement_count": len(queries)},
        )
        return self._dispatch("executing the batch statement", self._batch_execute, request)

    def _batch_execute(self, request: Dict[str, Any]) -> List[str]:
        parent_id = self._native.batch_execute_statement(**request)["Id"]
        outcome = self._poll(parent_id, self.poll_timeout, self.poll_interval)
        if not outcome.ok:
            err = outcome.error
            raise type(err)(f"Error occurred while executing the batch statement: {err}", statement_id=parent_id)
        ids = outcome.description.sub_statement_ids
        expected = len(request["Sqls"])
        if len(ids) != expected:
            raise ProviderError(
                f"Batch statement {parent_id} reported {len(ids)} sub-statements, expected {expected}"
            )
        return ids

    def describe_statement(self, statement_id: str) -> Future:
        request = build_describe_statement_request(statement_id)
        return self._dispatch(
            "describing the statement",
            lambda: StatementDescription.from_response(self._native.describe_statement(**request)),
        )

    def get_statement_result(self, statement_id: str) -> Future:
        """Resolve to a ResultStream; later pages are fetched while iterating."""
        request = build_get_statement_result_request(statement_id)
        return self._dispatch("retrieving the statement result", self._first_result_page, request)

    def _first_result_page(self, request: Dict[str, Any]) -> ResultStream:
        statement_id = request["Id"]
        first = self._native.get_statement_result(**request)

        def _next_page(token: str) -> Dict[str, Any]:
            if self._closed:
                raise ClientClosedError("The Redshift client is closed")
            try:
                return self._native.get_statement_result(**build_get_statement_result_request(statement_id, token))
            except Exception as e:
                err = translate_error("retrieving the statement result", e)
                if err is e:
                    raise
                raise err from e

        return ResultStream(statement_id, first, _next_page)

    def wait_for_statement(
        self,
        statement_id: str,
        timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
    ) -> Future:
        """Poll until the statement is terminal; resolves to its description."""
        build_describe_statement_request(statement_id)
        timeout = self.poll_timeout if timeout is None else timeout
        poll_interval = self.poll_interval if poll_interval is None else poll_interval
        if timeout <= 0 or poll_interval <= 0:
            raise ValidationError("timeout and poll_interval must be positive")
        return self._dispatch(
            "waiting for the statement",
            lambda: self._poll(statement_id, timeout, poll_interval).unwrap(),
        )

    def cancel_statement(self, statement_id: str) -> Future:
        request = build_cancel_statement_request(statement_id)
        log.info("Redshift cancel_statement", extra={"statement_id": statement_id})
        return self._dispatch(
            "cancelling the statement",
            lambda: bool(self._native.cancel_statement(**request).get("Status", False)),
        )

    def close(self) -> None:
        """Release the client. Safe to call more than once."""
        with self._close_lock:
            if self._closed:
                return
            self._closed = True

        self._stop.set()
        if self._owns_dispatcher:
            self._dispatcher.shutdown(wait=False, cancel_futures=True)
        try:
            close_native = getattr(self._native, "close", None)
            if close_native is not None:
                close_native()
        except Exception as e:
            raise ProviderError(f"Error occurred while closing the Redshift client: {e}") from e
        log.info("Closed Redshift Data API client")

    def __enter__(self) -> "RedshiftDataClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
