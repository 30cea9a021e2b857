from __future__ import annotations

from typing import Optional


class RedshiftDataError(Exception):
    """Base exception for redshift_data_client."""

class ConfigurationError(RedshiftDataError):
    pass

class ValidationError(RedshiftDataError):
    pass

class ExecutionError(RedshiftDataError):
    """The provider accepted the statement but it finished in FAILED state."""

    def __init__(self, message: str, statement_id: Optional[str] = None):
        super().__init__(message)
        self.statement_id = statement_id

class AbortedError(ExecutionError):
    pass

class StatementTimeoutError(RedshiftDataError, TimeoutError):
    def __init__(self, message: str, statement_id: Optional[str] = None):
        super().__init__(message)
        self.statement_id = statement_id

class StatementCancelledError(RedshiftDataError):
    def __init__(self, message: str, statement_id: Optional[str] = None):
        super().__init__(message)
        self.statement_id = statement_id

class ProviderError(RedshiftDataError):
    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code

class ClientClosedError(RedshiftDataError):
    pass
