from __future__ import annotations
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union
import yaml
from dotenv import load_dotenv

from redshift_data_client.exceptions.errors import ConfigurationError

load_dotenv()

DEFAULT_POLL_TIMEOUT = 60.0
DEFAULT_POLL_INTERVAL = 1.0


def _env(key: str, default: Optional[str] = None) -> Optional[str]:
    return os.environ.get(key, default)

def _env_bool(key: str, default: bool = False) -> bool:
    val = os.environ.get(key)
    if val is None:
        return default
    return val.strip().lower() in ("1", "true", "yes", "y", "on")

def _env_float(key: str, default: float) -> float:
    val = os.environ.get(key)
    if val is None or not val.strip():
        return float(default)
    try:
        return float(val)
    except ValueError as e:
        raise ConfigurationError(f"{key} must be a number, got {val!r}") from e

def _env_int(key: str, default: Optional[int]) -> Optional[int]:
    val = os.environ.get(key)
    if val is None or not val.strip():
        return default
    try:
        return int(val)
    except ValueError as e:
        raise ConfigurationError(f"{key} must be an integer, got {val!r}") from e


@dataclass(frozen=True)
class StaticAuthConfig:
    """Access key pair, optionally scoped to a session token."""

    access_key_id: str
    secret_access_key: str
    session_token: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.access_key_id or not self.secret_access_key:
            raise ConfigurationError("Both access_key_id and secret_access_key are required for static auth")

    def __repr__(self) -> str:
        # Never leak key material into logs or tracebacks.
        return f"StaticAuthConfig(access_key_id={self.access_key_id[:4]}***, session={self.session_token is not None})"


@dataclass(frozen=True)
class InstanceProfileAuthConfig:
    """EC2 instance-profile credentials.

    ``profile_name`` selects the AWS config profile that holds IMDS settings
    (endpoint, endpoint mode); it does not name the IAM role.
    """

    profile_name: Optional[str] = None


AuthConfig = Union[StaticAuthConfig, InstanceProfileAuthConfig]


@dataclass(frozen=True)
class DatabaseConfig:
    """Where statements run.

    Provisioned clusters use ``cluster_id`` with either ``db_user`` (temporary
    credentials) or ``secret_arn``. Serverless uses ``workgroup_name`` with an
    optional ``secret_arn``.
    """

    database: str
    cluster_id: Optional[str] = None
    workgroup_name: Optional[str] = None
    db_user: Optional[str] = None
    secret_arn: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.database:
            raise ConfigurationError("database is required")
        if bool(self.cluster_id) == bool(self.workgroup_name):
            raise ConfigurationError("Exactly one of cluster_id (provisioned) or workgroup_name (serverless) is required")
        if self.db_user and self.secret_arn:
            raise ConfigurationError("db_user and secret_arn are mutually exclusive")
        if self.workgroup_name and self.db_user:
            raise ConfigurationError("db_user is not supported for serverless workgroups; use secret_arn or IAM")
        if self.cluster_id and not (self.db_user or self.secret_arn):
            raise ConfigurationError("secret_arn (preferred) or db_user is required for a provisioned cluster")

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "DatabaseConfig":
        known = {"database", "cluster_id", "workgroup_name", "db_user", "secret_arn"}
        unknown = set(raw) - known
        if unknown:
            raise ConfigurationError(f"Unknown database config keys: {sorted(unknown)}")
        return cls(**{k: (str(v) if v is not None else None) for k, v in raw.items()})


@dataclass(frozen=True)
class ConnectionConfig:
    region: str
    auth: AuthConfig
    database: DatabaseConfig

    # botocore client tuning; retries/backoff stay inside botocore.
    max_attempts: int = 3
    connect_timeout: float = 10.0
    read_timeout: float = 60.0

    def __post_init__(self) -> None:
        if not self.region:
            raise ConfigurationError("region is required")
        if not isinstance(self.auth, (StaticAuthConfig, InstanceProfileAuthConfig)):
            raise ConfigurationError(f"Unsupported auth config: {type(self.auth).__name__}")
        if not isinstance(self.database, DatabaseConfig):
            raise ConfigurationError("database must be a DatabaseConfig")
        if self.max_attempts < 1:
            raise ConfigurationError("max_attempts must be >= 1")


@dataclass(frozen=True)
class Settings:
    env: str
    log_level: str
    log_file: str

    aws_region: str

    # Static credentials (leave empty to use the instance profile)
    aws_access_key_id: str
    aws_secret_access_key: str
    aws_session_token: str
    aws_instance_profile_name: str

    # Redshift Data API target (provisioned or serverless)
    redshift_database: str
    redshift_cluster_id: str
    redshift_workgroup_name: str
    redshift_db_user: str
    redshift_secret_arn: str

    # Completion polling
    poll_timeout: float = DEFAULT_POLL_TIMEOUT
    poll_interval: float = DEFAULT_POLL_INTERVAL

    # Worker pool; None means grow on demand
    max_workers: Optional[int] = None
    worker_keep_alive: float = 60.0

    client_max_attempts: int = 3
    client_connect_timeout: float = 10.0
    client_read_timeout: float = 60.0

    # Ask the Data API to publish an EventBridge event when a statement completes
    with_event: bool = False

    def auth_config(self) -> AuthConfig:
        if self.aws_access_key_id or self.aws_secret_access_key:
            return StaticAuthConfig(
                access_key_id=self.aws_access_key_id,
                secret_access_key=self.aws_secret_access_key,
                session_token=self.aws_session_token or None,
            )
        return InstanceProfileAuthConfig(profile_name=self.aws_instance_profile_name or None)

    def database_config(self) -> DatabaseConfig:
        return DatabaseConfig(
            database=self.redshift_database,
            cluster_id=self.redshift_cluster_id or None,
            workgroup_name=self.redshift_workgroup_name or None,
            db_user=self.redshift_db_user or None,
            secret_arn=self.redshift_secret_arn or None,
        )

    def connection_config(self) -> ConnectionConfig:
        return ConnectionConfig(
            region=self.aws_region,
            auth=self.auth_config(),
            database=self.database_config(),
            max_attempts=self.client_max_attempts,
            connect_timeout=self.client_connect_timeout,
            read_timeout=self.client_read_timeout,
        )


def _read_yaml(cfg_path: Path) -> Dict[str, Any]:
    try:
        cfg = yaml.safe_load(cfg_path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {cfg_path}: {e}") from e
    if not isinstance(cfg, dict):
        raise ConfigurationError(f"Config root must be a mapping: {cfg_path}")
    return cfg


def load_settings(config_path: Optional[str] = None) -> Settings:
    """Load settings from ``config/<APP_ENV>.yaml`` with environment overrides.

    An explicitly passed ``config_path`` must exist; the default per-env file
    is optional so the client can be configured from the environment alone.
    """
    app_env = _env("APP_ENV", "dev") or "dev"
    if config_path:
        cfg_path = Path(config_path)
        if not cfg_path.exists():
            raise ConfigurationError(f"Config not found: {cfg_path}")
        cfg = _read_yaml(cfg_path)
    else:
        cfg_path = Path("config") / f"{app_env}.yaml"
        cfg = _read_yaml(cfg_path) if cfg_path.exists() else {}

    app_cfg = cfg.get("app") or {}
    aws_cfg = cfg.get("aws") or {}
    rs_cfg = cfg.get("redshift") or {}
    poll_cfg = rs_cfg.get("polling") or {}
    pool_cfg = rs_cfg.get("workers") or {}
    client_cfg = rs_cfg.get("client") or {}

    def _s(key: str, raw: Any) -> str:
        return _env(key, "" if raw is None else str(raw)) or ""

    max_workers_raw = pool_cfg.get("max_workers")
    try:
        yaml_max_workers = None if max_workers_raw in (None, "") else int(max_workers_raw)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"redshift.workers.max_workers must be an integer, got {max_workers_raw!r}") from e
    max_workers = _env_int("REDSHIFT_MAX_WORKERS", yaml_max_workers)
    if max_workers is not None and max_workers <= 0:
        raise ConfigurationError(f"REDSHIFT_MAX_WORKERS must be greater than 0, got {max_workers}")
    worker_keep_alive = _env_float("REDSHIFT_WORKER_KEEP_ALIVE", pool_cfg.get("keep_alive", 60.0))
    if worker_keep_alive <= 0:
        raise ConfigurationError(f"REDSHIFT_WORKER_KEEP_ALIVE must be greater than 0, got {worker_keep_alive}")

    return Settings(
        env=app_env,
        log_level=_s("LOG_LEVEL", app_cfg.get("log_level", "INFO")),
        log_file=_s("LOG_FILE", app_cfg.get("log_file", "")),
        aws_region=_s("AWS_REGION", aws_cfg.get("region", "")),
        aws_access_key_id=_s("AWS_ACCESS_KEY_ID", aws_cfg.get("access_key_id", "")),
        aws_secret_access_key=_s("AWS_SECRET_ACCESS_KEY", aws_cfg.get("secret_access_key", "")),
        aws_session_token=_s("AWS_SESSION_TOKEN", aws_cfg.get("session_token", "")),
        aws_instance_profile_name=_s("AWS_INSTANCE_PROFILE_NAME", aws_cfg.get("instance_profile_name", "")),
        redshift_database=_s("REDSHIFT_DATABASE", rs_cfg.get("database", "")),
        redshift_cluster_id=_s("REDSHIFT_CLUSTER_ID", rs_cfg.get("cluster_id", "")),
        redshift_workgroup_name=_s("REDSHIFT_WORKGROUP_NAME", rs_cfg.get("workgroup_name", "")),
        redshift_db_user=_s("REDSHIFT_DB_USER", rs_cfg.get("db_user", "")),
        redshift_secret_arn=_s("REDSHIFT_SECRET_ARN", rs_cfg.get("secret_arn", "")),
        poll_timeout=_env_float("REDSHIFT_POLL_TIMEOUT", poll_cfg.get("timeout", DEFAULT_POLL_TIMEOUT)),
        poll_interval=_env_float("REDSHIFT_POLL_INTERVAL", poll_cfg.get("interval", DEFAULT_POLL_INTERVAL)),
        max_workers=max_workers,
        worker_keep_alive=worker_keep_alive,
        client_max_attempts=_env_int("REDSHIFT_MAX_ATTEMPTS", int(client_cfg.get("max_attempts", 3))) or 3,
        client_connect_timeout=_env_float("REDSHIFT_CONNECT_TIMEOUT", client_cfg.get("connect_timeout", 10.0)),
        client_read_timeout=_env_float("REDSHIFT_READ_TIMEOUT", client_cfg.get("read_timeout", 60.0)),
        with_event=_env_bool("REDSHIFT_WITH_EVENT", bool(rs_cfg.get("with_event", False))),
    )
