import pytest

from redshift_data_client.config.settings import (
    ConnectionConfig,
    DatabaseConfig,
    InstanceProfileAuthConfig,
    StaticAuthConfig,
    load_settings,
)
from redshift_data_client.exceptions.errors import ConfigurationError

_ENV_KEYS = [
    "APP_ENV", "LOG_LEVEL", "LOG_FILE", "AWS_REGION", "AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY",
    "AWS_SESSION_TOKEN", "AWS_INSTANCE_PROFILE_NAME", "REDSHIFT_DATABASE", "REDSHIFT_CLUSTER_ID",
    "REDSHIFT_WORKGROUP_NAME", "REDSHIFT_DB_USER", "REDSHIFT_SECRET_ARN", "REDSHIFT_POLL_TIMEOUT",
    "REDSHIFT_POLL_INTERVAL", "REDSHIFT_MAX_WORKERS", "REDSHIFT_WORKER_KEEP_ALIVE", "REDSHIFT_MAX_ATTEMPTS",
    "REDSHIFT_CONNECT_TIMEOUT", "REDSHIFT_READ_TIMEOUT", "REDSHIFT_WITH_EVENT",
]

YAML = """
app:
  log_level: DEBUG
aws:
  region: eu-west-1
  access_key_id: AKIAFROMYAML
  secret_access_key: yaml-secret
redshift:
  database: warehouse
  cluster_id: prod-cluster
  secret_arn: arn:aws:secretsmanager:eu-west-1:123456789012:secret:rs
  with_event: true
  polling:
    timeout: 120
    interval: 2.5
  workers:
    max_workers: 8
"""


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def yaml_path(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text(YAML, encoding="utf-8")
    return str(path)


class TestDatabaseConfig:
    def test_provisioned_with_db_user(self):
        db = DatabaseConfig(database="dev", cluster_id="c1", db_user="awsuser")
        assert db.cluster_id == "c1"

    def test_serverless_without_secret(self):
        db = DatabaseConfig(database="dev", workgroup_name="wg")
        assert db.workgroup_name == "wg"

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"database": "", "cluster_id": "c1", "db_user": "u"},
            {"database": "dev"},
            {"database": "dev", "cluster_id": "c1", "workgroup_name": "wg", "db_user": "u"},
            {"database": "dev", "cluster_id": "c1", "db_user": "u", "secret_arn": "arn"},
            {"database": "dev", "workgroup_name": "wg", "db_user": "u"},
            {"database": "dev", "cluster_id": "c1"},
        ],
    )
    def test_malformed_configs_are_rejected(self, kwargs):
        with pytest.raises(ConfigurationError):
            DatabaseConfig(**kwargs)

    def test_from_dict_rejects_unknown_keys(self):
        with pytest.raises(ConfigurationError, match="Unknown"):
            DatabaseConfig.from_dict({"database": "dev", "workgroup_name": "wg", "port": 5439})


class TestAuthAndConnection:
    def test_static_auth_requires_both_keys(self):
        with pytest.raises(ConfigurationError):
            StaticAuthConfig(access_key_id="AKIA", secret_access_key="")

    def test_static_auth_repr_hides_secret(self):
        auth = StaticAuthConfig(access_key_id="AKIAEXAMPLE", secret_access_key="very-secret", session_token="tok")
        assert "very-secret" not in repr(auth)
        assert "tok" not in repr(auth)

    def test_connection_requires_region(self):
        with pytest.raises(ConfigurationError):
            ConnectionConfig(region="", auth=InstanceProfileAuthConfig(), database=DatabaseConfig("dev", workgroup_name="wg"))

    def test_connection_rejects_unknown_auth(self):
        with pytest.raises(ConfigurationError):
            ConnectionConfig(region="us-east-1", auth={"key": "x"}, database=DatabaseConfig("dev", workgroup_name="wg"))


class TestLoadSettings:
    def test_yaml_values(self, yaml_path):
        s = load_settings(yaml_path)

        assert s.log_level == "DEBUG"
        assert s.aws_region == "eu-west-1"
        assert s.poll_timeout == 120.0
        assert s.poll_interval == 2.5
        assert s.max_workers == 8
        assert s.with_event is True

        conn = s.connection_config()
        assert isinstance(conn.auth, StaticAuthConfig)
        assert conn.auth.access_key_id == "AKIAFROMYAML"
        assert conn.database.cluster_id == "prod-cluster"
        assert conn.database.secret_arn.endswith(":secret:rs")

    def test_env_overrides_yaml(self, yaml_path, monkeypatch):
        monkeypatch.setenv("REDSHIFT_DATABASE", "analytics")
        monkeypatch.setenv("REDSHIFT_POLL_INTERVAL", "0.5")
        monkeypatch.setenv("REDSHIFT_WITH_EVENT", "no")

        s = load_settings(yaml_path)

        assert s.redshift_database == "analytics"
        assert s.poll_interval == 0.5
        assert s.with_event is False

    def test_env_only_when_default_file_is_missing(self, monkeypatch):
        monkeypatch.setenv("AWS_REGION", "us-west-2")
        monkeypatch.setenv("REDSHIFT_DATABASE", "dev")
        monkeypatch.setenv("REDSHIFT_WORKGROUP_NAME", "wg")
        monkeypatch.setenv("AWS_INSTANCE_PROFILE_NAME", "imds-v2")

        conn = load_settings().connection_config()

        assert conn.region == "us-west-2"
        assert conn.auth == InstanceProfileAuthConfig(profile_name="imds-v2")
        assert conn.database.workgroup_name == "wg"

    def test_explicit_missing_file_is_an_error(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Config not found"):
            load_settings(str(tmp_path / "missing.yaml"))

    def test_bad_number_in_env(self, yaml_path, monkeypatch):
        monkeypatch.setenv("REDSHIFT_POLL_TIMEOUT", "soon")
        with pytest.raises(ConfigurationError, match="REDSHIFT_POLL_TIMEOUT"):
            load_settings(yaml_path)

    @pytest.mark.parametrize(
        "key, value",
        [("REDSHIFT_MAX_WORKERS", "0"), ("REDSHIFT_MAX_WORKERS", "-2"), ("REDSHIFT_WORKER_KEEP_ALIVE", "0")],
    )
    def test_non_positive_worker_settings_in_env(self, yaml_path, monkeypatch, key, value):
        monkeypatch.setenv(key, value)
        with pytest.raises(ConfigurationError, match=key):
            load_settings(yaml_path)

    def test_zero_max_workers_in_yaml_is_rejected(self, tmp_path):
        path = tmp_path / "pool.yaml"
        path.write_text("redshift:\n  workers:\n    max_workers: 0\n", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="MAX_WORKERS"):
            load_settings(str(path))

    def test_null_max_workers_in_yaml_means_unbounded(self, tmp_path):
        path = tmp_path / "pool.yaml"
        path.write_text("redshift:\n  workers:\n    max_workers: null\n    keep_alive: 5\n", encoding="utf-8")
        s = load_settings(str(path))
        assert s.max_workers is None
        assert s.worker_keep_alive == 5.0

    def test_non_mapping_yaml(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigurationError):
            load_settings(str(path))
