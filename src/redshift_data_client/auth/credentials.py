from __future__ import annotations

from typing import Optional

import boto3
import botocore.session
from botocore.credentials import CredentialResolver, InstanceMetadataFetcher, InstanceMetadataProvider
from botocore.exceptions import BotoCoreError

from redshift_data_client.config.settings import AuthConfig, InstanceProfileAuthConfig, StaticAuthConfig
from redshift_data_client.exceptions.errors import ConfigurationError
from redshift_data_client.logging.logger import get_logger

log = get_logger("auth.credentials")

IMDS_TIMEOUT_SECONDS = 1.0
IMDS_ATTEMPTS = 1


def _instance_profile_session(auth: InstanceProfileAuthConfig, region: str) -> boto3.Session:
    core = botocore.session.Session(profile=auth.profile_name)
    imds_config = {
        "ec2_metadata_service_endpoint": core.get_config_variable("ec2_metadata_service_endpoint"),
        "ec2_metadata_service_endpoint_mode": core.get_config_variable("ec2_metadata_service_endpoint_mode"),
    }
    fetcher = InstanceMetadataFetcher(
        timeout=IMDS_TIMEOUT_SECONDS,
        num_attempts=IMDS_ATTEMPTS,
        config=imds_config,
    )
    # Only the instance profile may supply credentials for this session.
    core.register_component("credential_provider", CredentialResolver(providers=[InstanceMetadataProvider(iam_role_fetcher=fetcher)]))
    return boto3.Session(botocore_session=core, region_name=region)


def resolve_session(auth: AuthConfig, region: str) -> boto3.Session:
    """Build a boto3 session whose credentials come only from ``auth``.

    Resolution happens eagerly; a session without usable credentials raises
    ConfigurationError here rather than on the first API call.
    """
    try:
        if isinstance(auth, StaticAuthConfig):
            session = boto3.Session(
                aws_access_key_id=auth.access_key_id,
                aws_secret_access_key=auth.secret_access_key,
                aws_session_token=auth.session_token,
                region_name=region,
            )
            kind = "session" if auth.session_token else "static"
        elif isinstance(auth, InstanceProfileAuthConfig):
            session = _instance_profile_session(auth, region)
            kind = "instance_profile"
        else:
            raise ConfigurationError(f"Unsupported auth config: {type(auth).__name__}")

        credentials = session.get_credentials()
    except BotoCoreError as e:
        raise ConfigurationError(f"Unable to resolve AWS credentials: {e}") from e

    if credentials is None:
        raise ConfigurationError("Unable to resolve AWS credentials from the configured auth provider")

    log.info("Resolved AWS credentials", extra={"auth_kind": kind, "region": region})
    return session


def credential_method(session: boto3.Session) -> Optional[str]:
    """Name of the botocore provider that supplied the session credentials."""
    credentials = session.get_credentials()
    return getattr(credentials, "method", None) if credentials is not None else None
