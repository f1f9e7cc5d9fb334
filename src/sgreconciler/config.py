"""Configuration management with validation.

Configuration is an immutable snapshot built once at startup and passed
explicitly to every component. Nothing in this package reads process-wide
settings after construction.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


# Prefix for security group names derived from service instance guids
SERVICE_FABRIK_PREFIX = "service-fabrik"

# Configuration constants with documented bounds
DEFAULT_REQUEST_TIMEOUT_SECONDS = 30
MIN_REQUEST_TIMEOUT_SECONDS = 1
MAX_REQUEST_TIMEOUT_SECONDS = 300

DEFAULT_MULTI_AZ_ENABLED = "disabled"

# Input validation patterns
VALID_URL_PATTERN = r"^https?://[^\s/$.?#][^\s]*$"
VALID_PREFIX_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9_.-]*$"


@dataclass(frozen=True)
class FeatureFlags:
    """Feature switches.

    enable_security_groups_ops gates all three lifecycle hooks. When False the
    hooks log a notice and make no remote calls.
    """

    enable_security_groups_ops: bool = True


@dataclass(frozen=True)
class QuotaConfig:
    """Quota settings consulted by the tenant policy gate."""

    # Organization names eligible for multi-AZ deployment in "internal" mode
    whitelist: frozenset[str] = field(default_factory=frozenset)


@dataclass(frozen=True)
class Config:
    """Reconciler configuration loaded from environment variables.

    All fields are validated at construction time. Invalid configurations
    raise ConfigurationError immediately rather than failing at runtime.

    multi_az_enabled is kept raw (str or bool). The tenant policy
    gate owns its interpretation and reports unknown values as
    UnprocessableEntity.
    """

    cloud_controller_url: str = ""
    multi_az_enabled: str | bool = DEFAULT_MULTI_AZ_ENABLED
    security_group_name_prefix: str = SERVICE_FABRIK_PREFIX
    request_timeout_seconds: int = DEFAULT_REQUEST_TIMEOUT_SECONDS
    serialize_instance_operations: bool = True

    features: FeatureFlags = field(default_factory=FeatureFlags)
    quota: QuotaConfig = field(default_factory=QuotaConfig)

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        import re

        errors: list[str] = []

        if self.cloud_controller_url and not re.match(
            VALID_URL_PATTERN, self.cloud_controller_url
        ):
            errors.append(f"CF_API_URL must be an http(s) URL: {self.cloud_controller_url}")

        if not self.security_group_name_prefix:
            errors.append("SECURITY_GROUP_NAME_PREFIX must not be empty")
        elif not re.match(VALID_PREFIX_PATTERN, self.security_group_name_prefix):
            errors.append(
                f"SECURITY_GROUP_NAME_PREFIX must match pattern {VALID_PREFIX_PATTERN}: "
                f"{self.security_group_name_prefix}"
            )

        if not (
            MIN_REQUEST_TIMEOUT_SECONDS
            <= self.request_timeout_seconds
            <= MAX_REQUEST_TIMEOUT_SECONDS
        ):
            errors.append(
                f"CF_REQUEST_TIMEOUT must be between {MIN_REQUEST_TIMEOUT_SECONDS} "
                f"and {MAX_REQUEST_TIMEOUT_SECONDS} seconds"
            )

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @classmethod
    def from_env(cls) -> Config:
        """Load configuration from environment variables.

        Environment Variables:
            CF_API_URL: Cloud Controller base URL (e.g. https://api.cf.example.com)
            MULTI_AZ_ENABLED: One of internal, all, true, disabled, false
                (default: disabled)
            QUOTA_WHITELIST: Comma-separated organization names eligible for
                multi-AZ deployment in internal mode
            ENABLE_SECURITY_GROUPS_OPS: If "false", lifecycle hooks are no-ops
                (default: true)
            SECURITY_GROUP_NAME_PREFIX: Prefix of derived security group names
                (default: service-fabrik)
            CF_REQUEST_TIMEOUT: Timeout for a single Cloud Controller request in
                seconds (default: 30)
            SERIALIZE_INSTANCE_OPERATIONS: If "true", hooks for the same instance
                run one at a time within this process (default: true)
        """

        def get_int(key: str, default: int) -> int:
            value = os.environ.get(key)
            if value is None:
                return default
            try:
                return int(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be an integer: {value}") from e

        def get_bool(key: str, default: bool) -> bool:
            value = os.environ.get(key, "").lower()
            if not value:
                return default
            return value in ("true", "1", "yes")

        def get_list(key: str) -> list[str]:
            value = os.environ.get(key, "")
            if not value:
                return []
            return [item.strip() for item in value.split(",") if item.strip()]

        return cls(
            cloud_controller_url=os.environ.get("CF_API_URL", ""),
            multi_az_enabled=os.environ.get("MULTI_AZ_ENABLED", DEFAULT_MULTI_AZ_ENABLED),
            security_group_name_prefix=os.environ.get(
                "SECURITY_GROUP_NAME_PREFIX", SERVICE_FABRIK_PREFIX
            ),
            request_timeout_seconds=get_int(
                "CF_REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT_SECONDS
            ),
            serialize_instance_operations=get_bool("SERIALIZE_INSTANCE_OPERATIONS", True),
            features=FeatureFlags(
                enable_security_groups_ops=get_bool("ENABLE_SECURITY_GROUPS_OPS", True),
            ),
            quota=QuotaConfig(whitelist=frozenset(get_list("QUOTA_WHITELIST"))),
        )
