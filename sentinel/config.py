"""
Sentinel Configuration

Reads the sentinel settings from the environment (optionally populated from a .env file).
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from sentinel.exceptions import ConfigError
from sentinel.platform_utils import get_cgroup_root

TRUE_VALUES = ("1", "true", "yes", "on")


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from e


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from e


def _get_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in TRUE_VALUES


@dataclass(frozen=True)
class RedisSettings:
    host: str = "redis"
    port: int = 6379
    db: int = 0
    password: str = ""


@dataclass(frozen=True)
class SentinelConfig:
    """
    Runtime settings for the sentinel.

    Attributes:
        cgroup_root: Directory holding one subdirectory per container scope
        unit_prefix: Directory name prefix marking a container-managed cgroup
        unit_suffix: Directory name suffix stripped to obtain the container id
        procs_file: Name of the live process list inside each scope directory
        poll_interval: Seconds between two reads of a unit's process list
        stop_timeout: Grace period in seconds handed to the container stop call
        remediation_timeout: Bound on each stop/start call in seconds, 0 disables it
        rescan_interval: Seconds between re-enumerations of the namespace, 0 disables it
        retry_max: Connection attempts for Docker and Redis at startup
        retry_delay: Initial backoff delay in seconds between connection attempts
        publish_events: Fan detection and remediation events out over Redis pub/sub
        redis: Redis connection settings, used only when publish_events is set
    """

    cgroup_root: Path = field(default_factory=get_cgroup_root)
    unit_prefix: str = "docker-"
    unit_suffix: str = ".scope"
    procs_file: str = "cgroup.procs"
    poll_interval: float = 0.1
    stop_timeout: int = 10
    remediation_timeout: float = 0.0
    rescan_interval: float = 0.0
    retry_max: int = 3
    retry_delay: float = 1.0
    publish_events: bool = False
    redis: RedisSettings = field(default_factory=RedisSettings)

    def __post_init__(self):
        if not self.unit_prefix:
            raise ConfigError("SENTINEL_UNIT_PREFIX must not be empty")
        if not self.procs_file:
            raise ConfigError("SENTINEL_PROCS_FILE must not be empty")
        if self.poll_interval <= 0:
            raise ConfigError(f"SENTINEL_POLL_INTERVAL must be positive, got {self.poll_interval}")
        if self.stop_timeout < 0:
            raise ConfigError(f"SENTINEL_STOP_TIMEOUT must not be negative, got {self.stop_timeout}")
        if self.remediation_timeout < 0:
            raise ConfigError(
                f"SENTINEL_REMEDIATION_TIMEOUT must not be negative, got {self.remediation_timeout}"
            )
        if self.rescan_interval < 0:
            raise ConfigError(
                f"SENTINEL_RESCAN_INTERVAL must not be negative, got {self.rescan_interval}"
            )
        if self.retry_max < 1:
            raise ConfigError(f"SENTINEL_RETRY_MAX must be at least 1, got {self.retry_max}")

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "SentinelConfig":
        """
        Build the configuration from environment variables.

        Args:
            dotenv: Load a .env file from the working directory first

        Returns:
            Validated SentinelConfig

        Raises:
            ConfigError: If a value cannot be parsed or is out of range
        """
        if dotenv:
            load_dotenv()

        cgroup_root = os.getenv("SENTINEL_CGROUP_ROOT")

        return cls(
            cgroup_root=Path(cgroup_root) if cgroup_root else get_cgroup_root(),
            unit_prefix=os.getenv("SENTINEL_UNIT_PREFIX", "docker-"),
            unit_suffix=os.getenv("SENTINEL_UNIT_SUFFIX", ".scope"),
            procs_file=os.getenv("SENTINEL_PROCS_FILE", "cgroup.procs"),
            poll_interval=_get_float("SENTINEL_POLL_INTERVAL", 0.1),
            stop_timeout=_get_int("SENTINEL_STOP_TIMEOUT", 10),
            remediation_timeout=_get_float("SENTINEL_REMEDIATION_TIMEOUT", 0.0),
            rescan_interval=_get_float("SENTINEL_RESCAN_INTERVAL", 0.0),
            retry_max=_get_int("SENTINEL_RETRY_MAX", 3),
            retry_delay=_get_float("SENTINEL_RETRY_DELAY", 1.0),
            publish_events=_get_bool("SENTINEL_PUBLISH_EVENTS", False),
            redis=RedisSettings(
                host=os.getenv("REDIS_HOST", "redis"),
                port=_get_int("REDIS_PORT", 6379),
                db=_get_int("REDIS_DB", 0),
                password=os.getenv("REDIS_PASSWORD", "").strip(),
            ),
        )
