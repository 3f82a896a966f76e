"""
Relay configuration.

All limits that bound memory use per session and per connection live here.
Values can be overridden from the environment with ``RelayConfig.from_env()``.
"""

import os
from enum import Enum
from typing import Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 9001
ENV_PREFIX = "PEERRELAY_"


class OverflowPolicy(str, Enum):
    """What to do when a peer's outbound queue is full."""
    CLOSE = "close"
    DROP_OLDEST = "drop_oldest"
    DROP_NEWEST = "drop_newest"


class RelayConfig(BaseModel):
    """
    Signaling relay configuration.

    Example:
        config = RelayConfig(port=9001, idle_timeout=60)
        app = create_app(config)
    """

    model_config = ConfigDict(frozen=True)

    host: str = DEFAULT_HOST
    port: int = Field(DEFAULT_PORT, ge=0, le=65535)

    max_session_id_length: int = Field(256, ge=1)
    max_session_members: int = Field(64, ge=2)
    max_frame_bytes: int = Field(64 * 1024, ge=64)

    outbound_queue_size: int = Field(256, ge=1)
    overflow_policy: OverflowPolicy = OverflowPolicy.CLOSE

    idle_timeout: Optional[float] = Field(300.0, ge=0)
    close_timeout: float = Field(5.0, gt=0)
    ws_ping_interval: Optional[float] = Field(20.0, ge=0)
    ws_ping_timeout: Optional[float] = Field(20.0, ge=0)

    log_level: str = "info"

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        value = value.lower()
        if value not in ("critical", "error", "warning", "info", "debug", "trace"):
            raise ValueError(f"Unknown log level: {value}")
        return value

    @property
    def bind(self) -> str:
        return f"{self.host}:{self.port}"

    @property
    def idle_timeout_enabled(self) -> bool:
        return bool(self.idle_timeout)

    @classmethod
    def from_env(cls, prefix: str = ENV_PREFIX, environ: Optional[Dict[str, str]] = None,
                 **overrides) -> "RelayConfig":
        """
        Build a config from environment variables.

        Every field can be set as ``<prefix><FIELD_NAME>`` (upper case),
        e.g. ``PEERRELAY_PORT=9002``. ``PEERRELAY_BIND=host:port`` sets both
        host and port. Explicit keyword overrides win over the environment.

        Args:
            prefix: Environment variable prefix
            environ: Mapping to read instead of ``os.environ``
            **overrides: Field values taking precedence

        Returns:
            Validated RelayConfig
        """
        environ = os.environ if environ is None else environ
        values: Dict[str, object] = {}

        bind = environ.get(f"{prefix}BIND")
        if bind:
            values["host"], values["port"] = parse_bind(bind)

        for name in cls.model_fields:
            raw = environ.get(f"{prefix}{name.upper()}")
            if raw is None:
                continue
            # Empty string disables the optional timeouts
            values[name] = None if raw == "" else raw

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls.model_validate(values)


def parse_bind(address: str) -> Tuple[str, int]:
    """
    Parse a ``host:port`` bind address.

    IPv6 hosts may be bracketed (``[::1]:9001``). A bare port (``":9001"`` or
    ``"9001"``) binds to all interfaces.

    Raises:
        ValueError: If the port is missing or not a valid number
    """
    address = address.strip()
    if address.isdigit():
        return DEFAULT_HOST, _parse_port(address, address)

    host, sep, port = address.rpartition(":")
    if not sep:
        raise ValueError(f"Bind address must be host:port, got {address!r}")

    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]

    return host or DEFAULT_HOST, _parse_port(port, address)


def _parse_port(port: str, address: str) -> int:
    try:
        value = int(port)
    except ValueError:
        raise ValueError(f"Invalid port in bind address {address!r}") from None
    if not 0 <= value <= 65535:
        raise ValueError(f"Port out of range in bind address {address!r}")
    return value
