"""
Runtime configuration.

EdgeConfig is built once at startup (CLI flags, then environment, then
defaults) and handed to each component's constructor.  Nothing in the
package reads configuration from a global.
"""

import argparse
import logging
import os
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from edge import __version__
from edge.errors import ConfigError

ENV_PREFIX = "SPA_EDGE_"

# field name → (CLI flag, environment variable suffix)
_SOURCES = {
    "listen": ("--listen", "LISTEN"),
    "upstream": ("--api", "API"),
    "static_dir": ("--static", "STATIC"),
    "version": ("--ui-version", "VERSION"),
    "forwarded_proto": ("--forwarded-proto", "FORWARDED_PROTO"),
    "upstream_timeout": ("--upstream-timeout", "UPSTREAM_TIMEOUT"),
    "upstream_connect_timeout": ("--upstream-connect-timeout", "UPSTREAM_CONNECT_TIMEOUT"),
    "log_level": ("--log-level", "LOG_LEVEL"),
}


def split_listen(listen: str) -> Tuple[str, int]:
    """
    Split a ``host:port`` listen address.

    An empty host (``":3000"``) means every interface.  IPv6 hosts may be
    bracketed (``"[::1]:3000"``).

    Raises:
        ValueError: If the port is missing or out of range
    """
    host, sep, port = listen.strip().rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"invalid listen address: {listen!r} (expected host:port)")
    port_num = int(port)
    if not 0 <= port_num <= 65535:
        raise ValueError(f"listen port out of range: {port_num}")
    host = host.strip("[]") or "0.0.0.0"
    return host, port_num


class EdgeConfig(BaseModel):
    """Immutable configuration shared by the router, proxy and static resolver."""

    model_config = ConfigDict(frozen=True)

    listen: str = ":3000"
    upstream: str = "http://localhost:8080"
    static_dir: str = "./dist"
    version: str = __version__
    forwarded_proto: str = "http"  # the upstream is reached over plain HTTP unless told otherwise
    upstream_timeout: float = Field(default=30.0, gt=0)
    upstream_connect_timeout: float = Field(default=10.0, gt=0)
    log_level: str = "INFO"

    @field_validator("listen")
    @classmethod
    def _check_listen(cls, value: str) -> str:
        split_listen(value)
        return value.strip()

    @field_validator("upstream")
    @classmethod
    def _check_upstream(cls, value: str) -> str:
        value = value.strip()
        parts = urlsplit(value)
        if parts.scheme not in ("http", "https") or not parts.hostname:
            raise ValueError(
                f"invalid upstream URL: {value!r} (expected http(s)://host[:port])"
            )
        if parts.query or parts.fragment:
            raise ValueError(f"upstream URL must not carry a query or fragment: {value!r}")
        parts.port  # raises ValueError on a malformed port
        return value.rstrip("/")

    @field_validator("static_dir")
    @classmethod
    def _absolute_static_dir(cls, value: str) -> str:
        return os.path.abspath(value)

    @field_validator("forwarded_proto")
    @classmethod
    def _check_forwarded_proto(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in ("http", "https"):
            raise ValueError(f"forwarded_proto must be 'http' or 'https', got {value!r}")
        return value

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        value = value.strip().upper()
        if not isinstance(logging.getLevelName(value), int):
            raise ValueError(f"unknown log level: {value!r}")
        return value

    @property
    def listen_address(self) -> Tuple[str, int]:
        return split_listen(self.listen)

    @property
    def upstream_host(self) -> str:
        """Authority (``host[:port]``) of the upstream."""
        return urlsplit(self.upstream).netloc

    @property
    def upstream_base_path(self) -> str:
        return urlsplit(self.upstream).path


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="spa-edge",
        description="Serve a single-page application and forward /api/* to its backend",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Every option can also be set through the environment, e.g. SPA_EDGE_API.

Examples:
  spa-edge --listen :3000 --api http://localhost:8080 --static ./dist
  SPA_EDGE_FORWARDED_PROTO=https spa-edge --api http://backend:8080
        """,
    )
    parser.add_argument("-V", "--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--listen", help="Listen address host:port (default: :3000)")
    parser.add_argument("--api", help="Backend API base URL (default: http://localhost:8080)")
    parser.add_argument("--static", help="Directory holding the built SPA (default: ./dist)")
    parser.add_argument("--ui-version", help="Version reported by /api/v1/ui/version")
    parser.add_argument(
        "--forwarded-proto",
        help="X-Forwarded-Proto sent to the backend (default: http)",
    )
    parser.add_argument(
        "--upstream-timeout",
        help="Seconds to wait for the backend before answering 504 (default: 30)",
    )
    parser.add_argument(
        "--upstream-connect-timeout",
        help="Seconds to wait when connecting to the backend (default: 10)",
    )
    parser.add_argument("--log-level", help="Logging level (default: INFO)")
    return parser


def load_config(
    argv: Optional[Sequence[str]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> EdgeConfig:
    """
    Build the configuration from CLI flags, falling back to the environment.

    Args:
        argv: Command-line arguments (default: sys.argv[1:])
        environ: Environment mapping (default: os.environ)

    Returns:
        Validated EdgeConfig

    Raises:
        ConfigError: If any value fails validation
    """
    if environ is None:
        environ = os.environ
    args = build_parser().parse_args(argv)

    values: Dict[str, Any] = {}
    for field, (flag, env_suffix) in _SOURCES.items():
        value = getattr(args, flag.lstrip("-").replace("-", "_"))
        if value is None:
            value = environ.get(ENV_PREFIX + env_suffix)
        if value is not None:
            values[field] = value

    try:
        return EdgeConfig(**values)
    except ValidationError as e:
        raise ConfigError(str(e)) from e
