"""Config loading for the firearm status gateway.

Reads `.fsenquiry/config.yaml` (or `~/.fsenquiry/config.yaml`).
Raises SystemExit on parse errors, a missing `version` field or invalid values.
Without a config file every setting has a working default except the CSRF
token.

Config search order:
  1. `config_path` argument
  2. FSENQUIRY_CONFIG environment variable (if set)
  3. `.fsenquiry/config.yaml` (working directory — for development)
  4. `~/.fsenquiry/config.yaml` (home directory — for production deployments)

Environment variable overrides (always win over the file):
  FSENQUIRY_PORT / PORT        — proxy.port
  ALLOWED_ORIGIN               — proxy.allowed_origin
  CLIENT_IP_HEADER             — proxy.client_ip_header
  UPSTREAM_URL                 — upstream.url
  CSRF_TOKEN                   — upstream.csrf_token
  UPSTREAM_TIMEOUT_SECONDS     — upstream.timeout_s
  RATE_LIMIT_REQUESTS          — rate_limit.max_requests
  RATE_LIMIT_WINDOW_SECONDS    — rate_limit.window_s
  RATE_LIMIT_DAILY_MAX         — rate_limit.daily_max (0 disables)
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from typing import Any, Callable, NoReturn, Optional

import yaml

from fsenquiry.constants import (
    DEFAULT_CLIENT_IP_HEADER,
    DEFAULT_RATE_LIMIT_DAILY_MAX,
    DEFAULT_RATE_LIMIT_REQUESTS,
    DEFAULT_RATE_LIMIT_WINDOW_S,
    DEFAULT_UPSTREAM_ORIGIN,
    DEFAULT_UPSTREAM_TIMEOUT_S,
    DEFAULT_UPSTREAM_URL,
)
from fsenquiry.utils.logger import get_logger

logger = get_logger(__name__)

# ─── Version constants ────────────────────────────────────────────────────────

SUPPORTED_CONFIG_VERSION = 1

SUPPORTED_VERSIONS: frozenset[int] = frozenset({1})

DEFAULT_CONFIG_PATHS = [
    ".fsenquiry/config.yaml",
    os.path.expanduser("~/.fsenquiry/config.yaml"),
]


# ─── Dataclasses ─────────────────────────────────────────────────────────────


@dataclass
class UpstreamConfig:
    """Government status-enquiry endpoint.

    url:        Form POST target.
    origin:     Value of the Origin header; the Referer is the url itself.
    csrf_token: Replayed in the form body and the cookie. Secret — never logged.
    timeout_s:  Total budget for one upstream call.
    """

    url: str = DEFAULT_UPSTREAM_URL
    origin: str = DEFAULT_UPSTREAM_ORIGIN
    csrf_token: str = ""
    timeout_s: float = DEFAULT_UPSTREAM_TIMEOUT_S


@dataclass
class RateLimitConfig:
    """Fixed-window limit per client plus an optional global daily cap."""

    max_requests: int = DEFAULT_RATE_LIMIT_REQUESTS
    window_s: int = DEFAULT_RATE_LIMIT_WINDOW_S
    daily_max: int = DEFAULT_RATE_LIMIT_DAILY_MAX  # 0 = no global cap

    @property
    def daily_cap_enabled(self) -> bool:
        return self.daily_max > 0


@dataclass
class ProxyConfig:
    """Listener and browser-facing settings."""

    host: str = "127.0.0.1"
    port: int = 3000
    allowed_origin: str = "*"
    client_ip_header: str = DEFAULT_CLIENT_IP_HEADER


@dataclass
class Config:
    """Root configuration object populated from .fsenquiry/config.yaml.

    All fields have safe defaults except upstream.csrf_token, without which
    the upstream rejects every enquiry (a warning is logged at load time).
    """

    version: int = SUPPORTED_CONFIG_VERSION
    upstream: UpstreamConfig = field(default_factory=UpstreamConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    proxy: ProxyConfig = field(default_factory=ProxyConfig)
    path: Optional[str] = None

    @classmethod
    def defaults(cls) -> "Config":
        """Return a fully-default Config (no file required)."""
        return cls()

    @classmethod
    def from_dict(cls, raw: dict, path: Optional[str] = None) -> "Config":
        """Construct Config from a parsed YAML dict.

        Merges user-supplied values onto defaults; unknown keys are silently ignored.

        Raises:
            SystemExit(1): On a non-positive limit, window or timeout.
        """
        # ── Upstream ──────────────────────────────────────────────────────────
        upstream_raw = raw.get("upstream") or {}
        upstream = UpstreamConfig(
            url=upstream_raw.get("url", DEFAULT_UPSTREAM_URL),
            origin=upstream_raw.get("origin", DEFAULT_UPSTREAM_ORIGIN),
            csrf_token=str(upstream_raw.get("csrf_token", "") or ""),
            timeout_s=float(upstream_raw.get("timeout_s", DEFAULT_UPSTREAM_TIMEOUT_S)),
        )

        # ── Rate limit ────────────────────────────────────────────────────────
        rate_raw = raw.get("rate_limit") or {}
        rate_limit = RateLimitConfig(
            max_requests=rate_raw.get("max_requests", DEFAULT_RATE_LIMIT_REQUESTS),
            window_s=rate_raw.get("window_s", DEFAULT_RATE_LIMIT_WINDOW_S),
            daily_max=rate_raw.get("daily_max", DEFAULT_RATE_LIMIT_DAILY_MAX),
        )

        # ── Proxy ─────────────────────────────────────────────────────────────
        proxy_raw = raw.get("proxy") or {}
        proxy = ProxyConfig(
            host=proxy_raw.get("host", "127.0.0.1"),
            port=proxy_raw.get("port", 3000),
            allowed_origin=proxy_raw.get("allowed_origin", "*"),
            client_ip_header=proxy_raw.get("client_ip_header", DEFAULT_CLIENT_IP_HEADER),
        )

        config = cls(
            version=raw.get("version", SUPPORTED_CONFIG_VERSION),
            upstream=upstream,
            rate_limit=rate_limit,
            proxy=proxy,
            path=path,
        )
        _validate(config, source=path or "config")
        return config


# ─── Config loading ───────────────────────────────────────────────────────────


def load_config(config_path: Optional[str] = None) -> Config:
    """Load and validate gateway configuration.

    Search order:
      1. ``config_path`` argument
      2. ``FSENQUIRY_CONFIG`` environment variable
      3. ``.fsenquiry/config.yaml``
      4. ``~/.fsenquiry/config.yaml``

    No file found is not an error: defaults are used. Environment overrides
    are applied in both cases.

    Raises:
        SystemExit(1): On YAML parse error, missing or unsupported ``version``,
                       invalid values, or an unparsable environment override.
    """
    candidates = _candidate_paths(config_path)
    found_path = next((path for path in candidates if os.path.isfile(path)), None)

    if found_path is None:
        logger.info("No config file found, using defaults", searched=candidates)
        config = Config.defaults()
    else:
        logger.info("Loading config", path=found_path)
        raw = _read_yaml(found_path)
        _check_version(raw, found_path)
        try:
            config = Config.from_dict(raw, path=found_path)
        except (TypeError, ValueError) as exc:
            _fail(f"CONFIG ERROR: Invalid value in {found_path}: {exc}")

    _apply_env_overrides(config)

    if found_path is not None and config.proxy.allowed_origin == "*":
        logger.warning(
            "CORS allows any origin. Set proxy.allowed_origin (or ALLOWED_ORIGIN) "
            "to the front-end origin in production."
        )
    _warn_on_missing_secret(config)

    logger.info(
        "Config ready",
        path=found_path,
        upstream_url=config.upstream.url,
        rate_limit_requests=config.rate_limit.max_requests,
        rate_limit_window_s=config.rate_limit.window_s,
        daily_max=config.rate_limit.daily_max,
    )
    return config


def _candidate_paths(config_path: Optional[str]) -> list[str]:
    paths = [config_path, os.environ.get("FSENQUIRY_CONFIG"), *DEFAULT_CONFIG_PATHS]
    return [os.path.expanduser(path) for path in paths if path]


def _read_yaml(path: str) -> dict:
    try:
        with open(path) as fh:
            raw = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        _fail(
            f"CONFIG ERROR: Failed to parse {path}: {exc}\n"
            "The gateway refuses to start with an invalid config; fix the YAML syntax."
        )
    except OSError as exc:
        _fail(f"CONFIG ERROR: Could not read {path}: {exc}")

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        _fail(f"CONFIG ERROR: {path} must contain a YAML mapping at the top level.")
    return raw


def _check_version(raw: dict, path: str) -> None:
    version = raw.get("version")
    if version is None:
        _fail(
            f"CONFIG ERROR: {path} has no 'version' field.\n"
            "Add 'version: 1' as the first line of the file."
        )
    if version not in SUPPORTED_VERSIONS:
        _fail(
            f"CONFIG ERROR: Unsupported config version: {version}. "
            f"Supported versions: {sorted(SUPPORTED_VERSIONS)}."
        )


_ENV_OVERRIDES: list[tuple[str, str, str, Callable[[str], Any]]] = [
    ("FSENQUIRY_PORT", "proxy", "port", int),
    ("ALLOWED_ORIGIN", "proxy", "allowed_origin", str),
    ("CLIENT_IP_HEADER", "proxy", "client_ip_header", str),
    ("UPSTREAM_URL", "upstream", "url", str),
    ("CSRF_TOKEN", "upstream", "csrf_token", str),
    ("UPSTREAM_TIMEOUT_SECONDS", "upstream", "timeout_s", float),
    ("RATE_LIMIT_REQUESTS", "rate_limit", "max_requests", int),
    ("RATE_LIMIT_WINDOW_SECONDS", "rate_limit", "window_s", int),
    ("RATE_LIMIT_DAILY_MAX", "rate_limit", "daily_max", int),
]


def _apply_env_overrides(config: Config) -> None:
    """Apply environment variable overrides to a Config object in-place.

    ``PORT`` (set by most PaaS hosts) is honoured when ``FSENQUIRY_PORT`` is not.

    Raises:
        SystemExit(1): If a numeric override is not a valid number, or the
                       resulting values fail validation.
    """
    for env_name, section, attr, cast in _ENV_OVERRIDES:
        env_value = os.environ.get(env_name)
        if env_value is None and env_name == "FSENQUIRY_PORT":
            env_value = os.environ.get("PORT")
        if env_value is None:
            continue
        try:
            setattr(getattr(config, section), attr, cast(env_value))
        except ValueError:
            _fail(
                f"CONFIG ERROR: {env_name} environment variable is not a valid "
                f"{cast.__name__}: '{env_value}'"
            )

    _validate(config, source="environment")


def _validate(config: Config, source: str) -> None:
    rate = config.rate_limit
    problems: list[str] = []
    if not isinstance(rate.max_requests, int) or rate.max_requests < 1:
        problems.append(f"rate_limit.max_requests must be a positive integer, got {rate.max_requests!r}")
    if not isinstance(rate.window_s, int) or rate.window_s < 1:
        problems.append(f"rate_limit.window_s must be a positive integer, got {rate.window_s!r}")
    if not isinstance(rate.daily_max, int) or rate.daily_max < 0:
        problems.append(f"rate_limit.daily_max must be 0 or a positive integer, got {rate.daily_max!r}")
    if config.upstream.timeout_s <= 0:
        problems.append(f"upstream.timeout_s must be positive, got {config.upstream.timeout_s!r}")
    if not isinstance(config.proxy.port, int) or not 0 < config.proxy.port < 65536:
        problems.append(f"proxy.port must be a valid TCP port, got {config.proxy.port!r}")
    if problems:
        _fail(f"CONFIG ERROR ({source}): " + "; ".join(problems))


def _warn_on_missing_secret(config: Config) -> None:
    if not config.upstream.csrf_token:
        logger.warning(
            "No CSRF token configured (upstream.csrf_token / CSRF_TOKEN). "
            "The upstream will reject enquiries until one is set."
        )


def _fail(msg: str) -> NoReturn:
    print(msg, file=sys.stderr)
    raise SystemExit(1)
