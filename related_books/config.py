from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from related_books.integrations.http_client import (
    DEFAULT_CONNECT_TIMEOUT_MS,
    DEFAULT_READ_TIMEOUT_MS,
    DEFAULT_USER_AGENT,
)
from related_books.integrations.openlibrary import OPENLIBRARY_BASE_URL

logger = logging.getLogger(__name__)

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _strip_inline_comment(val: str) -> str:
    in_single = False
    in_double = False
    for i, ch in enumerate(val):
        if ch == "'" and not in_double:
            in_single = not in_single
            continue
        if ch == '"' and not in_single:
            in_double = not in_double
            continue
        if ch == "#" and not in_single and not in_double:
            return val[:i].rstrip()
    return val.rstrip()


def _parse_env_file(path: Path) -> None:
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except OSError as e:
        logger.warning("unreadable .env | path=%s | err=%r", path, e)
        return
    for line in lines:
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        if line.startswith("export "):
            line = line[len("export ") :].lstrip()
        k, v = line.split("=", 1)
        k = k.strip()
        v = _strip_inline_comment(v.strip())
        if len(v) >= 2 and v[0] == v[-1] and v[0] in ("'", '"'):
            v = v[1:-1]
        if k and k not in os.environ:
            os.environ[k] = v


def load_dotenv(path: str = ".env") -> Optional[str]:
    """
    Loads environment variables from a .env file.

    Search order:
    1) ENV_PATH (if set)
    2) explicit `path` as provided (relative to CWD or absolute)
    3) project root (parent of the related_books package directory)
    4) current working directory

    Variables already present in the environment are left alone.
    Returns the resolved .env path used, or None if not found.
    """
    candidates: List[Path] = []
    override = os.getenv("ENV_PATH")
    if override:
        candidates.append(Path(override).expanduser())

    p = Path(path).expanduser()
    candidates.append(p if p.is_absolute() else (Path.cwd() / p))

    pkg_dir = Path(__file__).resolve().parent
    candidates.append(pkg_dir.parent / ".env")

    candidates.append(Path.cwd() / ".env")

    seen = set()
    for c in candidates:
        c = c.resolve()
        if str(c) in seen:
            continue
        seen.add(str(c))
        if c.exists() and c.is_file():
            _parse_env_file(c)
            return str(c)

    return None


def _to_bool(val: Any, name: str) -> bool:
    if isinstance(val, bool):
        return val
    s = str(val).strip().lower()
    if s in _TRUE:
        return True
    if s in _FALSE:
        return False
    raise SystemExit(f"Invalid boolean for {name}: {val!r}")


def _to_int(val: Any, name: str) -> int:
    try:
        return int(str(val).strip())
    except ValueError as e:
        raise SystemExit(f"Invalid integer for {name}: {val!r}") from e


def _to_float(val: Any, name: str) -> float:
    try:
        return float(str(val).strip())
    except ValueError as e:
        raise SystemExit(f"Invalid number for {name}: {val!r}") from e


ENV_VARS: Dict[str, str] = {
    "base_url": "OPENLIBRARY_BASE_URL",
    "connect_timeout_ms": "RELATED_CONNECT_TIMEOUT_MS",
    "read_timeout_ms": "RELATED_READ_TIMEOUT_MS",
    "use_cache": "RELATED_USE_CACHE",
    "fanout_deadline_s": "RELATED_FANOUT_DEADLINE_S",
    "fanout_workers": "RELATED_FANOUT_WORKERS",
    "rate_per_sec": "RELATED_RATE_PER_SEC",
    "burst": "RELATED_BURST",
    "user_agent": "RELATED_USER_AGENT",
}


@dataclass(frozen=True)
class ResolverConfig:
    base_url: str = OPENLIBRARY_BASE_URL
    connect_timeout_ms: int = DEFAULT_CONNECT_TIMEOUT_MS
    read_timeout_ms: int = DEFAULT_READ_TIMEOUT_MS
    use_cache: bool = True
    fanout_deadline_s: float = 10.0
    fanout_workers: int = 3
    rate_per_sec: float = 0.0
    burst: int = 4
    user_agent: str = DEFAULT_USER_AGENT

    def with_overrides(self, values: Mapping[str, Any], *, source: str = "overrides") -> "ResolverConfig":
        """Copy with values applied; None values are ignored, unknown keys rejected."""
        known = {f.name: f for f in fields(self)}
        changes: Dict[str, Any] = {}
        for key, raw in values.items():
            if raw is None:
                continue
            name = str(key).strip().replace("-", "_")
            if name not in known:
                raise SystemExit(f"Unknown setting in {source}: {key}")
            default = getattr(self, name)
            if isinstance(default, bool):
                changes[name] = _to_bool(raw, name)
            elif isinstance(default, int):
                changes[name] = _to_int(raw, name)
            elif isinstance(default, float):
                changes[name] = _to_float(raw, name)
            else:
                changes[name] = str(raw).strip()
        return replace(self, **changes)

    def validate(self) -> None:
        if not self.base_url.strip():
            raise SystemExit("OPENLIBRARY_BASE_URL must not be empty.")
        if not (self.base_url.startswith("http://") or self.base_url.startswith("https://")):
            raise SystemExit("OPENLIBRARY_BASE_URL must start with http:// or https://.")
        if self.connect_timeout_ms <= 0 or self.read_timeout_ms <= 0:
            raise SystemExit("Timeouts must be positive (milliseconds).")
        if self.fanout_deadline_s <= 0:
            raise SystemExit("Fan-out deadline must be positive (seconds).")
        if self.fanout_workers < 1:
            raise SystemExit("Fan-out workers must be at least 1.")
        if self.rate_per_sec < 0 or self.burst < 1:
            raise SystemExit("Rate limit needs rate_per_sec >= 0 and burst >= 1.")


def config_from_env(base: Optional[ResolverConfig] = None) -> ResolverConfig:
    base = base or ResolverConfig()
    values = {name: os.getenv(var) for name, var in ENV_VARS.items()}
    values = {k: v for k, v in values.items() if v is not None and v.strip() != ""}
    return base.with_overrides(values, source="environment")


def load_config_file(path: str, base: Optional[ResolverConfig] = None) -> ResolverConfig:
    p = Path(path)
    try:
        data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except FileNotFoundError as e:
        raise SystemExit(f"Config file not found: {p}") from e
    except (OSError, yaml.YAMLError) as e:
        raise SystemExit(f"Failed to read config file: {p} ({e})") from e
    if not isinstance(data, dict):
        raise SystemExit(f"Config file must contain a mapping: {p}")
    logger.info("Loaded config file: %s", p)
    section = data.get("resolver", data)
    if not isinstance(section, dict):
        raise SystemExit(f"'resolver' section must be a mapping: {p}")
    return (base or ResolverConfig()).with_overrides(section, source=str(p))
