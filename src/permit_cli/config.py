from __future__ import annotations

import argparse
import json
import os
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from .api.client import DEFAULT_API_URL, DEFAULT_TIMEOUT_SECONDS
from .api.users import DEFAULT_USERS_PER_PAGE
from .export.html import DEFAULT_HTML_NAME
from .graph.fetch import GRAPH_PAGE_SIZE
from .graph.model import EdgeMode
from .util.serialization import redact_token

# --------
# Defaults
# --------
DEFAULT_WORKERS = 4
EDGE_MODES = {m.value for m in EdgeMode}
USERS_ACTIONS = ("list", "assign", "unassign")
ALLOWED_CONFIG_KEYS = {
    "api_key",
    "api_url",
    "project",
    "environment",
    "output",
    "open_browser",
    "edge_mode",
    "per_page",
    "workers",
    "timeout",
    "json_logs",
    "log_level",
    "progress",
}
BOOL_CONFIG_KEYS = {"open_browser", "json_logs", "progress"}
INT_CONFIG_KEYS = {"per_page", "workers"}
FLOAT_CONFIG_KEYS = {"timeout"}
PATH_CONFIG_KEYS = {"output"}
STR_CONFIG_KEYS = {"api_key", "api_url", "project", "environment", "edge_mode", "log_level"}


@dataclass(frozen=True)
class RunConfig:
    # Auth / API
    api_key: Optional[str] = None
    api_key_source: str = "none"  # cli|env|config|none
    api_url: str = DEFAULT_API_URL
    timeout: float = DEFAULT_TIMEOUT_SECONDS
    project: Optional[str] = None
    environment: Optional[str] = None

    # graph
    output: Path = Path(DEFAULT_HTML_NAME)
    open_browser: bool = False
    edge_mode: str = EdgeMode.CANONICAL.value
    per_page: int = GRAPH_PAGE_SIZE

    # users
    users_action: Optional[str] = None
    page: int = 1
    users_per_page: int = DEFAULT_USERS_PER_PAGE
    all_pages: bool = False
    role: Optional[str] = None
    tenant: Optional[str] = None
    user: Optional[str] = None
    expand_keys: bool = False
    workers: int = DEFAULT_WORKERS

    # Output
    json_logs: bool = False
    log_level: str = "WARNING"
    progress: bool = True


def _parse_config_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text) or {}
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ValueError(f"Failed to parse config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ValueError("Top-level config must be an object")
    return data


def _env_str(name: str) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None:
        return None
    raw = raw.strip()
    if not raw:
        return None
    return raw


def _env_bool(name: str) -> Optional[bool]:
    raw = os.getenv(name)
    if raw is None:
        return None
    raw = raw.strip().lower()
    if not raw:
        return None
    return raw in {"1", "true", "yes", "on"}


def _env_int(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def _env_float(name: str) -> Optional[float]:
    raw = os.getenv(name)
    if raw is None:
        return None
    try:
        return float(raw)
    except ValueError:
        return None


def _coerce_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        raw = value.strip().lower()
        if raw in {"1", "true", "yes", "on"}:
            return True
        if raw in {"0", "false", "no", "off"}:
            return False
    raise ValueError(f"Config field '{key}' must be a boolean")


def _coerce_int(key: str, value: Any) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return int(value)
        except ValueError:
            pass
    raise ValueError(f"Config field '{key}' must be an integer")


def _coerce_float(key: str, value: Any) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    if isinstance(value, str) and value.strip():
        try:
            return float(value)
        except ValueError:
            pass
    raise ValueError(f"Config field '{key}' must be a number")


def _normalize_config_file(data: Dict[str, Any]) -> Dict[str, Any]:
    unknown = sorted(set(data.keys()) - ALLOWED_CONFIG_KEYS)
    if unknown:
        warnings.warn(f"Unknown config keys ignored: {', '.join(unknown)}")
    normalized: Dict[str, Any] = {}
    for key, value in data.items():
        if key not in ALLOWED_CONFIG_KEYS:
            continue
        if value is None:
            normalized[key] = None
        elif key in BOOL_CONFIG_KEYS:
            normalized[key] = _coerce_bool(key, value)
        elif key in INT_CONFIG_KEYS:
            normalized[key] = _coerce_int(key, value)
        elif key in FLOAT_CONFIG_KEYS:
            normalized[key] = _coerce_float(key, value)
        elif key in PATH_CONFIG_KEYS:
            if isinstance(value, (str, Path)):
                normalized[key] = value
            else:
                raise ValueError(f"Config field '{key}' must be a string path")
        elif key in STR_CONFIG_KEYS:
            if isinstance(value, str):
                normalized[key] = value
            else:
                raise ValueError(f"Config field '{key}' must be a string")
    edge_mode = normalized.get("edge_mode")
    if edge_mode is not None:
        edge_mode = str(edge_mode).lower()
        if edge_mode not in EDGE_MODES:
            raise ValueError(f"Config field 'edge_mode' must be one of: {', '.join(sorted(EDGE_MODES))}")
        normalized["edge_mode"] = edge_mode
    return _compact_dict(normalized)


def _compact_dict(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Drop keys with None values so they don't override lower-precedence config.
    """
    return {k: v for k, v in data.items() if v is not None}


def _merge_dicts(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
    """
    Shallow merge: values in b override a.
    """
    merged = dict(a)
    merged.update(b)
    return merged


def _positive_int(raw: str) -> int:
    try:
        value = int(raw)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"invalid integer: {raw}") from e
    if value < 1:
        raise argparse.ArgumentTypeError("value must be >= 1")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="permit", description="Permit.io CLI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # common flags builder
    def add_common(p: argparse.ArgumentParser) -> None:
        p.add_argument("--config", type=Path, help="Optional YAML/JSON config file")
        p.add_argument("--api-key", dest="api_key", default=None, help="Permit API key (or set PERMIT_API_KEY)")
        p.add_argument("--api-url", dest="api_url", default=None, help=f"Permit API base URL (default {DEFAULT_API_URL})")
        p.add_argument("--timeout", type=float, default=None, help="HTTP timeout in seconds")
        p.add_argument(
            "--json-logs",
            action=argparse.BooleanOptionalAction,
            default=None,
            help="Enable JSON logs",
        )
        p.add_argument("--log-level", default=None, help="Log level (WARNING, INFO, DEBUG, ...)")

    def add_scope(p: argparse.ArgumentParser) -> None:
        p.add_argument("--project", default=None, help="Project id or name (defaults to the API key scope)")
        p.add_argument(
            "--environment", "--env", dest="environment", default=None, help="Environment id or name"
        )

    # graph
    p_graph = subparsers.add_parser("graph", help="Render the ReBAC graph of an environment to HTML")
    add_common(p_graph)
    add_scope(p_graph)
    p_graph.add_argument("--output", "-o", type=Path, default=None, help=f"HTML output path (default ./{DEFAULT_HTML_NAME})")
    p_graph.add_argument(
        "--open",
        dest="open_browser",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Open the generated HTML in a browser",
    )
    p_graph.add_argument(
        "--edge-mode",
        dest="edge_mode",
        default=None,
        choices=sorted(EDGE_MODES),
        help="canonical: one edge per relationship; legacy: also emit owner 'IS <REL> OF' edges",
    )
    p_graph.add_argument("--per-page", dest="per_page", type=_positive_int, default=None, help=f"API page size (default {GRAPH_PAGE_SIZE})")
    p_graph.add_argument(
        "--progress",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Show a progress spinner while fetching",
    )

    # users
    p_users = subparsers.add_parser("users", help="List users, or assign/unassign tenant roles")
    add_common(p_users)
    add_scope(p_users)
    p_users.add_argument("action", choices=USERS_ACTIONS)
    p_users.add_argument("--page", type=_positive_int, default=1, help="Page to list (default 1)")
    p_users.add_argument(
        "--per-page", dest="users_per_page", type=_positive_int, default=DEFAULT_USERS_PER_PAGE, help="Users per page"
    )
    p_users.add_argument("--all", dest="all_pages", action="store_true", help="Fetch every page")
    p_users.add_argument("--role", default=None, help="Role filter (list) or role key (assign/unassign)")
    p_users.add_argument("--tenant", default=None, help="Tenant key")
    p_users.add_argument("--user", default=None, help="User key (assign/unassign)")
    p_users.add_argument("--expand-key", dest="expand_keys", action="store_true", help="Show full user keys")
    p_users.add_argument("--workers", type=_positive_int, default=None, help=f"Parallel page fetches (default {DEFAULT_WORKERS})")

    # whoami
    p_who = subparsers.add_parser("whoami", help="Show the organization/project/environment of the API key")
    add_common(p_who)

    return parser


def load_run_config(
    args: Optional[argparse.Namespace] = None,
    argv: Optional[list[str]] = None,
) -> Tuple[str, RunConfig]:
    """
    Build RunConfig by merging defaults, optional config file, env vars, and CLI args.
    Precedence (low -> high): defaults < config file < env < CLI.

    Returns:
      (command, RunConfig) where command is one of: graph|users|whoami
    """
    ns = args if args is not None else build_parser().parse_args(argv)
    command = ns.command

    base: Dict[str, Any] = {
        "api_key": None,
        "api_url": DEFAULT_API_URL,
        "project": None,
        "environment": None,
        "output": DEFAULT_HTML_NAME,
        "open_browser": False,
        "edge_mode": EdgeMode.CANONICAL.value,
        "per_page": GRAPH_PAGE_SIZE,
        "workers": DEFAULT_WORKERS,
        "timeout": DEFAULT_TIMEOUT_SECONDS,
        "json_logs": False,
        "log_level": "WARNING",
        "progress": True,
    }

    # config file
    file_cfg: Dict[str, Any] = {}
    if getattr(ns, "config", None):
        file_cfg = _normalize_config_file(_parse_config_file(Path(ns.config)))

    # env
    env_cfg: Dict[str, Any] = _compact_dict(
        {
            "api_key": _env_str("PERMIT_API_KEY"),
            "api_url": _env_str("PERMIT_API_URL"),
            "project": _env_str("PERMIT_CLI_PROJECT"),
            "environment": _env_str("PERMIT_CLI_ENVIRONMENT"),
            "output": _env_str("PERMIT_CLI_OUTPUT"),
            "open_browser": _env_bool("PERMIT_CLI_OPEN_BROWSER"),
            "edge_mode": _env_str("PERMIT_CLI_EDGE_MODE"),
            "per_page": _env_int("PERMIT_CLI_PER_PAGE"),
            "workers": _env_int("PERMIT_CLI_WORKERS"),
            "timeout": _env_float("PERMIT_CLI_TIMEOUT"),
            "json_logs": _env_bool("PERMIT_CLI_JSON_LOGS"),
            "log_level": _env_str("PERMIT_CLI_LOG_LEVEL"),
            "progress": _env_bool("PERMIT_CLI_PROGRESS"),
        }
    )

    # CLI
    cli_cfg: Dict[str, Any] = _compact_dict(
        {
            "api_key": getattr(ns, "api_key", None),
            "api_url": getattr(ns, "api_url", None),
            "project": getattr(ns, "project", None),
            "environment": getattr(ns, "environment", None),
            "output": getattr(ns, "output", None),
            "open_browser": getattr(ns, "open_browser", None),
            "edge_mode": getattr(ns, "edge_mode", None),
            "per_page": getattr(ns, "per_page", None),
            "workers": getattr(ns, "workers", None),
            "timeout": getattr(ns, "timeout", None),
            "json_logs": getattr(ns, "json_logs", None),
            "log_level": getattr(ns, "log_level", None),
            "progress": getattr(ns, "progress", None),
        }
    )

    merged = _merge_dicts(base, _merge_dicts(file_cfg, _merge_dicts(env_cfg, cli_cfg)))

    api_key_source = "none"
    for source, layer in (("cli", cli_cfg), ("env", env_cfg), ("config", file_cfg)):
        if layer.get("api_key"):
            api_key_source = source
            break

    edge_mode = str(merged.get("edge_mode") or EdgeMode.CANONICAL.value).lower()
    if edge_mode not in EDGE_MODES:
        raise ValueError(f"edge_mode must be one of: {', '.join(sorted(EDGE_MODES))}")
    per_page = int(merged["per_page"] or GRAPH_PAGE_SIZE)
    workers = int(merged["workers"] or DEFAULT_WORKERS)
    if per_page < 1 or workers < 1:
        raise ValueError("per_page and workers must be >= 1")

    cfg = RunConfig(
        api_key=merged.get("api_key") or None,
        api_key_source=api_key_source,
        api_url=str(merged.get("api_url") or DEFAULT_API_URL),
        timeout=float(merged.get("timeout") or DEFAULT_TIMEOUT_SECONDS),
        project=merged.get("project") or None,
        environment=merged.get("environment") or None,
        output=Path(merged.get("output") or DEFAULT_HTML_NAME),
        open_browser=bool(merged["open_browser"]),
        edge_mode=edge_mode,
        per_page=per_page,
        users_action=getattr(ns, "action", None),
        page=int(getattr(ns, "page", 1) or 1),
        users_per_page=int(getattr(ns, "users_per_page", DEFAULT_USERS_PER_PAGE) or DEFAULT_USERS_PER_PAGE),
        all_pages=bool(getattr(ns, "all_pages", False)),
        role=getattr(ns, "role", None),
        tenant=getattr(ns, "tenant", None),
        user=getattr(ns, "user", None),
        expand_keys=bool(getattr(ns, "expand_keys", False)),
        workers=workers,
        json_logs=bool(merged["json_logs"]),
        log_level=(merged.get("log_level") or "WARNING").upper(),
        progress=bool(merged["progress"]),
    )
    return command, cfg


def dump_config(cfg: RunConfig) -> Dict[str, Any]:
    return {
        "api_key": redact_token(cfg.api_key),
        "api_key_source": cfg.api_key_source,
        "api_url": cfg.api_url,
        "timeout": cfg.timeout,
        "project": cfg.project,
        "environment": cfg.environment,
        "output": str(cfg.output),
        "open_browser": cfg.open_browser,
        "edge_mode": cfg.edge_mode,
        "per_page": cfg.per_page,
        "users_action": cfg.users_action,
        "workers": cfg.workers,
        "json_logs": cfg.json_logs,
        "log_level": cfg.log_level,
        "progress": cfg.progress,
    }
