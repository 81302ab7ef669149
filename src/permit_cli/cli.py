from __future__ import annotations

import json
import logging
import sys
from contextlib import contextmanager
from time import perf_counter
from typing import Any, Dict, Iterator, Optional, Tuple

from rich.console import Console

from .api.client import PermitClient
from .api.projects import (
    ApiKeyScope,
    get_api_key_scope,
    get_environment,
    get_organization,
    get_project,
    list_environments,
    list_projects,
)
from .api.users import assign_role, list_all_users, list_users, unassign_role, user_rows
from .auth.token import resolve_auth
from .config import RunConfig, dump_config, load_run_config
from .export.html import write_html_graph
from .graph.fetch import GraphBuildStats, build_graph
from .logging import LogConfig, get_logger, setup_logging
from .prompts import ask_choice
from .util.errors import ConfigError, PermitAPIError, as_exit_code
from .util.rich_progress import FetchProgress, render_graph_summary, render_users_table
from .util.serialization import redact_payload

LOG = get_logger(__name__)

USERS_TABLE_HEADERS = ("#", "key", "email", "first_name", "last_name", "tenant", "roles")


class _StepTimers:
    def __init__(self) -> None:
        self._starts: Dict[str, float] = {}

    def start(self, key: str) -> None:
        self._starts[key] = perf_counter()

    def finish(self, key: str) -> Optional[int]:
        started = self._starts.pop(key, None)
        if started is None:
            return None
        return int((perf_counter() - started) * 1000)


def _log_event(
    logger: Any,
    level: int,
    message: str,
    *,
    step: str,
    phase: str,
    timers: Optional[_StepTimers] = None,
    timer_key: Optional[str] = None,
    **extra: Any,
) -> None:
    key = timer_key or step
    duration_ms = None
    if timers is not None:
        if phase == "start":
            timers.start(key)
        elif phase in {"complete", "error", "skipped"}:
            duration_ms = timers.finish(key)
    payload: Dict[str, Any] = {"step": step, "phase": phase, "event": f"{step}.{phase}"}
    if duration_ms is not None:
        payload["duration_ms"] = duration_ms
    payload.update(extra)
    logger.log(level, message, extra=payload)


@contextmanager
def _fetching(what: str) -> Iterator[None]:
    """
    Turn any API failure into the user-facing "Failed to fetch <what>." error.
    """
    try:
        yield
    except PermitAPIError as e:
        raise PermitAPIError(f"Failed to fetch {what}. {e}", status=e.status, url=e.url) from e


def _client(cfg: RunConfig) -> PermitClient:
    auth = resolve_auth(cfg.api_key, cfg.api_key_source)
    LOG.debug("Resolved configuration", extra={"config": dump_config(cfg), "token_type": auth.token_type.value})
    return PermitClient(auth.token, base_url=cfg.api_url, timeout=cfg.timeout, pool_size=max(cfg.workers, 1))


def _interactive() -> bool:
    return sys.stdin.isatty()


def _resolve_scope(client: PermitClient, cfg: RunConfig, console: Console) -> Tuple[str, str]:
    """
    Project and environment: explicit flag/config/env value, then the API key's own
    scope, then an interactive selection.
    """
    scope = ApiKeyScope()
    if not (cfg.project and cfg.environment):
        with _fetching("API key scope"):
            scope = get_api_key_scope(client)

    project = cfg.project or scope.project_id
    if not project:
        if not _interactive():
            raise ConfigError("--project is required when not running interactively")
        with _fetching("projects"):
            projects = list_projects(client)
        project = ask_choice("Select a project", projects, console=console).value

    environment = cfg.environment
    if not environment and scope.environment_id and project == scope.project_id:
        environment = scope.environment_id
    if not environment:
        if not _interactive():
            raise ConfigError("--environment is required when not running interactively")
        with _fetching("environments"):
            environments = list_environments(client, project)
        environment = ask_choice("Select an environment", environments, console=console).value
    return project, environment


def cmd_graph(cfg: RunConfig) -> int:
    timers = _StepTimers()
    console = Console()
    with _client(cfg) as client:
        project, environment = _resolve_scope(client, cfg, console)
        _log_event(
            LOG,
            logging.INFO,
            "Graph fetch started",
            step="graph",
            phase="start",
            timers=timers,
            project=project,
            environment=environment,
        )
        stats = GraphBuildStats()
        progress = FetchProgress(enabled=cfg.progress and not cfg.json_logs)
        with progress, _fetching("data. Check network or auth token"):
            graph = build_graph(
                client,
                project,
                environment,
                per_page=cfg.per_page,
                edge_mode=cfg.edge_mode,
                on_page=progress.on_page,
                stats=stats,
            )

    if graph is None:
        _log_event(LOG, logging.INFO, "Environment has no resource instances", step="graph", phase="skipped", timers=timers)
        console.print("Environment does not contain any data")
        return 0

    out_path = write_html_graph(graph, cfg.output, open_browser=cfg.open_browser)
    _log_event(
        LOG,
        logging.INFO,
        "Graph written",
        step="graph",
        phase="complete",
        timers=timers,
        nodes=len(graph.nodes),
        edges=len(graph.edges),
        output=str(out_path),
    )
    if cfg.progress and not cfg.json_logs:
        render_graph_summary(
            status="OK",
            metrics={
                "project": project,
                "environment": environment,
                "resource_instances": stats.resource_instances,
                "users": stats.users,
                "relationships": stats.relationships,
                "unresolved_references": stats.unresolved_references,
                "nodes": len(graph.nodes),
                "edges": len(graph.edges),
            },
            output=str(out_path),
            console=console,
        )
    console.print(f"Graph saved as: {out_path}")
    return 0


def cmd_users(cfg: RunConfig) -> int:
    console = Console()
    with _client(cfg) as client:
        project, environment = _resolve_scope(client, cfg, console)

        if cfg.users_action == "list":
            with _fetching("users"):
                if cfg.all_pages:
                    page = list_all_users(
                        client,
                        project,
                        environment,
                        per_page=cfg.users_per_page,
                        role=cfg.role,
                        tenant=cfg.tenant,
                        max_workers=cfg.workers,
                    )
                else:
                    page = list_users(
                        client,
                        project,
                        environment,
                        page=cfg.page,
                        per_page=cfg.users_per_page,
                        role=cfg.role,
                        tenant=cfg.tenant,
                    )
            start = 1 if cfg.all_pages else (cfg.page - 1) * cfg.users_per_page + 1
            rows = user_rows(page, start_index=start, expand_keys=cfg.expand_keys)
            if not rows:
                console.print("No users found")
                return 0
            where = "All items" if cfg.all_pages else f"Page {page.page}"
            render_users_table(
                rows,
                headers=USERS_TABLE_HEADERS,
                caption=f"Showing {len(rows)} items | {where} | Total: {page.total_count}",
                console=console,
            )
            return 0

        action = assign_role if cfg.users_action == "assign" else unassign_role
        result = action(
            client,
            project,
            environment,
            user=cfg.user or "",
            role=cfg.role or "",
            tenant=cfg.tenant or "",
        )
    LOG.info("Role assignment updated", extra={"action": cfg.users_action, "user": cfg.user, "role": cfg.role})
    console.print("[green]✓ Operation completed successfully[/green]")
    if result is not None:
        console.print_json(json.dumps(redact_payload(result)))
    return 0


def cmd_whoami(cfg: RunConfig) -> int:
    console = Console()
    errors = []
    with _client(cfg) as client:
        with _fetching("API key scope"):
            scope = get_api_key_scope(client)
        names: Dict[str, str] = {}
        lookups = (
            ("Organization", scope.organization_id, lambda: get_organization(client, scope.organization_id or "")),
            ("Project", scope.project_id, lambda: get_project(client, scope.project_id or "")),
            (
                "Environment",
                scope.environment_id,
                lambda: get_environment(client, scope.project_id or "", scope.environment_id or ""),
            ),
        )
        for label, ident, fetch in lookups:
            if not ident:
                continue
            try:
                names[label] = str(fetch().get("name") or ident)
            except PermitAPIError as e:
                errors.append(f"{label}: {e}")
                names[label] = ident

    console.print("You are logged in:")
    for label in ("Organization", "Project", "Environment"):
        if label in names:
            console.print(f"{label}: {names[label]}")
    for err in errors:
        console.print(f"[yellow]{err}[/yellow]")
    return 0


def main(argv: Optional[list[str]] = None) -> None:
    try:
        command, cfg = load_run_config(argv=argv)
        setup_logging(LogConfig(level=cfg.log_level, json_logs=cfg.json_logs))

        if command == "graph":
            code = cmd_graph(cfg)
        elif command == "users":
            code = cmd_users(cfg)
        elif command == "whoami":
            code = cmd_whoami(cfg)
        else:
            raise ConfigError(f"Unknown command: {command}")

        sys.exit(code)
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.exit(130)
    except BrokenPipeError:
        # Common when users pipe to `head` or similar tools.
        sys.exit(0)
    except Exception as e:
        setup_logging(LogConfig())
        LOG.error("Execution failed", extra={"error": str(e)})
        sys.exit(as_exit_code(e))


if __name__ == "__main__":
    main()
