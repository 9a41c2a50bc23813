"""Now & Later command line."""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Awaitable, Callable, Iterable, List, Optional

from .auth.session import FileSessionStore, Session
from .client import AccessLayer, build_access_layer
from .config import ConfigError, Settings, load_settings
from .errors import AccessLayerError, AuthExpired
from .models import TASK_VIEWS, Task


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="now-and-later",
        description="Resilient access to Now & Later tasks and projects.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log requests, fallbacks and token refreshes.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("status", help="Show backend flags, health and session state.")

    login_parser = subparsers.add_parser(
        "login",
        help="Store tokens obtained from the sign-in flow.",
    )
    login_parser.add_argument("--access-token", required=True, help="Access token.")
    login_parser.add_argument("--refresh-token", help="Refresh token, if one was issued.")
    login_parser.add_argument("--email", required=True, help="Account email.")
    login_parser.add_argument("--user-id", default="", help="Account id (defaults to email).")
    login_parser.add_argument(
        "--expires-in",
        type=int,
        default=3600,
        help="Access token lifetime in seconds.",
    )

    subparsers.add_parser("logout", help="Forget the stored session.")

    tasks_parser = subparsers.add_parser("tasks", help="List tasks.")
    tasks_parser.add_argument("--project", help="Only tasks of this project id.")
    tasks_parser.add_argument(
        "--view",
        choices=TASK_VIEWS,
        help="Sidebar view to list when no project is given.",
    )

    add_parser = subparsers.add_parser("add-task", help="Create a task.")
    add_parser.add_argument("title", help="Task title.")
    add_parser.add_argument("--description", default="", help="Longer description.")
    add_parser.add_argument("--project", help="Project id to file the task under.")
    add_parser.add_argument("--context", default="", help="Context tag, e.g. @computer.")
    add_parser.add_argument("--due", help="Due date as YYYY-MM-DD.")

    complete_parser = subparsers.add_parser("complete", help="Mark a task complete.")
    complete_parser.add_argument("task_id", help="Task id.")
    complete_parser.add_argument(
        "--undo",
        action="store_true",
        help="Mark the task open again instead.",
    )

    subparsers.add_parser("health", help="Probe the legacy backend.")

    return parser


def format_task_rows(tasks: Iterable[Task]) -> str:
    """Return a human-friendly summary table string."""

    lines = ["ID | Done | Title | Project | Due | Context"]
    for task in tasks:
        lines.append(
            f"{task.id} | {'x' if task.is_completed else ' '} | {task.title} | "
            f"{task.project_id or '-'} | {task.due_date or '-'} | {task.context or '-'}"
        )
    return "\n".join(lines)


def _run(settings: Settings, action: Callable[[AccessLayer], Awaitable[int]]) -> int:
    async def runner() -> int:
        async with build_access_layer(settings) as layer:
            return await action(layer)

    try:
        return asyncio.run(runner())
    except AuthExpired as exc:
        print(f"{exc}. Run 'now-and-later login' first.", file=sys.stderr)
        return 1
    except AccessLayerError as exc:
        print(f"Request failed: {exc}", file=sys.stderr)
        return 1


def _degraded_note(layer: AccessLayer) -> None:
    if layer.state.degraded:
        print("\nBackend unreachable: showing offline sample data.")


def _cmd_status(settings: Settings) -> int:
    store = FileSessionStore(settings.session_path)
    session = store.load()
    print("Environment:", settings.environment)
    print("Legacy URL:", settings.legacy_url)
    print("REST base URL:", settings.api_base_url)
    print(
        "Prefer REST:",
        "yes" if settings.use_modern else "no",
        "| Fallback:",
        "yes" if settings.enable_fallback else "no",
    )
    if session is None:
        print("Session: signed out")
    else:
        print(
            "Session:",
            session.email,
            f"(token {session.access_token[:4]}...,",
            "refresh token" if session.refresh_token else "no refresh token",
            ")",
        )
    return 0


def _cmd_login(settings: Settings, args: argparse.Namespace) -> int:
    session = Session(
        user_id=args.user_id or args.email,
        email=args.email,
        access_token=args.access_token,
        refresh_token=args.refresh_token,
        expires_in_seconds=args.expires_in,
    )
    FileSessionStore(settings.session_path).save(session)
    print(f"Signed in as {session.email}.")
    return 0


def _cmd_logout(settings: Settings) -> int:
    FileSessionStore(settings.session_path).clear()
    print("Signed out.")
    return 0


def _cmd_tasks(settings: Settings, project: Optional[str], view: Optional[str]) -> int:
    async def action(layer: AccessLayer) -> int:
        tasks = await layer.tasks.list_tasks(project_id=project, view=view)
        if not tasks:
            print("No tasks.")
        else:
            print(format_task_rows(tasks))
        _degraded_note(layer)
        return 0

    return _run(settings, action)


def _cmd_add_task(settings: Settings, args: argparse.Namespace) -> int:
    async def action(layer: AccessLayer) -> int:
        task = await layer.tasks.create_task(
            args.title,
            description=args.description,
            project_id=args.project,
            context=args.context,
            due_date=args.due,
        )
        print(f"Created task {task.id}: {task.title}")
        _degraded_note(layer)
        return 0

    return _run(settings, action)


def _cmd_complete(settings: Settings, task_id: str, undo: bool) -> int:
    async def action(layer: AccessLayer) -> int:
        await layer.tasks.set_completion(task_id, not undo)
        print(f"Task {task_id} marked {'open' if undo else 'complete'}.")
        _degraded_note(layer)
        return 0

    return _run(settings, action)


def _cmd_health(settings: Settings) -> int:
    async def action(layer: AccessLayer) -> int:
        healthy = await layer.invoker.check_legacy_health()
        print("Legacy backend:", "healthy" if healthy else "unreachable")
        return 0 if healthy else 1

    return _run(settings, action)


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        settings = load_settings()
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 1

    if args.command == "status":
        return _cmd_status(settings)
    if args.command == "login":
        return _cmd_login(settings, args)
    if args.command == "logout":
        return _cmd_logout(settings)
    if args.command == "tasks":
        return _cmd_tasks(settings, project=args.project, view=args.view)
    if args.command == "add-task":
        return _cmd_add_task(settings, args)
    if args.command == "complete":
        return _cmd_complete(settings, task_id=args.task_id, undo=args.undo)
    if args.command == "health":
        return _cmd_health(settings)

    parser.error(f"Unknown command: {args.command}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
