from __future__ import annotations

import argparse
import asyncio
import json
import sys
from datetime import date
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, TypeVar

import uvicorn
import yaml
from rich.console import Console
from rich.table import Table

from .errors import PlannerError
from .logging_utils import configure_logging
from .server import create_app
from .service import PlannerService
from .timeline.board import FilterChip, Lane, TeamBoard
from .timeline.model import TaskKind
from .timeline.mutations import MutationResult
from .utils import parse_day

T = TypeVar("T")


def _resolve_project_dir(project_dir: Optional[str]) -> Path:
    return Path(project_dir).expanduser().resolve() if project_dir else Path.cwd().resolve()


def _service(args: argparse.Namespace) -> PlannerService:
    service = PlannerService(_resolve_project_dir(args.project_dir))
    configure_logging(args.log_level or service.config.log_level)
    return service


def _run(service: PlannerService, work: Callable[[], Awaitable[T]]) -> T:
    async def _main() -> T:
        await service.start()
        try:
            return await work()
        finally:
            await service.stop()

    return asyncio.run(_main())


def _day(raw: str) -> date:
    day = parse_day(raw)
    if day is None:
        raise argparse.ArgumentTypeError(f"not an ISO date: {raw!r}")
    return day


def _emit(payload: dict[str, Any]) -> None:
    sys.stdout.write(json.dumps(payload, indent=2, default=str) + "\n")


def _lane_cells(lane: Lane, row: int) -> list[str]:
    cells: list[str] = []
    for day in range(7):
        slot = lane.result.slot(day, row)
        if slot is None:
            cells.append("")
        elif slot.shows_label:
            prefix = "" if slot.has_start_cap else "< "
            suffix = " >" if day == 6 and not slot.has_end_cap else ""
            cells.append(f"{prefix}{slot.task.title or slot.task.id}{suffix}")
        else:
            cells.append("... >" if day == 6 and not slot.has_end_cap else "...")
    return cells


def render_board(board: TeamBoard, console: Console) -> None:
    table = Table(title=f"Week of {board.week.start.isoformat()}")
    table.add_column("Lane", style="cyan", no_wrap=True)
    for day in board.week.days:
        table.add_column(day.strftime("%a %m-%d"))
    for lane in board.lanes:
        label = lane.key if lane.workload is None else f"{lane.key} ({lane.workload})"
        if lane.result.row_count == 0:
            table.add_row(label, *[""] * 7)
            continue
        for row in range(lane.result.row_count):
            table.add_row(label if row == 0 else "", *_lane_cells(lane, row))
        table.add_section()
    console.print(table)
    if board.hidden_done:
        console.print(f"[dim]{board.hidden_done} done task(s) hidden[/dim]")


def _week(args: argparse.Namespace) -> int:
    service = _service(args)
    day = args.date or service.today()
    chips = [FilterChip.parse(c) for c in args.chip or []]
    kind = TaskKind.parse(args.kind) if args.kind else None
    board = _run(service, lambda: service.board_for(day, members=args.member or None, filters=chips, kind=kind))
    if args.json:
        _emit(board.to_dict())
    else:
        render_board(board, Console())
    return 0


def _unscheduled(args: argparse.Namespace) -> int:
    service = _service(args)

    async def work() -> list[dict[str, Any]]:
        return [t.to_dict() for t in service.unscheduled()]

    _emit({"tasks": _run(service, work)})
    return 0


def _mutation_exit(result: MutationResult) -> int:
    _emit(result.to_dict())
    return 0 if result.ok else 1


def _reschedule(args: argparse.Namespace) -> int:
    service = _service(args)
    owner = None if args.owner == "-" else args.owner
    return _mutation_exit(_run(service, lambda: service.reschedule(args.task_id, owner, args.date)))


def _delay(args: argparse.Namespace) -> int:
    service = _service(args)
    return _mutation_exit(_run(service, lambda: service.delay(args.task_id, args.date, args.reason, args.user)))


def _schedule(args: argparse.Namespace) -> int:
    service = _service(args)
    return _mutation_exit(_run(service, lambda: service.schedule(args.task_id, args.date)))


def _import(args: argparse.Namespace) -> int:
    service = _service(args)
    kind = TaskKind.parse(args.kind)
    path = Path(args.file).expanduser()
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        sys.stderr.write(f"Cannot read {path}: {exc}\n")
        return 1
    if isinstance(raw, dict):
        raw = raw.get(kind.table, raw.get("records"))
    if not isinstance(raw, list):
        sys.stderr.write(f"{path} must hold a list of records (or a '{kind.table}' list)\n")
        return 1
    rows = [row for row in raw if isinstance(row, dict)]
    inserted = _run(service, lambda: service.import_records(kind, rows))
    _emit({"imported": len(inserted), "ids": [row["id"] for row in inserted]})
    return 0


def _server(args: argparse.Namespace) -> int:
    service = _service(args)
    app = create_app(service=service)
    uvicorn.run(app, host=args.host, port=args.port, log_level=service.config.log_level.lower())
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Team planner weekly timeline")
    parser.add_argument("--project-dir", default=None, help="Directory holding .team_planner/ (default: cwd)")
    parser.add_argument("--log-level", default=None, help="Override the configured log level")
    subparsers = parser.add_subparsers(dest="command", required=True)

    week = subparsers.add_parser("week", help="Show the packed board for one week")
    week.add_argument("--date", type=_day, default=None, help="Any day of the week (default: today)")
    week.add_argument("--member", action="append", help="Only show these member lanes (repeatable)")
    week.add_argument("--chip", action="append", help="Filter chip TYPE:VALUE[:exclude] (repeatable)")
    week.add_argument("--kind", choices=["content", "task"], default=None)
    week.add_argument("--json", action="store_true", help="Print the board as JSON")
    week.set_defaults(func=_week)

    unscheduled = subparsers.add_parser("unscheduled", help="List the unscheduled backlog")
    unscheduled.set_defaults(func=_unscheduled)

    reschedule = subparsers.add_parser("reschedule", help="Move a task to a day and owner")
    reschedule.add_argument("task_id")
    reschedule.add_argument("owner", help="New owner id, or '-' to keep owners")
    reschedule.add_argument("date", type=_day)
    reschedule.set_defaults(func=_reschedule)

    delay = subparsers.add_parser("delay", help="Push a task's deadline and log the reason")
    delay.add_argument("task_id")
    delay.add_argument("date", type=_day)
    delay.add_argument("--reason", required=True)
    delay.add_argument("--user", default=None)
    delay.set_defaults(func=_delay)

    schedule = subparsers.add_parser("schedule", help="Place an unscheduled task on a day")
    schedule.add_argument("task_id")
    schedule.add_argument("date", type=_day)
    schedule.set_defaults(func=_schedule)

    imp = subparsers.add_parser("import", help="Insert records from a YAML/JSON file")
    imp.add_argument("file")
    imp.add_argument("--kind", choices=["content", "task"], required=True)
    imp.set_defaults(func=_import)

    server = subparsers.add_parser("server", help="Start the timeline API server")
    server.add_argument("--host", default="127.0.0.1")
    server.add_argument("--port", default=8000, type=int)
    server.set_defaults(func=_server)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    handler = getattr(args, "func", None)
    if handler is None:
        parser.print_help()
        return 1
    try:
        return int(handler(args) or 0)
    except (PlannerError, ValueError) as exc:
        sys.stderr.write(f"{exc}\n")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
