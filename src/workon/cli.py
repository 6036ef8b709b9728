"""workon command line."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from . import __version__
from .cleanup import CleanupEngine, Signaller
from .config import ConfigError, WorkonSettings, configure_logging, get_settings, project_search_paths
from .layout import LayoutError, resolve_layout
from .manifest import ManifestError, ManifestLoader, prepare_resources
from .session import (
    CLIENT_CALLBACK,
    IMMEDIATE_PID,
    SessionBusyError,
    SessionCorruptError,
    SessionEntry,
    SessionNotFoundError,
    SessionStore,
    SessionStoreError,
    list_session_files,
)
from .spawn import AwesomeSpawner, SpawnError, SpawnOrchestrator
from .spawn.awesome import AWESOME_CLIENT
from .tools import ToolRunner

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_PARTIAL = 1
EXIT_FAILED = 2
EXIT_BUSY = 3

EXTERNAL_TOOLS = (AWESOME_CLIENT, "xdotool", "wmctrl")


def _error(message: str) -> None:
    print(f"workon: {message}", file=sys.stderr)


def _runner(settings: WorkonSettings) -> ToolRunner:
    return ToolRunner({AWESOME_CLIENT: settings.awesome_client})


def _loader(settings: WorkonSettings) -> ManifestLoader:
    return ManifestLoader(project_search_paths(settings))


def _project_root(settings: WorkonSettings, target: str | None) -> Path:
    """Directory whose session file ``target`` addresses."""

    try:
        return _loader(settings).find(target).parent
    except ManifestError:
        if target is not None and Path(target).expanduser().is_dir():
            return Path(target).expanduser()
        if target is None:
            return Path.cwd()
        raise


def cmd_start(args: argparse.Namespace, settings: WorkonSettings) -> int:
    project = _loader(settings).load_project(args.project)
    layout = resolve_layout(project.manifest, args.layout)
    resources = prepare_resources(
        project.manifest.resource_list(),
        project.root,
        launcher=settings.launcher,
    )

    store = SessionStore(settings.session_path(project.root))
    orchestrator = SpawnOrchestrator(
        AwesomeSpawner(_runner(settings)),
        timeout=settings.spawn_timeout,
        poll_interval=settings.poll_interval,
        dry_run=args.dry_run or settings.dry_run,
    )

    mode = f"layout '{args.layout or project.manifest.default_layout}'" if layout else "no layout"
    print(f"Starting {len(resources)} resources for {project.root} ({mode})", file=sys.stderr)
    for resource in resources:
        print(f"  {resource.name}: {resource.cmd}", file=sys.stderr)

    with store.lock():
        report = asyncio.run(orchestrator.launch(store, resources, layout))

    if report.status == "dry_run":
        print("DRY-RUN: spawn batch not submitted", file=sys.stderr)
        print(json.dumps(report.batch, indent=2))
        if args.verbose:
            print(report.output)
        return EXIT_OK

    if report.output:
        logger.info("awesome-client: %s", report.output)

    if not report.ok:
        _error(f"Session file not updated within {settings.spawn_timeout:g}s; spawned windows were left running")
        print(json.dumps(report.batch, indent=2), file=sys.stderr)
        return EXIT_FAILED

    print(f"Session file updated with {report.observed} entries ({store.path})", file=sys.stderr)
    return EXIT_OK


def cmd_stop(args: argparse.Namespace, settings: WorkonSettings) -> int:
    root = _project_root(settings, args.project)
    store = SessionStore(settings.session_path(root))
    engine = CleanupEngine.default(_runner(settings), Signaller(), grace=settings.kill_grace)
    with store.lock():
        if not store.exists():
            print("No active session", file=sys.stderr)
            store.delete()
            return EXIT_OK
        report = asyncio.run(engine.stop_all(store))

    if report.attempted == 0:
        print("No resources found in session", file=sys.stderr)
        return EXIT_OK

    for outcome in report.outcomes:
        if outcome.stopped:
            print(f"  stopped {outcome.name} (pid {outcome.pid or 'unknown'}) via {outcome.strategy}", file=sys.stderr)
        else:
            print(f"  could not stop {outcome.name or 'unknown'} (pid {outcome.pid or 'unknown'})", file=sys.stderr)
    print(f"Successfully stopped {report.stopped}/{report.attempted} resources", file=sys.stderr)

    if report.stopped == report.attempted:
        return EXIT_OK
    return EXIT_PARTIAL if report.stopped else EXIT_FAILED


def cmd_status(args: argparse.Namespace, settings: WorkonSettings) -> int:
    root = _project_root(settings, args.project)
    store = SessionStore(settings.session_path(root))
    try:
        entries = store.read()
    except (SessionNotFoundError, SessionCorruptError):
        if args.json:
            print("[]")
        else:
            print(f"No active session found for {root}")
        return EXIT_PARTIAL

    if args.json:
        print(json.dumps([entry.to_json() for entry in entries], indent=2))
        return EXIT_OK

    print(f"Project: {root}")
    print(f"Session file: {store.path}")
    print(f"Resources: {len(entries)}")
    for entry in entries:
        window = f"{entry.window_class or '?'}.{entry.instance or '?'}" if entry.has_window else "pending"
        print(f"  {entry.name}: pid={entry.pid or 'unknown'} window={window} [{entry.tracking_method or 'unknown'}]")
        print(f"    {entry.cmd}")
    return EXIT_OK


def cmd_sessions(args: argparse.Namespace, settings: WorkonSettings) -> int:
    files = list_session_files(settings.cache_dir)
    if not files:
        print("No active sessions found")
        return EXIT_OK

    print(f"Found {len(files)} active session(s):")
    for path in files:
        print(f"  {path.stem} ({SessionStore(path).count()} resources)")
        print(f"    {path}")
    return EXIT_OK


def cmd_doctor(args: argparse.Namespace, settings: WorkonSettings) -> int:
    runner = _runner(settings)
    print(f"workon {__version__}")
    print(f"Cache directory: {settings.cache_dir}")
    print(f"Config file: {settings.config_file}")
    for tool in EXTERNAL_TOOLS:
        status = "available" if runner.available(tool) else "missing"
        print(f"  {tool}: {status}")
    if not runner.available(AWESOME_CLIENT):
        return EXIT_FAILED
    if not asyncio.run(AwesomeSpawner(runner).ping()):
        _error("awesome-client cannot reach the window manager")
        return EXIT_FAILED
    return EXIT_OK


def cmd_record(args: argparse.Namespace, settings: WorkonSettings) -> int:
    entry = SessionEntry(
        name=args.name,
        cmd=args.cmd,
        pid=args.pid,
        window_id=args.window_id,
        window_class=args.window_class,
        instance=args.instance,
        name_prop=args.name_prop,
        tracking_method=IMMEDIATE_PID if args.immediate else CLIENT_CALLBACK,
    )
    SessionStore(Path(args.session_file)).record(entry)
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="workon", description="One-shot project workspace bootstrapper")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log progress at INFO level")
    sub = parser.add_subparsers(dest="cmd")

    p_start = sub.add_parser("start", help="Launch every resource of a project")
    p_start.add_argument("project", nargs="?", help="Project directory, manifest path or project name")
    p_start.add_argument("--layout", help="Layout to apply (defaults to the manifest's default_layout)")
    p_start.add_argument("--dry-run", action="store_true", help="Show the spawn batch without launching")
    p_start.set_defaults(func=cmd_start)

    p_stop = sub.add_parser("stop", help="Stop everything the last start launched")
    p_stop.add_argument("project", nargs="?")
    p_stop.set_defaults(func=cmd_stop)

    p_status = sub.add_parser("status", help="Show the session of a project")
    p_status.add_argument("project", nargs="?")
    p_status.add_argument("--json", action="store_true", help="Output JSON")
    p_status.set_defaults(func=cmd_status)

    p_sessions = sub.add_parser("sessions", help="List all active sessions")
    p_sessions.set_defaults(func=cmd_sessions)

    p_doctor = sub.add_parser("doctor", help="Check external tool availability")
    p_doctor.set_defaults(func=cmd_doctor)

    p_record = sub.add_parser("record", help=argparse.SUPPRESS)
    p_record.add_argument("--session-file", required=True)
    p_record.add_argument("--name", required=True)
    p_record.add_argument("--cmd", default="")
    p_record.add_argument("--pid", type=int, default=0)
    p_record.add_argument("--window-id", default="")
    p_record.add_argument("--class", dest="window_class", default="")
    p_record.add_argument("--instance", default="")
    p_record.add_argument("--name-prop", default="")
    p_record.add_argument("--immediate", action="store_true")
    p_record.set_defaults(func=cmd_record)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return EXIT_OK

    try:
        settings = get_settings()
    except ValueError as exc:
        _error(f"invalid configuration: {exc}")
        return EXIT_FAILED

    level = settings.effective_log_level
    if args.verbose and level not in {"DEBUG", "INFO"}:
        level = "INFO"
    configure_logging(level)

    try:
        return args.func(args, settings)
    except SessionBusyError as exc:
        _error(str(exc))
        return EXIT_BUSY
    except (ManifestError, ConfigError, LayoutError, SpawnError, SessionStoreError) as exc:
        _error(str(exc))
        return EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
