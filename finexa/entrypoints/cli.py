from __future__ import annotations

import argparse
import asyncio
import faulthandler
import json
import logging
import sys
from pathlib import Path
from typing import Any, Callable

from finexa.bootstrap.container import AppContainer, build_container
from finexa.bootstrap.logging import configure_logging, install_exception_hook
from finexa.bootstrap.settings import resolve_log_dir
from finexa.core.errors import AppError

logger = logging.getLogger(__name__)

ContainerFactory = Callable[[], AppContainer]


def _write_json(payload: Any) -> None:
    sys.stdout.write(json.dumps(payload, indent=2, ensure_ascii=False) + "\n")


def _cmd_status(container: AppContainer, args: argparse.Namespace) -> int:
    context = container.session.current_context()
    container.sync_service.refresh_pending()
    _write_json(
        {
            "cloud_mode": context.is_cloud_mode,
            "signed_in": bool(context.owner_id),
            "configured": container.config is not None and container.config.is_complete,
            "state": container.sync_service.sync_state.to_dict(),
        }
    )
    return 0


def _cmd_sync(container: AppContainer, args: argparse.Namespace) -> int:
    result = asyncio.run(container.sync_service.trigger_sync())
    _write_json(
        {
            "success": result.success,
            "error": result.error,
            "report": result.report.to_dict() if result.report else None,
            "state": container.sync_service.sync_state.to_dict(),
        }
    )
    return 0 if result.success else 1


def _cmd_watch(container: AppContainer, args: argparse.Namespace) -> int:
    interval = args.interval or (container.config.sync_interval_seconds if container.config else 0)
    if interval <= 0:
        sys.stderr.write("No sync interval configured.\n")
        return 2

    async def _watch() -> int:
        stop_event = asyncio.Event()
        try:
            return await container.sync_service.run_periodic_sync(interval, stop_event)
        finally:
            stop_event.set()

    try:
        asyncio.run(_watch())
    except KeyboardInterrupt:
        logger.info("watch_interrupted")
    return 0


def _cmd_export(container: AppContainer, args: argparse.Namespace) -> int:
    snapshot = container.records_service.export_data()
    if args.output:
        Path(args.output).write_text(snapshot, encoding="utf-8")
        logger.info("export_written path=%s", args.output)
    else:
        sys.stdout.write(snapshot + "\n")
    return 0


def _cmd_import(container: AppContainer, args: argparse.Namespace) -> int:
    payload = Path(args.input).read_text(encoding="utf-8")
    if not container.records_service.import_data(payload):
        sys.stderr.write("Import rejected: the file is not a valid backup.\n")
        return 1
    return 0


def _cmd_mode(container: AppContainer, args: argparse.Namespace) -> int:
    if args.mode == "cloud":
        container.session.switch_to_cloud_mode()
    else:
        container.session.switch_to_local_mode()
    _write_json(container.sync_service.sync_state.to_dict())
    return 0


def _cmd_configure(container: AppContainer, args: argparse.Namespace) -> int:
    config = container.cloud_setup.save_config(
        args.spreadsheet,
        args.credentials,
        owner_id=args.owner,
        auto_sync=args.auto_sync,
        sync_interval_seconds=args.interval,
    )
    if config.owner_id:
        container.session.sign_in(config.owner_id)
    result = asyncio.run(container.cloud_setup.connect())
    _write_json({"spreadsheet_id": result.spreadsheet_id, "schema_actions": result.schema_actions})
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="finexa", description="Finexa offline-first sync")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("status", help="Show the current sync state").set_defaults(handler=_cmd_status)
    subparsers.add_parser("sync", help="Run one pull-then-push cycle").set_defaults(handler=_cmd_sync)

    watch = subparsers.add_parser("watch", help="Sync periodically until interrupted")
    watch.add_argument("--interval", type=float, default=None, help="Seconds between cycles")
    watch.set_defaults(handler=_cmd_watch)

    export = subparsers.add_parser("export", help="Export every local dataset as JSON")
    export.add_argument("--output", default=None)
    export.set_defaults(handler=_cmd_export)

    import_parser = subparsers.add_parser("import", help="Restore a JSON backup")
    import_parser.add_argument("input")
    import_parser.set_defaults(handler=_cmd_import)

    mode = subparsers.add_parser("mode", help="Switch between cloud and local mode")
    mode.add_argument("mode", choices=("cloud", "local"))
    mode.set_defaults(handler=_cmd_mode)

    configure = subparsers.add_parser("configure", help="Save the Google Sheets configuration and prepare it")
    configure.add_argument("--spreadsheet", required=True, help="Spreadsheet id or URL")
    configure.add_argument("--credentials", default=None, help="Service account credentials.json")
    configure.add_argument("--owner", default=None, help="Owner id stored on every synced row")
    configure.add_argument("--auto-sync", dest="auto_sync", action="store_true", default=None)
    configure.add_argument("--interval", type=int, default=None, help="Seconds between automatic syncs")
    configure.set_defaults(handler=_cmd_configure)
    return parser


def main(argv: list[str] | None = None, container_factory: ContainerFactory = build_container) -> int:
    args = build_parser().parse_args(argv)

    log_dir = resolve_log_dir()
    configure_logging(log_dir)
    install_exception_hook(log_dir)
    faulthandler.enable()
    logger.info("Log dir: %s", log_dir)
    logger.info("Python: %s", sys.version)

    container = container_factory()
    try:
        return args.handler(container, args)
    except AppError as exc:
        logger.warning("command_failed command=%s error=%s", args.command, exc)
        sys.stderr.write(f"{exc}\n")
        return 1
    finally:
        container.sync_service.close()
