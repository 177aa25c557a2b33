"""CLI entry-point to launch the ArcStore local API or run a one-off backup."""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence

import uvicorn

from api import __version__ as API_VERSION
from api.server import APIServerConfig, create_app
from backup.types import BackupProgress
from core.errors import MediaStoreError, describe_error
from core.logging_utils import configure_json_logging, redact_secret
from core.paths import resolve_working_dir
from engine import MediaStoreFacade

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8757
DEFAULT_CORS = ["http://localhost", "http://127.0.0.1"]


def _resolve_bind_host(candidate: Optional[str]) -> str:
    host = (candidate or DEFAULT_HOST).strip()
    if not host:
        host = DEFAULT_HOST
    norm = host.lower()
    if norm == "localhost":
        return "127.0.0.1"
    if norm.startswith("::ffff:"):
        norm = norm.split("::ffff:")[-1]
    if norm == "::1":
        return "127.0.0.1"
    if norm.startswith("127."):
        return host if host.startswith("127.") else "127.0.0.1"
    raise ValueError(
        f"Refusing to bind API server to non-loopback host '{candidate}'. ArcStore only serves on localhost."
    )


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Start the local ArcStore API service.")
    parser.add_argument("--host", default=None, help="Bind host (default from settings.json)")
    parser.add_argument("--port", type=int, default=None, help="Bind port (default from settings.json)")
    parser.add_argument("--api-key", dest="api_key", default=None, help="Override the API key for this session")
    parser.add_argument(
        "--cors",
        action="append",
        dest="cors",
        default=None,
        help="Additional allowed CORS origin (repeatable).",
    )
    parser.add_argument("--library", default=None, help="Library root to use for this session")
    parser.add_argument(
        "--backup",
        metavar="DEST",
        default=None,
        help="Write a backup archive to DEST instead of starting the API server.",
    )
    parser.add_argument("--parts", type=int, default=1, help="Split the backup into this many parts.")
    parser.add_argument(
        "--metadata",
        metavar="FILE",
        default=None,
        help="JSON file stored as the database entry of the backup.",
    )
    parser.add_argument(
        "--restore",
        metavar="ARCHIVE",
        default=None,
        help="Restore an archive, part or manifest instead of starting the API server.",
    )
    parser.add_argument("--target", default=None, help="Restore destination (default: the library root).")
    parser.add_argument(
        "--metadata-out",
        dest="metadata_out",
        metavar="FILE",
        default=None,
        help="Write the restored database entry to FILE (default: print it).",
    )
    return parser.parse_args(argv)


def resolve_api_settings(
    args: argparse.Namespace,
    facade: MediaStoreFacade,
) -> tuple[str, int, Optional[str], List[str], bool]:
    api_settings = facade.settings.get("api") if isinstance(facade.settings.get("api"), dict) else {}

    host = _resolve_bind_host(args.host or api_settings.get("host") or DEFAULT_HOST)
    port = args.port or api_settings.get("port") or DEFAULT_PORT
    try:
        port = int(port)
    except (TypeError, ValueError):
        port = DEFAULT_PORT

    api_key = args.api_key if args.api_key else api_settings.get("api_key")

    if args.cors:
        cors = list(args.cors)
    else:
        cors = list(api_settings.get("cors_origins") or DEFAULT_CORS)

    lan_only = bool(api_settings.get("lan_only", True))
    return str(host), int(port), api_key, cors, lan_only


def _print_progress(event: BackupProgress) -> None:
    print(f"\r{event.percent:3d}%", end="", flush=True)
    if event.percent >= 100:
        print(flush=True)


def run_backup(facade: MediaStoreFacade, args: argparse.Namespace) -> int:
    metadata = "{}"
    if args.metadata:
        metadata = Path(args.metadata).read_text(encoding="utf-8")
    manifest = facade.backup(
        Path(args.backup),
        part_count=int(args.parts),
        metadata_blob=metadata,
        on_progress=_print_progress,
    )
    print(json.dumps(manifest.to_dict(), indent=2), flush=True)
    return 0


def run_restore(facade: MediaStoreFacade, args: argparse.Namespace) -> int:
    target = Path(args.target) if args.target else None
    result = facade.restore(Path(args.restore), target_dir=target, on_progress=_print_progress)
    logging.info("Restored %s files into %s", result.restored_files, result.target_dir)
    if result.metadata_blob is None:
        logging.warning("Archive has no database entry; no metadata restored.")
    elif args.metadata_out:
        Path(args.metadata_out).write_text(result.metadata_blob, encoding="utf-8")
        logging.info("Database entry written to %s", args.metadata_out)
    else:
        print(result.metadata_blob, flush=True)
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")
    args = parse_args(argv)
    working_dir = resolve_working_dir()
    configure_json_logging(working_dir=working_dir)
    facade = MediaStoreFacade(
        working_dir=working_dir,
        library_root=Path(args.library) if args.library else None,
    )

    if args.backup or args.restore:
        try:
            if args.backup:
                return run_backup(facade, args)
            return run_restore(facade, args)
        except (MediaStoreError, OSError, ValueError) as exc:
            details = describe_error(exc)
            logging.error("%s (%s)", details["message"], details["code"])
            if details["hint"]:
                logging.error("%s", details["hint"])
            return 1

    try:
        host, port, api_key, cors, lan_only = resolve_api_settings(args, facade)
    except ValueError as exc:
        logging.error("%s", exc)
        return 2

    if not api_key:
        logging.warning("API key is not configured; all requests will be rejected with 401.")
    else:
        logging.info("API key configured (%s)", redact_secret(api_key))

    config = APIServerConfig(
        facade=facade,
        api_key=api_key,
        cors_origins=cors,
        app_version=API_VERSION,
        lan_only=lan_only,
    )
    app = create_app(config)

    print(f"API listening on http://{host}:{port}", flush=True)

    uvicorn_config = uvicorn.Config(
        app,
        host=host,
        port=port,
        log_level="info",
        access_log=False,
    )
    server = uvicorn.Server(uvicorn_config)
    server.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
