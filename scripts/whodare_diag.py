"""whoDare stats diagnostics CLI."""

from __future__ import annotations

import argparse
import json
import logging
from dataclasses import asdict
from pathlib import Path

from whodare.config import WhodareSettings
from whodare.remote import RemoteFetchError, fetch_and_decode
from whodare.storage import (
    AggregationStore,
    EnvelopeError,
    PersistenceCoordinator,
    StorageUnavailableError,
    TrackerData,
)


def configure_logging(level: str) -> None:
    """Configure root logging for the diagnostics CLI."""

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


def build_coordinator(
    settings: WhodareSettings,
    workspace: Path,
    *,
    encrypt: bool | None = None,
    data: TrackerData | None = None,
) -> PersistenceCoordinator:
    return PersistenceCoordinator(
        workspace,
        lambda: data,
        password=settings.password,
        encrypt=settings.encrypt if encrypt is None else encrypt,
        storage_dir=settings.storage_dir,
        stats_file=settings.stats_file,
    )


def load_data(settings: WhodareSettings, workspace: Path) -> TrackerData:
    coordinator = build_coordinator(settings, workspace)
    try:
        data = coordinator.load()
    except (EnvelopeError, StorageUnavailableError) as exc:
        print(f"Cannot load stats: {exc}")
        raise SystemExit(1)
    if data is None:
        print(f"No stats file at {coordinator.path}")
        raise SystemExit(1)
    return data


def render_summary(data: TrackerData) -> dict[str, object]:
    store = AggregationStore(data)
    summary = store.summary()
    return {
        "workspace_id": data.workspace_id,
        "version": data.format_version,
        "last_updated": data.last_updated,
        "status": summary.label(),
        "total_lines": summary.total_lines,
        "human_lines": summary.human_lines,
        "ai_lines": summary.ai_lines,
        "human_percent": summary.human_percent,
        "ai_percent": summary.ai_percent,
        "events": len(data.global_history),
        "days_tracked": len(data.daily_stats),
        "files": [asdict(row) for row in store.file_breakdown()],
    }


def cmd_show(args: argparse.Namespace) -> None:
    settings = WhodareSettings()
    data = load_data(settings, Path(args.workspace))
    if args.json:
        print(json.dumps(data.to_wire(), indent=2))
    else:
        print(json.dumps(render_summary(data), indent=2))


def cmd_remote(args: argparse.Namespace) -> None:
    settings = WhodareSettings()
    try:
        data = fetch_and_decode(
            args.url,
            password=settings.password,
            branches=settings.remote_branches,
            timeout=settings.remote_timeout,
        )
    except (RemoteFetchError, EnvelopeError) as exc:
        print(f"Remote stats unavailable: {exc}")
        raise SystemExit(1)
    if args.json:
        print(json.dumps(data.to_wire(), indent=2))
    else:
        print(json.dumps(render_summary(data), indent=2))


def cmd_convert(args: argparse.Namespace) -> None:
    settings = WhodareSettings()
    workspace = Path(args.workspace)
    data = load_data(settings, workspace)
    coordinator = build_coordinator(settings, workspace, encrypt=args.to == "encrypted", data=data)
    try:
        path = coordinator.flush()
    except (EnvelopeError, StorageUnavailableError) as exc:
        print(f"Cannot write stats: {exc}")
        raise SystemExit(1)
    print(json.dumps({"path": str(path), "mode": args.to}))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="whoDare stats diagnostics")
    sub = parser.add_subparsers(dest="cmd")

    p_show = sub.add_parser("show", help="Summarize the local stats file")
    p_show.add_argument("--workspace", default=".")
    p_show.add_argument("--json", action="store_true", help="Output the full tracker data")
    p_show.set_defaults(func=cmd_show)

    p_remote = sub.add_parser("remote", help="Fetch and decode stats from a GitHub repository")
    p_remote.add_argument("url")
    p_remote.add_argument("--json", action="store_true", help="Output the full tracker data")
    p_remote.set_defaults(func=cmd_remote)

    p_convert = sub.add_parser("convert", help="Rewrite the local stats file in another mode")
    p_convert.add_argument("--workspace", default=".")
    p_convert.add_argument("--to", choices=("encrypted", "plaintext"), required=True)
    p_convert.set_defaults(func=cmd_convert)

    return parser


def main(argv: list[str] | None = None) -> None:
    configure_logging(WhodareSettings().log_level)
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return
    args.func(args)


if __name__ == "__main__":
    main()
