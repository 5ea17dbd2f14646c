"""CLI entrypoints for codemorph commands."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Optional

from .config import ConfigError, load_config
from .constants import AGENT_INFO, TARGET_FRAMEWORKS, TARGET_LANGUAGES
from .events import EventLog
from .logging import configure_logging
from .models import AgentMessage, FileStatus, MigrationState
from .oracle import OracleClient
from .orchestrator import StageOrchestrator
from .packager import archive_name
from .sources import UploadSource


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    if suppress_default:
        kwargs["default"] = argparse.SUPPRESS
    else:
        kwargs["default"] = False
    parser.add_argument(
        "-v",
        "--verbose",
        **kwargs,
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="codemorph",
        description="Migrate a project to another language and framework with a staged agent pipeline.",
    )
    _add_verbose_option(parser)
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to .codemorph.yml (defaults to the current directory).",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Also write timestamped logs to this file.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser(
        "run",
        help="Run a migration and write the packaged project archive.",
    )
    _add_verbose_option(run_parser, suppress_default=True)
    run_parser.add_argument(
        "path",
        nargs="?",
        default=None,
        help="Local project directory or .zip archive to migrate.",
    )
    run_parser.add_argument(
        "--repo",
        dest="repo_url",
        default=None,
        help="GitHub repository URL to fetch sources from.",
    )
    run_parser.add_argument(
        "--target-language",
        default=None,
        help=f"Target language (for example: {', '.join(TARGET_LANGUAGES)}).",
    )
    run_parser.add_argument(
        "--target-framework",
        default=None,
        help=f"Target framework (for example: {', '.join(TARGET_FRAMEWORKS)}).",
    )
    run_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=None,
        help="Where to write the archive (defaults to migrated-project-<language>.zip).",
    )
    run_parser.add_argument(
        "--review",
        action="store_true",
        help="Ask the oracle to review every translated file.",
    )

    targets_parser = subparsers.add_parser(
        "targets",
        help="List supported target languages and frameworks.",
    )
    _add_verbose_option(targets_parser, suppress_default=True)

    return parser


class _ProgressPrinter:
    """Prints agent messages and per-file status transitions as they happen."""

    def __init__(self) -> None:
        self._statuses: dict[str, FileStatus] = {}

    def on_message(self, message: AgentMessage) -> None:
        label = AGENT_INFO[message.role]["label"]
        print(f"[{label}] {message.text}")

    def on_state(self, state: MigrationState) -> None:
        for file in state.files:
            previous = self._statuses.get(file.path)
            if previous is file.status:
                continue
            self._statuses[file.path] = file.status
            if file.status in (FileStatus.COMPLETED, FileStatus.ERROR):
                print(f"  {state.progress:5.1f}%  {file.status.value:<9} {file.path}")


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for codemorph commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=bool(args.verbose), log_file=args.log_file, quiet=("events",))

    if args.command == "targets":
        print("Languages:  " + ", ".join(TARGET_LANGUAGES))
        print("Frameworks: " + ", ".join(TARGET_FRAMEWORKS))
        return

    if args.command != "run":  # pragma: no cover - argparse enforces choices
        parser.exit(1, "Unknown command\n")

    if not args.path and not args.repo_url:
        parser.exit(1, "Provide a project path or --repo URL to migrate.\n")

    try:
        config = load_config(args.config)
        if args.review:
            config.migration.review_files = True
        oracle = OracleClient(config.oracle)
    except ConfigError as exc:
        parser.exit(1, f"codemorph: {exc}\n")

    event_log = EventLog()
    orchestrator = StageOrchestrator(
        oracle,
        config=config,
        event_log=event_log,
        target_language=args.target_language,
        target_framework=args.target_framework,
    )
    printer = _ProgressPrinter()
    event_log.subscribe(printer.on_message)
    orchestrator.subscribe(printer.on_state)

    if args.path:
        try:
            uploaded = UploadSource(config.repository, event_log=event_log).load(args.path)
        except (OSError, ValueError) as exc:
            parser.exit(1, f"codemorph: {exc}\n")
        orchestrator.load_files(uploaded)

    result = orchestrator.run(repo_url=args.repo_url)
    if result.error is not None:
        parser.exit(1, "codemorph run failed. Run with --verbose for more details.\n")

    archive = orchestrator.package()
    if archive is None:
        parser.exit(1, "codemorph: nothing to package.\n")
    output = _resolve_output(args.output, result.state.target_language)
    output.write_bytes(archive)
    print(f"Migrated project written to {_relativize(output)}")


def _resolve_output(output: Optional[Path], target_language: str) -> Path:
    if output is None:
        return Path.cwd() / archive_name(target_language)
    if output.is_dir():
        return output / archive_name(target_language)
    return output


def _relativize(path: Path) -> str:
    try:
        return str(path.resolve().relative_to(Path.cwd()))
    except ValueError:
        return str(path)


if __name__ == "__main__":
    main(sys.argv[1:])
