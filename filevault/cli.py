"""Command line interface for filevault package."""
from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, List, Optional, Sequence
from urllib.parse import urlparse

from rich.logging import RichHandler
from rich.markup import escape
from rich.prompt import Prompt

from . import __version__
from .cli_progress import (
    TransferProgressBar,
    UploadProgressDisplay,
    render_configuration_summary,
    render_file_page,
    render_file_text,
    render_rate_limit,
    render_search_page,
    render_session_expired,
    render_text_availability,
)
from .errors import DuplicateFileError, ErrorKind, FileVaultError, ValidationError
from .models import ClientConfig, DuplicateAction, DuplicateDecision, UploadSource, UploadState
from .orchestrator import UploadOrchestrator
from .services import (
    CredentialStore,
    FileRepository,
    HTTPAPIClient,
    LinkResolver,
    SearchPager,
    SearchService,
    TransferEngine,
)
from .utils.events import RateLimitNotifier


DUPLICATE_CHOICES = ["ask", "replace", "keep_both", "cancel"]


class CLIError(RuntimeError):
    """Raised when CLI validation/execution fails."""


def _setup_logging(debug: bool, silent: bool, log_level: Optional[str]) -> str:
    """
    Configure logging.

    Default behavior is silent unless --debug or --log-level is provided.
    Returns a string describing effective mode.
    """
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    logging.disable(logging.NOTSET)

    env_level = os.getenv("LOG_LEVEL")
    if silent or (not debug and not log_level and not env_level):
        logging.disable(logging.CRITICAL)
        root_logger.setLevel(logging.CRITICAL + 1)
        return "silent"

    if debug:
        level = logging.DEBUG
    else:
        level = getattr(logging, (log_level or env_level).upper(), logging.INFO)

    handler = RichHandler(
        rich_tracebacks=True,
        markup=False,
        show_time=False,
        show_path=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(handler)
    root_logger.setLevel(level)
    # Request lines from httpx duplicate our own
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))
    return logging.getLevelName(level)


def _strip_optional_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
        return value[1:-1]
    return value


def _load_env_file(path: Path, override: bool = False) -> None:
    if not path.exists():
        raise CLIError(f"env file not found: {path}")
    if not path.is_file():
        raise CLIError(f"env path is not a file: {path}")

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise CLIError(f"could not read env file {path}: {exc}") from exc

    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export ") :].strip()
        if "=" not in line:
            continue

        key, value = line.split("=", 1)
        key = key.strip()
        if not key:
            continue

        value = _strip_optional_quotes(value.strip())
        if override or key not in os.environ:
            os.environ[key] = value


def _resolve_default_env_file() -> Optional[Path]:
    default_env = Path(".env")
    return default_env if default_env.exists() and default_env.is_file() else None


# ----------------------------------------------------------------------
# Session wiring
# ----------------------------------------------------------------------


@dataclass
class _Session:
    config: ClientConfig
    credentials: CredentialStore
    notifier: RateLimitNotifier
    api: HTTPAPIClient


@asynccontextmanager
async def _open_session(config: ClientConfig, require_login: bool = True) -> AsyncIterator[_Session]:
    credentials = CredentialStore(config.credentials_path)
    credentials.load()
    if require_login and not credentials.is_authenticated:
        raise CLIError("not logged in (run: filevault login)")
    credentials.on_expired(render_session_expired)

    notifier = RateLimitNotifier()
    notifier.on_advisory(render_rate_limit)

    async with HTTPAPIClient(
        config.api_url,
        credentials=credentials,
        notifier=notifier,
        timeout=config.timeout,
        default_retry_after=config.default_retry_after,
    ) as api:
        yield _Session(config, credentials, notifier, api)


async def _ask_duplicate(decision: DuplicateDecision) -> DuplicateAction:
    answer = await asyncio.to_thread(
        Prompt.ask,
        f"[yellow]{escape(decision.conflicting_file_name)}[/yellow] already exists. Replace, keep both or cancel?",
        choices=["replace", "keep_both", "cancel"],
        default="keep_both",
    )
    return DuplicateAction(answer)


def _duplicate_resolver(choice: str):
    if choice == "ask":
        return _ask_duplicate
    action = DuplicateAction(choice)
    return lambda decision: action


# ----------------------------------------------------------------------
# Commands
# ----------------------------------------------------------------------


async def _run_upload(
    config: ClientConfig,
    paths: List[Path],
    on_duplicate: str,
    check_duplicates: bool,
) -> int:
    async with _open_session(config) as session:
        api = session.api
        display = UploadProgressDisplay()
        rejected = 0
        async with UploadOrchestrator(
            TransferEngine(api),
            FileRepository(api),
            config=config,
            duplicate_resolver=_duplicate_resolver(on_duplicate),
        ) as uploads:
            uploads.on("task_added", display.on_task_added)
            uploads.on("task_progress", display.on_task_progress)
            uploads.on("task_finished", display.on_task_finished)

            for path in paths:
                try:
                    task = await uploads.submit(
                        UploadSource.from_path(path),
                        check_duplicates=check_duplicates,
                    )
                except (ValidationError, DuplicateFileError) as exc:
                    display.on_rejected(path.name, exc.message)
                    rejected += 1
                    continue
                if task is None:
                    display.on_skipped(path.name)

            tasks = await uploads.wait_all()
            display.on_finish(uploads.summary())

    failed = [t for t in tasks if t.state is not UploadState.SUCCESS]
    return 1 if failed or rejected else 0


async def _run_list(config: ClientConfig, page: int, size: int) -> int:
    async with _open_session(config) as session:
        file_page = await FileRepository(session.api).list_files(page, size)
    render_file_page(file_page)
    return 0


async def _run_delete(config: ClientConfig, file_ids: List[int]) -> int:
    async with _open_session(config) as session:
        repository = FileRepository(session.api)
        for file_id in file_ids:
            await repository.delete_file(file_id)
            print(f"Deleted {file_id}")
    return 0


async def _run_link(config: ClientConfig, file_id: int, preview: bool) -> int:
    async with _open_session(config) as session:
        links = LinkResolver(session.api, timeout=config.timeout)
        if preview:
            url = await links.resolve_preview_link(file_id)
        else:
            url = await links.resolve_download_link(file_id)
    print(url)
    return 0


async def _run_download(config: ClientConfig, file_id: int, output: Optional[Path]) -> int:
    async with _open_session(config) as session:
        links = LinkResolver(session.api, timeout=config.timeout)
        url = await links.resolve_download_link(file_id)
        dest = output or Path(Path(urlparse(url).path).name or str(file_id))
        if dest.is_dir():
            dest = dest / (Path(urlparse(url).path).name or str(file_id))
        with TransferProgressBar(dest.name) as bar:
            await links.fetch(url, dest, bar.update)
    print(f"Saved {dest}")
    return 0


async def _run_search(config: ClientConfig, query: str, limit: int, pages: int) -> int:
    async with _open_session(config) as session:
        pager = SearchPager(SearchService(session.api), page_size=limit)
        page = await pager.search(query, page_size=limit)
        render_search_page(query, page, pager.page_number)
        while pager.page_number < pages and pager.has_next:
            page = await pager.next_page()
            render_search_page(query, page, pager.page_number)
    return 0


async def _run_text(config: ClientConfig, file_id: int, probe: bool) -> int:
    async with _open_session(config) as session:
        search = SearchService(session.api)
        if probe:
            render_text_availability(file_id, await search.has_text(file_id))
            return 0
        render_file_text(await search.get_file_text(file_id))
    return 0


def _run_login(config: ClientConfig, token: Optional[str], user: Optional[str]) -> int:
    store = CredentialStore(config.credentials_path)
    store.load()
    token = token or os.getenv("FILEVAULT_TOKEN") or Prompt.ask("Bearer token", password=True)
    if not token:
        raise CLIError("no token given")
    store.login(token, {"name": user} if user else None)
    print(f"Logged in (credentials saved to {store.path})")
    return 0


def _run_logout(config: ClientConfig) -> int:
    store = CredentialStore(config.credentials_path)
    store.load()
    store.logout()
    print("Logged out")
    return 0


# ----------------------------------------------------------------------
# Parser
# ----------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="filevault",
        description="Upload, find and fetch files stored behind the filevault API.",
    )
    parser.add_argument("--api-url", default=None, help="API base URL (default from FILEVAULT_API_URL)")
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Load environment variables from this .env file",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logs")
    parser.add_argument("--silent", action="store_true", help="Only print errors")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Explicit log level (DEBUG/INFO/WARNING/ERROR)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"filevault {__version__}",
    )

    commands = parser.add_subparsers(dest="command")

    upload = commands.add_parser("upload", help="Upload one or more files")
    upload.add_argument("paths", nargs="+", type=Path, help="Files to upload")
    upload.add_argument(
        "-d",
        "--on-duplicate",
        choices=DUPLICATE_CHOICES,
        default="ask",
        help="What to do when a file with the same name exists (default: ask)",
    )
    upload.add_argument(
        "--no-duplicate-check",
        action="store_true",
        help="Skip the duplicate-name check",
    )

    listing = commands.add_parser("list", help="List uploaded files")
    listing.add_argument("-p", "--page", type=int, default=1, help="Page number, starting at 1")
    listing.add_argument("-n", "--size", type=int, default=20, help="Files per page")

    delete = commands.add_parser("rm", help="Delete files by id")
    delete.add_argument("file_ids", nargs="+", type=int)

    link = commands.add_parser("link", help="Print a short-lived direct link")
    link.add_argument("file_id", type=int)
    link.add_argument("--preview", action="store_true", help="Inline preview link instead of download")

    download = commands.add_parser("download", help="Download a file by id")
    download.add_argument("file_id", type=int)
    download.add_argument("-o", "--output", type=Path, default=None, help="Destination file or folder")

    search = commands.add_parser("search", help="Full-text search")
    search.add_argument("query")
    search.add_argument("-n", "--limit", type=int, default=None, help="Results per page (1-100)")
    search.add_argument("--pages", type=int, default=1, help="Number of pages to fetch")

    text = commands.add_parser("text", help="Show the extracted text of a file")
    text.add_argument("file_id", type=int)
    text.add_argument("--probe", action="store_true", help="Only check whether text exists")

    login = commands.add_parser("login", help="Store a bearer token")
    login.add_argument("--token", default=None, help="Token (default: FILEVAULT_TOKEN or prompt)")
    login.add_argument("--user", default=None, help="User name to remember with the token")

    commands.add_parser("logout", help="Forget the stored token")
    return parser


def _dispatch(args: argparse.Namespace, config: ClientConfig) -> int:
    command = args.command
    if command == "login":
        return _run_login(config, args.token, args.user)
    if command == "logout":
        return _run_logout(config)
    if command == "upload":
        missing = [p for p in args.paths if not p.expanduser().is_file()]
        if missing:
            raise CLIError(f"not a file: {missing[0]}")
        paths = [p.expanduser() for p in args.paths]
        return asyncio.run(_run_upload(config, paths, args.on_duplicate, not args.no_duplicate_check))
    if command == "list":
        if args.page < 1:
            raise CLIError("--page must be >= 1")
        return asyncio.run(_run_list(config, args.page - 1, args.size))
    if command == "rm":
        return asyncio.run(_run_delete(config, args.file_ids))
    if command == "link":
        return asyncio.run(_run_link(config, args.file_id, args.preview))
    if command == "download":
        return asyncio.run(_run_download(config, args.file_id, args.output))
    if command == "search":
        limit = config.search_page_size if args.limit is None else args.limit
        if not 1 <= limit <= 100:
            raise CLIError("--limit must be between 1 and 100")
        return asyncio.run(_run_search(config, args.query, limit, max(args.pages, 1)))
    if command == "text":
        return asyncio.run(_run_text(config, args.file_id, args.probe))
    raise CLIError(f"unknown command: {command}")


def run_cli(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    used_env_file = args.env_file or _resolve_default_env_file()
    if used_env_file is not None:
        try:
            _load_env_file(Path(used_env_file))
        except CLIError as exc:
            print(f"ERROR: {exc}", file=sys.stderr)
            return 1

    effective_log_mode = _setup_logging(
        debug=args.debug,
        silent=args.silent,
        log_level=args.log_level,
    )

    if args.command is None:
        parser.print_help()
        return 0

    try:
        config = ClientConfig.from_env(api_url=args.api_url.rstrip("/") if args.api_url else None)
    except ValueError as exc:
        print(f"ERROR: invalid configuration: {exc}", file=sys.stderr)
        return 1

    if args.command == "upload":
        render_configuration_summary(
            {
                "Files": len(args.paths),
                "API": config.api_url,
                "On Duplicate": args.on_duplicate,
                "Duplicate Check": "no" if args.no_duplicate_check else "yes",
                "Env File": str(used_env_file) if used_env_file else "-",
                "Logging": effective_log_mode,
            }
        )

    try:
        return _dispatch(args, config)
    except CLIError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    except FileVaultError as exc:
        if exc.kind is not ErrorKind.UNAUTHORIZED:
            print(f"ERROR: {exc.message}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("Cancelled.", file=sys.stderr)
        return 130


def main() -> None:
    raise SystemExit(run_cli())


if __name__ == "__main__":
    main()
