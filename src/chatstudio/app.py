"""Application bootstrap helpers and the ``chatstudio`` command line."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import os
import signal
import sys
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, TextIO, get_args, get_origin, get_type_hints

from .ai.client import ChatClient
from .completion.commands import CommandEntry, build_command_set
from .completion.resolver import PlaceholderResolver
from .index.builder import IndexRefresher, SymbolIndex, SymbolIndexBuilder
from .index.refresh import IndexRefreshConfig, IndexRefreshWorker
from .index.workspace import FileSystemWorkspace
from .services.settings import Settings, SettingsStore, redact_secret
from .ui.request_coordinator import RequestCoordinator, client_settings_from
from .utils import logging as logging_utils

_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_FALSE_VALUES = {"0", "false", "no", "off", "disabled"}
_LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class Workbench:
    """Everything needed to resolve and send requests against one workspace."""

    settings: Settings
    index: SymbolIndex
    refresher: IndexRefresher
    worker: IndexRefreshWorker
    commands: Sequence[CommandEntry]
    resolver: PlaceholderResolver

    async def aclose(self) -> None:
        await self.worker.aclose()


def configure_logging(debug: bool = False, *, force: bool = False, console: bool = False) -> None:
    """Configure logging for the application."""

    level = logging.DEBUG if debug else logging.INFO
    logging_utils.setup_logging(level, console=console, force=force)
    _LOGGER.debug("Logging configured (level=%s)", logging.getLevelName(level))


def load_settings(
    path: Optional[Path] = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Load persisted settings or fall back to defaults."""

    active_store = store or SettingsStore(path)
    try:
        settings = active_store.load(overrides=overrides)
    except OSError as exc:
        _LOGGER.warning("Failed to load settings from %s: %s", active_store.path, exc)
        settings = Settings()
    return settings


def open_workbench(
    settings: Settings,
    workspace_root: Path | None,
    *,
    loop: asyncio.AbstractEventLoop | None = None,
) -> Workbench:
    """Wire the index, refresh worker and resolver for ``workspace_root``.

    Periodic rebuilds start right away when a workspace is given; callers
    await ``worker.trigger()`` for the initial build. ``None`` means no
    workspace is open: the index stays empty and reference placeholders are
    left untouched.
    """

    workspace = FileSystemWorkspace(workspace_root) if workspace_root is not None else None
    index = SymbolIndex()
    refresher = IndexRefresher(SymbolIndexBuilder(lambda: workspace), index)
    worker = IndexRefreshWorker(
        refresher,
        loop=loop,
        config=IndexRefreshConfig(
            initial_interval=settings.index_initial_interval,
            steady_interval=settings.index_refresh_interval,
        ),
    )
    if workspace is not None:
        worker.start()
    commands = build_command_set(settings.commands)
    resolver = PlaceholderResolver(commands, index)
    return Workbench(
        settings=settings,
        index=index,
        refresher=refresher,
        worker=worker,
        commands=commands,
        resolver=resolver,
    )


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point invoked by the ``chatstudio`` console script."""

    args = _parse_cli_args(argv)
    debug = args.debug or _env_flag("CHATSTUDIO_DEBUG", default=False)
    configure_logging(debug, console=debug)

    settings_path = args.settings_path or os.environ.get("CHATSTUDIO_SETTINGS_PATH")
    resolved_path = Path(settings_path).expanduser() if settings_path else None
    settings_store = SettingsStore(resolved_path)
    try:
        cli_overrides = _coerce_cli_overrides(args.overrides or [])
    except ValueError as exc:
        print(f"Invalid --set override: {exc}", file=sys.stderr)
        return 2
    if getattr(args, "single", False):
        cli_overrides["single_response"] = True

    settings = load_settings(resolved_path, store=settings_store, overrides=cli_overrides or None)
    if settings.debug_logging and not debug:
        configure_logging(True, force=True)

    if args.command == "settings":
        if args.save:
            try:
                saved = settings_store.save(settings_store.load(overrides=cli_overrides or None, environment=False))
            except OSError as exc:
                print(f"Unable to write settings: {exc}", file=sys.stderr)
                return 1
            _LOGGER.info("Settings written to %s", saved)
        _dump_settings(settings, settings_store, overrides=cli_overrides)
        return 0

    workspace_root = Path(args.workspace).expanduser() if args.workspace else None
    if workspace_root is not None and not workspace_root.is_dir():
        print(f"Workspace {workspace_root} is not a directory", file=sys.stderr)
        return 2

    if args.command == "index":
        return asyncio.run(_run_index(settings, workspace_root, as_json=args.json))
    if args.command == "resolve":
        text = _read_request_text(args.text)
        return asyncio.run(_run_resolve(settings, workspace_root, text))
    if args.command == "ask":
        text = _read_request_text(args.text)
        return asyncio.run(_run_ask(settings, workspace_root, text, command=args.request_command))
    return 2


async def _run_index(
    settings: Settings,
    workspace_root: Path | None,
    *,
    as_json: bool = False,
    stream: TextIO | None = None,
) -> int:
    destination = stream or sys.stdout
    workbench = open_workbench(settings, workspace_root, loop=asyncio.get_running_loop())
    try:
        snapshot = await workbench.worker.trigger()
    finally:
        await workbench.aclose()
    if snapshot is None:
        print("No workspace open", file=sys.stderr)
        return 1
    if as_json:
        payload = [
            {
                "key": entry.display_key,
                "kind": entry.kind.value,
                "path": entry.source_path,
                "description": entry.description,
                "icon": entry.icon_key,
            }
            for entry in snapshot
        ]
        json.dump(payload, destination, indent=2)
        destination.write("\n")
        return 0
    for entry in snapshot:
        destination.write(f"{entry.kind.value:<12} {entry.display_key:<40} {entry.description}\n")
    return 0


async def _run_resolve(
    settings: Settings,
    workspace_root: Path | None,
    text: str,
    *,
    stream: TextIO | None = None,
) -> int:
    destination = stream or sys.stdout
    workbench = open_workbench(settings, workspace_root, loop=asyncio.get_running_loop())
    try:
        await workbench.worker.trigger()
        resolved = await asyncio.to_thread(workbench.resolver.resolve, text)
    except (OSError, UnicodeDecodeError) as exc:
        print(f"Unable to read a referenced file: {exc}", file=sys.stderr)
        return 1
    finally:
        await workbench.aclose()
    destination.write(resolved)
    if not resolved.endswith("\n"):
        destination.write("\n")
    return 0


async def _run_ask(
    settings: Settings,
    workspace_root: Path | None,
    text: str,
    *,
    command: str | None = None,
    stream: TextIO | None = None,
    client: ChatClient | None = None,
) -> int:
    if not text.strip():
        print("Nothing to send", file=sys.stderr)
        return 2
    destination = stream or sys.stdout
    loop = asyncio.get_running_loop()
    workbench = open_workbench(settings, workspace_root, loop=loop)
    chat_client = client or ChatClient(client_settings_from(settings))
    failures: list[Exception] = []
    streamed: list[str] = []
    interrupted = False

    def _write_increment(chunk: str) -> None:
        streamed.append(chunk)
        destination.write(chunk)
        destination.flush()

    def _finalize(response: str) -> None:
        if not streamed:
            destination.write(response)
        if not response.endswith("\n"):
            destination.write("\n")
        destination.flush()

    def _report_failure(exc: Exception) -> None:
        failures.append(exc)
        print(f"Request failed: {exc}", file=sys.stderr)

    coordinator = RequestCoordinator(
        client=chat_client,
        resolver=workbench.resolver,
        settings_resolver=lambda: settings,
        status_updater=lambda message: _LOGGER.info("%s", message),
        failure_handler=_report_failure,
        response_finalizer=_finalize,
        increment_handler=_write_increment,
        control_state_setter=lambda send_enabled, cancel_enabled: None,
    )

    def _interrupt() -> None:
        nonlocal interrupted
        interrupted = True
        coordinator.cancel()

    with contextlib.suppress(NotImplementedError, RuntimeError):
        loop.add_signal_handler(signal.SIGINT, _interrupt)
    try:
        await workbench.worker.trigger()
        if command is not None:
            entry = next((item for item in workbench.commands if item.name == command), None)
            if entry is None:
                print(f"Unknown command '{command}'", file=sys.stderr)
                return 2
            response = await coordinator.request_with_command(entry.resolved_text, text)
        else:
            response = await coordinator.send_request(text, streaming=not settings.single_response)
    finally:
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.remove_signal_handler(signal.SIGINT)
        await workbench.aclose()
        await chat_client.aclose()
    if response is not None:
        return 0
    return 130 if interrupted and not failures else 1


def _read_request_text(value: str) -> str:
    if value == "-":
        return sys.stdin.read()
    return value


def _env_flag(name: str, *, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _parse_cli_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="chatstudio",
        description="Expand request placeholders against a C# workspace and send them to a chat model.",
    )
    parser.add_argument(
        "--settings-path",
        metavar="PATH",
        help="Override the default ~/.chatstudio/settings.json path.",
    )
    parser.add_argument(
        "--set",
        dest="overrides",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        help="Override persisted settings for this run (repeatable).",
    )
    parser.add_argument(
        "--workspace",
        metavar="DIR",
        help="Workspace directory to index; omit to run without an open workspace.",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging on the console.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    settings_parser = subparsers.add_parser("settings", help="Print the effective settings (secrets redacted).")
    settings_parser.add_argument(
        "--save",
        action="store_true",
        help="Persist the --set overrides to the settings file (environment values are not written).",
    )

    index_parser = subparsers.add_parser("index", help="Build and print the workspace index.")
    index_parser.add_argument("--json", action="store_true", help="Emit the index as JSON.")

    resolve_parser = subparsers.add_parser("resolve", help="Print a request with placeholders expanded.")
    resolve_parser.add_argument("text", help="Request text, or '-' to read it from stdin.")

    ask_parser = subparsers.add_parser("ask", help="Resolve a request and send it to the model.")
    ask_parser.add_argument("text", help="Request text, or '-' to read it from stdin.")
    ask_parser.add_argument(
        "--single",
        action="store_true",
        help="Wait for the complete response instead of streaming it.",
    )
    ask_parser.add_argument(
        "--command",
        dest="request_command",
        metavar="NAME",
        help="Apply a named command (e.g. Explain) to the text as a selection.",
    )
    return parser.parse_args(argv)


def _coerce_cli_overrides(items: Sequence[str]) -> Dict[str, Any]:
    """Turn ``KEY=VALUE`` strings into typed settings overrides."""

    converters = _override_converters()
    overrides: Dict[str, Any] = {}
    for entry in items:
        key, separator, raw_value = entry.partition("=")
        key = key.strip()
        if not separator or not key:
            raise ValueError(f"Override '{entry}' must use KEY=VALUE syntax.")
        if key not in converters:
            raise ValueError(f"Unknown setting '{key}'.")
        convert, nullable = converters[key]
        value = raw_value.strip()
        overrides[key] = None if nullable and value.lower() in {"none", "null"} else convert(value)
    return overrides


def _override_converters() -> Dict[str, tuple[Callable[[str], Any], bool]]:
    converters: Dict[str, tuple[Callable[[str], Any], bool]] = {}
    for name, hint in get_type_hints(Settings).items():
        members = [arg for arg in get_args(hint) if arg is not type(None)]
        nullable = len(members) < len(get_args(hint))
        base = get_origin(hint) or hint
        if members and base is not dict:
            base = get_origin(members[0]) or members[0]
        converters[name] = (_VALUE_PARSERS.get(base, str), nullable)
    return converters


def _parse_bool(value: str) -> bool:
    lowered = value.lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Cannot coerce '{value}' to a boolean.")


def _parse_json_object(value: str) -> dict:
    try:
        parsed = json.loads(value or "{}")
    except json.JSONDecodeError as exc:
        raise ValueError("Dict overrides must be valid JSON objects") from exc
    if not isinstance(parsed, dict):
        raise ValueError("Dict overrides must be valid JSON objects")
    return parsed


_VALUE_PARSERS: Mapping[Any, Callable[[str], Any]] = {
    bool: _parse_bool,
    int: lambda value: int(value, 10),
    float: float,
    dict: _parse_json_object,
}


def _dump_settings(
    settings: Settings,
    store: SettingsStore,
    *,
    overrides: Mapping[str, Any],
    stream: TextIO | None = None,
) -> None:
    destination = stream or sys.stdout
    payload = asdict(settings)
    payload["api_key"] = redact_secret(settings.api_key)
    metadata = {
        "path": str(store.path),
        "cli_overrides": sorted(overrides.keys()),
        "environment_variables": sorted(name for name in os.environ if name.startswith("CHATSTUDIO_")),
    }
    json.dump({"settings": payload, "meta": metadata}, destination, indent=2)
    destination.write("\n")


if __name__ == "__main__":  # pragma: no cover - manual invocation
    raise SystemExit(main())
