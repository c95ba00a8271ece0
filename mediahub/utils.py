"""
Module: utils
Purpose: Shared helpers for MediaHub: run configuration, terminal styling,
timestamps, crash-safe file operations and the log helpers.
"""

import os
import shutil
import urllib.parse
import uuid
from concurrent.futures import ProcessPoolExecutor
from datetime import datetime, timezone
from typing import Callable, Optional, Tuple

from .exceptions import CopyError, LibraryNotFoundError, MediaHubError

LIBRARY_ENV = "MEDIAHUB_LIBRARY"
EXECUTOR_ENV = "MEDIAHUB_EXECUTOR"
WORKERS_ENV = "MEDIAHUB_WORKERS"
EXECUTOR_MODES = ("auto", "process", "thread")
DEFAULT_WORKERS = 4
MAX_WORKERS = 32
TEMP_MARKER = ".mediahub-tmp-"
SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")

_EXECUTOR_MODE: str | None = None
_EXECUTOR_LOGGED = False
_WORKERS = DEFAULT_WORKERS
_PROCESS_POOL_SUPPORTED: bool | None = None
_HEIF_CHECKED = False


def ensure_heif_registered() -> None:
    """Register the HEIF opener with Pillow once, when pillow-heif is installed."""
    global _HEIF_CHECKED
    if _HEIF_CHECKED:
        return
    _HEIF_CHECKED = True
    try:
        from pillow_heif import register_heif_opener
    except ImportError:
        log_info("pillow-heif not installed; HEIC/HEIF capture dates fall back to file times")
        return
    try:
        register_heif_opener()
    except Exception as exc:
        log_error(f"HEIF registration failed: {exc}")


# ------------------------------------------------------------- configuration
def _setting(
    cli_value,
    env_name: str,
    parse: Callable[[str], object],
    default,
) -> Tuple[object, str]:
    """
    Resolve one setting with CLI > environment > default precedence.

    Invalid environment values are logged and ignored; invalid CLI values
    raise because the user typed them on this run.
    """
    if cli_value is not None:
        return parse(cli_value), "cli"
    env_value = os.getenv(env_name, "").strip()
    if env_value:
        try:
            return parse(env_value), "env"
        except ValueError as exc:
            log_warning(f"Ignoring invalid {env_name} value '{env_value}': {exc}")
    return default, "default"


def resolve_library_path(cli_value: str | None = None) -> tuple[str, str]:
    """
    Determine the library root for a command.

    Returns:
        Tuple of (absolute path, source) where source is "cli" or "env".

    Raises:
        LibraryNotFoundError: If neither --library nor $MEDIAHUB_LIBRARY is set.
    """
    path, source = _setting(cli_value or None, LIBRARY_ENV, str, None)
    if not path:
        raise LibraryNotFoundError(f"No library specified. Pass --library or set ${LIBRARY_ENV}.")
    return os.path.abspath(os.path.expanduser(str(path))), source


def _process_pool_probe() -> int:
    return 1


def _supports_process_pool() -> bool:
    global _PROCESS_POOL_SUPPORTED
    if _PROCESS_POOL_SUPPORTED is None:
        try:
            with ProcessPoolExecutor(max_workers=1) as executor:
                executor.submit(_process_pool_probe).result(timeout=2)
            _PROCESS_POOL_SUPPORTED = True
        except Exception as exc:
            log_warning(f"ProcessPool probe failed: {exc}")
            _PROCESS_POOL_SUPPORTED = False
    return _PROCESS_POOL_SUPPORTED


def _parse_executor(value: str) -> str:
    mode = value.strip().lower()
    if mode not in EXECUTOR_MODES:
        raise ValueError(f"expected one of {', '.join(EXECUTOR_MODES)}")
    return mode


def configure_executor_mode(cli_override: str | None = None) -> tuple[str, str]:
    """
    Choose the pool used for hashing.

    Hashing is I/O bound, so "auto" resolves to threads; processes are used
    only when requested and available.

    Returns:
        Tuple of (mode, source): mode is "process" or "thread", source is
        "cli", "env" or "auto".
    """
    global _EXECUTOR_MODE, _EXECUTOR_LOGGED
    requested, source = _setting(cli_override, EXECUTOR_ENV, _parse_executor, "auto")
    if requested == "auto":
        source = "auto"
    mode = "thread"
    if requested == "process":
        if _supports_process_pool():
            mode = "process"
        else:
            log_warning("ProcessPool unavailable; hashing will use a ThreadPool.")
    _EXECUTOR_MODE = mode
    if not _EXECUTOR_LOGGED:
        log_info(f"Executor selected: {mode} (source={source}, requested={requested})")
        _EXECUTOR_LOGGED = True
    return mode, source


def executor_mode() -> str:
    if _EXECUTOR_MODE is None:
        configure_executor_mode(None)
    return _EXECUTOR_MODE or "thread"


def _parse_workers(value) -> int:
    count = int(value)
    if not 1 <= count <= MAX_WORKERS:
        raise ValueError(f"Worker count must be between 1 and {MAX_WORKERS}.")
    return count


def configure_workers(cli_override: int | None = None) -> tuple[int, str]:
    """
    Set the bounded worker count for per-item hashing.

    Raises:
        ValueError: If the CLI value is out of range.
    """
    global _WORKERS
    workers, source = _setting(cli_override, WORKERS_ENV, _parse_workers, DEFAULT_WORKERS)
    _WORKERS = int(workers)
    return _WORKERS, source


def worker_count() -> int:
    return _WORKERS


# ------------------------------------------------------------------ terminal
COLOR_RESET = "\033[0m"
BOLD = "\033[1m"


def color_256(code: int) -> str:
    return f"\033[38;5;{code}m"


def osc8_link(path: str, label: str | None = None) -> str:
    """
    Wrap `label` in an OSC-8 hyperlink pointing at the file URI of `path`.
    """
    target = os.path.abspath(path)
    uri = f"file://{urllib.parse.quote(target)}"
    text = target if label is None else label
    return f"\033]8;;{uri}\a{text}\033]8;;\a"


def human_readable_size(size: int) -> str:
    """Format a byte count with binary units, e.g. 2048 -> "2.00 KB"."""
    if size < 1024:
        return f"{size} B"
    value = float(size)
    unit = SIZE_UNITS[0]
    for unit in SIZE_UNITS[1:]:
        value /= 1024
        if value < 1024:
            break
    return f"{value:.2f} {unit}"


# ---------------------------------------------------------------- timestamps
def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Render a timestamp as ISO-8601 UTC; naive values are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# ---------------------------------------------------------------- filesystem
def ensure_directory(path: str):
    """
    Create a directory tree if missing.

    Raises:
        MediaHubError: If the directory cannot be created.
    """
    target = os.path.abspath(path)
    try:
        os.makedirs(target, exist_ok=True)
    except OSError as exc:
        log_error(f"Failed to create directory {target}: {exc}")
        raise MediaHubError(f"Unable to create directory: {target}") from exc


def temp_sibling(path: str) -> str:
    """Unique hidden temp path next to `path`, recognizable by TEMP_MARKER."""
    directory, name = os.path.split(os.path.abspath(path))
    return os.path.join(directory, f".{name}{TEMP_MARKER}{uuid.uuid4().hex}")


def remove_quietly(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as exc:
        log_warning(f"Unable to remove temporary file {path}: {exc}")


def atomic_copy(src: str, dst: str) -> str:
    """
    Copy a file so the destination either appears complete or not at all.

    The content lands in a hidden temp file beside the destination, is
    size-checked, and is then renamed into place. An existing destination
    is never overwritten.

    Args:
        src: Source file path.
        dst: Destination file path.

    Returns:
        Absolute destination path.

    Raises:
        CopyError: If the copy, verification or rename fails.
    """
    source = os.path.abspath(src)
    destination = os.path.abspath(dst)
    temp_path = temp_sibling(destination)
    try:
        ensure_directory(os.path.dirname(destination))
        shutil.copy2(source, temp_path)
        expected = os.path.getsize(source)
        written = os.path.getsize(temp_path)
        if written != expected:
            raise OSError(f"size mismatch after copy ({written} of {expected} bytes)")
        if os.path.lexists(destination):
            raise FileExistsError(f"destination appeared during copy: {destination}")
        os.rename(temp_path, destination)
    except (OSError, MediaHubError) as exc:
        remove_quietly(temp_path)
        log_error(f"Failed to copy {source} to {destination}: {exc}")
        raise CopyError(f"File copy failed: {exc}") from exc
    return destination


def path_violation_message(target: str, root: str, *, label: str) -> Optional[str]:
    """
    Explain why `target` is unsafe to write under `root`, or return None.

    A target is unsafe when it resolves outside the root or when any folder
    between the root and the target is a symlink.
    """
    base = os.path.abspath(root)
    candidate = os.path.abspath(target)
    try:
        inside = os.path.commonpath([base, candidate]) == base
    except ValueError:
        inside = False
    if not inside or candidate == base:
        return f"{label} '{candidate}' escapes library '{base}'."
    folder = os.path.dirname(candidate)
    while folder != base:
        if os.path.islink(folder):
            return f"{label} '{folder}' is a symlink under '{base}'."
        folder = os.path.dirname(folder)
    return None


# ------------------------------------------------------------------- logging
def _log(level: str, message: str) -> None:
    from . import reporting  # Local import to avoid circular dependency rules

    reporting.write_log([f"[{level}] {message}"])


def log_error(message: str):
    """Append an ERROR line to mediahub.log."""
    _log("ERROR", message)


def log_warning(message: str):
    """Append a WARNING line to mediahub.log."""
    _log("WARNING", message)


def log_info(message: str):
    _log("INFO", message)
