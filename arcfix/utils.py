"""
This module contains generic helpers for arcfix.

It includes the console/file tee used by the CLI, source tree copying
utilities, and persistence of cumulative run statistics.
"""

import json
import shutil
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, TextIO

RUN_STATS_FILE = Path("arc_run_stats.json")


def _default_run_stats() -> dict[str, Any]:
    """Return the canonical default run statistics structure."""
    return {
        "start_time": datetime.now(timezone.utc).isoformat(),
        "last_update_time": None,
        "total_runs": 0,
        "fixes_found": 0,
        "generations_evolved": 0,
        "individuals_generated": 0,
        "individuals_evaluated": 0,
        "test_suite_executions": 0,
    }


def load_run_stats(path: Path = RUN_STATS_FILE) -> dict[str, Any]:
    """
    Load the cumulative run statistics from the JSON file.
    Returns a default structure if the file doesn't exist or is unreadable.
    """
    if not path.is_file():
        return _default_run_stats()
    try:
        with open(path, "r", encoding="utf-8") as f:
            stats: dict[str, Any] = json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        print(
            f"[!] Warning: Could not load run stats file. Starting fresh. Error: {e}",
            file=sys.stderr,
        )
        return _default_run_stats()
    for key, value in _default_run_stats().items():
        if key != "start_time":
            stats.setdefault(key, value)
    return stats


def save_run_stats(stats: dict[str, Any], path: Path = RUN_STATS_FILE) -> None:
    """Save the run statistics to the JSON file."""
    stats["last_update_time"] = datetime.now(timezone.utc).isoformat()
    try:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(stats, f, indent=2, sort_keys=True)
    except OSError as e:
        print(f"[!] Warning: Could not save run stats: {e}", file=sys.stderr)


def find_source_files(root: Path, suffix: str = ".java") -> list[str]:
    """Return the sorted relative paths of all files under ``root`` ending in ``suffix``."""
    root = Path(root)
    return sorted(p.relative_to(root).as_posix() for p in root.rglob(f"*{suffix}") if p.is_file())


def copy_tree(src: Path, dst: Path) -> None:
    """Replace ``dst`` with a full copy of the directory ``src``."""
    src, dst = Path(src), Path(dst)
    if src.resolve() == dst.resolve():
        return
    if not src.is_dir():
        raise NotADirectoryError(f"Source is not a directory: {src}")
    remove_tree(dst)
    shutil.copytree(src, dst)


def copy_files(src_root: Path, dst_root: Path, rel_paths: Iterable[str]) -> None:
    """Copy each relative path from ``src_root`` to ``dst_root``, creating parents.

    Raises FileNotFoundError if a source file is missing.
    """
    for rel in rel_paths:
        dst = Path(dst_root) / rel
        dst.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(Path(src_root) / rel, dst)


def remove_tree(path: Path) -> None:
    """Delete a file or directory tree if it exists."""
    path = Path(path)
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    elif path.exists() or path.is_symlink():
        path.unlink()


class TeeLogger:
    """
    A file-like object that writes to both a file and another stream
    (like the original stdout), and flushes immediately.

    Consecutive identical lines are collapsed into one line with a (×N)
    suffix. When verbose=False, per-run and per-mutant detail lines are
    dropped from both outputs.
    """

    _QUIET_SUPPRESS_PREFIXES: tuple[str, ...] = (
        "    -> Run #",
        "    -> Compiling",
        "    -> Applying",
        "    -> Skipping",
        "    -> Reusing",
        "  [~] Trying",
    )

    def __init__(
        self,
        file_path: str | Path,
        original_stream: TextIO,
        verbose: bool = True,
    ) -> None:
        self.original_stream = original_stream
        self.log_file = open(file_path, "w", encoding="utf-8")
        self.verbose = verbose
        # The last line written, without its trailing newline
        self._last_line: str | None = None
        self._repeat_count = 0
        # print() sends its trailing "\n" as a separate write
        self._awaiting_newline = False
        self._last_was_suppressed = False

    def _is_suppressed(self, line: str) -> bool:
        if self.verbose:
            return False
        return line.startswith(self._QUIET_SUPPRESS_PREFIXES)

    def _emit(self, text: str) -> None:
        self.original_stream.write(text)
        self.log_file.write(text)

    def _flush_repeat(self) -> None:
        if self._last_line is None:
            return
        suffix = f" (×{self._repeat_count})" if self._repeat_count > 1 else ""
        self._emit(self._last_line + suffix + "\n")
        self._do_flush()
        self._last_line = None
        self._repeat_count = 0

    def write(self, message: str) -> None:
        """Write a message to both streams, collapsing repeated lines."""
        if not message:
            return
        if message == "\n":
            if self._last_was_suppressed:
                self._last_was_suppressed = False
                return
            if self._awaiting_newline:
                self._awaiting_newline = False
                return
            self._flush_repeat()
            self._emit(message)
            self._do_flush()
            return

        if self._is_suppressed(message):
            self._last_was_suppressed = True
            return
        self._last_was_suppressed = False

        stripped = message.rstrip("\n")
        self._awaiting_newline = not message.endswith("\n")
        if "\n" in stripped:
            # Multi-line blocks (headers, tracebacks) are never collapsed
            self._flush_repeat()
            self._emit(stripped + "\n")
            self._do_flush()
            return

        if stripped == self._last_line:
            self._repeat_count += 1
            return

        self._flush_repeat()
        self._last_line = stripped
        self._repeat_count = 1

    def _do_flush(self) -> None:
        self.original_stream.flush()
        self.log_file.flush()

    def flush(self) -> None:
        """Flush any buffered repeat and both underlying streams."""
        self._flush_repeat()
        self._do_flush()

    def close(self) -> None:
        """Flush any buffered repeat and close the log file."""
        self.flush()
        self.log_file.close()

    @property
    def encoding(self) -> str:
        return getattr(self.original_stream, "encoding", "utf-8")

    def isatty(self) -> bool:
        return hasattr(self.original_stream, "isatty") and self.original_stream.isatty()
