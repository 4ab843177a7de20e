"""
Event and phase reporting for arcfix.

Records debug, warning, error and fatal notifications, grouped by phase,
to a JSONL log file for observability. The EventReporter never raises on
I/O problems: a broken event log must not stop a repair run.
"""

import json
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

DEBUG = "debug"
WARNING = "warning"
ERROR = "error"
FATAL = "fatal"


@dataclass
class Phase:
    """A named stage of a run and the messages recorded while it was current."""

    name: str
    started: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    finished: str | None = None
    messages: list[tuple[str, str]] = field(default_factory=list)


class EventReporter:
    """Collect run events in memory and append them to a JSONL log.

    Warnings and fatal errors are also echoed to stderr. The first fatal
    message is kept as the run's first cause.
    """

    def __init__(self, log_path: Path | None = None, echo: bool = True) -> None:
        self.log_path = log_path
        self.echo = echo
        self.phases: list[Phase] = []
        self.counters: dict[str, int] = {}
        self.fatal_message: str | None = None

    @property
    def current_phase(self) -> Phase | None:
        return self.phases[-1] if self.phases else None

    @property
    def has_fatal_error(self) -> bool:
        return self.fatal_message is not None

    def _write_event(self, level: str, message: str, **kwargs: Any) -> None:
        phase = self.current_phase
        if phase is not None and level != "phase":
            phase.messages.append((level, message))
        self.counters[level] = self.counters.get(level, 0) + 1

        if self.log_path is None:
            return
        try:
            record: dict[str, Any] = {
                "ts": datetime.now(timezone.utc).isoformat(),
                "phase": phase.name if phase is not None else None,
                "level": level,
                "message": message,
            }
            record.update(kwargs)
            with open(self.log_path, "a", encoding="utf-8") as f:
                f.write(json.dumps(record, default=str) + "\n")
        except OSError:
            pass  # Never abort a run for an event log write

    def new_phase(self, name: str) -> None:
        """Close the current phase, if any, and start a new one."""
        self.finish_phase()
        self.phases.append(Phase(name))
        self._write_event("phase", f"Starting phase: {name}")

    def finish_phase(self) -> None:
        phase = self.current_phase
        if phase is not None and phase.finished is None:
            phase.finished = datetime.now(timezone.utc).isoformat()

    def debug(self, message: str, **kwargs: Any) -> None:
        self._write_event(DEBUG, message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        if self.echo:
            print(f"[!] Warning: {message}", file=sys.stderr)
        self._write_event(WARNING, message, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        if self.echo:
            print(f"[!] Error: {message}", file=sys.stderr)
        self._write_event(ERROR, message, **kwargs)

    def fatal(self, message: str, **kwargs: Any) -> None:
        if self.echo:
            print(f"[!!!] FATAL: {message}", file=sys.stderr)
        if self.fatal_message is None:
            self.fatal_message = message
        self._write_event(FATAL, message, **kwargs)

    def history(self) -> list[dict[str, Any]]:
        """Return the phase history as plain data."""
        return [
            {
                "name": p.name,
                "started": p.started,
                "finished": p.finished,
                "messages": [{"level": lvl, "message": msg} for lvl, msg in p.messages],
            }
            for p in self.phases
        ]
