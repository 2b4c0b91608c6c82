# lungsplit/core/reporting.py
# Diagnostic sinks for the separation algorithms.
# Reporting is fire-and-forget: a failing sink never interrupts a computation.

from __future__ import annotations

import sys
from typing import Callable, List, Optional, Tuple

# Kinds of message passed to a sink
MESSAGE = "message"
VERBOSE = "verbose"

# (kind, identifier, text) -> None
ReportCallback = Callable[[str, Optional[str], str], None]


class Reporting:
    """Base sink. Discards everything; subclasses override _emit()."""

    def show_message(self, identifier: str, message: str) -> None:
        self._safe_emit(MESSAGE, identifier, message)

    def log_verbose(self, message: str) -> None:
        self._safe_emit(VERBOSE, None, message)

    def _safe_emit(self, kind: str, identifier: Optional[str], message: str) -> None:
        try:
            self._emit(kind, identifier, message)
        except Exception as e:
            print(f"Warning: reporting sink failed: {e}", file=sys.stderr, flush=True)

    def _emit(self, kind: str, identifier: Optional[str], message: str) -> None:
        pass


class ConsoleReporting(Reporting):
    """Prints messages to stdout. Verbose lines only when verbose=True."""

    def __init__(self, verbose: bool = False):
        self.verbose = bool(verbose)

    def _emit(self, kind, identifier, message):
        if kind == VERBOSE:
            if self.verbose:
                print(f"    {message}", flush=True)
            return
        print(f"[{identifier}] {message}", flush=True)


class RecordingReporting(Reporting):
    """Keeps every message in memory as (kind, identifier, text)."""

    def __init__(self):
        self.records: List[Tuple[str, Optional[str], str]] = []

    def _emit(self, kind, identifier, message):
        self.records.append((kind, identifier, message))

    @property
    def messages(self) -> List[str]:
        return [text for kind, _, text in self.records if kind == MESSAGE]

    @property
    def verbose_messages(self) -> List[str]:
        return [text for kind, _, text in self.records if kind == VERBOSE]


class CallbackReporting(Reporting):
    """Forwards every message to a user callable."""

    def __init__(self, callback: ReportCallback):
        self.callback = callback

    def _emit(self, kind, identifier, message):
        self.callback(kind, identifier, message)


def ensure_reporting(reporting: Optional[Reporting]) -> Reporting:
    """None -> silent sink."""
    return reporting if reporting is not None else Reporting()
