"""
Puzzle Forge - Logging
Module loggers and the per-session JSONL event log.
"""

import json
import hashlib
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Any


ROOT_LOGGER_NAME = "puzzle_forge"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger under the package namespace.

    Args:
        name: Usually the module's __name__.

    Returns:
        Logger instance.
    """
    if name != ROOT_LOGGER_NAME and not name.startswith(ROOT_LOGGER_NAME + "."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)


def setup_logging(level: str = "INFO", log_file: Optional[Path] = None) -> logging.Logger:
    """Configure console (and optional file) output for scripts."""
    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT)
    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    root.addHandler(console)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    return root


class SessionLogger:
    """
    Append-only JSONL log of pipeline events for one session.

    Every entry carries a timestamp, a stage name and an event payload.
    Entries are kept in memory as well so callers can look them up
    without re-reading the file.
    """

    def __init__(self, sessions_dir: Path, session_id: str):
        """
        Initialize session logger.

        Args:
            sessions_dir: Directory for session log files.
            session_id: Identifier used as the file name.
        """
        self.session_id = session_id
        self.sessions_dir = Path(sessions_dir)
        self.sessions_dir.mkdir(parents=True, exist_ok=True)
        self.log_file = self.sessions_dir / f"{session_id}.jsonl"
        self._entries: List[Dict[str, Any]] = []

    @staticmethod
    def compute_hash(text: str) -> str:
        """Stable short hash for identifying inputs across entries."""
        return hashlib.sha256(text.encode("utf-8")).hexdigest()[:16]

    def log(self, stage: str, event: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Append an entry.

        Args:
            stage: Pipeline stage name.
            event: Short event name.
            data: JSON-serializable payload.

        Returns:
            The stored entry.
        """
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "session_id": self.session_id,
            "stage": stage,
            "event": event,
            "data": data or {}
        }
        self._entries.append(entry)
        with open(self.log_file, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry, ensure_ascii=False, default=str) + "\n")
        return entry

    def find_entry(self, stage: str, event: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Return the most recent entry for a stage (and event, if given)."""
        for entry in reversed(self._entries):
            if entry["stage"] == stage and (event is None or entry["event"] == event):
                return entry
        return None

    def get_session_summary(self) -> Dict[str, Any]:
        """Counts of logged events per stage."""
        stages: Dict[str, int] = {}
        for entry in self._entries:
            stages[entry["stage"]] = stages.get(entry["stage"], 0) + 1
        return {
            "session_id": self.session_id,
            "log_file": str(self.log_file),
            "entries": len(self._entries),
            "stages": stages
        }
