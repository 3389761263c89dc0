import json
import os
from datetime import datetime, timezone
from typing import Any, Dict

# Maintain per-session filename base so all writes go to the same timestamped file
_SESSION_FILE_BASE: Dict[str, str] = {}


def _ensure_dir(path: str) -> None:
    os.makedirs(path, exist_ok=True)


def _log_dir() -> str:
    override = os.getenv("BATTLE_LINE_LOG_DIR")
    if override:
        return os.path.abspath(override)
    # ../../logs/sessions relative to this file
    return os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "..", "logs", "sessions"))


def _file_base_for(session_id: str) -> str:
    """Return a stable '<timestamp>_<session_id>' base for this process."""
    if session_id in _SESSION_FILE_BASE:
        return _SESSION_FILE_BASE[session_id]
    ts = datetime.now().strftime("%Y%m%d-%H%M%S")
    base = f"{ts}_{session_id}"
    _SESSION_FILE_BASE[session_id] = base
    return base


def audit_write(session_id: str, record: Dict[str, Any]) -> None:
    """Append a structured JSON line to the per-session audit log.

    The file is stored under logs/sessions/<timestamp>_<session_id>.log relative
    to the project root, or under $BATTLE_LINE_LOG_DIR when set.
    """
    record = dict(record)
    record.setdefault("ts", datetime.now(timezone.utc).isoformat())
    record.setdefault("session_id", session_id)
    try:
        base_dir = _log_dir()
        _ensure_dir(base_dir)
        log_path = os.path.join(base_dir, f"{_file_base_for(session_id)}.log")
        with open(log_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(record, ensure_ascii=False) + "\n")
    except Exception:
        # Never raise from audit logging; it's best-effort.
        pass


def audit_close(session_id: str) -> None:
    """Forget the file base of a session that no longer exists."""
    _SESSION_FILE_BASE.pop(session_id, None)
