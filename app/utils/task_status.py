# app/utils/task_status.py
# Shared task-status helpers so analytics and reports agree on what "done" means

import re
from typing import Optional

DONE = "done"
IN_PROGRESS = "in_progress"
TODO = "todo"
UNKNOWN = "unknown"

_ALIASES = {
    "done": DONE,
    "completed": DONE,
    "complete": DONE,
    "in_progress": IN_PROGRESS,
    "inprogress": IN_PROGRESS,
    "in_process": IN_PROGRESS,
    "todo": TODO,
    "to_do": TODO,
}


def normalize_task_status(status: Optional[str]) -> str:
    """Fold a free-form status into todo / in_progress / done, or "unknown"."""
    value = re.sub(r"\s+", "_", str(status or "").strip().lower()).replace("-", "_")
    if not value:
        return UNKNOWN
    return _ALIASES.get(value, UNKNOWN)


def is_done(status: Optional[str]) -> bool:
    return normalize_task_status(status) == DONE


def is_in_progress(status: Optional[str]) -> bool:
    return normalize_task_status(status) == IN_PROGRESS


def is_todo(status: Optional[str]) -> bool:
    # Unrecognised statuses count as not started
    return normalize_task_status(status) in (TODO, UNKNOWN)
