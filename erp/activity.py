"""
erp/activity.py
---------------
Audit events ("who did what to which record").

Components that emit audit events take an ActivityLogger as a
constructor argument; there is no process-wide logger instance.
"""
import json
import logging
from dataclasses import asdict, dataclass, field
from typing import List, Optional, Protocol


@dataclass
class ActivityEvent:
    action:        str                    # e.g. 'sale.created'
    resource_type: str                    # e.g. 'sale'
    resource_id:   Optional[str] = None
    resource_name: Optional[str] = None
    description:   Optional[str] = None
    user_name:     Optional[str] = None
    new_values:    dict = field(default_factory=dict)


class ActivityLogger(Protocol):
    def log_activity(self, event: ActivityEvent) -> None:
        ...


class AppActivityLogger:
    """Writes each event as one structured line on a `logging` logger."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger('erp.activity')

    def log_activity(self, event: ActivityEvent) -> None:
        self.logger.info(f"ACTIVITY {event.action} | {json.dumps(asdict(event), default=str)}")


class RecordingActivityLogger:
    """Keeps events in memory; handy for tests and previews."""

    def __init__(self):
        self.events: List[ActivityEvent] = []

    def log_activity(self, event: ActivityEvent) -> None:
        self.events.append(event)
