"""
erp/sales/notify.py
-------------------
Notifiers receive a plain message string and a category
('success' | 'error'), never structured data.
"""
from typing import List, Tuple


class RecordingNotifier:
    """Collects messages so the JSON response can carry them back to the till."""

    def __init__(self):
        self.messages: List[Tuple[str, str]] = []

    def __call__(self, message: str, category: str = 'info') -> None:
        self.messages.append((category, message))

    @property
    def last(self):
        return self.messages[-1] if self.messages else None
