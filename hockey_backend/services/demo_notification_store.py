"""
In-memory capture of outgoing email and SMS while demo mode is active.

The dispatcher appends here instead of calling the transports; the demo
frontend drains the store to display what would have been sent.
"""

import threading
from typing import Dict, List, Optional


class DemoNotificationStore:
    """
    Lock-guarded buffer of captured messages.

    get_and_clear() snapshots and resets under the same lock, so a message
    appended concurrently lands either in the snapshot or in the next drain.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._emails: List[Dict] = []
        self._sms: List[Dict] = []

    def add_email(
        self,
        to: str,
        subject: str,
        body: str,
        is_html: bool = False,
        notification_type: Optional[str] = None,
        recipient_kind: Optional[str] = None,
    ) -> None:
        entry = {
            "to": to,
            "subject": subject,
            "body": body,
            "is_html": is_html,
            "type": notification_type,
            "recipient_kind": recipient_kind,
        }
        with self._lock:
            self._emails.append(entry)

    def add_sms(self, to: str, text: str, notification_type: Optional[str] = None) -> None:
        entry = {"to": to, "text": text, "type": notification_type}
        with self._lock:
            self._sms.append(entry)

    def get_and_clear(self) -> Dict[str, List[Dict]]:
        """Return everything captured so far and empty the store."""
        with self._lock:
            snapshot = {"emails": self._emails, "sms": self._sms}
            self._emails = []
            self._sms = []
        return snapshot

    def clear(self) -> None:
        with self._lock:
            self._emails = []
            self._sms = []


# Global store instance
_demo_notification_store: Optional[DemoNotificationStore] = None
_store_lock = threading.Lock()


def get_demo_notification_store() -> DemoNotificationStore:
    """
    Get the global demo notification store instance.

    Returns:
        DemoNotificationStore instance
    """
    global _demo_notification_store
    with _store_lock:
        if _demo_notification_store is None:
            _demo_notification_store = DemoNotificationStore()
    return _demo_notification_store
