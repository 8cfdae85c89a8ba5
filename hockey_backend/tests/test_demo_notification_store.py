"""
Tests for the demo-mode capture store.
"""

import threading

from hockey_backend.services.demo_notification_store import (
    DemoNotificationStore,
    get_demo_notification_store,
)


def test_drain_returns_captured_messages_once():
    store = DemoNotificationStore()
    store.add_email("a@example.com", "Subject A", "Body A")
    store.add_email("b@example.com", "Subject B", "<p>B</p>", is_html=True, recipient_kind="USER")
    store.add_sms("+420111222333", "Text", notification_type="MATCH_REMINDER")

    drained = store.get_and_clear()

    assert [e["to"] for e in drained["emails"]] == ["a@example.com", "b@example.com"]
    assert drained["emails"][1]["is_html"] is True
    assert drained["emails"][1]["recipient_kind"] == "USER"
    assert drained["sms"] == [
        {"to": "+420111222333", "text": "Text", "type": "MATCH_REMINDER"}
    ]
    assert store.get_and_clear() == {"emails": [], "sms": []}


def test_clear_discards_everything():
    store = DemoNotificationStore()
    store.add_sms("+1", "x")
    store.clear()
    assert store.get_and_clear() == {"emails": [], "sms": []}


def test_concurrent_writes_are_not_lost_by_draining():
    store = DemoNotificationStore()
    collected = []

    def writer(n):
        for i in range(200):
            store.add_sms(f"+{n}", str(i))

    def drainer():
        for _ in range(50):
            collected.extend(store.get_and_clear()["sms"])

    threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
    threads.append(threading.Thread(target=drainer))
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    collected.extend(store.get_and_clear()["sms"])

    assert len(collected) == 800


def test_global_store_is_shared():
    assert get_demo_notification_store() is get_demo_notification_store()
