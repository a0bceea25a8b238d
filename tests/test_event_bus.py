#!/usr/bin/env python3
"""
EventBus の単体テスト

実行: pytest tests/test_event_bus.py
"""

import os
import sys

# プロジェクトルートをパスに追加
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.event_bus import AuthEvent, AuthStateChange, EventBus


def test_publish_reaches_subscribers_in_order():
    bus = EventBus("test")
    received = []

    bus.subscribe(lambda event: received.append(("first", event.event)))
    bus.subscribe(lambda event: received.append(("second", event.event)))

    delivered = bus.publish(AuthStateChange(AuthEvent.SIGNED_IN))

    assert delivered == 2
    assert received == [("first", AuthEvent.SIGNED_IN), ("second", AuthEvent.SIGNED_IN)]


def test_unsubscribe_is_deterministic():
    bus = EventBus("test")
    received = []

    subscription = bus.subscribe(received.append)
    assert subscription.unsubscribe() is True
    assert subscription.unsubscribe() is False

    bus.publish(AuthStateChange(AuthEvent.SIGNED_OUT))

    assert received == []
    assert bus.subscriber_count() == 0


def test_failing_handler_does_not_block_others():
    bus = EventBus("test")
    received = []

    def broken(event):
        raise RuntimeError("handler bug")

    bus.subscribe(broken)
    bus.subscribe(received.append)

    delivered = bus.publish(AuthStateChange(AuthEvent.TOKEN_REFRESHED))

    assert delivered == 1
    assert len(received) == 1


def test_handler_may_unsubscribe_while_notified():
    bus = EventBus("test")
    calls = []
    holder = {}

    def once(event):
        calls.append(event)
        holder["sub"].unsubscribe()

    holder["sub"] = bus.subscribe(once)
    bus.publish(AuthStateChange(AuthEvent.SIGNED_IN))
    bus.publish(AuthStateChange(AuthEvent.SIGNED_IN))

    assert len(calls) == 1
