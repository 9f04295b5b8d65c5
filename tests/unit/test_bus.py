# tests/unit/test_bus.py
"""Unit tests for NotificationBus delivery and subscriber isolation."""

from collections.abc import Iterator

import pytest
from structlog.testing import capture_logs

from query_counter.bus import NotificationBus
from query_counter.errors import SubscriberRegistrationError
from query_counter.events import NotificationKind, ThresholdNotification, TransactionTimeExceeded
from query_counter.hookspecs import hookimpl
from query_counter.subscribers import LoggingSubscriber
from query_counter.trace import CallSiteTrace


def make_notification(kind: NotificationKind = NotificationKind.TRANSACTION_TIME) -> ThresholdNotification:
    return TransactionTimeExceeded(
        kind=kind,
        notification_id="abc123",
        start_time=1.0,
        end_time=3.0,
        threshold=1.0,
        observed=2.0,
        trace=CallSiteTrace(("app/jobs.py:7:in run",)),
    )


class RecordingPlugin:
    def __init__(self) -> None:
        self.received: list[ThresholdNotification] = []

    @hookimpl
    def query_counter_notify(self, notification: ThresholdNotification) -> None:
        self.received.append(notification)


class ExplodingPlugin:
    @hookimpl
    def query_counter_notify(self, notification: ThresholdNotification) -> None:
        raise RuntimeError("subscriber bug")


class MisspelledPlugin:
    @hookimpl
    def query_counter_notified(self, notification: ThresholdNotification) -> None:
        pass


class WrapperPlugin:
    @hookimpl(wrapper=True)
    def query_counter_notify(self, notification: ThresholdNotification) -> Iterator[None]:
        return (yield)


class OldStyleWrapperPlugin:
    @hookimpl(hookwrapper=True)
    def query_counter_notify(self, notification: ThresholdNotification) -> Iterator[None]:
        yield


class TestPublish:
    def test_no_subscribers_is_a_no_op(self) -> None:
        NotificationBus().publish(make_notification())

    def test_plugin_receives_notification(self) -> None:
        bus = NotificationBus()
        plugin = RecordingPlugin()
        bus.register(plugin)
        notification = make_notification()

        bus.publish(notification)

        assert plugin.received == [notification]

    def test_failing_subscriber_is_isolated_and_logged(self) -> None:
        bus = NotificationBus()
        bus.register(ExplodingPlugin())
        healthy = RecordingPlugin()
        bus.register(healthy)

        with capture_logs() as logs:
            bus.publish(make_notification())

        assert len(healthy.received) == 1
        failures = [log for log in logs if log["event"] == "Notification subscriber failed"]
        assert len(failures) == 1
        assert failures[0]["log_level"] == "warning"
        assert failures[0]["error"] == "subscriber bug"
        assert failures[0]["notification"] == "query_counter.transaction_time"


class TestSubscribe:
    def test_callable_subscriber(self) -> None:
        bus = NotificationBus()
        received: list[ThresholdNotification] = []
        bus.subscribe(received.append)
        bus.publish(make_notification())
        assert len(received) == 1

    def test_kind_filter(self) -> None:
        bus = NotificationBus()
        received: list[ThresholdNotification] = []
        bus.subscribe(received.append, kinds=["query_time"])

        bus.publish(make_notification(NotificationKind.TRANSACTION_TIME))
        bus.publish(make_notification(NotificationKind.QUERY_TIME))

        assert [n.kind for n in received] == [NotificationKind.QUERY_TIME]

    def test_unknown_kind_in_filter_is_rejected(self) -> None:
        with pytest.raises(ValueError):
            NotificationBus().subscribe(print, kinds=["slow"])

    def test_unsubscribe(self) -> None:
        bus = NotificationBus()
        received: list[ThresholdNotification] = []
        subscriber = bus.subscribe(received.append)
        bus.unregister(subscriber)
        bus.publish(make_notification())
        assert received == []
        assert bus.subscribers == []


class TestRegister:
    def test_hook_mismatch_is_rejected(self) -> None:
        bus = NotificationBus()
        plugin = MisspelledPlugin()
        with pytest.raises(SubscriberRegistrationError):
            bus.register(plugin)
        assert bus.subscribers == []

    def test_duplicate_registration_is_rejected(self) -> None:
        bus = NotificationBus()
        plugin = RecordingPlugin()
        bus.register(plugin)
        with pytest.raises(SubscriberRegistrationError):
            bus.register(plugin)

    @pytest.mark.parametrize("plugin_class", [WrapperPlugin, OldStyleWrapperPlugin])
    def test_hook_wrappers_are_rejected(self, plugin_class: type) -> None:
        bus = NotificationBus()
        healthy = RecordingPlugin()
        bus.register(healthy)

        with pytest.raises(SubscriberRegistrationError, match="hook wrapper"):
            bus.register(plugin_class())

        assert bus.subscribers == [healthy]
        bus.publish(make_notification())
        assert len(healthy.received) == 1

    def test_unregister_unknown_plugin_is_ignored(self) -> None:
        NotificationBus().unregister(RecordingPlugin())


def test_logging_subscriber_logs_warning() -> None:
    bus = NotificationBus()
    bus.register(LoggingSubscriber())

    with capture_logs() as logs:
        bus.publish(make_notification())

    [log] = [log for log in logs if log["event"] == "Database threshold exceeded"]
    assert log["log_level"] == "warning"
    assert log["kind"] == "transaction_time"
    assert log["caller"] == "app/jobs.py:7:in run"
    assert log["observed"] == 2.0
