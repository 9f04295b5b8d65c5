# src/query_counter/bus.py
"""Fire-and-forget notification bus.

Notifications are delivered synchronously, in registration order, to every
registered subscriber plugin. Delivery never raises: a subscriber that
throws is logged and skipped, and the remaining subscribers still run.
Publishing with no subscribers is a no-op.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any

import pluggy
import structlog

from query_counter.errors import SubscriberRegistrationError
from query_counter.events import NotificationKind, ThresholdNotification
from query_counter.hookspecs import PROJECT_NAME, QueryCounterSpec, hookimpl

logger = structlog.get_logger(__name__)


class CallableSubscriber:
    """Adapts a plain callable to the subscriber hook, optionally filtered by kind."""

    def __init__(
        self,
        handler: Callable[[ThresholdNotification], Any],
        kinds: Iterable[NotificationKind | str] | None = None,
    ) -> None:
        self.handler = handler
        self.kinds = None if kinds is None else frozenset(NotificationKind(kind) for kind in kinds)

    @hookimpl
    def query_counter_notify(self, notification: ThresholdNotification) -> None:
        if self.kinds is None or notification.kind in self.kinds:
            self.handler(notification)

    def __repr__(self) -> str:
        return f"CallableSubscriber({self.handler!r})"


class NotificationBus:
    """Delivers threshold notifications to pluggy subscriber plugins.

    Example:
        bus = NotificationBus()
        received = []
        bus.subscribe(received.append, kinds=["query_time"])
        bus.publish(notification)
    """

    def __init__(self) -> None:
        self._plugin_manager = pluggy.PluginManager(PROJECT_NAME)
        self._plugin_manager.add_hookspecs(QueryCounterSpec)

    def register(self, plugin: object, name: str | None = None) -> None:
        """Register a subscriber plugin implementing query_counter_notify.

        Raises:
            SubscriberRegistrationError: If the plugin does not match the hook
                specification, declares a hook wrapper, or is already registered.
        """
        try:
            self._plugin_manager.register(plugin, name=name)
            self._plugin_manager.check_pending()
            self._reject_wrappers(plugin)
        except (pluggy.PluginValidationError, ValueError) as e:
            # PluginValidationError: unknown hook, wrong argument names or a hook wrapper
            # ValueError: plugin object or name already registered
            if isinstance(e, pluggy.PluginValidationError) and self._plugin_manager.is_registered(plugin):
                self._plugin_manager.unregister(plugin=plugin)
            raise SubscriberRegistrationError(name or repr(plugin), str(e)) from e
        logger.debug("Notification subscriber registered", subscriber=name or repr(plugin))

    def _reject_wrappers(self, plugin: object) -> None:
        # publish() calls implementations directly; a wrapper would never run
        for impl in self._plugin_manager.hook.query_counter_notify.get_hookimpls():
            if impl.plugin is plugin and (impl.hookwrapper or impl.wrapper):
                raise pluggy.PluginValidationError(plugin, "query_counter_notify must not be a hook wrapper")

    def unregister(self, plugin: object) -> None:
        """Remove a previously registered subscriber. Unknown plugins are ignored."""
        if self._plugin_manager.is_registered(plugin):
            self._plugin_manager.unregister(plugin=plugin)

    def subscribe(
        self,
        handler: Callable[[ThresholdNotification], Any],
        kinds: Iterable[NotificationKind | str] | None = None,
    ) -> CallableSubscriber:
        """Register a plain callable as a subscriber.

        Args:
            handler: Called with each notification
            kinds: Only deliver these kinds (all kinds if None)

        Returns:
            The wrapping plugin, for passing to unregister().
        """
        subscriber = CallableSubscriber(handler, kinds)
        self.register(subscriber)
        return subscriber

    @property
    def subscribers(self) -> list[object]:
        return [impl.plugin for impl in self._plugin_manager.hook.query_counter_notify.get_hookimpls()]

    def publish(self, notification: ThresholdNotification) -> None:
        """Deliver a notification to every subscriber. Never raises."""
        for impl in self._plugin_manager.hook.query_counter_notify.get_hookimpls():
            kwargs = {"notification": notification} if "notification" in impl.argnames else {}
            try:
                impl.function(**kwargs)
            except Exception as e:
                logger.warning(
                    "Notification subscriber failed",
                    subscriber=impl.plugin_name,
                    notification=notification.name,
                    notification_id=notification.notification_id,
                    error=str(e),
                )
