# src/query_counter/hookspecs.py
"""pluggy hook specifications for notification subscribers.

Subscribers implement these hooks to receive threshold notifications.

Usage (implementing a subscriber plugin):
    from query_counter.hookspecs import hookimpl

    class SlowQueryReporter:
        @hookimpl
        def query_counter_notify(self, notification):
            report(notification.name, notification.payload)

    query_counter.notification_bus().register(SlowQueryReporter())
"""

from typing import TYPE_CHECKING

import pluggy

if TYPE_CHECKING:
    from query_counter.events import ThresholdNotification

PROJECT_NAME = "query_counter"

hookspec = pluggy.HookspecMarker(PROJECT_NAME)

hookimpl = pluggy.HookimplMarker(PROJECT_NAME)


class QueryCounterSpec:
    """Hook specifications for notification subscribers."""

    @hookspec
    def query_counter_notify(self, notification: "ThresholdNotification") -> None:
        """Receive one threshold notification.

        Called synchronously from the execution context that triggered the
        notification, so a subscriber may inspect the current scope. Must be
        cheap; hand slow work off elsewhere. Exceptions are logged and
        isolated from other subscribers and from the counted unit of work.

        Args:
            notification: The notification that fired
        """
