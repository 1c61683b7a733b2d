"""Custom metrics for the Library Service."""

import logfire

books_circulation = logfire.metric_counter(
    "library.books.circulation", description="Circulation events (checkout/return/renew)"
)

side_effect_failures = logfire.metric_counter(
    "library.side_effects.failures", description="Failed post-commit side effects by channel"
)

overdue_notifications = logfire.metric_counter(
    "library.overdue.notifications", description="Overdue notification attempts by outcome"
)


def record_circulation_event(event_type: str) -> None:
    """Record a checkout, return or renewal."""
    books_circulation.add(1, {"event_type": event_type})


def record_side_effect_failure(channel: str, action: str) -> None:
    side_effect_failures.add(1, {"channel": channel, "action": action})


def record_overdue_notification(outcome: str) -> None:
    overdue_notifications.add(1, {"outcome": outcome})
