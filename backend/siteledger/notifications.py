# Overview: Publish-by-topic notification sinks used by the workflow services.

"""
Notification sinks.

Workflow components receive a sink at construction time and call
publish_safely() after their transaction commits. Delivery (websocket fan-out,
mobile push, email) lives behind the sink and is not part of this package.

Topics:
- company_<id>: every user of a tenant
- project_<id>: users following a project
"""

import logging

logger = logging.getLogger(__name__)


def company_topic(company_id: int) -> str:
    return f"company_{company_id}"


def project_topic(project_id: int) -> str:
    return f"project_{project_id}"


class NotificationSink:
    """Interface: publish(topic, event, payload)."""

    def publish(self, topic: str, event: str, payload: dict) -> None:
        raise NotImplementedError


class LoggingNotificationSink(NotificationSink):
    """Default sink: writes each event to the application log."""

    def publish(self, topic: str, event: str, payload: dict) -> None:
        logger.info("Publishing event '%s' to %s: %s", event, topic, payload)


class RecordingNotificationSink(NotificationSink):
    """Keeps published events in memory. Used by tests."""

    def __init__(self):
        self.events: list[tuple[str, str, dict]] = []

    def publish(self, topic: str, event: str, payload: dict) -> None:
        self.events.append((topic, event, dict(payload)))

    def of_type(self, event: str) -> list[tuple[str, str, dict]]:
        return [e for e in self.events if e[1] == event]

    def topics(self, event: str) -> list[str]:
        return [topic for topic, name, _ in self.events if name == event]

    def clear(self) -> None:
        self.events.clear()


def publish_project_event(sink: NotificationSink | None, company_id: int, project_id: int | None,
                          event: str, payload: dict) -> None:
    """Publish to the tenant topic, then to the project topic when there is one."""
    publish_safely(sink, company_topic(company_id), event, payload)
    if project_id is not None:
        publish_safely(sink, project_topic(project_id), event, payload)


def publish_safely(sink: NotificationSink | None, topic: str, event: str, payload: dict) -> None:
    """
    Fire-and-forget publish.

    A failing sink is logged and swallowed; the state transition that
    triggered the event has already committed.
    """
    if sink is None:
        return
    try:
        sink.publish(topic, event, payload)
    except Exception:
        logger.exception("Failed to publish event '%s' to %s", event, topic)
