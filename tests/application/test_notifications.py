"""Testes do SessionNotificationSubscriber."""

from __future__ import annotations

import pytest

from coach_sessions.application.notifications import (
    LoggingNotificationChannel,
    Notification,
    SessionNotificationSubscriber,
)
from coach_sessions.application.requests import CreateSessionRequest
from coach_sessions.domain.session.events import LifecycleEvent, SessionEventType


class RecordingChannel:
    name = "recording"

    def __init__(self) -> None:
        self.sent: list[Notification] = []

    async def send(self, notification: Notification) -> None:
        self.sent.append(notification)


class BrokenChannel:
    name = "broken"

    async def send(self, notification: Notification) -> None:
        raise ConnectionError("push gateway down")


@pytest.fixture()
def channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture()
def subscriber(channel) -> SessionNotificationSubscriber:
    return SessionNotificationSubscriber([channel])


@pytest.fixture()
def event_for(make_session, clock):
    def _event(event_type: SessionEventType, **details) -> LifecycleEvent:
        return LifecycleEvent.for_session(event_type, make_session(), clock.now, **details)

    return _event


class TestBuildNotifications:
    @pytest.mark.parametrize(
        ("event_type", "details", "recipients"),
        [
            (SessionEventType.SESSION_REQUESTED, {}, ["c1"]),
            (SessionEventType.SESSION_ACCEPTED, {}, ["u1"]),
            (SessionEventType.SESSION_STARTED, {}, ["u1", "c1"]),
            (SessionEventType.SESSION_ENDED, {"duration": 14}, ["u1"]),
            (SessionEventType.SESSION_RATED, {"rating": 5}, ["c1"]),
            (SessionEventType.SESSION_TIME_WARNING, {"remaining_minutes": 4}, ["u1", "c1"]),
            (SessionEventType.SESSION_CANCELLED, {"cancelled_by": "coach"}, ["u1"]),
            (SessionEventType.SESSION_CANCELLED, {"cancelled_by": "user"}, ["c1"]),
            (SessionEventType.SESSION_CANCELLED, {"cancelled_by": "system"}, ["u1", "c1"]),
            (
                SessionEventType.SESSION_CANCELLED,
                {"cancelled_by": "coach", "rejected": True},
                ["u1"],
            ),
        ],
    )
    def test_recipients(self, subscriber, event_for, event_type, details, recipients) -> None:
        notifications = subscriber.build_notifications(event_for(event_type, **details))

        assert [n.recipient_id for n in notifications] == recipients
        assert all(n.data == {"session_id": "session-0001", "type": str(event_type)} for n in notifications)

    def test_each_notification_owns_its_data(self, subscriber, event_for) -> None:
        user_note, coach_note = subscriber.build_notifications(
            event_for(SessionEventType.SESSION_STARTED)
        )

        user_note.data["seen"] = True

        assert user_note.data is not coach_note.data
        assert "seen" not in coach_note.data

    def test_ended_body_mentions_duration(self, subscriber, event_for) -> None:
        (notification,) = subscriber.build_notifications(
            event_for(SessionEventType.SESSION_ENDED, duration=14)
        )

        assert notification.body == "Your 14-minute session has ended. Please provide feedback."

    def test_rejection_title(self, subscriber, event_for) -> None:
        (notification,) = subscriber.build_notifications(
            event_for(SessionEventType.SESSION_CANCELLED, cancelled_by="coach", rejected=True)
        )

        assert notification.title == "Session Request Declined"

    def test_cancellation_body_names_canceller(self, subscriber, event_for) -> None:
        (notification,) = subscriber.build_notifications(
            event_for(SessionEventType.SESSION_CANCELLED, cancelled_by="user")
        )

        assert notification.body == "Session was cancelled by user"

    def test_device_token_attached(self, subscriber, event_for) -> None:
        subscriber.register_device_token("c1", "device-token-abc")

        (notification,) = subscriber.build_notifications(
            event_for(SessionEventType.SESSION_REQUESTED)
        )

        assert notification.device_token == "device-token-abc"
        assert subscriber.registered_tokens_count() == 1
        assert subscriber.unregister_device_token("c1") is True
        assert subscriber.unregister_device_token("c1") is False


class TestDelivery:
    @pytest.mark.asyncio
    async def test_attached_subscriber_receives_bus_events(self, subscriber, channel, bus, event_for):
        subscriber.attach(bus)

        result = bus.publish(
            SessionEventType.SESSION_STARTED, event_for(SessionEventType.SESSION_STARTED)
        )
        await bus.wait_for_pending()

        assert result.scheduled == 1
        assert [n.recipient_id for n in channel.sent] == ["u1", "c1"]

    def test_attach_is_idempotent(self, subscriber, bus) -> None:
        first = subscriber.attach(bus)
        second = subscriber.attach(bus)

        assert first == second
        assert bus.subscriber_count(SessionEventType.SESSION_REQUESTED) == 1
        assert bus.total_subscriber_count() == len(SessionNotificationSubscriber.subscribed_events)

    def test_detach(self, subscriber, bus) -> None:
        subscriber.attach(bus)
        subscriber.detach(bus)

        assert bus.total_subscriber_count() == 0

    def test_inactive_subscriber_ignores_events(self, subscriber, event_for) -> None:
        subscriber.deactivate()

        assert subscriber.process_event(
            SessionEventType.SESSION_REQUESTED, event_for(SessionEventType.SESSION_REQUESTED)
        ) is None
        assert subscriber.status() == {
            "subscriber_id": "session-notification-subscriber",
            "is_active": False,
        }

        subscriber.activate()
        assert subscriber.status()["is_active"] is True

    def test_unexpected_payload_is_ignored(self, subscriber) -> None:
        assert subscriber.process_event(SessionEventType.SESSION_REQUESTED, {"raw": True}) is None

    @pytest.mark.asyncio
    async def test_failing_channel_does_not_block_others(self, channel, event_for) -> None:
        subscriber = SessionNotificationSubscriber([BrokenChannel(), channel])

        pending = subscriber.process_event(
            SessionEventType.SESSION_ACCEPTED, event_for(SessionEventType.SESSION_ACCEPTED)
        )
        await pending

        assert [n.recipient_id for n in channel.sent] == ["u1"]

    @pytest.mark.asyncio
    async def test_default_channel_logs(self, event_for, caplog) -> None:
        subscriber = SessionNotificationSubscriber()

        with caplog.at_level("INFO"):
            await subscriber.process_event(
                SessionEventType.SESSION_REQUESTED, event_for(SessionEventType.SESSION_REQUESTED)
            )

        assert any(r.getMessage() == "notification_sent" for r in caplog.records)
        assert isinstance(subscriber._channels[0], LoggingNotificationChannel)

    @pytest.mark.asyncio
    async def test_lifecycle_to_notification(self, lifecycle, identity, user, bus, channel, subscriber):
        subscriber.attach(bus)
        identity.identity = user

        await lifecycle.create_session(
            CreateSessionRequest(user_id="u1", coach_id="c1", topic="Car engine noise")
        )
        await bus.wait_for_pending()

        assert [(n.recipient_id, n.title) for n in channel.sent] == [("c1", "New Session Request")]
