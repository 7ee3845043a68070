"""
Tests for the channel hub and client connections.
"""

from datetime import timedelta

import pytest
from django.utils import timezone

from core.errors import TransportUnavailable
from messaging.hub import ChannelHub
from messaging.models import ChannelConnection, ChannelEvent


def _event(conversation_id, sequence, text='hi'):
    return {
        'event': 'receive_message',
        'data': {'conversation_id': conversation_id, 'sequence': sequence, 'text': text},
    }


class FakeClock:
    def __init__(self):
        self.now = timezone.now()

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def channel_hub(db):
    return ChannelHub(buffer_size=10)


@pytest.fixture
def conversations(gateway, student, tutor, other_tutor, approved_tuition):
    return [
        gateway.open_conversation(student, tutor, approved_tuition.id),
        gateway.open_conversation(student, other_tutor, approved_tuition.id),
    ]


@pytest.mark.django_db
class TestChannelHub:

    def test_broadcast_reaches_joined_connections_only(self, channel_hub, conversations, student, tutor):
        conversation = conversations[0]
        joined = channel_hub.connect(student)
        other = channel_hub.connect(tutor)
        joined.join(conversation.id)

        delivered = channel_hub.broadcast(conversation.id, _event(conversation.id, 1))

        assert delivered == 1
        assert joined.drain() == [_event(conversation.id, 1)]
        assert other.drain() == []

    def test_join_does_not_replay(self, channel_hub, conversations, student, tutor):
        conversation = conversations[0]
        early = channel_hub.connect(student)
        early.join(conversation.id)
        channel_hub.broadcast(conversation.id, _event(conversation.id, 1))

        late = channel_hub.connect(tutor)
        late.join(conversation.id)

        assert late.drain() == []
        assert len(early.drain()) == 1

    def test_drain_orders_by_sequence_and_clears(self, channel_hub, conversations, student):
        first, second = sorted(c.id for c in conversations)
        connection = channel_hub.connect(student)
        connection.join(first)
        connection.join(second)
        for event in (_event(second, 1), _event(first, 2), _event(first, 1)):
            channel_hub.broadcast(event['data']['conversation_id'], event)

        drained = connection.drain()

        assert [(e['data']['conversation_id'], e['data']['sequence']) for e in drained] == [
            (first, 1), (first, 2), (second, 1),
        ]
        assert connection.drain() == []
        assert not ChannelEvent.objects.exists()

    def test_buffer_keeps_latest_events(self, channel_hub, conversations, student):
        conversation = conversations[0]
        connection = channel_hub.connect(student)
        connection.join(conversation.id)
        for sequence in range(1, 16):
            channel_hub.broadcast(conversation.id, _event(conversation.id, sequence))

        sequences = [e['data']['sequence'] for e in connection.drain()]

        assert sequences == list(range(6, 16))

    def test_context_manager_releases_connection(self, channel_hub, conversations, student):
        conversation = conversations[0]
        with channel_hub.connect(student) as connection:
            connection.join(conversation.id)
            client_id = connection.client_id
            assert channel_hub.get(client_id) == connection
            assert connection.conversation_ids == {conversation.id}

        assert connection.closed
        assert channel_hub.get(client_id) is None
        assert channel_hub.members(conversation.id) == []

    def test_closed_connection_cannot_join(self, channel_hub, conversations, student):
        connection = channel_hub.connect(student)
        connection.close()

        with pytest.raises(TransportUnavailable):
            connection.join(conversations[0].id)

    def test_closed_hub_refuses_connections(self, channel_hub, conversations, student, tutor):
        connection = channel_hub.connect(student)
        connection.join(conversations[0].id)

        channel_hub.close()

        assert not channel_hub.is_open
        assert connection.closed
        assert channel_hub.broadcast(conversations[0].id, _event(conversations[0].id, 1)) == 0
        with pytest.raises(TransportUnavailable):
            channel_hub.connect(tutor)
        with pytest.raises(TransportUnavailable):
            channel_hub.ensure_open()

        channel_hub.reopen()
        assert channel_hub.connect(tutor).client_id


# ============================================================================
# Shared registry
# ============================================================================

@pytest.mark.django_db
class TestSharedRegistry:
    """Two hubs stand in for two server processes over one database."""

    def test_broadcast_from_another_hub_is_delivered(self, conversations, student):
        conversation = conversations[0]
        web_worker = ChannelHub(buffer_size=10)
        other_worker = ChannelHub(buffer_size=10)
        connection = web_worker.connect(student)
        connection.join(conversation.id)

        delivered = other_worker.broadcast(conversation.id, _event(conversation.id, 1))

        assert delivered == 1
        assert connection.drain() == [_event(conversation.id, 1)]

    def test_connection_is_found_by_another_hub(self, conversations, student):
        connection = ChannelHub().connect(student)

        found = ChannelHub().get(connection.client_id)

        assert found == connection
        assert found.user == student


# ============================================================================
# Connection limits
# ============================================================================

@pytest.mark.django_db
class TestConnectionLimits:

    def test_connections_per_user_are_capped(self, student, tutor):
        channel_hub = ChannelHub(max_per_user=5)

        connections = [channel_hub.connect(student) for _ in range(100)]
        channel_hub.connect(tutor)

        assert channel_hub.connection_count(student) == 5
        assert ChannelConnection.objects.filter(user=student).count() == 5
        assert channel_hub.connection_count() == 6
        # The most recent connections survive
        assert channel_hub.get(connections[-1].client_id) is not None
        assert channel_hub.get(connections[0].client_id) is None

    def test_idle_connections_expire(self, student, tutor):
        clock = FakeClock()
        channel_hub = ChannelHub(idle_timeout=300, clock=clock)
        idle = channel_hub.connect(student)

        clock.advance(seconds=301)

        assert channel_hub.get(idle.client_id) is None
        channel_hub.connect(tutor)
        assert not ChannelConnection.objects.filter(client_id=idle.client_id).exists()

    def test_activity_keeps_connection_alive(self, student, conversations):
        clock = FakeClock()
        channel_hub = ChannelHub(idle_timeout=300, clock=clock)
        active = channel_hub.connect(student)

        for _ in range(3):
            clock.advance(seconds=200)
            active.drain()

        assert channel_hub.sweep() == 0
        assert channel_hub.get(active.client_id) is not None

    def test_idle_connection_receives_nothing(self, student, conversations):
        clock = FakeClock()
        channel_hub = ChannelHub(idle_timeout=300, clock=clock)
        connection = channel_hub.connect(student)
        connection.join(conversations[0].id)

        clock.advance(seconds=600)

        assert channel_hub.broadcast(conversations[0].id, _event(conversations[0].id, 1)) == 0
        with pytest.raises(TransportUnavailable):
            connection.join(conversations[1].id)
