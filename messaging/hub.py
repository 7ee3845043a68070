"""
Broadcast registry of live client connections, stored in the database.

A ChannelHub keeps one channel per conversation. Clients acquire a
ClientConnection with hub.connect(user), subscribe it to conversations with
join(), and release it with close() (or by using it as a context manager).
Events delivered to a connection are buffered until the client drains them.

Connections, memberships and buffered events are rows
(messaging.models.ChannelConnection, ChannelMembership, ChannelEvent), so
every server process sees the same channels. Connections that stay idle
longer than idle_timeout are dropped, and a user holds at most
max_per_user connections; connecting past the cap drops the least recently
seen one.

The hub instance is owned by the messaging AppConfig and handed to the
MessagingGateway. Only the open/closed flag lives in the process.
"""

from __future__ import annotations

import logging
import uuid
from datetime import timedelta

from django.db import transaction
from django.utils import timezone

from core.errors import TransportUnavailable

from .models import ChannelConnection, ChannelEvent, ChannelMembership

logger = logging.getLogger(__name__)


DEFAULT_BUFFER_SIZE = 500
DEFAULT_IDLE_TIMEOUT = 300
DEFAULT_MAX_PER_USER = 5


class ClientConnection:
    """Handle on one registered connection."""

    def __init__(self, hub: ChannelHub, record: ChannelConnection):
        self.hub = hub
        self.record = record

    def __repr__(self):
        return f"<ClientConnection {self.client_id} user={self.record.user_id}>"

    def __eq__(self, other):
        return isinstance(other, ClientConnection) and other.client_id == self.client_id

    def __hash__(self):
        return hash(self.client_id)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    @property
    def client_id(self) -> str:
        return self.record.client_id

    @property
    def user(self):
        return self.record.user

    @property
    def closed(self) -> bool:
        return not ChannelConnection.objects.filter(pk=self.record.pk).exists()

    @property
    def conversation_ids(self) -> set[int]:
        return set(
            ChannelMembership.objects.filter(connection_id=self.record.pk)
            .values_list('conversation_id', flat=True)
        )

    def join(self, conversation_id: int) -> None:
        """Subscribe to a conversation channel. Does not replay history."""
        self.hub.subscribe(self, conversation_id)

    def drain(self) -> list[dict]:
        """Return and clear buffered events, ordered by conversation and sequence."""
        return self.hub.drain(self)

    def close(self) -> None:
        self.hub.release(self)


class ChannelHub:
    """Per-conversation broadcast registry."""

    def __init__(self, buffer_size: int = DEFAULT_BUFFER_SIZE,
                 idle_timeout: int = DEFAULT_IDLE_TIMEOUT,
                 max_per_user: int = DEFAULT_MAX_PER_USER,
                 clock=None):
        self.buffer_size = buffer_size
        self.idle_timeout = timedelta(seconds=idle_timeout)
        self.max_per_user = max_per_user
        self._clock = clock or timezone.now
        self._closed = False

    @property
    def is_open(self) -> bool:
        return not self._closed

    def ensure_open(self) -> None:
        if self._closed:
            raise TransportUnavailable()

    def _live(self):
        return ChannelConnection.objects.filter(last_seen_at__gte=self._clock() - self.idle_timeout)

    def connect(self, user) -> ClientConnection:
        """Acquire a connection for user. Release it with connection.close()."""
        self.ensure_open()
        now = self._clock()

        with transaction.atomic():
            self.sweep()
            record = ChannelConnection.objects.create(
                client_id=uuid.uuid4().hex, user=user, last_seen_at=now
            )
            surplus = list(
                ChannelConnection.objects.filter(user=user)
                .order_by('-last_seen_at', '-id')
                .values_list('pk', flat=True)[self.max_per_user:]
            )
            if surplus:
                ChannelConnection.objects.filter(pk__in=surplus).delete()

        if surplus:
            logger.info(
                f"Connection cap reached. Dropped {len(surplus)} connection(s), User: {user.email}"
            )
        logger.debug(f"Client connected. Client ID: {record.client_id}, User: {user.email}")
        return ClientConnection(self, record)

    def get(self, client_id: str) -> ClientConnection | None:
        """The live connection for client_id, marked as seen now; None if gone or idle."""
        touched = self._live().filter(client_id=client_id).update(last_seen_at=self._clock())
        if not touched:
            return None
        record = ChannelConnection.objects.select_related('user').filter(client_id=client_id).first()
        return ClientConnection(self, record) if record is not None else None

    def subscribe(self, connection: ClientConnection, conversation_id: int) -> None:
        self.ensure_open()
        with transaction.atomic():
            touched = (
                self._live()
                .filter(pk=connection.record.pk)
                .update(last_seen_at=self._clock())
            )
            if not touched:
                raise TransportUnavailable('This connection has been closed.')
            ChannelMembership.objects.get_or_create(
                connection_id=connection.record.pk, conversation_id=conversation_id
            )

    def release(self, connection: ClientConnection) -> None:
        deleted, _counts = ChannelConnection.objects.filter(pk=connection.record.pk).delete()
        if deleted:
            logger.debug(f"Client disconnected. Client ID: {connection.client_id}")

    def members(self, conversation_id: int) -> list[ClientConnection]:
        records = self._live().filter(
            memberships__conversation_id=conversation_id
        ).select_related('user')
        return [ClientConnection(self, record) for record in records]

    def broadcast(self, conversation_id: int, event: dict) -> int:
        """
        Buffer event for every live connection joined to the conversation.

        Each buffer keeps the latest buffer_size events. Returns the number of
        connections the event was delivered to; a closed hub delivers nothing.
        """
        if self._closed:
            return 0

        sequence = event.get('data', {}).get('sequence', 0)
        with transaction.atomic():
            recipients = list(
                self._live()
                .filter(memberships__conversation_id=conversation_id)
                .values_list('pk', flat=True)
            )
            ChannelEvent.objects.bulk_create([
                ChannelEvent(
                    connection_id=pk,
                    conversation_id=conversation_id,
                    sequence=sequence,
                    payload=event,
                )
                for pk in recipients
            ])
            for pk in recipients:
                overflow = list(
                    ChannelEvent.objects.filter(connection_id=pk)
                    .order_by('-id')
                    .values_list('pk', flat=True)[self.buffer_size:]
                )
                if overflow:
                    ChannelEvent.objects.filter(pk__in=overflow).delete()

        return len(recipients)

    def drain(self, connection: ClientConnection) -> list[dict]:
        with transaction.atomic():
            events = list(
                ChannelEvent.objects.select_for_update()
                .filter(connection_id=connection.record.pk)
                .order_by('conversation_id', 'sequence', 'id')
            )
            if events:
                ChannelEvent.objects.filter(pk__in=[e.pk for e in events]).delete()
            ChannelConnection.objects.filter(pk=connection.record.pk).update(
                last_seen_at=self._clock()
            )
        return [e.payload for e in events]

    def sweep(self) -> int:
        """Drop connections idle for longer than idle_timeout."""
        cutoff = self._clock() - self.idle_timeout
        stale = list(
            ChannelConnection.objects.filter(last_seen_at__lt=cutoff).values_list('pk', flat=True)
        )
        if not stale:
            return 0
        ChannelConnection.objects.filter(pk__in=stale).delete()
        logger.info(f"Dropped {len(stale)} idle connection(s) last seen before {cutoff.isoformat()}")
        return len(stale)

    def connection_count(self, user=None) -> int:
        queryset = self._live()
        if user is not None:
            queryset = queryset.filter(user=user)
        return queryset.count()

    def close(self) -> None:
        """Drop every connection. Sends fail with TransportUnavailable afterwards."""
        self._closed = True
        dropped = list(ChannelConnection.objects.values_list('pk', flat=True))
        ChannelConnection.objects.filter(pk__in=dropped).delete()
        logger.info(f"Channel hub closed. Dropped {len(dropped)} connection(s)")

    def reopen(self) -> None:
        self._closed = False
