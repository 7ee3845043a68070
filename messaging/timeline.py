"""
Client-side reconciliation of conversation events.

Delivery of receive_message events is at-least-once and may arrive out of
order across reconnects. A client keeps a ConversationTimeline per
conversation: duplicates are dropped by message id and display order is the
server-assigned sequence. The UnreadBadge shows the server's unread counter
plus a tentative local delta until the next server read replaces it.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class ConversationTimeline:
    conversation_id: int
    _by_id: dict[int, dict] = field(default_factory=dict)

    def add(self, message: dict) -> bool:
        """
        Merge one message payload (a receive_message event's data or a
        history row). Returns False when it was already known.
        """
        if message.get('conversation_id') not in (None, self.conversation_id):
            return False
        message_id = message['id']
        if message_id in self._by_id:
            return False
        self._by_id[message_id] = message
        return True

    def extend(self, messages) -> int:
        return sum(1 for message in messages if self.add(message))

    @property
    def messages(self) -> list[dict]:
        return sorted(self._by_id.values(), key=lambda m: m['sequence'])

    @property
    def texts(self) -> list[str]:
        return [m['text'] for m in self.messages]

    @property
    def last_sequence(self) -> int:
        """Highest sequence seen, for history(after_sequence=...) on reconnect."""
        return max((m['sequence'] for m in self._by_id.values()), default=0)

    def __len__(self):
        return len(self._by_id)


@dataclass
class UnreadBadge:
    """Unread count where the server value always wins."""

    server_count: int = 0
    tentative_delta: int = 0

    @property
    def value(self) -> int:
        return max(0, self.server_count + self.tentative_delta)

    def apply_server_count(self, count: int) -> None:
        self.server_count = count
        self.tentative_delta = 0

    def incoming(self) -> None:
        """A message from the other party arrived while the thread was not open."""
        self.tentative_delta += 1

    def read_locally(self) -> None:
        """The user opened the thread; show zero until the server confirms."""
        self.tentative_delta = -self.server_count
