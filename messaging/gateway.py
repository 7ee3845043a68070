"""
Messaging gateway: conversation provisioning, message append, unread
tracking and broadcast to live client connections.

Message append is serialized on the Conversation row with
select_for_update(); the sequence assigned under that lock is the display
order every client converges on. Broadcast happens after the transaction
commits, so clients never see a message that was rolled back.
"""

import logging

from django.apps import apps
from django.db import IntegrityError, transaction
from django.db.models import Max, Q

from core import errors
from core.models import Tuition

from .models import Conversation, Message

logger = logging.getLogger(__name__)


# Client-to-server events
JOIN_CONVERSATION_EVENT = 'join_conversation'
SEND_MESSAGE_EVENT = 'send_message'

# Server-to-client events
RECEIVE_MESSAGE_EVENT = 'receive_message'

LAST_MESSAGE_PREVIEW_LENGTH = 255


def get_messaging_gateway():
    """Gateway bound to the hub owned by the messaging app config."""
    return MessagingGateway(apps.get_app_config('messaging').hub)


class MessagingGateway:
    def __init__(self, hub):
        self.hub = hub

    @staticmethod
    def _get_conversation(queryset, conversation_id):
        try:
            return queryset.get(pk=conversation_id)
        except (Conversation.DoesNotExist, ValueError, TypeError):
            raise errors.NotFound('Conversation', conversation_id)

    @staticmethod
    def _require_participant(conversation, user):
        if not conversation.involves(user):
            raise errors.Unauthorized('You are not a participant in this conversation.')

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------

    def open_conversation(self, participant_a, participant_b, tuition_id):
        """
        Return the conversation for (tuition, student, tutor), creating it if needed.

        The order of participants does not matter; exactly one of them must
        own the tuition. Safe to call concurrently: creation is serialized on
        the tuition row and backed by a unique constraint.

        Args:
            participant_a: User
            participant_b: User
            tuition_id: ID of the tuition the conversation is about

        Returns:
            Conversation
        """
        with transaction.atomic():
            try:
                tuition = Tuition.objects.select_for_update().get(pk=tuition_id)
            except (Tuition.DoesNotExist, ValueError, TypeError):
                raise errors.NotFound('Tuition', tuition_id)

            owners = [p for p in (participant_a, participant_b) if p.pk == tuition.student_id]
            if len(owners) != 1:
                raise errors.ValidationError(
                    'A conversation needs the tuition owner and one other participant.'
                )
            student = owners[0]
            tutor = participant_b if participant_a.pk == student.pk else participant_a
            # Applicants keep their conversation even if their role changed later
            if not (tutor.is_tutor() or tuition.applications.filter(tutor=tutor).exists()):
                raise errors.ValidationError('The other participant must be a tutor.')

            lookup = {'tuition': tuition, 'student': student, 'tutor': tutor}
            conversation = Conversation.objects.filter(**lookup).first()
            if conversation is not None:
                return conversation

            try:
                with transaction.atomic():
                    conversation = Conversation.objects.create(**lookup)
            except IntegrityError:
                # Another request created it first
                return Conversation.objects.get(**lookup)

        logger.info(
            f"Conversation opened. Conversation ID: {conversation.id}, "
            f"Tuition ID: {tuition.id}, Student: {student.email}, Tutor: {tutor.email}"
        )
        return conversation

    def conversations_for(self, user):
        """The user's conversations, most recent activity first."""
        return (
            Conversation.objects.select_related('tuition', 'student', 'tutor')
            .filter(Q(student=user) | Q(tutor=user))
            .order_by('-last_message_at', '-created_at')
        )

    # ------------------------------------------------------------------
    # Channels
    # ------------------------------------------------------------------

    def connect(self, user):
        return self.hub.connect(user)

    def join_channel(self, connection, conversation_id):
        """Subscribe a live connection to a conversation. No history replay."""
        conversation = self._get_conversation(Conversation.objects.all(), conversation_id)
        self._require_participant(conversation, connection.user)
        connection.join(conversation.id)
        logger.debug(
            f"Client joined conversation. Client ID: {connection.client_id}, "
            f"Conversation ID: {conversation.id}"
        )
        return conversation

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def send_message(self, conversation_id, sender, text):
        """
        Append a message and broadcast it to joined connections.

        Raises:
            EmptyMessage: text is blank after trimming.
            TransportUnavailable: the hub is closed; nothing is written.
            NotFound: conversation does not exist.
            Unauthorized: sender is not a participant.
        """
        text = (text or '').strip()
        if not text:
            raise errors.EmptyMessage()

        self.hub.ensure_open()

        with transaction.atomic():
            conversation = self._get_conversation(
                Conversation.objects.select_for_update(), conversation_id
            )
            self._require_participant(conversation, sender)

            last_sequence = conversation.messages.aggregate(last=Max('sequence'))['last'] or 0
            message = Message.objects.create(
                conversation=conversation,
                sender=sender,
                text=text,
                sequence=last_sequence + 1,
            )

            unread_field = conversation.unread_field_for(conversation.other_party_id(sender))
            setattr(conversation, unread_field, getattr(conversation, unread_field) + 1)
            conversation.last_message = text[:LAST_MESSAGE_PREVIEW_LENGTH]
            conversation.last_message_at = message.created_at
            conversation.message_count = message.sequence
            conversation.save(update_fields=[
                unread_field, 'last_message', 'last_message_at', 'message_count',
            ])

            event = {'event': RECEIVE_MESSAGE_EVENT, 'data': message.as_event()}
            transaction.on_commit(lambda: self.hub.broadcast(conversation.id, event))

        logger.info(
            f"Message sent. Message ID: {message.id}, Conversation ID: {conversation.id}, "
            f"Sequence: {message.sequence}, Sender: {sender.email}"
        )
        return message

    def mark_read(self, conversation_id, reader):
        """Reset the reader's unread counter and flag the other party's messages read."""
        with transaction.atomic():
            conversation = self._get_conversation(
                Conversation.objects.select_for_update(), conversation_id
            )
            self._require_participant(conversation, reader)

            unread_field = conversation.unread_field_for(reader.pk)
            setattr(conversation, unread_field, 0)
            conversation.save(update_fields=[unread_field])

            flagged = (
                conversation.messages.filter(is_read=False)
                .exclude(sender_id=reader.pk)
                .update(is_read=True)
            )

        logger.debug(
            f"Conversation read. Conversation ID: {conversation.id}, "
            f"Reader: {reader.email}, Messages flagged: {flagged}"
        )
        return conversation

    def history(self, conversation_id, reader, after_sequence=None):
        """Messages in append order, optionally only those after a sequence."""
        conversation = self._get_conversation(Conversation.objects.all(), conversation_id)
        if not (conversation.involves(reader) or reader.is_admin()):
            raise errors.Unauthorized('You are not a participant in this conversation.')

        messages = conversation.messages.select_related('sender').order_by('sequence')
        if after_sequence is not None:
            messages = messages.filter(sequence__gt=after_sequence)
        return messages

    def rebuild_conversation_state(self, conversation):
        """
        Recompute the denormalized fields of a conversation from its messages.

        Returns:
            Conversation: the refreshed conversation
        """
        with transaction.atomic():
            conversation = Conversation.objects.select_for_update().get(pk=conversation.pk)
            messages = conversation.messages.all()
            last = messages.order_by('-sequence').first()

            conversation.message_count = messages.count()
            conversation.last_message = last.text[:LAST_MESSAGE_PREVIEW_LENGTH] if last else ''
            conversation.last_message_at = last.created_at if last else None
            conversation.student_unread = messages.filter(
                is_read=False, sender_id=conversation.tutor_id
            ).count()
            conversation.tutor_unread = messages.filter(
                is_read=False, sender_id=conversation.student_id
            ).count()
            conversation.save(update_fields=[
                'message_count', 'last_message', 'last_message_at',
                'student_unread', 'tutor_unread',
            ])

        return conversation
