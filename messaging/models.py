"""
Models for per-tuition conversations between a student and a hired tutor.
"""

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.utils.translation import gettext_lazy as _


class Conversation(models.Model):
    """
    Messaging thread of one (tuition, student, tutor) triple.

    last_message, last_message_at, message_count and the unread counters are
    denormalized from Message rows and can be recomputed with
    MessagingGateway.rebuild_conversation_state().
    """

    tuition = models.ForeignKey(
        'core.Tuition',
        on_delete=models.CASCADE,
        related_name='conversations',
    )

    student = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='student_conversations',
    )

    tutor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='tutor_conversations',
    )

    last_message = models.TextField(_('last message'), blank=True, default='')
    last_message_at = models.DateTimeField(_('last message at'), null=True, blank=True)

    student_unread = models.PositiveIntegerField(_('student unread'), default=0)
    tutor_unread = models.PositiveIntegerField(_('tutor unread'), default=0)

    message_count = models.PositiveIntegerField(_('message count'), default=0)

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    class Meta:
        verbose_name = _('conversation')
        verbose_name_plural = _('conversations')
        ordering = ['-last_message_at', '-created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['tuition', 'student', 'tutor'],
                name='unique_conversation_per_tuition_pair',
            ),
        ]

    def __str__(self):
        return f"{self.student.email} <-> {self.tutor.email} ({self.tuition.subject})"

    def involves(self, user):
        return user.pk in (self.student_id, self.tutor_id)

    def other_party_id(self, user):
        return self.tutor_id if user.pk == self.student_id else self.student_id

    def unread_for(self, user):
        if user.pk == self.student_id:
            return self.student_unread
        if user.pk == self.tutor_id:
            return self.tutor_unread
        return 0

    def unread_field_for(self, user_id):
        return 'student_unread' if user_id == self.student_id else 'tutor_unread'


class Message(models.Model):
    """
    One chat message. Immutable once created.

    sequence is the 1-based append position within the conversation and
    defines display order.
    """

    conversation = models.ForeignKey(
        Conversation,
        on_delete=models.CASCADE,
        related_name='messages',
    )

    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='sent_messages',
    )

    text = models.TextField(_('text'))

    sequence = models.PositiveIntegerField(_('sequence'))

    is_read = models.BooleanField(_('is read'), default=False)

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    class Meta:
        verbose_name = _('message')
        verbose_name_plural = _('messages')
        ordering = ['conversation_id', 'sequence']
        constraints = [
            models.UniqueConstraint(
                fields=['conversation', 'sequence'],
                name='unique_message_sequence',
            ),
        ]

    def __str__(self):
        return f"#{self.sequence} from {self.sender_id} in conversation {self.conversation_id}"

    def clean(self):
        super().clean()
        if not self.text or not self.text.strip():
            raise ValidationError({'text': _('Message text cannot be empty.')})

    def save(self, *args, **kwargs):
        # Only the read flag may change after creation
        if self.pk is not None:
            update_fields = kwargs.get('update_fields')
            if update_fields is None or set(update_fields) - {'is_read'}:
                raise ValidationError(_('Messages are immutable once sent.'))
        super().save(*args, **kwargs)

    def as_event(self):
        """Payload of the receive_message event."""
        return {
            'id': self.id,
            'conversation_id': self.conversation_id,
            'sender_id': self.sender_id,
            'text': self.text,
            'sequence': self.sequence,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


class ChannelConnection(models.Model):
    """
    A live client connection registered with the channel hub.

    Rows are shared by every server process, so a message sent through one
    worker reaches connections opened through another.
    """

    client_id = models.CharField(_('client ID'), max_length=32, unique=True)

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='channel_connections',
    )

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    last_seen_at = models.DateTimeField(_('last seen at'))

    class Meta:
        verbose_name = _('channel connection')
        verbose_name_plural = _('channel connections')
        ordering = ['created_at']
        indexes = [
            models.Index(fields=['user', 'last_seen_at'], name='messaging_c_user_id_4e7b1a_idx'),
            models.Index(fields=['last_seen_at'], name='messaging_c_last_se_9c2d5f_idx'),
        ]

    def __str__(self):
        return f"Connection {self.client_id} ({self.user_id})"


class ChannelMembership(models.Model):
    """A connection joined to a conversation channel."""

    connection = models.ForeignKey(
        ChannelConnection,
        on_delete=models.CASCADE,
        related_name='memberships',
    )

    conversation = models.ForeignKey(
        Conversation,
        on_delete=models.CASCADE,
        related_name='channel_memberships',
    )

    joined_at = models.DateTimeField(_('joined at'), auto_now_add=True)

    class Meta:
        verbose_name = _('channel membership')
        verbose_name_plural = _('channel memberships')
        constraints = [
            models.UniqueConstraint(
                fields=['connection', 'conversation'],
                name='unique_channel_membership',
            ),
        ]


class ChannelEvent(models.Model):
    """An event waiting in a connection's buffer until the client drains it."""

    connection = models.ForeignKey(
        ChannelConnection,
        on_delete=models.CASCADE,
        related_name='events',
    )

    conversation = models.ForeignKey(
        Conversation,
        on_delete=models.CASCADE,
        related_name='channel_events',
    )

    sequence = models.PositiveIntegerField(_('sequence'))

    payload = models.JSONField(_('payload'))

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    class Meta:
        verbose_name = _('channel event')
        verbose_name_plural = _('channel events')
        ordering = ['conversation_id', 'sequence', 'id']
        indexes = [
            models.Index(fields=['connection', 'id'], name='messaging_c_connect_b3f8e6_idx'),
        ]
