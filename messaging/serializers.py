from django.contrib.auth import get_user_model
from rest_framework import serializers

from core.serializers import UserSummarySerializer

from .gateway import JOIN_CONVERSATION_EVENT, SEND_MESSAGE_EVENT
from .models import Conversation, Message

User = get_user_model()


class ConversationSerializer(serializers.ModelSerializer):
    """
    Conversation as seen by one participant.

    unread is the requesting user's server-side unread counter; counterpart
    is the other participant.
    """

    student = UserSummarySerializer(read_only=True)
    tutor = UserSummarySerializer(read_only=True)
    subject = serializers.CharField(source='tuition.subject', read_only=True)
    unread = serializers.SerializerMethodField()
    counterpart = serializers.SerializerMethodField()

    class Meta:
        model = Conversation
        fields = [
            'id', 'tuition', 'subject', 'student', 'tutor', 'counterpart',
            'last_message', 'last_message_at', 'message_count', 'unread', 'created_at',
        ]
        read_only_fields = fields

    def _viewer(self):
        return self.context.get('viewer')

    def get_unread(self, obj):
        viewer = self._viewer()
        return obj.unread_for(viewer) if viewer is not None else None

    def get_counterpart(self, obj):
        viewer = self._viewer()
        if viewer is None or not obj.involves(viewer):
            return None
        other = obj.tutor if viewer.pk == obj.student_id else obj.student
        return UserSummarySerializer(other).data


class MessageSerializer(serializers.ModelSerializer):
    sender_email = serializers.EmailField(source='sender.email', read_only=True)

    class Meta:
        model = Message
        fields = [
            'id', 'conversation', 'sender', 'sender_email', 'text',
            'sequence', 'is_read', 'created_at',
        ]
        read_only_fields = fields


class ContactSerializer(serializers.Serializer):
    """Open (or fetch) the conversation with the other party of a tuition."""

    tuition = serializers.IntegerField(min_value=1)
    participant = serializers.EmailField()

    def validate_participant(self, value):
        user = User.objects.filter(email__iexact=value.strip()).first()
        if user is None:
            raise serializers.ValidationError('No user with this email.')
        return user


class SendMessageSerializer(serializers.Serializer):
    # Blank text is rejected by the gateway as EMPTY_MESSAGE
    text = serializers.CharField(required=False, allow_blank=True, trim_whitespace=False, default='')


class JoinConversationSerializer(serializers.Serializer):
    conversation = serializers.IntegerField(min_value=1)


class ChannelSendSerializer(SendMessageSerializer):
    conversation = serializers.IntegerField(min_value=1)


class ClientEventSerializer(serializers.Serializer):
    """A client-to-server channel event: {"event": "...", "data": {...}}."""

    event = serializers.ChoiceField(choices=[JOIN_CONVERSATION_EVENT, SEND_MESSAGE_EVENT])
    data = serializers.DictField(required=False, default=dict)
