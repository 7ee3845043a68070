"""
API views for conversations, messages and live channel connections.

Channel endpoints expose the ChannelHub over HTTP: a client connects once,
posts join_conversation and send_message events, and polls the same
endpoint to drain receive_message events.
"""

import logging

from django.contrib.auth import get_user_model
from rest_framework import status
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle

from core.errors import DomainError, NotFound, Unauthorized, ValidationError
from core.views import MarketplaceAPIView, error_response, get_client_ip

from .gateway import JOIN_CONVERSATION_EVENT, get_messaging_gateway
from .serializers import (
    ChannelSendSerializer,
    ClientEventSerializer,
    ContactSerializer,
    ConversationSerializer,
    JoinConversationSerializer,
    MessageSerializer,
    SendMessageSerializer,
)

User = get_user_model()
logger = logging.getLogger(__name__)


class MessagingAPIView(MarketplaceAPIView):
    def get_gateway(self):
        return get_messaging_gateway()

    def get_connection(self, client_id):
        """The caller's live connection, or NotFound."""
        connection = self.get_gateway().hub.get(client_id)
        if connection is None or connection.user.pk != self.request.user.pk:
            raise NotFound('Connection', client_id)
        return connection

    def send(self, conversation_id, text):
        """
        Send and render the result. A failed send echoes the submitted text so
        the client can offer to resubmit it.
        """
        try:
            message = self.get_gateway().send_message(conversation_id, self.request.user, text)
        except DomainError as e:
            logger.warning(
                f"Message not sent. Code: {e.code.value}, Conversation ID: {conversation_id}, "
                f"User: {self.request.user.email}, IP: {get_client_ip(self.request)}"
            )
            return error_response(e, text=text)
        return Response(MessageSerializer(message).data, status=status.HTTP_201_CREATED)


# ============================================================================
# Conversations
# ============================================================================

class ConversationListView(MessagingAPIView):
    """
    GET /api/conversations/<email>/   Conversations of that user (self or admin).
    """

    def get(self, request, *args, **kwargs):
        email = kwargs.get('email', '').lower()
        if email != request.user.email and not request.user.is_admin():
            raise Unauthorized('You can only list your own conversations.')

        if email == request.user.email:
            viewer = request.user
        else:
            viewer = User.objects.filter(email__iexact=email).first()
            if viewer is None:
                raise NotFound('User', email)

        queryset = self.get_gateway().conversations_for(viewer)
        return self.paginated(queryset, ConversationSerializer, viewer=viewer)


class ContactView(MessagingAPIView):
    """
    POST /api/conversations/
    Request body: {"tuition": <id>, "participant": "tutor@example.com"}

    Opens the conversation between the caller and the other party of a
    tuition (one of the two must own it). Returns the existing conversation
    when there already is one.
    """

    def post(self, request, *args, **kwargs):
        serializer = ContactSerializer(data=request.data)
        if not serializer.is_valid():
            return self.invalid_input(serializer)

        participant = serializer.validated_data['participant']
        if participant.pk == request.user.pk:
            raise ValidationError('You cannot start a conversation with yourself.')

        conversation = self.get_gateway().open_conversation(
            request.user, participant, serializer.validated_data['tuition']
        )
        return Response(
            ConversationSerializer(conversation, context={'viewer': request.user}).data,
            status=status.HTTP_200_OK,
        )


class ConversationReadView(MessagingAPIView):
    """
    POST /api/conversations/<id>/read/   Reset the caller's unread counter.
    """

    def post(self, request, *args, **kwargs):
        conversation = self.get_gateway().mark_read(kwargs.get('pk'), request.user)
        return Response(ConversationSerializer(conversation, context={'viewer': request.user}).data)


# ============================================================================
# Messages
# ============================================================================

class MessageListCreateView(MessagingAPIView):
    """
    GET  /api/messages/<conversation_id>/?after=<sequence>   History in append order.
    POST /api/messages/<conversation_id>/                    {"text": "..."}
    """
    throttle_scope = 'messages'

    def get_throttles(self):
        if self.request.method == 'POST':
            return [ScopedRateThrottle()]
        return []

    def get(self, request, *args, **kwargs):
        after = request.query_params.get('after')
        if after is not None and not after.isdigit():
            raise ValidationError('after must be a non-negative integer.', field='after')

        messages = self.get_gateway().history(
            kwargs.get('conversation_id'),
            request.user,
            after_sequence=int(after) if after is not None else None,
        )
        return Response(MessageSerializer(messages, many=True).data)

    def post(self, request, *args, **kwargs):
        serializer = SendMessageSerializer(data=request.data)
        if not serializer.is_valid():
            return self.invalid_input(serializer)
        return self.send(kwargs.get('conversation_id'), serializer.validated_data['text'])


# ============================================================================
# Live channels
# ============================================================================

class ChannelConnectView(MessagingAPIView):
    """
    POST /api/channels/   Acquire a live connection. Returns {"client_id": "..."}.
    """

    def post(self, request, *args, **kwargs):
        connection = self.get_gateway().connect(request.user)
        return Response({'client_id': connection.client_id}, status=status.HTTP_201_CREATED)


class ChannelDetailView(MessagingAPIView):
    """
    DELETE /api/channels/<client_id>/   Release the connection.
    """

    def delete(self, request, *args, **kwargs):
        self.get_connection(kwargs.get('client_id')).close()
        return Response(status=status.HTTP_204_NO_CONTENT)


class ChannelEventsView(MessagingAPIView):
    """
    GET  /api/channels/<client_id>/events/   Drain buffered receive_message events.
    POST /api/channels/<client_id>/events/   Send a client event:
        {"event": "join_conversation", "data": {"conversation": <id>}}
        {"event": "send_message", "data": {"conversation": <id>, "text": "..."}}
    """
    throttle_scope = 'messages'

    def get_throttles(self):
        if self.request.method == 'POST':
            return [ScopedRateThrottle()]
        return []

    def get(self, request, *args, **kwargs):
        connection = self.get_connection(kwargs.get('client_id'))
        return Response({'events': connection.drain()})

    def post(self, request, *args, **kwargs):
        serializer = ClientEventSerializer(data=request.data)
        if not serializer.is_valid():
            return self.invalid_input(serializer)

        connection = self.get_connection(kwargs.get('client_id'))
        event = serializer.validated_data['event']
        data = serializer.validated_data['data']

        if event == JOIN_CONVERSATION_EVENT:
            return self.join(connection, data)
        return self.send_from(connection, data)

    def join(self, connection, data):
        serializer = JoinConversationSerializer(data=data)
        if not serializer.is_valid():
            return self.invalid_input(serializer)

        conversation = self.get_gateway().join_channel(
            connection, serializer.validated_data['conversation']
        )
        return Response({
            'event': JOIN_CONVERSATION_EVENT,
            'client_id': connection.client_id,
            'conversation': conversation.id,
        })

    def send_from(self, connection, data):
        serializer = ChannelSendSerializer(data=data)
        if not serializer.is_valid():
            return self.invalid_input(serializer)

        return self.send(
            serializer.validated_data['conversation'], serializer.validated_data['text']
        )
