from django.contrib import admin

from .models import ChannelConnection, ChannelMembership, Conversation, Message


class MessageInline(admin.TabularInline):
    model = Message
    extra = 0
    fields = ['sequence', 'sender', 'text', 'is_read', 'created_at']
    readonly_fields = fields
    can_delete = False
    ordering = ['sequence']


@admin.register(Conversation)
class ConversationAdmin(admin.ModelAdmin):
    list_display = [
        'id', 'tuition', 'student', 'tutor', 'message_count',
        'student_unread', 'tutor_unread', 'last_message_at',
    ]
    search_fields = ['student__email', 'tutor__email', 'tuition__subject']
    readonly_fields = [
        'last_message', 'last_message_at', 'message_count',
        'student_unread', 'tutor_unread', 'created_at',
    ]
    list_select_related = ['tuition', 'student', 'tutor']
    inlines = [MessageInline]


class ChannelMembershipInline(admin.TabularInline):
    model = ChannelMembership
    extra = 0
    readonly_fields = ['conversation', 'joined_at']


@admin.register(ChannelConnection)
class ChannelConnectionAdmin(admin.ModelAdmin):
    list_display = ['client_id', 'user', 'created_at', 'last_seen_at']
    search_fields = ['client_id', 'user__email']
    readonly_fields = ['client_id', 'user', 'created_at', 'last_seen_at']
    list_select_related = ['user']
    inlines = [ChannelMembershipInline]
