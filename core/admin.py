"""
Django admin configuration for users and the hiring lifecycle records.

Status fields are read-only here: transitions go through the lifecycle
engine (API), never through admin edits.
"""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.utils.translation import gettext_lazy as _

from .models import Application, Payment, Review, Session, Tuition, User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """
    Custom admin interface for User model with marketplace role and profile fields.
    """

    list_display = ['email', 'username', 'display_name', 'role', 'is_staff', 'is_active', 'created_at']
    list_filter = ['role', 'is_staff', 'is_superuser', 'is_active', 'created_at']
    search_fields = ['email', 'username', 'display_name', 'first_name', 'last_name']
    ordering = ['-created_at']

    fieldsets = (
        (None, {'fields': ('username', 'password')}),
        (_('Profile'), {
            'fields': ('email', 'display_name', 'first_name', 'last_name', 'photo_url', 'bio', 'subjects')
        }),
        (_('Rating'), {'fields': ('average_rating', 'review_count')}),
        (_('Marketplace Role'), {'fields': ('role',)}),
        (_('Permissions'), {
            'fields': ('is_active', 'is_staff', 'is_superuser', 'groups', 'user_permissions'),
            'classes': ('collapse',),
        }),
        (_('Important Dates'), {
            'fields': ('last_login', 'date_joined', 'created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )

    add_fieldsets = (
        (None, {
            'classes': ('wide',),
            'fields': ('username', 'email', 'password1', 'password2', 'role'),
        }),
    )

    readonly_fields = ['average_rating', 'review_count', 'created_at', 'updated_at', 'last_login', 'date_joined']
    date_hierarchy = 'created_at'
    list_per_page = 25


class ApplicationInline(admin.TabularInline):
    model = Application
    extra = 0
    fields = ['tutor', 'expected_salary', 'status', 'created_at']
    readonly_fields = fields
    can_delete = False
    show_change_link = True


@admin.register(Tuition)
class TuitionAdmin(admin.ModelAdmin):
    list_display = ['id', 'subject', 'location', 'salary', 'student', 'status', 'created_at']
    list_filter = ['status', 'created_at']
    search_fields = ['subject', 'location', 'student__email']
    readonly_fields = ['status', 'created_at', 'updated_at']
    list_select_related = ['student']
    inlines = [ApplicationInline]
    list_per_page = 25


@admin.register(Application)
class ApplicationAdmin(admin.ModelAdmin):
    list_display = ['id', 'tuition', 'tutor', 'expected_salary', 'status', 'created_at']
    list_filter = ['status', 'created_at']
    search_fields = ['tutor__email', 'tuition__subject']
    readonly_fields = ['status', 'created_at', 'updated_at']
    list_select_related = ['tuition', 'tutor']
    list_per_page = 25


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    """Payments are an append-only ledger: viewable, never editable."""

    list_display = ['transaction_id', 'application', 'student', 'tutor', 'amount', 'currency', 'status', 'created_at']
    list_filter = ['status', 'currency', 'created_at']
    search_fields = ['transaction_id', 'student__email', 'tutor__email']
    list_select_related = ['application', 'student', 'tutor']
    date_hierarchy = 'created_at'
    list_per_page = 25

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Session)
class SessionAdmin(admin.ModelAdmin):
    list_display = ['id', 'tuition', 'start_time', 'end_time', 'status', 'created_by']
    list_filter = ['status', 'start_time']
    search_fields = ['tuition__subject', 'created_by__email']
    readonly_fields = ['status', 'created_at', 'updated_at']
    list_select_related = ['tuition', 'created_by']
    list_per_page = 25


@admin.register(Review)
class ReviewAdmin(admin.ModelAdmin):
    list_display = ['id', 'tutor', 'student', 'tuition', 'rating', 'created_at']
    list_filter = ['rating', 'created_at']
    search_fields = ['tutor__email', 'student__email', 'comment']
    readonly_fields = ['student', 'tutor', 'tuition', 'created_at', 'updated_at']
    list_select_related = ['tutor', 'student', 'tuition']
    list_per_page = 25
