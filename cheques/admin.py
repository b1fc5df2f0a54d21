from django.contrib import admin
from import_export import resources
from import_export.admin import ExportMixin

from cheques.models import (
    AuditLog, Cheque, CustodyLog, HandoverOverride, HandoverRecord, Otp, OutboundNotification,
)


class ReadOnlyAdminMixin:
    """Append-only records: viewable, never edited or deleted from the admin."""

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


class CustodyLogInline(ReadOnlyAdminMixin, admin.TabularInline):
    model = CustodyLog
    extra = 0
    fields = ['from_role', 'to_role', 'notes', 'created_by', 'created_at']
    readonly_fields = fields


@admin.register(Cheque)
class ChequeAdmin(admin.ModelAdmin):
    list_display = ['cheque_no', 'payee_name', 'amount', 'bank', 'status', 'initiator', 'due_date', 'created_at']
    list_filter = ['status', 'bank']
    search_fields = ['cheque_no', 'payer_name', 'payee_name', 'bank']
    # Status only moves through the cheque API so every change is audited
    readonly_fields = ['id', 'status', 'created_at', 'updated_at']
    inlines = [CustodyLogInline]


@admin.register(Otp)
class OtpAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ['cheque', 'channel', 'status', 'attempts', 'expires_at', 'used_by', 'created_at']
    list_filter = ['status', 'channel']
    search_fields = ['cheque__cheque_no']
    exclude = ['code_hash', 'destination']
    readonly_fields = ['id', 'cheque', 'channel', 'status', 'attempts', 'expires_at', 'used_at', 'used_by',
                       'ip_address', 'user_agent', 'created_at']


@admin.register(HandoverRecord)
class HandoverRecordAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ['cheque', 'recipient_name', 'id_type', 'handed_by', 'is_override', 'created_at']
    list_filter = ['is_override']
    search_fields = ['cheque__cheque_no', 'recipient_name', 'id_number']


@admin.register(CustodyLog)
class CustodyLogAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ['cheque', 'from_role', 'to_role', 'created_by', 'created_at']
    list_filter = ['from_role', 'to_role']
    search_fields = ['cheque__cheque_no']


class AuditLogResource(resources.ModelResource):
    class Meta:
        model = AuditLog
        fields = ('id', 'created_at', 'action', 'cheque__cheque_no', 'actor__email', 'details',
                  'ip_address', 'user_agent')
        export_order = fields


@admin.register(AuditLog)
class AuditLogAdmin(ExportMixin, ReadOnlyAdminMixin, admin.ModelAdmin):
    resource_classes = [AuditLogResource]
    list_display = ['created_at', 'action', 'cheque', 'actor', 'ip_address']
    list_filter = ['action']
    search_fields = ['cheque__cheque_no', 'actor__email']
    date_hierarchy = 'created_at'


@admin.register(HandoverOverride)
class HandoverOverrideAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ['cheque', 'status', 'requested_by', 'decided_by', 'created_at', 'decided_at']
    list_filter = ['status']
    search_fields = ['cheque__cheque_no', 'reason']


@admin.register(OutboundNotification)
class OutboundNotificationAdmin(admin.ModelAdmin):
    list_display = ['event', 'audience_role', 'cheque', 'status', 'attempts', 'created_at', 'sent_at']
    list_filter = ['status', 'event']
    readonly_fields = ['id', 'event', 'audience_role', 'cheque', 'payload', 'attempts', 'last_error',
                       'created_at', 'sent_at']
