"""
Cheques Serializers
"""

from rest_framework import serializers

from accounts.serializers import StaffUserBriefSerializer
from cheques.models import AuditLog, Cheque, CustodyLog, HandoverOverride, HandoverRecord, Otp


# ==================== Output ====================

class ChequeSerializer(serializers.ModelSerializer):
    initiator = StaffUserBriefSerializer(read_only=True)
    amount = serializers.DecimalField(max_digits=14, decimal_places=2, coerce_to_string=True, read_only=True)

    class Meta:
        model = Cheque
        fields = [
            'id', 'cheque_no', 'amount', 'bank', 'branch', 'payer_name', 'payee_name',
            'due_date', 'status', 'attachments', 'initiator', 'created_at', 'updated_at',
        ]
        read_only_fields = fields


class CustodyLogSerializer(serializers.ModelSerializer):
    created_by = StaffUserBriefSerializer(read_only=True)

    class Meta:
        model = CustodyLog
        fields = ['id', 'from_role', 'to_role', 'notes', 'created_by', 'created_at']
        read_only_fields = fields


class HandoverRecordSerializer(serializers.ModelSerializer):
    handed_by = StaffUserBriefSerializer(read_only=True)
    override_approved_by = StaffUserBriefSerializer(read_only=True)

    class Meta:
        model = HandoverRecord
        fields = [
            'id', 'recipient_name', 'id_type', 'id_number', 'recipient_photo_path', 'signature_path',
            'handed_by', 'is_override', 'override_approved_by', 'override_reason', 'created_at',
        ]
        read_only_fields = fields


class AuditLogSerializer(serializers.ModelSerializer):
    actor = StaffUserBriefSerializer(read_only=True)

    class Meta:
        model = AuditLog
        fields = ['id', 'action', 'actor', 'details', 'ip_address', 'user_agent', 'created_at']
        read_only_fields = fields


class HandoverOverrideSerializer(serializers.ModelSerializer):
    requested_by = StaffUserBriefSerializer(read_only=True)
    decided_by = StaffUserBriefSerializer(read_only=True)
    cheque_no = serializers.CharField(source='cheque.cheque_no', read_only=True)

    class Meta:
        model = HandoverOverride
        fields = [
            'id', 'cheque', 'cheque_no', 'requested_by', 'reason', 'status',
            'decided_by', 'decided_at', 'rejected_reason', 'created_at',
        ]
        read_only_fields = fields


# ==================== Input ====================

class ChequeCreateSerializer(serializers.Serializer):
    cheque_no = serializers.CharField(max_length=64)
    amount = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=0)
    bank = serializers.CharField(max_length=100)
    branch = serializers.CharField(max_length=100)
    payer_name = serializers.CharField(max_length=200)
    payee_name = serializers.CharField(max_length=200)
    due_date = serializers.DateTimeField()
    attachments = serializers.ListField(
        child=serializers.CharField(max_length=500), required=False, default=list,
    )


class ForwardSerializer(serializers.Serializer):
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class GenerateOtpSerializer(serializers.Serializer):
    channel = serializers.ChoiceField(choices=Otp.Channel.choices)
    destination = serializers.CharField(max_length=254)


class HandoverEvidenceSerializer(serializers.Serializer):
    recipient_name = serializers.CharField(max_length=200)
    id_type = serializers.CharField(max_length=50)
    id_number = serializers.CharField(max_length=100)
    recipient_photo_path = serializers.CharField(max_length=500)
    signature_path = serializers.CharField(max_length=500)


class VerifyOtpSerializer(HandoverEvidenceSerializer):
    otp = serializers.RegexField(r'^\d{6}$', error_messages={'invalid': 'OTP must be 6 digits'})


class OverrideHandoverSerializer(HandoverEvidenceSerializer):
    override_id = serializers.UUIDField()


class ReasonSerializer(serializers.Serializer):
    reason = serializers.CharField()


class RejectOverrideSerializer(serializers.Serializer):
    rejected_reason = serializers.CharField()


class ListChequesQuerySerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Cheque.Status.choices, required=False)
    search = serializers.CharField(required=False, allow_blank=True)
    limit = serializers.IntegerField(required=False, min_value=1, max_value=200, default=50)
    offset = serializers.IntegerField(required=False, min_value=0, default=0)


class PageQuerySerializer(serializers.Serializer):
    limit = serializers.IntegerField(required=False, min_value=1, max_value=200, default=50)
    offset = serializers.IntegerField(required=False, min_value=0, default=0)
