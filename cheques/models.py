import uuid

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone


class Cheque(models.Model):
    """
    A physical cheque under custody. Never deleted: cancellation is a
    terminal status, not a removal.
    """

    class Status(models.TextChoices):
        SIGNED = 'SIGNED', 'Signed'
        READY_FOR_DISPATCH = 'READY_FOR_DISPATCH', 'Ready for dispatch'
        WITH_RECEPTION = 'WITH_RECEPTION', 'With reception'
        ISSUED = 'ISSUED', 'Issued'
        CANCELLED = 'CANCELLED', 'Cancelled'

    TERMINAL_STATUSES = (Status.ISSUED, Status.CANCELLED)

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    cheque_no = models.CharField(max_length=64, unique=True)
    amount = models.DecimalField(max_digits=14, decimal_places=2)
    bank = models.CharField(max_length=100)
    branch = models.CharField(max_length=100)
    payer_name = models.CharField(max_length=200)
    payee_name = models.CharField(max_length=200)
    due_date = models.DateTimeField()
    initiator = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='initiated_cheques'
    )
    attachments = models.JSONField(default=list, blank=True,
        help_text='Opaque storage paths of scanned attachments')
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.SIGNED, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f'Cheque {self.cheque_no} [{self.status}]'

    @property
    def is_terminal(self):
        return self.status in self.TERMINAL_STATUSES


class Otp(models.Model):
    """
    Single-use handover code bound to one cheque. Only the keyed hash of the
    code is stored.
    """

    class Channel(models.TextChoices):
        SMS = 'sms', 'SMS'
        WHATSAPP = 'whatsapp', 'WhatsApp'
        EMAIL = 'email', 'Email'

    class Status(models.TextChoices):
        PENDING = 'PENDING', 'Pending'
        USED = 'USED', 'Used'
        EXPIRED = 'EXPIRED', 'Expired'
        LOCKED = 'LOCKED', 'Locked'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    cheque = models.ForeignKey(Cheque, on_delete=models.PROTECT, related_name='otps')
    code_hash = models.CharField(max_length=64)
    channel = models.CharField(max_length=10, choices=Channel.choices)
    destination = models.CharField(max_length=254)
    expires_at = models.DateTimeField()
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.PENDING, db_index=True)
    attempts = models.PositiveSmallIntegerField(default=0)
    used_at = models.DateTimeField(null=True, blank=True)
    used_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT, null=True, blank=True, related_name='used_otps'
    )
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.TextField(blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']
        verbose_name = 'OTP'
        verbose_name_plural = 'OTPs'
        indexes = [
            models.Index(fields=['cheque', 'status', 'expires_at'], name='otp_cheque_active_idx'),
            models.Index(fields=['cheque', 'created_at'], name='otp_cheque_created_idx'),
        ]

    def __str__(self):
        return f'OTP for {self.cheque_id} via {self.channel} [{self.status}]'

    @property
    def is_expired(self):
        return timezone.now() >= self.expires_at


class HandoverRecord(models.Model):
    """Evidence of the final handover. One per cheque, immutable once written."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    cheque = models.OneToOneField(Cheque, on_delete=models.PROTECT, related_name='handover_record')
    recipient_name = models.CharField(max_length=200)
    id_type = models.CharField(max_length=50)
    id_number = models.CharField(max_length=100)
    recipient_photo_path = models.CharField(max_length=500)
    signature_path = models.CharField(max_length=500)
    handed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='handovers'
    )
    is_override = models.BooleanField(default=False)
    override_approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT, null=True, blank=True,
        related_name='approved_handovers',
    )
    override_reason = models.TextField(blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f'Handover of {self.cheque_id} to {self.recipient_name}'


class CustodyLog(models.Model):
    """Append-only record of physical custody moving between roles."""

    class Role(models.TextChoices):
        ACCOUNTS = 'ACCOUNTS', 'Accounts'
        RECEPTION = 'RECEPTION', 'Reception'
        VENDOR = 'VENDOR', 'Vendor'

    cheque = models.ForeignKey(Cheque, on_delete=models.PROTECT, related_name='custody_logs')
    from_role = models.CharField(max_length=20, choices=Role.choices)
    to_role = models.CharField(max_length=20, choices=Role.choices)
    notes = models.TextField(blank=True, default='')
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='custody_entries'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['created_at', 'id']

    def __str__(self):
        return f'{self.cheque_id}: {self.from_role} -> {self.to_role}'


class AuditLog(models.Model):
    """
    Append-only trail of every state-affecting action. `details` is a
    free-form payload whose shape depends on `action`; it never carries
    an OTP code.
    """

    class Action(models.TextChoices):
        CHEQUE_CREATED = 'CHEQUE_CREATED'
        STATUS_CHANGED = 'STATUS_CHANGED'
        FORWARDED_TO_RECEPTION = 'FORWARDED_TO_RECEPTION'
        HANDOVER_COMPLETED = 'HANDOVER_COMPLETED'
        CHEQUE_CANCELLED = 'CHEQUE_CANCELLED'
        OTP_GENERATED = 'OTP_GENERATED'
        OTP_VERIFIED = 'OTP_VERIFIED'
        OTP_FAILED = 'OTP_FAILED'
        OTP_EXPIRED = 'OTP_EXPIRED'
        OTPS_EXPIRED = 'OTPS_EXPIRED'
        OVERRIDE_REQUESTED = 'OVERRIDE_REQUESTED'
        OVERRIDE_APPROVED = 'OVERRIDE_APPROVED'
        OVERRIDE_REJECTED = 'OVERRIDE_REJECTED'

    cheque = models.ForeignKey(
        Cheque, on_delete=models.PROTECT, null=True, blank=True, related_name='audit_logs'
    )
    action = models.CharField(max_length=40, choices=Action.choices, db_index=True)
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT, null=True, blank=True,
        related_name='cheque_audit_logs',
    )
    details = models.JSONField(default=dict, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.TextField(blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ['created_at', 'id']

    def __str__(self):
        return f'{self.action} on {self.cheque_id} at {self.created_at}'


class HandoverOverride(models.Model):
    """
    Request to hand a cheque over without OTP verification. Needs a second
    person to approve it; APPROVED and REJECTED are final.
    """

    class Status(models.TextChoices):
        PENDING = 'PENDING', 'Pending'
        APPROVED = 'APPROVED', 'Approved'
        REJECTED = 'REJECTED', 'Rejected'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    cheque = models.ForeignKey(Cheque, on_delete=models.PROTECT, related_name='overrides')
    requested_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='requested_overrides'
    )
    reason = models.TextField()
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.PENDING, db_index=True)
    decided_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT, null=True, blank=True,
        related_name='decided_overrides',
    )
    decided_at = models.DateTimeField(null=True, blank=True)
    rejected_reason = models.TextField(blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['cheque'], condition=Q(status='PENDING'),
                name='uniq_pending_override_per_cheque',
            ),
        ]

    def __str__(self):
        return f'Override for {self.cheque_id} [{self.status}]'


class OutboundNotification(models.Model):
    """
    Outbox row for staff notifications. Delivered by a Celery task; failures
    stay visible here and are retried.
    """

    class Status(models.TextChoices):
        PENDING = 'PENDING', 'Pending'
        SENT = 'SENT', 'Sent'
        FAILED = 'FAILED', 'Failed'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    event = models.CharField(max_length=40, db_index=True)
    audience_role = models.CharField(max_length=20)
    cheque = models.ForeignKey(
        Cheque, on_delete=models.PROTECT, null=True, blank=True, related_name='notifications'
    )
    payload = models.JSONField(default=dict, blank=True)
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.PENDING, db_index=True)
    attempts = models.PositiveSmallIntegerField(default=0)
    last_error = models.TextField(blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)
    sent_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f'{self.event} -> {self.audience_role} [{self.status}]'
