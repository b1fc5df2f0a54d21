"""
Persistence ports for the cheque services.

Each service receives its stores through its constructor; the classes here
bind them to the Django ORM. Every state change on a shared row is a
conditional UPDATE guarded by the state the caller read, so concurrent
workers cannot both win the same transition.
"""

import logging

from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from cheques.models import (
    AuditLog, Cheque, CustodyLog, HandoverOverride, HandoverRecord, Otp,
)

logger = logging.getLogger(__name__)


def _get_or_none(model, pk):
    try:
        return model.objects.filter(pk=pk).first()
    except (ValueError, ValidationError):
        return None


class ChequeStore:

    def get(self, cheque_id):
        return _get_or_none(Cheque, cheque_id)

    def lock(self, cheque_id):
        """Re-read a cheque with a row lock; only valid inside transaction.atomic()."""
        try:
            return Cheque.objects.select_for_update().filter(pk=cheque_id).first()
        except (ValueError, ValidationError):
            return None

    def cheque_no_exists(self, cheque_no):
        return Cheque.objects.filter(cheque_no=cheque_no).exists()

    def create(self, **fields):
        return Cheque.objects.create(**fields)

    def transition(self, cheque_id, expected, target):
        """Move a cheque to `target` only if its status is still one of `expected`."""
        updated = Cheque.objects.filter(pk=cheque_id, status__in=list(expected)).update(
            status=target, updated_at=timezone.now(),
        )
        return updated == 1

    def add_custody_entry(self, cheque_id, from_role, to_role, created_by_id, notes=''):
        return CustodyLog.objects.create(
            cheque_id=cheque_id, from_role=from_role, to_role=to_role,
            created_by_id=created_by_id, notes=notes or '',
        )

    def create_handover(self, **fields):
        return HandoverRecord.objects.create(**fields)

    def queryset(self):
        return Cheque.objects.select_related('initiator')

    def custody_entries(self, cheque_id):
        return list(CustodyLog.objects.filter(cheque_id=cheque_id).select_related('created_by'))

    def handover_for(self, cheque_id):
        return HandoverRecord.objects.filter(cheque_id=cheque_id).select_related(
            'handed_by', 'override_approved_by',
        ).first()


class OtpStore:

    def get(self, otp_id):
        return _get_or_none(Otp, otp_id)

    def count_created_since(self, cheque_id, since):
        return Otp.objects.filter(cheque_id=cheque_id, created_at__gte=since).count()

    def find_pending(self, cheque_id, now):
        """Most recent PENDING, unexpired OTP for the cheque."""
        return Otp.objects.filter(
            cheque_id=cheque_id, status=Otp.Status.PENDING, expires_at__gt=now,
        ).order_by('-created_at').first()

    def find_active(self, cheque_id, now):
        """Most recent unexpired OTP that is still answering: PENDING or LOCKED."""
        return Otp.objects.filter(
            cheque_id=cheque_id,
            status__in=(Otp.Status.PENDING, Otp.Status.LOCKED),
            expires_at__gt=now,
        ).order_by('-created_at').first()

    def create(self, **fields):
        return Otp.objects.create(**fields)

    def compare_and_update(self, otp, **changes):
        """
        Apply `changes` only if the row still has the status and attempt count
        `otp` was read with. Returns False when another writer got there first.
        """
        updated = Otp.objects.filter(
            pk=otp.pk, status=otp.status, attempts=otp.attempts,
        ).update(**changes)
        return updated == 1

    def expire_stale(self, now):
        """
        Move PENDING rows past expiry to EXPIRED. Returns (count, ids).

        Candidates are row-locked until the update commits, so `ids` lists
        exactly the rows this sweep expired.
        """
        with transaction.atomic():
            ids = list(
                Otp.objects.select_for_update()
                .filter(status=Otp.Status.PENDING, expires_at__lte=now)
                .values_list('id', flat=True)
            )
            if not ids:
                return 0, []
            count = Otp.objects.filter(pk__in=ids, status=Otp.Status.PENDING).update(status=Otp.Status.EXPIRED)
        return count, ids

    def has_verified(self, cheque_id):
        return Otp.objects.filter(cheque_id=cheque_id, status=Otp.Status.USED).exists()


class OverrideStore:

    def get(self, override_id):
        return _get_or_none(HandoverOverride, override_id)

    def find_pending(self, cheque_id):
        return HandoverOverride.objects.filter(
            cheque_id=cheque_id, status=HandoverOverride.Status.PENDING,
        ).first()

    def find_approved(self, cheque_id, approver_id):
        return HandoverOverride.objects.filter(
            cheque_id=cheque_id, status=HandoverOverride.Status.APPROVED, decided_by_id=approver_id,
        ).order_by('-decided_at').first()

    def create(self, **fields):
        return HandoverOverride.objects.create(**fields)

    def decide(self, override_id, **changes):
        """Apply a decision only while the override is still PENDING."""
        updated = HandoverOverride.objects.filter(
            pk=override_id, status=HandoverOverride.Status.PENDING,
        ).update(updated_at=timezone.now(), **changes)
        return updated == 1

    def pending(self, limit, offset):
        qs = HandoverOverride.objects.filter(
            status=HandoverOverride.Status.PENDING,
        ).select_related('cheque', 'requested_by').order_by('-created_at')
        return list(qs[offset:offset + limit]), qs.count()

    def for_cheque(self, cheque_id):
        try:
            return list(
                HandoverOverride.objects.filter(cheque_id=cheque_id)
                .select_related('requested_by', 'decided_by')
                .order_by('-created_at')
            )
        except (ValueError, ValidationError):
            return []


class AuditSink:
    """Append-only writer and reader for the audit trail."""

    def record(self, action, cheque_id=None, actor_id=None, details=None, context=None):
        entry = AuditLog.objects.create(
            cheque_id=cheque_id,
            action=action,
            actor_id=actor_id,
            details=details or {},
            ip_address=getattr(context, 'ip_address', None),
            user_agent=getattr(context, 'user_agent', '') or '',
        )
        logger.info(f'audit: {action} cheque={cheque_id} actor={actor_id}')
        return entry

    def trail(self, cheque_id):
        return list(AuditLog.objects.filter(cheque_id=cheque_id).select_related('actor'))
