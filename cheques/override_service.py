"""
Handover Override Service - two-person authorization for a handover that
cannot go through the OTP (locked code, unreachable channel).

    PENDING -> APPROVED
    PENDING -> REJECTED

Both decisions are final. At most one PENDING request exists per cheque.
"""

import logging

from django.db import IntegrityError, transaction
from django.utils import timezone

from accounts.models import StaffUser
from cheques import events, results
from cheques.context import EMPTY_CONTEXT
from cheques.models import AuditLog, HandoverOverride
from cheques.stores import AuditSink, ChequeStore, OverrideStore

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200

ALREADY_PENDING = 'An override request is already pending for this cheque'


class HandoverOverrideService:

    def __init__(self, store=None, cheques=None, audit=None, notify=None):
        self.store = store or OverrideStore()
        self.cheques = cheques or ChequeStore()
        self.audit = audit or AuditSink()
        self.notify = notify or events.enqueue

    def create_override_request(self, cheque_id, requester_id, reason, context=EMPTY_CONTEXT):
        reason = (reason or '').strip()
        if not reason:
            return results.fail(results.VALIDATION, 'Reason is required for override request')

        cheque = self.cheques.get(cheque_id)
        if not cheque:
            return results.fail(results.NOT_FOUND, 'Cheque not found')

        if self.store.find_pending(cheque.pk):
            return results.fail(results.CONFLICT, ALREADY_PENDING)

        try:
            with transaction.atomic():
                override = self.store.create(cheque=cheque, requested_by_id=requester_id, reason=reason)
                self.audit.record(
                    AuditLog.Action.OVERRIDE_REQUESTED,
                    cheque_id=cheque.pk,
                    actor_id=requester_id,
                    details={'overrideId': str(override.pk), 'reason': reason},
                    context=context,
                )
                self.notify(
                    events.OVERRIDE_REQUESTED, StaffUser.Role.HOD, cheque_id=cheque.pk,
                    payload={'chequeNo': cheque.cheque_no, 'overrideId': str(override.pk), 'reason': reason},
                )
        except IntegrityError:
            # Lost the race against a concurrent request for the same cheque
            return results.fail(results.CONFLICT, ALREADY_PENDING)

        logger.info(f'Override requested for cheque {cheque.cheque_no} by user={requester_id}')
        return results.ok(override=override)

    def approve_override(self, override_id, approver_id, context=EMPTY_CONTEXT):
        """
        Approve a PENDING override. Does not touch the cheque: the handover
        still has to be completed explicitly with this approver named.
        """
        override = self.store.get(override_id)
        if not override:
            return results.fail(results.NOT_FOUND, 'Override request not found')
        if override.status != HandoverOverride.Status.PENDING:
            return results.fail(results.CONFLICT, f'Override request is already {override.status}')

        with transaction.atomic():
            won = self.store.decide(
                override.pk,
                status=HandoverOverride.Status.APPROVED,
                decided_by_id=approver_id,
                decided_at=timezone.now(),
            )
            if not won:
                return self._already_decided(override.pk)
            self.audit.record(
                AuditLog.Action.OVERRIDE_APPROVED,
                cheque_id=override.cheque_id,
                actor_id=approver_id,
                details={
                    'overrideId': str(override.pk),
                    'requestedBy': str(override.requested_by_id),
                    'reason': override.reason,
                },
                context=context,
            )
            self.notify(
                events.OVERRIDE_APPROVED, StaffUser.Role.RECEPTION, cheque_id=override.cheque_id,
                payload={'chequeNo': override.cheque.cheque_no, 'overrideId': str(override.pk)},
            )

        logger.info(f'Override {override.pk} approved by user={approver_id}')
        return results.ok(override=self.store.get(override.pk))

    def reject_override(self, override_id, rejecter_id, rejected_reason, context=EMPTY_CONTEXT):
        rejected_reason = (rejected_reason or '').strip()
        if not rejected_reason:
            return results.fail(results.VALIDATION, 'Rejection reason is required')

        override = self.store.get(override_id)
        if not override:
            return results.fail(results.NOT_FOUND, 'Override request not found')
        if override.status != HandoverOverride.Status.PENDING:
            return results.fail(results.CONFLICT, f'Override request is already {override.status}')

        with transaction.atomic():
            won = self.store.decide(
                override.pk,
                status=HandoverOverride.Status.REJECTED,
                decided_by_id=rejecter_id,
                decided_at=timezone.now(),
                rejected_reason=rejected_reason,
            )
            if not won:
                return self._already_decided(override.pk)
            self.audit.record(
                AuditLog.Action.OVERRIDE_REJECTED,
                cheque_id=override.cheque_id,
                actor_id=rejecter_id,
                details={
                    'overrideId': str(override.pk),
                    'requestedBy': str(override.requested_by_id),
                    'reason': override.reason,
                    'rejectedReason': rejected_reason,
                },
                context=context,
            )
            self.notify(
                events.OVERRIDE_REJECTED, StaffUser.Role.RECEPTION, cheque_id=override.cheque_id,
                payload={
                    'chequeNo': override.cheque.cheque_no,
                    'overrideId': str(override.pk),
                    'rejectedReason': rejected_reason,
                },
            )

        logger.info(f'Override {override.pk} rejected by user={rejecter_id}')
        return results.ok(override=self.store.get(override.pk))

    def _already_decided(self, override_id):
        current = self.store.get(override_id)
        return results.fail(results.CONFLICT, f'Override request is already {current.status}')

    # ==================== READS ====================

    def get_pending_overrides(self, limit=DEFAULT_PAGE_SIZE, offset=0):
        limit = max(1, min(int(limit or DEFAULT_PAGE_SIZE), MAX_PAGE_SIZE))
        offset = max(0, int(offset or 0))
        overrides, total = self.store.pending(limit, offset)
        return results.ok(overrides=overrides, total=total, limit=limit, offset=offset)

    def get_override_by_id(self, override_id):
        override = self.store.get(override_id)
        if not override:
            return results.fail(results.NOT_FOUND, 'Override request not found')
        return results.ok(override=override)

    def get_overrides_by_cheque(self, cheque_id):
        return results.ok(overrides=self.store.for_cheque(cheque_id))
