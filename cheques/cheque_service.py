"""
Cheque Service - the custody state machine.

    SIGNED -> READY_FOR_DISPATCH -> WITH_RECEPTION -> ISSUED
    any non-issued state -> CANCELLED

ISSUED and CANCELLED are terminal. Every transition is a conditional UPDATE
on the expected prior status, written in the same transaction as its audit
entry (and custody entry where custody moves).
"""

import logging

from django.db import IntegrityError, transaction

from accounts.models import StaffUser
from cheques import results
from cheques.context import EMPTY_CONTEXT
from cheques.filters import ChequeFilter
from cheques.models import AuditLog, Cheque, CustodyLog, HandoverOverride
from cheques.stores import AuditSink, ChequeStore, OtpStore, OverrideStore

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200

DUPLICATE_CHEQUE_NO = 'Cheque number already exists'

REQUIRED_CHEQUE_FIELDS = ('cheque_no', 'amount', 'bank', 'branch', 'payer_name', 'payee_name', 'due_date')
REQUIRED_HANDOVER_FIELDS = ('recipient_name', 'id_type', 'id_number', 'recipient_photo_path', 'signature_path')

# Statuses each role is limited to when listing; roles not named see everything
ROLE_STATUS_SCOPE = {
    StaffUser.Role.RECEPTION: (Cheque.Status.WITH_RECEPTION,),
    StaffUser.Role.ACCOUNTS: (Cheque.Status.SIGNED, Cheque.Status.READY_FOR_DISPATCH),
}


def _invalid_transition(cheque):
    kind = results.CONFLICT if cheque.is_terminal else results.VALIDATION
    return results.fail(kind, f'Invalid status transition. Current status: {cheque.status}')


def _missing(fields, values):
    return [f for f in fields if values.get(f) in (None, '')]


class ChequeService:

    def __init__(self, store=None, otps=None, overrides=None, audit=None):
        self.store = store or ChequeStore()
        self.otps = otps or OtpStore()
        self.overrides = overrides or OverrideStore()
        self.audit = audit or AuditSink()

    # ==================== CREATE ====================

    def create_cheque(self, initiator_id, context=EMPTY_CONTEXT, attachments=None, **fields):
        missing = _missing(REQUIRED_CHEQUE_FIELDS, fields)
        if missing:
            return results.fail(results.VALIDATION, f'Missing required fields: {", ".join(missing)}')

        if self.store.cheque_no_exists(fields['cheque_no']):
            return results.fail(results.CONFLICT, DUPLICATE_CHEQUE_NO)

        try:
            with transaction.atomic():
                cheque = self.store.create(
                    initiator_id=initiator_id,
                    attachments=list(attachments or []),
                    status=Cheque.Status.SIGNED,
                    **{f: fields[f] for f in REQUIRED_CHEQUE_FIELDS},
                )
                self.audit.record(
                    AuditLog.Action.CHEQUE_CREATED,
                    cheque_id=cheque.pk,
                    actor_id=initiator_id,
                    details={
                        'chequeNo': cheque.cheque_no,
                        'amount': str(cheque.amount),
                        'bank': cheque.bank,
                        'payeeName': cheque.payee_name,
                    },
                    context=context,
                )
        except IntegrityError:
            # Lost the race against a concurrent create with the same number
            return results.fail(results.CONFLICT, DUPLICATE_CHEQUE_NO)

        logger.info(f'Cheque created: {cheque.cheque_no} by user={initiator_id}')
        return results.ok(cheque=cheque)

    # ==================== TRANSITIONS ====================

    def mark_ready_for_dispatch(self, cheque_id, user_id, context=EMPTY_CONTEXT):
        cheque = self.store.get(cheque_id)
        if not cheque:
            return results.fail(results.NOT_FOUND, 'Cheque not found')
        if cheque.status != Cheque.Status.SIGNED:
            return _invalid_transition(cheque)

        with transaction.atomic():
            if not self.store.transition(cheque.pk, [Cheque.Status.SIGNED], Cheque.Status.READY_FOR_DISPATCH):
                return _invalid_transition(self.store.get(cheque.pk))
            self.audit.record(
                AuditLog.Action.STATUS_CHANGED,
                cheque_id=cheque.pk,
                actor_id=user_id,
                details={'from': Cheque.Status.SIGNED, 'to': Cheque.Status.READY_FOR_DISPATCH},
                context=context,
            )

        logger.info(f'Cheque {cheque.cheque_no} ready for dispatch')
        return results.ok(cheque=self.store.get(cheque.pk))

    def forward_to_reception(self, cheque_id, user_id, notes='', context=EMPTY_CONTEXT):
        cheque = self.store.get(cheque_id)
        if not cheque:
            return results.fail(results.NOT_FOUND, 'Cheque not found')
        if cheque.status != Cheque.Status.READY_FOR_DISPATCH:
            return _invalid_transition(cheque)

        with transaction.atomic():
            won = self.store.transition(
                cheque.pk, [Cheque.Status.READY_FOR_DISPATCH], Cheque.Status.WITH_RECEPTION,
            )
            if not won:
                return _invalid_transition(self.store.get(cheque.pk))
            self.store.add_custody_entry(
                cheque.pk, CustodyLog.Role.ACCOUNTS, CustodyLog.Role.RECEPTION, user_id, notes=notes,
            )
            self.audit.record(
                AuditLog.Action.FORWARDED_TO_RECEPTION,
                cheque_id=cheque.pk,
                actor_id=user_id,
                details={
                    'from': Cheque.Status.READY_FOR_DISPATCH,
                    'to': Cheque.Status.WITH_RECEPTION,
                    'notes': notes or '',
                },
                context=context,
            )

        logger.info(f'Cheque {cheque.cheque_no} forwarded to reception')
        return results.ok(cheque=self.store.get(cheque.pk))

    def complete_handover(self, cheque_id, handed_by_id, is_override=False, override_approved_by=None,
                          override_reason='', context=EMPTY_CONTEXT, override_id=None, **evidence):
        """
        Hand the cheque to its recipient: WITH_RECEPTION -> ISSUED.

        Authorised either by a verified (USED) OTP for the cheque, or, when
        `is_override` is set, by an APPROVED override. Given `override_id`,
        that exact request must be APPROVED for this cheque and the record
        takes its approver and reason from it; otherwise some APPROVED
        override decided by `override_approved_by` must exist. Anything else
        is refused without change.
        """
        missing = _missing(REQUIRED_HANDOVER_FIELDS, evidence)
        if missing:
            return results.fail(results.VALIDATION, f'Missing required fields: {", ".join(missing)}')

        cheque = self.store.get(cheque_id)
        if not cheque:
            return results.fail(results.NOT_FOUND, 'Cheque not found')
        if cheque.status != Cheque.Status.WITH_RECEPTION:
            return _invalid_transition(cheque)

        if is_override and override_id is not None:
            override = self.overrides.get(override_id)
            if not override:
                return results.fail(results.NOT_FOUND, 'Override request not found')
            if override.cheque_id != cheque.pk:
                return results.fail(results.VALIDATION, 'Override request does not belong to this cheque')
            if override.status == HandoverOverride.Status.REJECTED:
                return results.fail(results.CONFLICT, f'Override request is already {override.status}')
            if override.status != HandoverOverride.Status.APPROVED:
                return results.fail(
                    results.VALIDATION,
                    f'Handover not authorized: override request is {override.status}',
                )
            override_approved_by = override.decided_by_id
            override_reason = override.reason
        elif is_override:
            if not override_approved_by or not self.overrides.find_approved(cheque.pk, override_approved_by):
                return results.fail(
                    results.VALIDATION,
                    'Handover not authorized: no approved override from this approver for the cheque',
                )
        elif not self.otps.has_verified(cheque.pk):
            return results.fail(
                results.VALIDATION,
                'Handover not authorized: OTP has not been verified for this cheque',
            )

        with transaction.atomic():
            won = self.store.transition(cheque.pk, [Cheque.Status.WITH_RECEPTION], Cheque.Status.ISSUED)
            if not won:
                return _invalid_transition(self.store.get(cheque.pk))

            record = self.store.create_handover(
                cheque_id=cheque.pk,
                handed_by_id=handed_by_id,
                is_override=bool(is_override),
                override_approved_by_id=override_approved_by if is_override else None,
                override_reason=(override_reason or '') if is_override else '',
                **{f: evidence[f] for f in REQUIRED_HANDOVER_FIELDS},
            )
            self.store.add_custody_entry(
                cheque.pk, CustodyLog.Role.RECEPTION, CustodyLog.Role.VENDOR, handed_by_id,
                notes=f'Handed to {record.recipient_name} ({record.id_type}: {record.id_number})',
            )
            self.audit.record(
                AuditLog.Action.HANDOVER_COMPLETED,
                cheque_id=cheque.pk,
                actor_id=handed_by_id,
                details={
                    'recipientName': record.recipient_name,
                    'idType': record.id_type,
                    'idNumber': record.id_number,
                    'isOverride': record.is_override,
                    'handoverRecordId': str(record.pk),
                },
                context=context,
            )

        logger.info(f'Cheque {cheque.cheque_no} issued to {record.recipient_name} '
                    f'(override={record.is_override})')
        return results.ok(cheque=self.store.get(cheque.pk), handover=record)

    def cancel_cheque(self, cheque_id, user_id, reason, context=EMPTY_CONTEXT):
        reason = (reason or '').strip()
        if not reason:
            return results.fail(results.VALIDATION, 'Cancellation reason is required')

        cheque = self.store.get(cheque_id)
        if not cheque:
            return results.fail(results.NOT_FOUND, 'Cheque not found')
        if cheque.status == Cheque.Status.ISSUED:
            return results.fail(results.CONFLICT, 'Cannot cancel an already issued cheque')
        if cheque.status == Cheque.Status.CANCELLED:
            return _invalid_transition(cheque)

        cancellable = [s for s in Cheque.Status.values if s not in Cheque.TERMINAL_STATUSES]
        with transaction.atomic():
            if not self.store.transition(cheque.pk, [cheque.status], Cheque.Status.CANCELLED):
                current = self.store.get(cheque.pk)
                if current.status == Cheque.Status.ISSUED:
                    return results.fail(results.CONFLICT, 'Cannot cancel an already issued cheque')
                if current.status not in cancellable:
                    return _invalid_transition(current)
                # Moved on to another live status; cancel from there
                if not self.store.transition(cheque.pk, [current.status], Cheque.Status.CANCELLED):
                    return _invalid_transition(self.store.get(cheque.pk))
                cheque = current
            self.audit.record(
                AuditLog.Action.CHEQUE_CANCELLED,
                cheque_id=cheque.pk,
                actor_id=user_id,
                details={'previousStatus': cheque.status, 'reason': reason},
                context=context,
            )

        logger.info(f'Cheque {cheque.cheque_no} cancelled from {cheque.status}')
        return results.ok(cheque=self.store.get(cheque.pk))

    # ==================== READS ====================

    def get_cheque_by_id(self, cheque_id):
        cheque = self.store.get(cheque_id)
        if not cheque:
            return results.fail(results.NOT_FOUND, 'Cheque not found')
        return results.ok(
            cheque=cheque,
            custody_logs=self.store.custody_entries(cheque.pk),
            handover=self.store.handover_for(cheque.pk),
        )

    def list_cheques(self, role=None, user_id=None, status=None, search=None,
                     limit=DEFAULT_PAGE_SIZE, offset=0):
        """
        Role-scoped listing: reception sees cheques at reception, accounts
        sees cheques still with accounts, a director sees only their own.
        """
        qs = self.store.queryset()
        if role in ROLE_STATUS_SCOPE:
            qs = qs.filter(status__in=ROLE_STATUS_SCOPE[role])
        elif role == StaffUser.Role.DIRECTOR:
            qs = qs.filter(initiator_id=user_id)

        filterset = ChequeFilter({'status': status or '', 'search': search or ''}, queryset=qs)
        if not filterset.is_valid():
            return results.fail(results.VALIDATION, f'Invalid filter: {dict(filterset.errors)}')
        qs = filterset.qs.order_by('-created_at')

        limit = max(1, min(int(limit or DEFAULT_PAGE_SIZE), MAX_PAGE_SIZE))
        offset = max(0, int(offset or 0))
        return results.ok(
            cheques=list(qs[offset:offset + limit]),
            total=qs.count(),
            limit=limit,
            offset=offset,
        )

    def get_audit_trail(self, cheque_id):
        cheque = self.store.get(cheque_id)
        if not cheque:
            return results.fail(results.NOT_FOUND, 'Cheque not found')
        return results.ok(entries=self.audit.trail(cheque.pk))
