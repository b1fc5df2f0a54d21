from unittest.mock import Mock

import pytest

from accounts.models import StaffUser
from cheques import events, results
from cheques.models import AuditLog, HandoverOverride, OutboundNotification
from cheques.override_service import HandoverOverrideService

pytestmark = pytest.mark.django_db


@pytest.fixture
def notify():
    return Mock()


@pytest.fixture
def service(notify):
    return HandoverOverrideService(notify=notify)


@pytest.fixture
def pending(service, cheque_at_reception, reception_user):
    return service.create_override_request(
        cheque_at_reception.pk, reception_user.id, 'OTP channel unreachable',
    )['override']


class TestCreateOverrideRequest:
    def test_creates_pending_request(self, service, notify, cheque_at_reception, reception_user):
        result = service.create_override_request(cheque_at_reception.pk, reception_user.id, 'Phone lost')

        override = result['override']
        assert override.status == HandoverOverride.Status.PENDING
        assert override.requested_by == reception_user
        assert override.decided_by is None
        entry = AuditLog.objects.get(cheque=cheque_at_reception, action=AuditLog.Action.OVERRIDE_REQUESTED)
        assert entry.details == {'overrideId': str(override.pk), 'reason': 'Phone lost'}
        notify.assert_called_once()
        args, kwargs = notify.call_args
        assert args == (events.OVERRIDE_REQUESTED, StaffUser.Role.HOD)
        assert kwargs['payload']['chequeNo'] == cheque_at_reception.cheque_no

    def test_reason_required(self, service, cheque_at_reception, reception_user):
        result = service.create_override_request(cheque_at_reception.pk, reception_user.id, '')

        assert result['error'] == 'Reason is required for override request'
        assert not HandoverOverride.objects.exists()

    def test_unknown_cheque(self, service, reception_user):
        result = service.create_override_request(
            '00000000-0000-0000-0000-000000000000', reception_user.id, 'Phone lost',
        )

        assert result['error_kind'] == results.NOT_FOUND

    def test_one_pending_per_cheque(self, service, pending, cheque_at_reception, reception_user):
        second = service.create_override_request(cheque_at_reception.pk, reception_user.id, 'Again')

        assert second['error'] == 'An override request is already pending for this cheque'
        assert second['error_kind'] == results.CONFLICT
        assert HandoverOverride.objects.filter(cheque=cheque_at_reception).count() == 1

    def test_database_constraint_catches_race(self, service, pending, cheque_at_reception, reception_user):
        service.store.find_pending = Mock(return_value=None)

        second = service.create_override_request(cheque_at_reception.pk, reception_user.id, 'Again')

        assert second['error_kind'] == results.CONFLICT
        assert HandoverOverride.objects.filter(status=HandoverOverride.Status.PENDING).count() == 1
        assert AuditLog.objects.filter(action=AuditLog.Action.OVERRIDE_REQUESTED).count() == 1

    def test_new_request_after_rejection(self, service, pending, cheque_at_reception, reception_user, hod):
        service.reject_override(pending.pk, hod.id, 'Recipient not verified')

        result = service.create_override_request(cheque_at_reception.pk, reception_user.id, 'Recipient back')

        assert result['success']


class TestDecisions:
    def test_approve(self, service, notify, pending, hod, reception_user):
        result = service.approve_override(pending.pk, hod.id)

        override = result['override']
        assert override.status == HandoverOverride.Status.APPROVED
        assert override.decided_by == hod
        assert override.decided_at is not None
        entry = AuditLog.objects.get(action=AuditLog.Action.OVERRIDE_APPROVED)
        assert entry.actor == hod
        assert entry.details == {
            'overrideId': str(pending.pk),
            'requestedBy': str(reception_user.id),
            'reason': 'OTP channel unreachable',
        }
        assert notify.call_args[0] == (events.OVERRIDE_APPROVED, StaffUser.Role.RECEPTION)

    def test_approval_does_not_touch_cheque(self, service, pending, hod, cheque_at_reception):
        service.approve_override(pending.pk, hod.id)

        cheque_at_reception.refresh_from_db()
        assert cheque_at_reception.status == 'WITH_RECEPTION'

    def test_reject(self, service, pending, hod):
        result = service.reject_override(pending.pk, hod.id, 'Recipient not verified')

        override = result['override']
        assert override.status == HandoverOverride.Status.REJECTED
        assert override.rejected_reason == 'Recipient not verified'
        entry = AuditLog.objects.get(action=AuditLog.Action.OVERRIDE_REJECTED)
        assert entry.details['rejectedReason'] == 'Recipient not verified'

    def test_reject_reason_required(self, service, pending, hod):
        result = service.reject_override(pending.pk, hod.id, '')

        assert result['error'] == 'Rejection reason is required'
        pending.refresh_from_db()
        assert pending.status == HandoverOverride.Status.PENDING

    @pytest.mark.parametrize('first, second', [
        ('approve', 'approve'), ('approve', 'reject'), ('reject', 'approve'), ('reject', 'reject'),
    ])
    def test_decided_override_is_final(self, service, pending, hod, first, second):
        def decide(action):
            if action == 'approve':
                return service.approve_override(pending.pk, hod.id)
            return service.reject_override(pending.pk, hod.id, 'No')

        decide(first)
        before = HandoverOverride.objects.get(pk=pending.pk)
        audit_before = AuditLog.objects.count()

        result = decide(second)

        expected = 'APPROVED' if first == 'approve' else 'REJECTED'
        assert result['error'] == f'Override request is already {expected}'
        assert result['error_kind'] == results.CONFLICT
        after = HandoverOverride.objects.get(pk=pending.pk)
        assert (after.status, after.decided_at, after.rejected_reason) == \
            (before.status, before.decided_at, before.rejected_reason)
        assert AuditLog.objects.count() == audit_before

    def test_concurrent_decision_only_one_wins(self, service, pending, hod, make_user):
        rival = make_user(StaffUser.Role.HOD)
        original = service.store.decide

        def racing(override_id, **changes):
            HandoverOverride.objects.filter(pk=override_id).update(
                status=HandoverOverride.Status.REJECTED, decided_by=rival, rejected_reason='First',
            )
            return original(override_id, **changes)

        service.store.decide = racing

        result = service.approve_override(pending.pk, hod.id)

        assert result['error'] == 'Override request is already REJECTED'
        assert HandoverOverride.objects.get(pk=pending.pk).decided_by == rival
        assert not AuditLog.objects.filter(action=AuditLog.Action.OVERRIDE_APPROVED).exists()

    def test_unknown_override(self, service, hod):
        missing = '00000000-0000-0000-0000-000000000000'

        assert service.approve_override(missing, hod.id)['error'] == 'Override request not found'
        assert service.reject_override(missing, hod.id, 'No')['error_kind'] == results.NOT_FOUND


class TestReads:
    def test_pending_listing(self, service, make_cheque, reception_user, hod):
        cheques = [make_cheque(status='WITH_RECEPTION') for _ in range(3)]
        created = [
            service.create_override_request(c.pk, reception_user.id, 'No signal')['override'] for c in cheques
        ]
        service.approve_override(created[0].pk, hod.id)

        page = service.get_pending_overrides(limit=1, offset=0)

        assert page['total'] == 2
        assert len(page['overrides']) == 1
        assert page['overrides'][0].status == HandoverOverride.Status.PENDING

    def test_by_id_and_by_cheque(self, service, pending, cheque_at_reception, hod):
        service.reject_override(pending.pk, hod.id, 'No')

        assert service.get_override_by_id(pending.pk)['override'] == pending
        assert [o.pk for o in service.get_overrides_by_cheque(cheque_at_reception.pk)['overrides']] == [pending.pk]
        assert service.get_overrides_by_cheque('bogus')['overrides'] == []


class TestOutboxIntegration:
    def test_request_writes_outbox_row(self, cheque_at_reception, reception_user):
        HandoverOverrideService().create_override_request(cheque_at_reception.pk, reception_user.id, 'No signal')

        row = OutboundNotification.objects.get()
        assert row.event == events.OVERRIDE_REQUESTED
        assert row.audience_role == StaffUser.Role.HOD
        assert row.status == OutboundNotification.Status.PENDING
        assert row.payload['reason'] == 'No signal'
