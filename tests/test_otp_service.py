from datetime import timedelta
from unittest.mock import Mock, patch

import pytest
from django.db.models.query import QuerySet

from cheques import results
from cheques.codec import hash_code
from cheques.context import RequestContext
from cheques.models import AuditLog, Cheque, Otp
from cheques.otp_service import OtpService

pytestmark = pytest.mark.django_db


def _wrong(code):
    return '111111' if code != '111111' else '222222'


class TestGenerateOtp:
    def test_issues_pending_otp(self, otp_service, cheque_at_reception, clock, sender):
        result = otp_service.generate_otp(cheque_at_reception.pk, 'sms', '0241234567')

        assert result['success']
        assert result['delivered'] is True
        otp = Otp.objects.get(pk=result['otp_id'])
        assert otp.status == Otp.Status.PENDING
        assert otp.attempts == 0
        assert otp.expires_at == clock.now + timedelta(minutes=10)
        assert result['expires_at'] == otp.expires_at

    def test_stores_hash_not_plaintext(self, otp_service, cheque_at_reception):
        result = otp_service.generate_otp(cheque_at_reception.pk, 'sms', '0241234567')

        otp = Otp.objects.get(pk=result['otp_id'])
        assert otp.code_hash == hash_code(result['code'], 'test-otp-secret')
        assert result['code'] not in otp.code_hash

    def test_audit_entry_without_code(self, otp_service, cheque_at_reception):
        context = RequestContext(ip_address='10.0.0.5', user_agent='pytest')
        result = otp_service.generate_otp(cheque_at_reception.pk, 'whatsapp', '0241234567', context=context)

        entry = AuditLog.objects.get(cheque=cheque_at_reception, action=AuditLog.Action.OTP_GENERATED)
        assert entry.details == {'channel': 'whatsapp', 'toContact': '0241234567', 'otpId': result['otp_id']}
        assert result['code'] not in str(entry.details)
        assert entry.ip_address == '10.0.0.5'
        assert entry.user_agent == 'pytest'

    def test_message_handed_to_channel(self, otp_service, cheque_at_reception, sender):
        result = otp_service.generate_otp(cheque_at_reception.pk, 'email', 'ama@example.com')

        assert sender.sent == [(
            'email', 'ama@example.com',
            f'Your OTP for cheque {cheque_at_reception.cheque_no} handover is: {result["code"]}. '
            f'Valid for 10 minutes.',
        )]

    def test_code_hidden_unless_exposed(self, cheque_at_reception, clock, sender):
        service = OtpService(sender=sender, clock=clock, expose_code=False)
        result = service.generate_otp(cheque_at_reception.pk, 'sms', '0241234567')

        assert result['success']
        assert 'code' not in result
        assert len(sender.sent) == 1

    def test_rejects_unknown_channel(self, otp_service, cheque_at_reception):
        result = otp_service.generate_otp(cheque_at_reception.pk, 'pigeon', '0241234567')

        assert not result['success']
        assert result['error_kind'] == results.VALIDATION
        assert not Otp.objects.exists()

    def test_unknown_cheque(self, otp_service):
        result = otp_service.generate_otp('00000000-0000-0000-0000-000000000000', 'sms', '0241234567')

        assert result['error_kind'] == results.NOT_FOUND

    def test_cheque_must_be_with_reception(self, otp_service, make_cheque):
        cheque = make_cheque(status=Cheque.Status.READY_FOR_DISPATCH)

        result = otp_service.generate_otp(cheque.pk, 'sms', '0241234567')

        assert result['error_kind'] == results.VALIDATION
        assert 'READY_FOR_DISPATCH' in result['error']

    def test_single_active_otp(self, otp_service, cheque_at_reception):
        first = otp_service.generate_otp(cheque_at_reception.pk, 'sms', '0241234567')
        second = otp_service.generate_otp(cheque_at_reception.pk, 'sms', '0241234567')

        assert first['success']
        assert not second['success']
        assert second['error_kind'] == results.CONFLICT
        assert 'active OTP already exists' in second['error']
        assert Otp.objects.filter(cheque=cheque_at_reception, status=Otp.Status.PENDING).count() == 1

    def test_new_otp_after_previous_expires(self, otp_service, cheque_at_reception, clock):
        otp_service.generate_otp(cheque_at_reception.pk, 'sms', '0241234567')
        clock.advance(minutes=11)

        result = otp_service.generate_otp(cheque_at_reception.pk, 'sms', '0241234567')

        assert result['success']

    def test_rate_limit_rolling_window(self, otp_service, cheque_at_reception, clock):
        for _ in range(3):
            assert otp_service.generate_otp(cheque_at_reception.pk, 'sms', '0241234567')['success']
            clock.advance(minutes=11)

        fourth = otp_service.generate_otp(cheque_at_reception.pk, 'sms', '0241234567')

        assert not fourth['success']
        assert fourth['error_kind'] == results.RATE_LIMITED
        assert 'rate limit exceeded' in fourth['error']
        assert Otp.objects.filter(cheque=cheque_at_reception).count() == 3

        clock.advance(hours=25)
        assert otp_service.generate_otp(cheque_at_reception.pk, 'sms', '0241234567')['success']

    def test_rate_limit_checked_before_active(self, otp_service, cheque_at_reception, clock):
        service = OtpService(sender=otp_service.sender, clock=clock, max_per_window=1)
        service.generate_otp(cheque_at_reception.pk, 'sms', '0241234567')

        result = service.generate_otp(cheque_at_reception.pk, 'sms', '0241234567')

        assert result['error_kind'] == results.RATE_LIMITED

    def test_delivery_failure_retires_otp(self, cheque_at_reception, clock):
        failing = Mock(return_value=(False, 'SMS channel not configured'))
        service = OtpService(sender=failing, clock=clock)

        result = service.generate_otp(cheque_at_reception.pk, 'sms', '0241234567')

        assert not result['success']
        assert result['error_kind'] == results.DELIVERY_FAILED
        otp = Otp.objects.get(pk=result['otp_id'])
        assert otp.status == Otp.Status.EXPIRED
        expired = AuditLog.objects.get(cheque=cheque_at_reception, action=AuditLog.Action.OTP_EXPIRED)
        assert expired.details['reason'] == 'delivery_failed'

        # A different channel can be tried straight away
        ok_service = OtpService(sender=Mock(return_value=(True, '')), clock=clock)
        assert ok_service.generate_otp(cheque_at_reception.pk, 'email', 'ama@example.com')['success']

    def test_deliver_false_skips_channel(self, otp_service, cheque_at_reception, sender):
        result = otp_service.generate_otp(cheque_at_reception.pk, 'sms', '0241234567', deliver=False)

        assert result['success']
        assert result['delivered'] is False
        assert sender.sent == []


class TestSendOtp:
    def test_success(self, otp_service, sender):
        assert otp_service.send_otp('sms', '0241234567', '123456', 'CHQ-1') == {'success': True}
        assert '123456' in sender.sent[0][2]
        assert 'CHQ-1' in sender.sent[0][2]

    def test_channel_exception_becomes_failure(self, clock):
        service = OtpService(sender=Mock(side_effect=RuntimeError('boom')), clock=clock)

        result = service.send_otp('sms', '0241234567', '123456', 'CHQ-1')

        assert not result['success']
        assert result['error'] == 'boom'

    def test_channel_failure(self, clock):
        service = OtpService(sender=Mock(return_value=(False, 'WhatsApp API error 400')), clock=clock)

        result = service.send_otp('whatsapp', '0241234567', '123456', 'CHQ-1')

        assert result == {
            'success': False, 'error': 'WhatsApp API error 400', 'error_kind': results.DELIVERY_FAILED,
        }


class TestVerifyOtp:
    @pytest.fixture
    def issued(self, otp_service, cheque_at_reception):
        result = otp_service.generate_otp(cheque_at_reception.pk, 'sms', '0241234567')
        return cheque_at_reception, result['code'], result['otp_id']

    def test_correct_code(self, otp_service, issued, reception_user, clock):
        cheque, code, otp_id = issued

        result = otp_service.verify_otp(cheque.pk, code, reception_user.id)

        assert result == {'success': True, 'otp_id': otp_id}
        otp = Otp.objects.get(pk=otp_id)
        assert otp.status == Otp.Status.USED
        assert otp.used_by == reception_user
        assert otp.used_at == clock.now
        assert otp.attempts == 1
        assert AuditLog.objects.filter(cheque=cheque, action=AuditLog.Action.OTP_VERIFIED).count() == 1

    def test_code_single_use(self, otp_service, issued, reception_user):
        cheque, code, _ = issued
        otp_service.verify_otp(cheque.pk, code, reception_user.id)

        again = otp_service.verify_otp(cheque.pk, code, reception_user.id)

        assert again['error_kind'] == results.NOT_FOUND

    def test_wrong_code_counts_down(self, otp_service, issued, reception_user):
        cheque, code, otp_id = issued

        first = otp_service.verify_otp(cheque.pk, _wrong(code), reception_user.id)
        second = otp_service.verify_otp(cheque.pk, _wrong(code), reception_user.id)

        assert first['error'] == 'Invalid OTP.'
        assert first['remaining_attempts'] == 2
        assert first['locked'] is False
        assert second['remaining_attempts'] == 1
        otp = Otp.objects.get(pk=otp_id)
        assert otp.status == Otp.Status.PENDING
        assert otp.attempts == 2
        failed = AuditLog.objects.filter(cheque=cheque, action=AuditLog.Action.OTP_FAILED)
        assert [e.details['attempts'] for e in failed] == [1, 2]

    def test_lockout_outlives_correct_code(self, otp_service, issued, reception_user):
        cheque, code, otp_id = issued

        responses = [otp_service.verify_otp(cheque.pk, _wrong(code), reception_user.id) for _ in range(3)]

        assert responses[-1]['locked'] is True
        assert responses[-1]['remaining_attempts'] == 0
        assert responses[-1]['error_kind'] == results.LOCKED
        assert Otp.objects.get(pk=otp_id).status == Otp.Status.LOCKED

        after = otp_service.verify_otp(cheque.pk, code, reception_user.id)

        assert not after['success']
        assert after['locked'] is True
        assert after['remaining_attempts'] == 0
        assert 'Manual override required' in after['error']
        # Locked checks consume no attempt
        assert Otp.objects.get(pk=otp_id).attempts == 3

    def test_fresh_otp_after_lockout(self, otp_service, issued, reception_user, clock):
        cheque, code, _ = issued
        for _ in range(3):
            otp_service.verify_otp(cheque.pk, _wrong(code), reception_user.id)

        # LOCKED is not PENDING, so a fresh code may be issued
        fresh = otp_service.generate_otp(cheque.pk, 'sms', '0241234567')

        assert fresh['success']
        assert otp_service.verify_otp(cheque.pk, fresh['code'], reception_user.id)['success']

    def test_no_active_otp(self, otp_service, cheque_at_reception, reception_user):
        result = otp_service.verify_otp(cheque_at_reception.pk, '123456', reception_user.id)

        assert result['error_kind'] == results.NOT_FOUND
        assert result['error'] == 'No active OTP found or OTP has expired.'

    def test_expired_otp_not_found(self, otp_service, issued, reception_user, clock):
        cheque, code, _ = issued
        clock.advance(minutes=10)

        result = otp_service.verify_otp(cheque.pk, code, reception_user.id)

        assert result['error_kind'] == results.NOT_FOUND

    def test_clock_read_once_per_attempt(self, issued, reception_user, clock, sender):
        cheque, code, otp_id = issued
        otp = Otp.objects.get(pk=otp_id)
        # A later reading would be past expiry; it must not be consulted
        ticking = Mock(side_effect=[clock.now, otp.expires_at + timedelta(seconds=1)])
        service = OtpService(sender=sender, clock=ticking)

        result = service.verify_otp(cheque.pk, code, reception_user.id)

        assert result['success']
        assert ticking.call_count == 1
        assert Otp.objects.get(pk=otp_id).used_at == clock.now

    def test_lazy_expiry_of_stale_row(self, otp_service, issued, reception_user, clock):
        cheque, code, otp_id = issued
        stale = Otp.objects.get(pk=otp_id)
        clock.advance(minutes=10)
        otp_service.store.find_active = Mock(return_value=stale)

        result = otp_service.verify_otp(cheque.pk, code, reception_user.id)

        assert result['error'] == 'OTP has expired.'
        assert Otp.objects.get(pk=otp_id).status == Otp.Status.EXPIRED
        assert AuditLog.objects.filter(cheque=cheque, action=AuditLog.Action.OTP_EXPIRED).count() == 1
        otp_service.store.find_active.assert_called_once_with(cheque.pk, clock.now)

    def test_concurrent_guess_loses_compare_and_swap(self, otp_service, issued, reception_user):
        cheque, code, otp_id = issued
        store = otp_service.store
        original = store.compare_and_update
        calls = {'n': 0}

        def racing(otp, **changes):
            calls['n'] += 1
            if calls['n'] == 1:
                # Another worker records a failed guess first
                Otp.objects.filter(pk=otp.pk).update(attempts=otp.attempts + 1)
            return original(otp, **changes)

        store.compare_and_update = racing

        result = otp_service.verify_otp(cheque.pk, _wrong(code), reception_user.id)

        assert result['remaining_attempts'] == 1
        assert Otp.objects.get(pk=otp_id).attempts == 2


class TestExpireOldOtps:
    def test_sweep_is_idempotent(self, otp_service, make_cheque, clock):
        first = make_cheque(status=Cheque.Status.WITH_RECEPTION)
        second = make_cheque(status=Cheque.Status.WITH_RECEPTION)
        otp_service.generate_otp(first.pk, 'sms', '0241234567')
        otp_service.generate_otp(second.pk, 'sms', '0241234568')
        clock.advance(minutes=15)
        live = make_cheque(status=Cheque.Status.WITH_RECEPTION)
        otp_service.generate_otp(live.pk, 'sms', '0241234569')

        assert otp_service.expire_old_otps() == 2
        assert otp_service.expire_old_otps() == 0

        assert Otp.objects.filter(status=Otp.Status.EXPIRED).count() == 2
        assert Otp.objects.get(cheque=live).status == Otp.Status.PENDING
        sweeps = AuditLog.objects.filter(action=AuditLog.Action.OTPS_EXPIRED)
        assert sweeps.count() == 1
        assert sweeps.get().details['count'] == 2
        assert sweeps.get().cheque is None

    def test_audit_lists_exactly_the_expired_rows(self, otp_service, make_cheque, clock):
        stale = make_cheque(status=Cheque.Status.WITH_RECEPTION)
        locked = make_cheque(status=Cheque.Status.WITH_RECEPTION)
        stale_id = otp_service.generate_otp(stale.pk, 'sms', '0241234567')['otp_id']
        locked_id = otp_service.generate_otp(locked.pk, 'sms', '0241234568')['otp_id']
        Otp.objects.filter(pk=locked_id).update(status=Otp.Status.LOCKED, attempts=3)
        clock.advance(minutes=15)
        original = QuerySet.select_for_update

        with patch.object(QuerySet, 'select_for_update', autospec=True, side_effect=original) as lock:
            assert otp_service.expire_old_otps() == 1

        assert lock.called
        sweep = AuditLog.objects.get(action=AuditLog.Action.OTPS_EXPIRED)
        assert sweep.details == {'count': 1, 'otpIds': [str(stale_id)]}
        assert Otp.objects.get(pk=locked_id).status == Otp.Status.LOCKED

    def test_used_and_locked_left_alone(self, otp_service, cheque_at_reception, reception_user, clock):
        result = otp_service.generate_otp(cheque_at_reception.pk, 'sms', '0241234567')
        otp_service.verify_otp(cheque_at_reception.pk, result['code'], reception_user.id)
        clock.advance(hours=1)

        assert otp_service.expire_old_otps() == 0
        assert Otp.objects.get(pk=result['otp_id']).status == Otp.Status.USED
