"""
OTP Service - issues, delivers, verifies and expires the one-time codes that
gate a cheque handover.

Rules:
  * at most OTP_MAX_PER_WINDOW codes per cheque in a rolling window
  * at most one PENDING, unexpired code per cheque
  * OTP_MAX_ATTEMPTS wrong guesses lock the code; a locked code stays locked
  * only the HMAC of a code is stored
"""

import logging
from datetime import timedelta

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from cheques import channels, results
from cheques.codec import codes_match, generate_code, hash_code
from cheques.context import EMPTY_CONTEXT
from cheques.models import AuditLog, Cheque, Otp
from cheques.stores import AuditSink, ChequeStore, OtpStore

logger = logging.getLogger(__name__)

# Defaults, overridden by Django settings when present
_DEFAULT_OTP_EXPIRY_MINUTES = 10
_DEFAULT_OTP_MAX_PER_WINDOW = 3
_DEFAULT_OTP_RATE_WINDOW_HOURS = 24
_DEFAULT_OTP_MAX_ATTEMPTS = 3

# A verification that loses a compare-and-swap re-reads the row and tries again
_MAX_CAS_RETRIES = 3


def _get_otp_config():
    return {
        'secret': getattr(settings, 'OTP_SECRET', '') or settings.SECRET_KEY,
        'expiry_minutes': getattr(settings, 'OTP_EXPIRY_MINUTES', _DEFAULT_OTP_EXPIRY_MINUTES),
        'max_per_window': getattr(settings, 'OTP_MAX_PER_WINDOW', _DEFAULT_OTP_MAX_PER_WINDOW),
        'window_hours': getattr(settings, 'OTP_RATE_WINDOW_HOURS', _DEFAULT_OTP_RATE_WINDOW_HOURS),
        'max_attempts': getattr(settings, 'OTP_MAX_ATTEMPTS', _DEFAULT_OTP_MAX_ATTEMPTS),
        'expose_code': getattr(settings, 'OTP_EXPOSE_CODE', False),
    }


class OtpService:

    def __init__(self, store=None, cheques=None, audit=None, sender=None, clock=None, **overrides):
        self.store = store or OtpStore()
        self.cheques = cheques or ChequeStore()
        self.audit = audit or AuditSink()
        self.sender = sender or channels.dispatch
        self.clock = clock or timezone.now

        config = _get_otp_config()
        config.update({k: v for k, v in overrides.items() if v is not None})
        self.secret = config['secret']
        self.expiry_minutes = config['expiry_minutes']
        self.max_per_window = config['max_per_window']
        self.window_hours = config['window_hours']
        self.max_attempts = config['max_attempts']
        self.expose_code = config['expose_code']

    # ==================== ISSUE ====================

    def generate_otp(self, cheque_id, channel, destination, context=EMPTY_CONTEXT, deliver=True):
        """
        Issue a new code for a cheque at reception and (by default) deliver it.

        Returns:
            dict: {'success': True, 'otp_id', 'expires_at', 'delivered'[, 'code']}
            or a failure result. 'code' is present only when OTP_EXPOSE_CODE is on.
        """
        if channel not in Otp.Channel.values:
            return results.fail(
                results.VALIDATION,
                f'Invalid channel. Must be one of: {", ".join(Otp.Channel.values)}',
            )
        destination = (destination or '').strip()
        if not destination:
            return results.fail(results.VALIDATION, 'Destination contact is required')

        code = generate_code()
        with transaction.atomic():
            cheque = self.cheques.lock(cheque_id)
            if not cheque:
                return results.fail(results.NOT_FOUND, 'Cheque not found')
            if cheque.status != Cheque.Status.WITH_RECEPTION:
                return results.fail(
                    results.VALIDATION,
                    f'OTP can only be issued for a cheque WITH_RECEPTION. Current status: {cheque.status}',
                )

            now = self.clock()
            window_start = now - timedelta(hours=self.window_hours)
            recent = self.store.count_created_since(cheque.pk, window_start)
            if recent >= self.max_per_window:
                logger.warning(f'OTP rate limit hit: cheque={cheque.cheque_no} issued {recent} in {self.window_hours}h')
                return results.fail(
                    results.RATE_LIMITED,
                    f'OTP generation rate limit exceeded. Maximum {self.max_per_window} OTPs '
                    f'per {self.window_hours} hours.',
                )

            if self.store.find_pending(cheque.pk, now):
                return results.fail(
                    results.CONFLICT,
                    'An active OTP already exists. Please wait for it to expire or use it.',
                )

            otp = self.store.create(
                cheque=cheque,
                code_hash=hash_code(code, self.secret),
                channel=channel,
                destination=destination,
                expires_at=now + timedelta(minutes=self.expiry_minutes),
                ip_address=context.ip_address,
                user_agent=context.user_agent,
            )
            self.audit.record(
                AuditLog.Action.OTP_GENERATED,
                cheque_id=cheque.pk,
                details={'channel': channel, 'toContact': destination, 'otpId': str(otp.pk)},
                context=context,
            )

        logger.info(f'OTP issued: cheque={cheque.cheque_no}, channel={channel}, '
                    f'to={channels.mask_contact(destination)}, otp={otp.pk}')
        if self.expose_code:
            logger.info(f'[dev] OTP for cheque {cheque.cheque_no}: {code} (expires in {self.expiry_minutes} mins)')

        result = results.ok(otp_id=str(otp.pk), expires_at=otp.expires_at, delivered=False)
        if self.expose_code:
            result['code'] = code

        if deliver:
            sent = self.send_otp(channel, destination, code, cheque.cheque_no)
            if not sent['success']:
                self._retire_undelivered(otp, cheque.pk, sent['error'], context)
                failure = results.fail(
                    results.DELIVERY_FAILED,
                    f'Could not deliver OTP via {channel}: {sent["error"]}',
                    otp_id=str(otp.pk),
                )
                return failure
            result['delivered'] = True

        return result

    def _retire_undelivered(self, otp, cheque_id, error, context):
        """An undelivered code can never be entered; expire it so another channel can be tried."""
        with transaction.atomic():
            if self.store.compare_and_update(otp, status=Otp.Status.EXPIRED):
                self.audit.record(
                    AuditLog.Action.OTP_EXPIRED,
                    cheque_id=cheque_id,
                    details={'otpId': str(otp.pk), 'reason': 'delivery_failed', 'error': error},
                    context=context,
                )
        logger.error(f'OTP delivery failed for otp={otp.pk}: {error}')

    def send_otp(self, channel, destination, code, cheque_no):
        """Format the handover message and hand it to the channel. Never raises."""
        message = (
            f'Your OTP for cheque {cheque_no} handover is: {code}. '
            f'Valid for {self.expiry_minutes} minutes.'
        )
        try:
            success, error = self.sender(channel, destination, message)
        except Exception as e:
            logger.exception(f'OTP send via {channel} raised')
            return results.fail(results.DELIVERY_FAILED, str(e) or 'Failed to send OTP')
        if not success:
            return results.fail(results.DELIVERY_FAILED, error or 'Failed to send OTP')
        return results.ok()

    # ==================== VERIFY ====================

    def verify_otp(self, cheque_id, code, user_id, context=EMPTY_CONTEXT):
        """
        Check a submitted code against the cheque's active OTP.

        Returns:
            dict: {'success': True, 'otp_id'} or a failure carrying
            'remaining_attempts' and 'locked' so the caller can offer an override.
        """
        for _ in range(_MAX_CAS_RETRIES):
            # One reading of the clock per pass: lookup, expiry check and used_at agree
            now = self.clock()
            otp = self.store.find_active(cheque_id, now)
            if not otp:
                return results.fail(results.NOT_FOUND, 'No active OTP found or OTP has expired.')

            if otp.status == Otp.Status.LOCKED:
                return results.fail(
                    results.LOCKED,
                    'OTP is locked due to too many failed attempts. Manual override required.',
                    locked=True, remaining_attempts=0,
                )

            if now >= otp.expires_at:
                with transaction.atomic():
                    if self.store.compare_and_update(otp, status=Otp.Status.EXPIRED):
                        self.audit.record(
                            AuditLog.Action.OTP_EXPIRED, cheque_id=otp.cheque_id, actor_id=user_id,
                            details={'otpId': str(otp.pk)}, context=context,
                        )
                return results.fail(results.VALIDATION, 'OTP has expired.')

            new_attempts = otp.attempts + 1

            if codes_match(code or '', otp.code_hash, self.secret):
                with transaction.atomic():
                    won = self.store.compare_and_update(
                        otp, status=Otp.Status.USED, used_at=now, used_by_id=user_id, attempts=new_attempts,
                    )
                    if won:
                        self.audit.record(
                            AuditLog.Action.OTP_VERIFIED, cheque_id=otp.cheque_id, actor_id=user_id,
                            details={'otpId': str(otp.pk)}, context=context,
                        )
                if not won:
                    continue
                logger.info(f'OTP verified: otp={otp.pk} by user={user_id}')
                return results.ok(otp_id=str(otp.pk))

            should_lock = new_attempts >= self.max_attempts
            with transaction.atomic():
                won = self.store.compare_and_update(
                    otp,
                    attempts=new_attempts,
                    status=Otp.Status.LOCKED if should_lock else Otp.Status.PENDING,
                )
                if won:
                    self.audit.record(
                        AuditLog.Action.OTP_FAILED, cheque_id=otp.cheque_id, actor_id=user_id,
                        details={'otpId': str(otp.pk), 'attempts': new_attempts, 'locked': should_lock},
                        context=context,
                    )
            if not won:
                continue

            if should_lock:
                logger.warning(f'OTP locked after {new_attempts} failed attempts: otp={otp.pk}')
            return results.fail(
                results.LOCKED if should_lock else results.VALIDATION,
                'Invalid OTP.',
                remaining_attempts=max(0, self.max_attempts - new_attempts),
                locked=should_lock,
            )

        logger.warning(f'OTP verification for cheque={cheque_id} kept losing concurrent updates')
        return results.fail(results.CONFLICT, 'OTP is being verified concurrently. Please retry.')

    # ==================== SWEEP ====================

    def expire_old_otps(self):
        """Expire every PENDING code past its expiry. Returns the number expired."""
        with transaction.atomic():
            count, ids = self.store.expire_stale(self.clock())
            if count:
                self.audit.record(
                    AuditLog.Action.OTPS_EXPIRED,
                    details={'count': count, 'otpIds': [str(i) for i in ids]},
                )
        if count:
            logger.info(f'Expired {count} stale OTPs')
        return count

    def has_verified_otp(self, cheque_id):
        return self.store.has_verified(cheque_id)
