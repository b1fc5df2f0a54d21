"""
Celery tasks for the cheques app:
- Periodic sweep of expired handover OTPs
- Staff notification delivery with exponential backoff retries
"""

import logging
from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task(name='cheques.tasks.task_expire_old_otps', bind=True, max_retries=0, ignore_result=True)
def task_expire_old_otps(self):
    """Move every PENDING OTP past its expiry to EXPIRED."""
    from cheques.otp_service import OtpService

    count = OtpService().expire_old_otps()
    if count:
        logger.info(f'OTP sweep expired {count} code(s)')
    return count


@shared_task(name='cheques.tasks.task_deliver_notification', bind=True, max_retries=5, default_retry_delay=10)
def task_deliver_notification(self, notification_id):
    """Deliver one outbox notification, retrying with exponential backoff."""
    from cheques.events import deliver_notification

    success, error = deliver_notification(notification_id)
    if success:
        return {'success': True, 'notification_id': notification_id}

    if self.request.retries < self.max_retries:
        delay = 10 * (2 ** self.request.retries)  # 10, 20, 40, 80, 160 seconds
        logger.warning(f'Retrying notification {notification_id} in {delay}s '
                       f'(attempt {self.request.retries + 1}): {error}')
        raise self.retry(countdown=delay)

    logger.error(f'Notification {notification_id} gave up after {self.request.retries + 1} attempts: {error}')
    return {'success': False, 'notification_id': notification_id, 'error': error}
