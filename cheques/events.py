"""
Outbound staff notifications.

Events are written to the OutboundNotification outbox in the caller's
transaction and handed to Celery once that transaction commits, so a
notification exists only for a change that really happened and a delivery
failure stays visible on the row.
"""

import logging

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.mail import send_mail
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from cheques.models import OutboundNotification

logger = logging.getLogger(__name__)

OVERRIDE_REQUESTED = 'OVERRIDE_REQUESTED'
OVERRIDE_APPROVED = 'OVERRIDE_APPROVED'
OVERRIDE_REJECTED = 'OVERRIDE_REJECTED'

SUBJECTS = {
    OVERRIDE_REQUESTED: 'Handover override awaiting approval: cheque {cheque_no}',
    OVERRIDE_APPROVED: 'Handover override approved: cheque {cheque_no}',
    OVERRIDE_REJECTED: 'Handover override rejected: cheque {cheque_no}',
}


def enqueue(event, audience_role, cheque_id=None, payload=None):
    """Write an outbox row and schedule its delivery after commit."""
    notification = OutboundNotification.objects.create(
        event=event,
        audience_role=audience_role,
        cheque_id=cheque_id,
        payload=payload or {},
    )
    notification_id = str(notification.pk)

    def _schedule():
        from cheques.tasks import task_deliver_notification
        task_deliver_notification.delay(notification_id)

    transaction.on_commit(_schedule)
    logger.info(f'Queued {event} notification for role={audience_role} ({notification_id})')
    return notification


def _render(notification):
    payload = notification.payload or {}
    subject = SUBJECTS.get(notification.event, notification.event).format(
        cheque_no=payload.get('chequeNo', ''),
    )
    lines = [subject, '']
    for key, value in payload.items():
        lines.append(f'{key}: {value}')
    return subject, '\n'.join(lines)


def deliver_notification(notification_id):
    """
    Email every active user with the notification's audience role.

    Returns:
        tuple: (success, error). A missing or already-sent row counts as success.
    """
    notification = OutboundNotification.objects.filter(pk=notification_id).first()
    if not notification:
        logger.warning(f'Notification {notification_id} not found')
        return True, ''
    if notification.status == OutboundNotification.Status.SENT:
        return True, ''

    recipients = list(
        get_user_model().objects.filter(role=notification.audience_role, is_active=True)
        .exclude(email='').values_list('email', flat=True)
    )
    OutboundNotification.objects.filter(pk=notification.pk).update(attempts=F('attempts') + 1)

    if not recipients:
        error = f'No active {notification.audience_role} users to notify'
        _mark(notification, OutboundNotification.Status.FAILED, error)
        logger.warning(f'{notification.event} notification {notification.pk}: {error}')
        return False, error

    subject, body = _render(notification)
    try:
        send_mail(subject, body, settings.DEFAULT_FROM_EMAIL, recipients, fail_silently=False)
    except Exception as e:
        _mark(notification, OutboundNotification.Status.FAILED, str(e))
        logger.warning(f'{notification.event} notification {notification.pk} failed: {e}')
        return False, str(e)

    _mark(notification, OutboundNotification.Status.SENT, '')
    logger.info(f'{notification.event} notification sent to {len(recipients)} {notification.audience_role} user(s)')
    return True, ''


def _mark(notification, status, error):
    changes = {'status': status, 'last_error': error}
    if status == OutboundNotification.Status.SENT:
        changes['sent_at'] = timezone.now()
    OutboundNotification.objects.filter(pk=notification.pk).update(**changes)
