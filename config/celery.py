"""
Chequedesk Celery Configuration
Queue routing, beat scheduling and task isolation for the cheque desk.
"""

import os
from celery import Celery
from celery.schedules import crontab

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')

app = Celery('chequedesk')
app.config_from_object('django.conf:settings', namespace='CELERY')

# Queue definitions
app.conf.task_default_queue = 'default'

app.conf.task_routes = {
    'cheques.tasks.task_deliver_notification': {'queue': 'notifications'},
    'cheques.*': {'queue': 'default'},
}

app.conf.task_queues = {
    'default': {
        'exchange': 'default',
        'routing_key': 'default',
    },
    'notifications': {
        'exchange': 'notifications',
        'routing_key': 'notifications',
    },
}

app.autodiscover_tasks()

# Celery Beat Schedule
app.conf.beat_schedule = {
    # Expire stale handover OTPs every 5 minutes
    'expire-old-otps': {
        'task': 'cheques.tasks.task_expire_old_otps',
        'schedule': crontab(minute='*/5'),
    },
}
