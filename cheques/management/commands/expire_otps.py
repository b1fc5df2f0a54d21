"""
Expire handover OTPs that are still PENDING past their expiry.

Same sweep as the Celery beat task, for cron or manual runs.

Usage:
    python manage.py expire_otps             # Expire stale codes
    python manage.py expire_otps --dry-run   # Only count them
"""

from django.core.management.base import BaseCommand
from django.utils import timezone

from cheques.models import Otp
from cheques.otp_service import OtpService


class Command(BaseCommand):
    help = 'Expire PENDING handover OTPs whose expiry has passed'

    def add_arguments(self, parser):
        parser.add_argument('--dry-run', action='store_true', help='Count stale OTPs without changing them')

    def handle(self, *args, **options):
        if options['dry_run']:
            stale = Otp.objects.filter(status=Otp.Status.PENDING, expires_at__lte=timezone.now()).count()
            self.stdout.write(f'{stale} stale OTP(s) would be expired')
            return

        count = OtpService().expire_old_otps()
        self.stdout.write(self.style.SUCCESS(f'Expired {count} OTP(s)'))
