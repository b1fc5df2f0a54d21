"""
Seed one staff account per role for local development.
"""

from django.core.management.base import BaseCommand

from accounts.models import StaffUser

DEV_PASSWORD = 'changeme123'


class Command(BaseCommand):
    help = 'Seed development staff accounts (one per role)'

    def add_arguments(self, parser):
        parser.add_argument('--domain', default='example.com', help='Email domain for seeded users')
        parser.add_argument('--password', default=DEV_PASSWORD)

    def handle(self, *args, **options):
        domain = options['domain']
        for role, label in StaffUser.Role.choices:
            email = f'{role}@{domain}'
            if StaffUser.objects.filter(email=email).exists():
                continue
            if role == StaffUser.Role.ADMIN:
                StaffUser.objects.create_superuser(email, options['password'], name=f'{label} User')
            else:
                StaffUser.objects.create_user(email, options['password'], name=f'{label} User', role=role)
            self.stdout.write(f'  Created {label}: {email}')

        self.stdout.write(self.style.SUCCESS('Staff accounts seeded'))
