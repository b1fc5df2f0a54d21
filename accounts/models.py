import uuid

from django.contrib.auth.models import AbstractBaseUser, BaseUserManager, PermissionsMixin
from django.db import models
from django.utils import timezone


class StaffUserManager(BaseUserManager):
    def create_user(self, email, password=None, **extra_fields):
        if not email:
            raise ValueError('Staff user must have an email')
        email = self.normalize_email(email)
        user = self.model(email=email, **extra_fields)
        if password:
            user.set_password(password)
        else:
            user.set_unusable_password()
        user.save(using=self._db)
        return user

    def create_superuser(self, email, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)
        extra_fields.setdefault('role', StaffUser.Role.ADMIN)
        return self.create_user(email, password=password, **extra_fields)


class StaffUser(AbstractBaseUser, PermissionsMixin):
    """
    Back-office user. The (id, role) pair is the caller identity every
    cheque operation is performed under.
    """

    class Role(models.TextChoices):
        DIRECTOR = 'director', 'Director'
        ACCOUNTS = 'accounts', 'Accounts'
        RECEPTION = 'reception', 'Reception'
        HOD = 'hod', 'Head of Department'
        ADMIN = 'admin', 'Admin'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    email = models.EmailField(unique=True)
    name = models.CharField(max_length=100, blank=True, default='')
    phone = models.CharField(max_length=20, blank=True, default='')
    role = models.CharField(max_length=20, choices=Role.choices, default=Role.DIRECTOR, db_index=True)

    is_active = models.BooleanField(default=True)
    is_staff = models.BooleanField(default=False)
    date_joined = models.DateTimeField(default=timezone.now)

    objects = StaffUserManager()

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = []

    class Meta:
        verbose_name = 'Staff user'
        verbose_name_plural = 'Staff users'
        ordering = ['email']

    def __str__(self):
        return self.name or self.email
