from django.db import models
from django.contrib.auth.models import AbstractUser, BaseUserManager
from auditlog.registry import auditlog
from auditlog.models import AuditlogHistoryField


class MemberManager(BaseUserManager):
    """
    Manager for Member. Handles member and superuser creation using email as the unique identifier.
    """
    def create_user(self, email, password=None, **extra_fields):
        if not email:
            raise ValueError("Email is required.")
        email = self.normalize_email(email)
        extra_fields.setdefault('username', email)
        user = self.model(email=email, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_superuser(self, email, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)
        extra_fields.setdefault('is_active', True)

        return self.create_user(email, password, **extra_fields)


class Member(AbstractUser):
    """
    Portal member. Logs in with email; a member is either a contractor or a
    client commissioning work. Staff members act as administrators.
    """
    MEMBER_TYPE_CHOICES = (
        ('contractor', 'Contractor'),
        ('client', 'Client'),
    )

    email = models.EmailField(unique=True)
    member_type = models.CharField(max_length=20, choices=MEMBER_TYPE_CHOICES)
    company_name = models.CharField(max_length=255, blank=True)
    phone_number = models.CharField(max_length=20, blank=True)
    stripe_account_id = models.CharField(max_length=255, blank=True, help_text="Stripe Connect account ID (acct_...) used for payouts")
    created_at = models.DateTimeField(auto_now_add=True)

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = ['username']

    objects = MemberManager()

    history = AuditlogHistoryField()

    def __str__(self):
        return self.email


auditlog.register(Member, exclude_fields=['password', 'last_login'])
