"""
Authentication models.

This module defines the identity models the marketplace relies on:
- User: Custom user model with email-based authentication (slim, auth-focused)
- Profile: Display name, phone and Stripe customer reference (OneToOne with User)
- UserRole: Stored role assignments; "admin" gates the payout console

Related files:
    - managers.py: Custom user manager for email-based creation
    - context.py: AuthContext built from a User and its roles
    - signals.py: Auto-create profile on user creation
"""

from django.conf import settings
from django.contrib.auth.models import AbstractBaseUser, PermissionsMixin
from django.db import models

from authentication.managers import UserManager
from core.models import BaseModel


class User(AbstractBaseUser, PermissionsMixin):
    """
    Custom User model using email as the primary identifier.

    Profile data (name, phone, Stripe customer) is stored in Profile.
    Marketplace roles are stored in UserRole, not on is_staff: staff only
    controls access to the Django admin site.

    Usage:
        user = User.objects.create_user(email="cliente@example.com", password="...")
        admin = User.objects.create_superuser(email="ops@example.com", password="...")
    """

    email = models.EmailField(
        unique=True,
        db_index=True,
        max_length=254,
        help_text="User's email address (primary identifier)",
    )
    email_verified = models.BooleanField(
        default=False,
        help_text="Whether the user's email has been verified",
    )
    is_active = models.BooleanField(
        default=True,
        help_text="Whether this user account is active. Deselect instead of deleting.",
    )
    is_staff = models.BooleanField(
        default=False,
        help_text="Whether the user can access the admin site.",
    )
    date_joined = models.DateTimeField(
        auto_now_add=True,
        help_text="When the user account was created",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="When the user record was last modified",
    )

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = []

    objects = UserManager()

    class Meta:
        verbose_name = "user"
        verbose_name_plural = "users"
        ordering = ["-date_joined"]

    def __str__(self):
        return self.email

    def get_full_name(self):
        """Return the profile's full name, or the email if none is set."""
        try:
            return self.profile.full_name or self.email
        except Profile.DoesNotExist:
            return self.email

    def get_short_name(self):
        try:
            return self.profile.first_name or self.email.split("@")[0]
        except Profile.DoesNotExist:
            return self.email.split("@")[0]

    @property
    def display_name(self) -> str:
        """Name shown to the other party of a job."""
        return self.get_full_name()


class Profile(BaseModel):
    """
    Extended user profile data.

    Fields:
        user: OneToOne link to User (also serves as primary key)
        first_name / last_name: Display name shown to the other party of a job
        phone: Contact phone (E.164)
        stripe_customer_id: Stripe Customer used to charge this user; filled
            lazily the first time the user authorizes a visit fee

    Note:
        Profile is automatically created via signals when a User is created.
    """

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="profile",
        primary_key=True,
        help_text="User this profile belongs to",
    )
    first_name = models.CharField(
        max_length=150,
        blank=True,
        help_text="User's first name",
    )
    last_name = models.CharField(
        max_length=150,
        blank=True,
        help_text="User's last name",
    )
    phone = models.CharField(
        max_length=20,
        blank=True,
        help_text="Contact phone in E.164 format",
    )
    stripe_customer_id = models.CharField(
        max_length=255,
        blank=True,
        db_index=True,
        help_text="Stripe Customer ID (cus_xxx)",
    )

    class Meta:
        db_table = "authentication_profile"
        verbose_name = "profile"
        verbose_name_plural = "profiles"

    def __str__(self):
        return self.full_name or str(self.user)

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()


class UserRole(BaseModel):
    """
    Stored role assignment for a user.

    The admin payout console checks for an ADMIN row here on every call,
    independently of any row-level policy in the database.

    Usage:
        UserRole.objects.create(user=user, role=UserRole.Role.ADMIN)
        UserRole.objects.filter(user=user, role=UserRole.Role.ADMIN).exists()
    """

    class Role(models.TextChoices):
        CLIENT = "client", "Client"
        PROVIDER = "provider", "Provider"
        ADMIN = "admin", "Admin"

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="roles",
        help_text="User holding this role",
    )
    role = models.CharField(
        max_length=20,
        choices=Role.choices,
        db_index=True,
        help_text="Role granted to the user",
    )

    class Meta:
        verbose_name = "user role"
        verbose_name_plural = "user roles"
        constraints = [
            models.UniqueConstraint(
                fields=["user", "role"],
                name="unique_user_role",
            ),
        ]

    def __str__(self):
        return f"{self.user} ({self.role})"
