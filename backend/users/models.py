from django.contrib.auth.models import AbstractUser
from django.core.validators import FileExtensionValidator
from django.db import models

from .validators import validate_image_size

IMAGE_EXTENSIONS = ["jpg", "jpeg", "png", "gif"]


class UserRole(models.TextChoices):
    ADMIN = "admin", "Admin"
    PELANGGAN = "pelanggan", "Mitra Outlet"
    SUPERVISOR = "supervisor", "Supervisor"
    OPERATOR = "operator", "Operator"


STAFF_ROLES = (UserRole.ADMIN, UserRole.SUPERVISOR, UserRole.OPERATOR)


class User(AbstractUser):
    """Account for every role; partner-only data lives on ``loyalty.Partner``."""

    role = models.CharField(
        max_length=20,
        choices=UserRole.choices,
        default=UserRole.PELANGGAN,
    )
    nama = models.CharField(max_length=255, blank=True)
    phone = models.CharField(max_length=30, blank=True)
    tap = models.CharField(max_length=100, blank=True)
    jabatan = models.CharField(max_length=100, blank=True)
    photo = models.FileField(
        upload_to="profiles/",
        blank=True,
        null=True,
        validators=[FileExtensionValidator(IMAGE_EXTENSIONS), validate_image_size],
    )

    @property
    def is_partner(self) -> bool:
        return self.role == UserRole.PELANGGAN and not self.is_superuser

    @property
    def is_staff_role(self) -> bool:
        return self.is_superuser or self.role in STAFF_ROLES

    def __str__(self) -> str:
        return f"{self.username} ({self.role})"
