from decimal import Decimal

from django.conf import settings
from django.core.validators import FileExtensionValidator, MaxValueValidator, MinValueValidator
from django.db import models, transaction

from users.models import IMAGE_EXTENSIONS
from users.validators import validate_image_size

DEFAULT_LEVEL = "Bronze"

image_validators = [FileExtensionValidator(IMAGE_EXTENSIONS), validate_image_size]


class TimeStampedModel(models.Model):
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class LoyaltyProgram(TimeStampedModel):
    level = models.CharField(max_length=50, primary_key=True)
    points_needed = models.PositiveIntegerField(default=0)
    multiplier = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal("1.00"))
    benefit = models.TextField(blank=True)

    class Meta:
        ordering = ["points_needed"]

    def __str__(self) -> str:
        return f"{self.level} ({self.multiplier}x)"


class Partner(TimeStampedModel):
    """Partner outlet ("Mitra"). Exists only for users with the pelanggan role."""

    digipos_id = models.CharField(max_length=50, primary_key=True)
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="partner",
    )
    points = models.IntegerField(default=0)
    level = models.CharField(max_length=50, default=DEFAULT_LEVEL)
    kupon_undian = models.IntegerField(default=0)

    owner = models.CharField(max_length=255, blank=True)
    kabupaten = models.CharField(max_length=100, blank=True)
    kecamatan = models.CharField(max_length=100, blank=True)
    salesforce = models.CharField(max_length=255, blank=True)
    no_rs = models.CharField(max_length=50, blank=True)
    alamat = models.TextField(blank=True)

    def __str__(self) -> str:
        return f"{self.digipos_id} - {self.user.nama}"


class DigiposMaster(models.Model):
    id_digipos = models.CharField(max_length=50, primary_key=True)
    no_rs = models.CharField(max_length=50, blank=True)
    nama_outlet = models.CharField(max_length=255)
    tap = models.CharField(max_length=100, blank=True)
    salesforce = models.CharField(max_length=255, blank=True)
    is_registered = models.BooleanField(default=False)

    def __str__(self) -> str:
        return f"{self.id_digipos} ({'registered' if self.is_registered else 'available'})"


class Location(models.Model):
    kabupaten = models.CharField(max_length=100)
    kecamatan = models.CharField(max_length=100)

    class Meta:
        unique_together = ("kabupaten", "kecamatan")
        ordering = ["kabupaten", "kecamatan"]

    def __str__(self) -> str:
        return f"{self.kecamatan}, {self.kabupaten}"


class Transaction(TimeStampedModel):
    partner = models.ForeignKey(Partner, on_delete=models.CASCADE, related_name="transactions")
    date = models.DateField()
    produk = models.CharField(max_length=255)
    harga = models.DecimalField(max_digits=14, decimal_places=2)
    kuantiti = models.PositiveIntegerField()
    total_pembelian = models.DecimalField(max_digits=16, decimal_places=2)
    points_earned = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ["-date", "-id"]

    def __str__(self) -> str:
        return f"{self.partner_id} {self.produk} x{self.kuantiti} ({self.date})"


class Reward(TimeStampedModel):
    name = models.CharField(max_length=255)
    points = models.PositiveIntegerField()
    stock = models.IntegerField(default=0)
    image = models.FileField(upload_to="rewards/", blank=True, null=True, validators=image_validators)
    sort_order = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ["sort_order", "points"]

    def __str__(self) -> str:
        return f"{self.name} ({self.points} poin)"


class RedemptionStatus(models.TextChoices):
    DIAJUKAN = "Diajukan", "Diajukan"
    DIPROSES = "Diproses", "Diproses"
    SELESAI = "Selesai", "Selesai"
    DITOLAK = "Ditolak", "Ditolak"


class Redemption(TimeStampedModel):
    partner = models.ForeignKey(
        Partner,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="redemptions",
    )
    reward = models.ForeignKey(
        Reward,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="redemptions",
    )
    # snapshots kept after the partner or reward is deleted
    user_name = models.CharField(max_length=255, blank=True)
    reward_name = models.CharField(max_length=255, blank=True)

    points_spent = models.PositiveIntegerField()
    date = models.DateTimeField(auto_now_add=True)
    status = models.CharField(
        max_length=20,
        choices=RedemptionStatus.choices,
        default=RedemptionStatus.DIAJUKAN,
    )
    status_note = models.TextField(blank=True)
    status_updated_at = models.DateTimeField(blank=True, null=True)
    documentation_photo = models.FileField(
        upload_to="redemptions/",
        blank=True,
        null=True,
        validators=image_validators,
    )

    class Meta:
        ordering = ["-date", "-id"]

    def __str__(self) -> str:
        return f"{self.reward_name} - {self.user_name} ({self.status})"


class RunningProgram(TimeStampedModel):
    name = models.CharField(max_length=255)
    mechanism = models.TextField(blank=True)
    prize = models.CharField(max_length=255, blank=True)
    start_date = models.DateField()
    end_date = models.DateField()
    image = models.FileField(upload_to="programs/", blank=True, null=True, validators=image_validators)

    class Meta:
        ordering = ["-end_date", "-id"]

    def __str__(self) -> str:
        return self.name


class RunningProgramTarget(models.Model):
    program = models.ForeignKey(RunningProgram, on_delete=models.CASCADE, related_name="targets")
    partner = models.ForeignKey(Partner, on_delete=models.CASCADE, related_name="program_targets")
    progress = models.PositiveSmallIntegerField(
        default=0,
        validators=[MinValueValidator(0), MaxValueValidator(100)],
    )

    class Meta:
        unique_together = ("program", "partner")

    def __str__(self) -> str:
        return f"{self.program} - {self.partner_id}: {self.progress}%"


class RaffleProgram(TimeStampedModel):
    name = models.CharField(max_length=255)
    prize = models.CharField(max_length=255, blank=True)
    period = models.CharField(max_length=100, blank=True)
    is_active = models.BooleanField(default=False)

    class Meta:
        ordering = ["-is_active", "-id"]

    def __str__(self) -> str:
        return f"{self.name}{' (active)' if self.is_active else ''}"

    @classmethod
    def get_active(cls) -> "RaffleProgram | None":
        return cls.objects.filter(is_active=True).first()

    def save(self, *args, **kwargs):
        with transaction.atomic():
            if self.is_active:
                type(self).objects.filter(is_active=True).exclude(pk=self.pk).update(is_active=False)
            super().save(*args, **kwargs)


class CouponRedemption(models.Model):
    partner = models.ForeignKey(Partner, on_delete=models.CASCADE, related_name="coupon_redemptions")
    raffle_program = models.ForeignKey(RaffleProgram, on_delete=models.CASCADE, related_name="coupons")
    redemption = models.ForeignKey(
        Redemption,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="coupons",
    )
    redeemed_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"{self.partner_id} -> {self.raffle_program_id}"


class RaffleWinner(TimeStampedModel):
    name = models.CharField(max_length=255)
    prize = models.CharField(max_length=255)
    photo = models.FileField(upload_to="winners/", blank=True, null=True, validators=image_validators)
    period = models.CharField(max_length=100, blank=True)
    partner = models.ForeignKey(
        Partner,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="raffle_wins",
    )
    raffle_program = models.ForeignKey(
        RaffleProgram,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="winners",
    )

    def __str__(self) -> str:
        return f"{self.name} - {self.prize}"


class SpecialNumber(TimeStampedModel):
    phone_number = models.CharField(max_length=30, unique=True)
    price = models.DecimalField(max_digits=14, decimal_places=2)
    is_sold = models.BooleanField(default=False)
    sn = models.CharField(max_length=100, blank=True)
    lokasi = models.CharField(max_length=100, blank=True)

    class Meta:
        ordering = ["is_sold", "phone_number"]

    def __str__(self) -> str:
        return f"{self.phone_number} ({'sold' if self.is_sold else 'available'})"


class RecipientType(models.TextChoices):
    PERSONAL = "personal", "Personal"
    GROUP = "group", "Group"


class WhatsAppSettings(TimeStampedModel):
    is_active = models.BooleanField(default=True)
    webhook_url = models.URLField(blank=True)
    sender_number = models.CharField(max_length=30, blank=True)
    recipient_type = models.CharField(
        max_length=20,
        choices=RecipientType.choices,
        default=RecipientType.PERSONAL,
    )
    recipient_id = models.CharField(max_length=100, blank=True)

    def __str__(self) -> str:
        return "WhatsApp Settings"

    @classmethod
    def get_solo(cls) -> "WhatsAppSettings":
        obj, _ = cls.objects.get_or_create(id=1)
        return obj


class AuditAction(models.TextChoices):
    ADJUST_POINTS = "adjust_points", "Adjust Points"
    CHANGE_LEVEL = "change_level", "Change Level"
    REDEMPTION_STATUS = "redemption_status", "Redemption Status"
    DRAW_WINNER = "draw_winner", "Draw Winner"


class AuditLog(TimeStampedModel):
    action = models.CharField(max_length=30, choices=AuditAction.choices)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="audit_logs",
    )
    partner = models.ForeignKey(
        Partner,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="audit_logs",
    )
    metadata = models.JSONField(default=dict, blank=True)

    def __str__(self) -> str:
        return f"{self.action} ({self.created_at})"
