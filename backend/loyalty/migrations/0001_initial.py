from decimal import Decimal

from django.conf import settings
import django.core.validators
from django.db import migrations, models
import django.db.models.deletion

import users.validators

IMAGE_VALIDATORS = [
    django.core.validators.FileExtensionValidator(["jpg", "jpeg", "png", "gif"]),
    users.validators.validate_image_size,
]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="DigiposMaster",
            fields=[
                ("id_digipos", models.CharField(max_length=50, primary_key=True, serialize=False)),
                ("no_rs", models.CharField(blank=True, max_length=50)),
                ("nama_outlet", models.CharField(max_length=255)),
                ("tap", models.CharField(blank=True, max_length=100)),
                ("salesforce", models.CharField(blank=True, max_length=255)),
                ("is_registered", models.BooleanField(default=False)),
            ],
        ),
        migrations.CreateModel(
            name="Location",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("kabupaten", models.CharField(max_length=100)),
                ("kecamatan", models.CharField(max_length=100)),
            ],
            options={
                "ordering": ["kabupaten", "kecamatan"],
                "unique_together": {("kabupaten", "kecamatan")},
            },
        ),
        migrations.CreateModel(
            name="LoyaltyProgram",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("level", models.CharField(max_length=50, primary_key=True, serialize=False)),
                ("points_needed", models.PositiveIntegerField(default=0)),
                ("multiplier", models.DecimalField(decimal_places=2, default=Decimal("1.00"), max_digits=5)),
                ("benefit", models.TextField(blank=True)),
            ],
            options={"ordering": ["points_needed"]},
        ),
        migrations.CreateModel(
            name="Partner",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("digipos_id", models.CharField(max_length=50, primary_key=True, serialize=False)),
                ("points", models.IntegerField(default=0)),
                ("level", models.CharField(default="Bronze", max_length=50)),
                ("kupon_undian", models.IntegerField(default=0)),
                ("owner", models.CharField(blank=True, max_length=255)),
                ("kabupaten", models.CharField(blank=True, max_length=100)),
                ("kecamatan", models.CharField(blank=True, max_length=100)),
                ("salesforce", models.CharField(blank=True, max_length=255)),
                ("no_rs", models.CharField(blank=True, max_length=50)),
                ("alamat", models.TextField(blank=True)),
                ("user", models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name="partner", to=settings.AUTH_USER_MODEL)),
            ],
            options={"abstract": False},
        ),
        migrations.CreateModel(
            name="RaffleProgram",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("name", models.CharField(max_length=255)),
                ("prize", models.CharField(blank=True, max_length=255)),
                ("period", models.CharField(blank=True, max_length=100)),
                ("is_active", models.BooleanField(default=False)),
            ],
            options={"ordering": ["-is_active", "-id"]},
        ),
        migrations.CreateModel(
            name="Reward",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("name", models.CharField(max_length=255)),
                ("points", models.PositiveIntegerField()),
                ("stock", models.IntegerField(default=0)),
                ("image", models.FileField(blank=True, null=True, upload_to="rewards/", validators=IMAGE_VALIDATORS)),
                ("sort_order", models.PositiveIntegerField(default=0)),
            ],
            options={"ordering": ["sort_order", "points"]},
        ),
        migrations.CreateModel(
            name="RunningProgram",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("name", models.CharField(max_length=255)),
                ("mechanism", models.TextField(blank=True)),
                ("prize", models.CharField(blank=True, max_length=255)),
                ("start_date", models.DateField()),
                ("end_date", models.DateField()),
                ("image", models.FileField(blank=True, null=True, upload_to="programs/", validators=IMAGE_VALIDATORS)),
            ],
            options={"ordering": ["-end_date", "-id"]},
        ),
        migrations.CreateModel(
            name="SpecialNumber",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("phone_number", models.CharField(max_length=30, unique=True)),
                ("price", models.DecimalField(decimal_places=2, max_digits=14)),
                ("is_sold", models.BooleanField(default=False)),
                ("sn", models.CharField(blank=True, max_length=100)),
                ("lokasi", models.CharField(blank=True, max_length=100)),
            ],
            options={"ordering": ["is_sold", "phone_number"]},
        ),
        migrations.CreateModel(
            name="WhatsAppSettings",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("is_active", models.BooleanField(default=True)),
                ("webhook_url", models.URLField(blank=True)),
                ("sender_number", models.CharField(blank=True, max_length=30)),
                ("recipient_type", models.CharField(choices=[("personal", "Personal"), ("group", "Group")], default="personal", max_length=20)),
                ("recipient_id", models.CharField(blank=True, max_length=100)),
            ],
            options={"abstract": False},
        ),
        migrations.CreateModel(
            name="Transaction",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("date", models.DateField()),
                ("produk", models.CharField(max_length=255)),
                ("harga", models.DecimalField(decimal_places=2, max_digits=14)),
                ("kuantiti", models.PositiveIntegerField()),
                ("total_pembelian", models.DecimalField(decimal_places=2, max_digits=16)),
                ("points_earned", models.PositiveIntegerField(default=0)),
                ("partner", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="transactions", to="loyalty.partner")),
            ],
            options={"ordering": ["-date", "-id"]},
        ),
        migrations.CreateModel(
            name="Redemption",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("user_name", models.CharField(blank=True, max_length=255)),
                ("reward_name", models.CharField(blank=True, max_length=255)),
                ("points_spent", models.PositiveIntegerField()),
                ("date", models.DateTimeField(auto_now_add=True)),
                ("status", models.CharField(choices=[("Diajukan", "Diajukan"), ("Diproses", "Diproses"), ("Selesai", "Selesai"), ("Ditolak", "Ditolak")], default="Diajukan", max_length=20)),
                ("status_note", models.TextField(blank=True)),
                ("status_updated_at", models.DateTimeField(blank=True, null=True)),
                ("documentation_photo", models.FileField(blank=True, null=True, upload_to="redemptions/", validators=IMAGE_VALIDATORS)),
                ("partner", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="redemptions", to="loyalty.partner")),
                ("reward", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="redemptions", to="loyalty.reward")),
            ],
            options={"ordering": ["-date", "-id"]},
        ),
        migrations.CreateModel(
            name="RunningProgramTarget",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("progress", models.PositiveSmallIntegerField(default=0, validators=[django.core.validators.MinValueValidator(0), django.core.validators.MaxValueValidator(100)])),
                ("partner", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="program_targets", to="loyalty.partner")),
                ("program", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="targets", to="loyalty.runningprogram")),
            ],
            options={"unique_together": {("program", "partner")}},
        ),
        migrations.CreateModel(
            name="CouponRedemption",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("redeemed_at", models.DateTimeField(auto_now_add=True)),
                ("partner", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="coupon_redemptions", to="loyalty.partner")),
                ("raffle_program", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="coupons", to="loyalty.raffleprogram")),
                ("redemption", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="coupons", to="loyalty.redemption")),
            ],
        ),
        migrations.CreateModel(
            name="RaffleWinner",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("name", models.CharField(max_length=255)),
                ("prize", models.CharField(max_length=255)),
                ("photo", models.FileField(blank=True, null=True, upload_to="winners/", validators=IMAGE_VALIDATORS)),
                ("period", models.CharField(blank=True, max_length=100)),
                ("partner", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="raffle_wins", to="loyalty.partner")),
                ("raffle_program", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="winners", to="loyalty.raffleprogram")),
            ],
            options={"abstract": False},
        ),
        migrations.CreateModel(
            name="AuditLog",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("action", models.CharField(choices=[("adjust_points", "Adjust Points"), ("change_level", "Change Level"), ("redemption_status", "Redemption Status"), ("draw_winner", "Draw Winner")], max_length=30)),
                ("metadata", models.JSONField(blank=True, default=dict)),
                ("partner", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="audit_logs", to="loyalty.partner")),
                ("user", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="audit_logs", to=settings.AUTH_USER_MODEL)),
            ],
            options={"abstract": False},
        ),
    ]
