from decimal import Decimal

from django.db import migrations

TIERS = [
    ("Bronze", 0, Decimal("1.00"), "Poin standar 1x"),
    ("Silver", 3000, Decimal("1.10"), "Poin bonus 1.1x"),
    ("Gold", 10000, Decimal("1.20"), "Poin bonus 1.2x & merchandise"),
    ("Platinum", 25000, Decimal("1.50"), "Poin bonus 1.5x & prioritas layanan"),
]


def seed_loyalty_programs(apps, schema_editor):
    LoyaltyProgram = apps.get_model("loyalty", "LoyaltyProgram")
    for level, points_needed, multiplier, benefit in TIERS:
        LoyaltyProgram.objects.get_or_create(
            level=level,
            defaults={"points_needed": points_needed, "multiplier": multiplier, "benefit": benefit},
        )


def seed_whatsapp_settings(apps, schema_editor):
    WhatsAppSettings = apps.get_model("loyalty", "WhatsAppSettings")
    WhatsAppSettings.objects.get_or_create(id=1)


class Migration(migrations.Migration):
    dependencies = [
        ("loyalty", "0001_initial"),
    ]

    operations = [
        migrations.RunPython(seed_loyalty_programs, migrations.RunPython.noop),
        migrations.RunPython(seed_whatsapp_settings, migrations.RunPython.noop),
    ]
