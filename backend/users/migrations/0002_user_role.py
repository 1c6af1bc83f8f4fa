import django.core.validators
from django.db import migrations, models

import users.validators


class Migration(migrations.Migration):
    dependencies = [
        ("users", "0001_initial"),
    ]

    operations = [
        migrations.AddField(
            model_name="user",
            name="role",
            field=models.CharField(
                choices=[
                    ("admin", "Admin"),
                    ("pelanggan", "Mitra Outlet"),
                    ("supervisor", "Supervisor"),
                    ("operator", "Operator"),
                ],
                default="pelanggan",
                max_length=20,
            ),
        ),
        migrations.AddField(
            model_name="user",
            name="nama",
            field=models.CharField(blank=True, max_length=255),
        ),
        migrations.AddField(
            model_name="user",
            name="phone",
            field=models.CharField(blank=True, max_length=30),
        ),
        migrations.AddField(
            model_name="user",
            name="tap",
            field=models.CharField(blank=True, max_length=100),
        ),
        migrations.AddField(
            model_name="user",
            name="jabatan",
            field=models.CharField(blank=True, max_length=100),
        ),
        migrations.AddField(
            model_name="user",
            name="photo",
            field=models.FileField(
                blank=True,
                null=True,
                upload_to="profiles/",
                validators=[
                    django.core.validators.FileExtensionValidator(["jpg", "jpeg", "png", "gif"]),
                    users.validators.validate_image_size,
                ],
            ),
        ),
    ]
