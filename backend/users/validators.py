from django.conf import settings
from django.core.exceptions import ValidationError


def _validate_size(upload, limit):
    if upload and upload.size > limit:
        raise ValidationError(f"File too large, maximum is {limit // (1024 * 1024)} MB")


def validate_image_size(upload):
    _validate_size(upload, settings.MAX_IMAGE_UPLOAD_SIZE)
