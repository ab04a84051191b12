"""
Field validators shared by models and serializers.

Validators raise django.core.exceptions.ValidationError so they work in
model full_clean(); serializers convert the messages to DRF errors.
"""

import re

from django.conf import settings
from django.core.exceptions import ValidationError

CURRENCY_CODE_PATTERN = re.compile(r"^[A-Z]{3}$")

PHONE_ALLOWED_PATTERN = re.compile(r"^\+?[\d\s\-\(\)]+$")
PHONE_MIN_DIGITS = 10
PHONE_MAX_DIGITS = 15

# Extension -> accepted content types
PROFILE_IMAGE_FORMATS = {
    'jpg': ('image/jpeg',),
    'jpeg': ('image/jpeg',),
    'png': ('image/png',),
    'webp': ('image/webp',),
}
DEFAULT_PROFILE_IMAGE_MAX_BYTES = 5 * 1024 * 1024


def phone_digits(value):
    """Digits of a phone number without separators or the leading '+'."""
    return re.sub(r'\D', '', value or '')


def validate_phone_number(value):
    """
    Validate an international phone number such as '+90 532 123 45 67'.

    A leading '+' is allowed, followed by digits and optional spaces, dashes
    or parentheses. The number must have 10 to 15 digits (E.164 length) and
    cannot repeat a single digit. Empty values pass; the field is optional.

    Raises:
        ValidationError: If the number is malformed
    """
    if not value:
        return

    if not PHONE_ALLOWED_PATTERN.match(value):
        raise ValidationError(
            "Phone number may only contain digits, spaces, dashes, parentheses and a leading '+'.",
            code='invalid_phone_chars'
        )

    digits = phone_digits(value)
    if not PHONE_MIN_DIGITS <= len(digits) <= PHONE_MAX_DIGITS:
        raise ValidationError(
            f'Phone number must contain between {PHONE_MIN_DIGITS} and {PHONE_MAX_DIGITS} digits.',
            code='invalid_phone_length'
        )

    if len(set(digits)) == 1:
        raise ValidationError(
            'Phone number cannot be all the same digit.',
            code='invalid_phone_pattern'
        )


def validate_profile_image(image):
    """
    Validate an uploaded profile image by size, extension and content type.

    The size limit comes from settings.PROFILE_IMAGE_MAX_BYTES (5MB default).

    Raises:
        ValidationError: If the image is too large or not a jpg, png or webp
    """
    if not image:
        return

    max_bytes = getattr(settings, 'PROFILE_IMAGE_MAX_BYTES', DEFAULT_PROFILE_IMAGE_MAX_BYTES)
    if image.size > max_bytes:
        raise ValidationError(
            f'Image file size cannot exceed {max_bytes // (1024 * 1024)}MB.',
            code='image_too_large'
        )

    extension = image.name.rsplit('.', 1)[-1].lower() if '.' in image.name else ''
    if extension not in PROFILE_IMAGE_FORMATS:
        raise ValidationError(
            'Invalid image format. Allowed formats: jpg, jpeg, png, webp',
            code='invalid_image_format'
        )

    content_type = getattr(image, 'content_type', None)
    if content_type and content_type not in PROFILE_IMAGE_FORMATS[extension]:
        raise ValidationError(
            f'Content type {content_type} does not match a .{extension} file.',
            code='invalid_content_type'
        )


def validate_currency_code(value):
    """
    Validate an ISO 4217 style currency code (three uppercase letters).

    Raises:
        ValidationError: If the code is not three uppercase letters
    """
    if not value or not CURRENCY_CODE_PATTERN.match(value):
        raise ValidationError(
            'Currency must be a three letter uppercase code such as TRY or USD.',
            code='invalid_currency'
        )
