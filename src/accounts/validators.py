import re

from django.core.exceptions import ValidationError
from django.utils.translation import gettext_lazy as _

# E.164: a plus, a country code that never starts with 0, at most 15 digits in all.
E164_REGEX = re.compile(r"\+[1-9]\d{6,14}")
SEPARATORS = re.compile(r"[\s\-().]")


def normalize_phone_number(value: str) -> str:
    """Strip separators and turn an international ``00`` prefix into ``+``.

    ``"0086 138-0000-0001"`` becomes ``"+8613800000001"``. Anything else is
    returned as is for the validator to judge.
    """
    number = SEPARATORS.sub("", value)
    if number.startswith("00"):
        number = "+" + number[2:]
    return number


def validate_phone_number(value: str | None) -> None:
    if value is None:
        return
    if not E164_REGEX.fullmatch(normalize_phone_number(value)):
        raise ValidationError(_("Enter the phone number in international format, e.g. +8613800000000."))
