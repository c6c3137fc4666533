"""
Phone number normalization.

Numbers belonging to the user's own region are shown in national format
("20 12 34 56" for Denmark); numbers from any other region keep an
international prefix ("+1 650-253-0000"). Anything that does not parse as a
valid number is returned untouched.

A number already stored in national format can only be read back with the
region it was formatted for, so re-formatting for a new region takes that
source region separately.
"""

import logging
from typing import Optional

import phonenumbers
from phonenumbers import NumberParseException, PhoneNumberFormat

logger = logging.getLogger(__name__)

DEFAULT_COUNTRY_CODE = "DK"


def _region(country_code: Optional[str]) -> str:
    return (country_code or DEFAULT_COUNTRY_CODE).strip().upper()


def format_phone(
    phone_number: Optional[str],
    country_code: str = DEFAULT_COUNTRY_CODE,
    source_country_code: Optional[str] = None,
) -> Optional[str]:
    """
    Format a phone number relative to the given ISO 3166 region.

    Args:
        phone_number: Phone number as written in the CV or as last stored
        country_code: Two-letter region that decides national vs international
        source_country_code: Region used to parse numbers without a country
                             prefix (defaults to ``country_code``)

    Returns:
        Formatted number, or the input unchanged on any failure
    """
    if phone_number is None or not phone_number.strip():
        return phone_number

    region = _region(country_code)
    parse_region = _region(source_country_code) if source_country_code else region

    try:
        number = phonenumbers.parse(phone_number, parse_region)
    except NumberParseException as e:
        logger.debug(f"Could not parse phone number for region {parse_region}: {e}")
        return phone_number

    if not phonenumbers.is_valid_number(number):
        return phone_number

    if phonenumbers.region_code_for_number(number) != region:
        return phonenumbers.format_number(number, PhoneNumberFormat.INTERNATIONAL)

    return phonenumbers.format_number(number, PhoneNumberFormat.NATIONAL)
