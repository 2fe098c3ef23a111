"""
Phone number normalisation for the SMS gateway.
"""

import re

_SEPARATORS = re.compile(r"[\s\-().]")


def normalize_phone(phone: str, default_country_code: str = "254") -> str:
    """
    Normalise a phone number to international ``+<cc><number>`` form.

    Numbers already starting with ``+`` are kept, numbers that already carry
    the default country code get a ``+``, and local numbers (with or without
    the trunk ``0``) are prefixed with the default country code.

    Examples:
        >>> normalize_phone("0712 345 678")
        '+254712345678'
        >>> normalize_phone("254712345678")
        '+254712345678'
    """
    number = _SEPARATORS.sub("", phone)
    if not number:
        return number
    if number.startswith("+"):
        return number
    if number.startswith(default_country_code) and len(number) >= 10:
        return f"+{number}"
    if number.startswith("0"):
        number = number[1:]
    return f"+{default_country_code}{number}"
