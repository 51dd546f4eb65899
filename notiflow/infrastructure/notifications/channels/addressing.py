# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Chat address normalization.

Chat gateways address recipients by international phone number. Contact
data arrives in whatever shape members typed it, so numbers are cleaned
and completed with the configured country prefix before sending.
"""

import re

_NON_DIGITS = re.compile(r"\D")

MIN_DIGITS = 8
MAX_DIGITS = 15


class InvalidAddressError(ValueError):
    """Raised when a chat address cannot be turned into a valid number."""

    pass


def normalize_chat_address(address: str, default_prefix: str = "") -> str:
    """Normalize a phone number to international digits without '+'.

    Numbers written with a leading '+' or '00' are taken as already
    international. Local numbers lose their trunk '0' and receive the
    default prefix unless they already start with it.

    Args:
        address: Raw phone number.
        default_prefix: Country prefix for local numbers (e.g. "549").

    Returns:
        Digits only, e.g. "5491112345678".

    Raises:
        InvalidAddressError: If the result is not a plausible number.

    Example:
        >>> normalize_chat_address("011 1234-5678", "549")
        '5491112345678'
        >>> normalize_chat_address("+54 9 11 1234 5678")
        '5491112345678'
    """
    if not address or not address.strip():
        raise InvalidAddressError("Chat address is empty")

    stripped = address.strip()
    international = stripped.startswith("+") or stripped.startswith("00")
    digits = _NON_DIGITS.sub("", stripped)

    if stripped.startswith("00"):
        digits = digits[2:]

    if not international and default_prefix and not digits.startswith(default_prefix):
        digits = default_prefix + digits.lstrip("0")

    if not MIN_DIGITS <= len(digits) <= MAX_DIGITS:
        raise InvalidAddressError(
            f"Chat address must have between {MIN_DIGITS} and {MAX_DIGITS} digits, "
            f"got {len(digits)}"
        )

    return digits
