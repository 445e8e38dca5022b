"""
Identifier mapping between Vault serial numbers and gateway tracking IDs.

Vault renders certificate serials as colon-separated hex pairs::

    17:67:16:b0:b9:45:58:c0:3a:29:e3:cb:d6:98:33:7a:a6:3b:66:c1

The gateway tracks the same bytes with the delimiter removed.  Case is
preserved in both directions so that a round trip always returns the
exact input.
"""

from __future__ import annotations

import re

from vault_gateway.errors import MalformedIdentifier

SERIAL_DELIMITER = ":"

_SERIAL_RE = re.compile(r"^[0-9A-Fa-f]{2}(:[0-9A-Fa-f]{2})*$")
_TRACKING_ID_RE = re.compile(r"^(?:[0-9A-Fa-f]{2})+$")
_HEX_SEPARATORS_RE = re.compile(r"[\s:\-]")


def to_tracking_id(serial: str) -> str:
    """Convert a Vault serial number into a tracking ID.

    Raises
    ------
    MalformedIdentifier
        If *serial* is not a sequence of colon-separated two-character
        hex groups.
    """
    if not isinstance(serial, str) or not _SERIAL_RE.match(serial):
        raise MalformedIdentifier(
            str(serial), "expected colon-separated two-character hex groups"
        )
    return serial.replace(SERIAL_DELIMITER, "")


def to_serial(tracking_id: str) -> str:
    """Convert a tracking ID back into a Vault serial number.

    Raises
    ------
    MalformedIdentifier
        If *tracking_id* is empty, has an odd length, or contains
        non-hex characters.
    """
    if not isinstance(tracking_id, str) or not tracking_id:
        raise MalformedIdentifier(str(tracking_id), "tracking ID is empty")
    if len(tracking_id) % 2:
        raise MalformedIdentifier(tracking_id, "odd number of hex digits")
    if not _TRACKING_ID_RE.match(tracking_id):
        raise MalformedIdentifier(tracking_id, "contains non-hex characters")

    pairs = [tracking_id[i : i + 2] for i in range(0, len(tracking_id), 2)]
    return SERIAL_DELIMITER.join(pairs)


def normalize_hex_serial(value: str) -> str:
    """Reduce a hex serial in any common rendering to tracking-ID form.

    Colons, hyphens and whitespace are dropped; the remaining digits must
    form whole bytes.  Case is preserved.
    """
    compact = _HEX_SEPARATORS_RE.sub("", value or "")
    # validates length and alphabet
    to_serial(compact)
    return compact
