"""
Subject and SAN parsing for enrollment requests.

Subjects arrive as comma-separated RDNs where a literal comma inside a
value is escaped with a backslash, e.g. ``CN=Acme\\, Inc,O=Acme``.  SANs
arrive as a mapping from category name to an ordered list of values.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping

from vault_gateway.errors import EnrollmentRejected, MissingAttribute

logger = logging.getLogger("vaultgw.core.subject")

# Canonical SAN categories, matched case-insensitively.
SAN_DNS = "dns"
SAN_IP = "ip"
SAN_URI = "uri"
SAN_EMAIL = "email"
SAN_CATEGORIES = (SAN_DNS, SAN_IP, SAN_URI, SAN_EMAIL)

_ESCAPED_COMMA = "\\,"
_SENTINEL_CANDIDATES = ("\x00", "\x1e", "\x1f", "\ufffe", "\uffff")


def get_rdn(subject: str, rdn: str) -> str:
    """Return the value of *rdn* (``"CN"`` or ``"CN="``) from *subject*.

    When the RDN occurs more than once the last occurrence wins.

    Raises
    ------
    MissingAttribute
        If no segment of the subject carries the requested RDN.
    """
    key = rdn.rstrip("=").strip().upper()
    sentinel = _pick_sentinel(subject)
    escaped = (subject or "").replace(_ESCAPED_COMMA, sentinel)

    value: str | None = None
    for segment in escaped.split(","):
        name, sep, raw_value = segment.partition("=")
        if sep and name.strip().upper() == key:
            value = raw_value.replace(sentinel, ",").strip()

    if value is None:
        raise MissingAttribute(key)
    return value


def normalize_sans(san: Mapping[str, Iterable[str]] | None) -> dict[str, list[str]]:
    """Fold a caller's SAN mapping onto the canonical categories.

    Category names are matched case-insensitively.  Blank values are
    dropped, order is preserved.  A single string counts as one value.
    A non-empty category outside :data:`SAN_CATEGORIES` is rejected
    rather than silently ignored.
    """
    result: dict[str, list[str]] = {category: [] for category in SAN_CATEGORIES}
    for name, values in (san or {}).items():
        if isinstance(values, str):
            values = [values]
        cleaned = [v.strip() for v in values or [] if v and v.strip()]
        category = name.strip().lower()
        if category not in result:
            if cleaned:
                raise EnrollmentRejected(
                    f"unsupported SAN category {name!r}; "
                    f"expected one of {', '.join(SAN_CATEGORIES)}"
                )
            continue
        result[category].extend(cleaned)
    return result


def resolve_common_name(subject: str, sans: Mapping[str, list[str]]) -> str:
    """Return the subject CN, falling back to the first DNS SAN."""
    try:
        common_name = get_rdn(subject, "CN")
    except MissingAttribute:
        common_name = ""

    if common_name:
        return common_name

    dns_names = sans.get(SAN_DNS) or []
    if dns_names:
        logger.debug("no CN present in %r; using DNS SAN %s", subject, dns_names[0])
        return dns_names[0]

    raise EnrollmentRejected("no common name or DNS SAN provided")


def _pick_sentinel(subject: str) -> str:
    for candidate in _SENTINEL_CANDIDATES:
        if candidate not in (subject or ""):
            return candidate
    raise EnrollmentRejected("subject contains unsupported control characters")
