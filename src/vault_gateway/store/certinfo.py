"""
Vault CA Gateway - Certificate Details

Extracts the subject, validity window and Subject Alternative Name (SAN)
entries from PEM certificate bodies using the ``cryptography`` library,
so tracked rows can be searched without re-parsing the PEM.
"""

from __future__ import annotations

import logging
from typing import Any

from cryptography import x509
from cryptography.x509.oid import ExtensionOID

logger = logging.getLogger("vaultgw.store.certinfo")


def describe_certificate(pem_str: str) -> dict[str, Any]:
    """
    Summarise the leaf certificate of a PEM body.

    Vault's ``pem_bundle`` format may append the issuing chain after the
    leaf; only the first certificate is described.

    Args:
        pem_str: PEM text containing one or more certificates.

    Returns:
        A dict with keys ``subject_dn``, ``not_before``, ``not_after``
        and ``san``, e.g.::

            {"subject_dn": "CN=web01.corp.local",
             "not_before": datetime(...), "not_after": datetime(...),
             "san": [{"type": "dnsName", "value": "web01.corp.local"}]}

        Every value is ``None`` (``san`` empty) when the body does not
        parse.
    """
    cert = _load_leaf(pem_str)
    if cert is None:
        return {"subject_dn": None, "not_before": None, "not_after": None, "san": []}

    return {
        "subject_dn": cert.subject.rfc4514_string(),
        "not_before": cert.not_valid_before_utc,
        "not_after": cert.not_valid_after_utc,
        "san": _san_entries(cert),
    }


# -------------------------------------------------------------------------
# Private helpers
# -------------------------------------------------------------------------


def _load_leaf(pem_str: str) -> x509.Certificate | None:
    """Load the first certificate of a PEM body. Return None on failure."""
    try:
        certs = x509.load_pem_x509_certificates((pem_str or "").encode("ascii"))
    except ValueError:
        logger.warning("Failed to parse certificate body as PEM")
        return None
    return certs[0] if certs else None


def _san_entries(cert: x509.Certificate) -> list[dict]:
    try:
        san_ext = cert.extensions.get_extension_for_oid(
            ExtensionOID.SUBJECT_ALTERNATIVE_NAME
        )
    except x509.ExtensionNotFound:
        return []

    san_value: x509.SubjectAlternativeName = san_ext.value
    results: list[dict] = []

    for dns_name in san_value.get_values_for_type(x509.DNSName):
        results.append({"type": "dnsName", "value": dns_name})

    for ip_addr in san_value.get_values_for_type(x509.IPAddress):
        results.append({"type": "iPAddress", "value": str(ip_addr)})

    for uri in san_value.get_values_for_type(x509.UniformResourceIdentifier):
        results.append({"type": "uri", "value": uri})

    for email in san_value.get_values_for_type(x509.RFC822Name):
        results.append({"type": "rfc822Name", "value": email})

    return results
