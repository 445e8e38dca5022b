"""
Enrollment request construction.

Turns a caller's CSR, subject, SANs and product (role) parameters into a
:class:`SigningRequest`.  This is a pure transformation: every failure is
raised here, before any request reaches Vault.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping

from vault_gateway.core.models import ProductParameters, SigningRequest
from vault_gateway.core.subject import (
    SAN_DNS,
    SAN_EMAIL,
    SAN_IP,
    SAN_URI,
    normalize_sans,
    resolve_common_name,
)
from vault_gateway.errors import EnrollmentRejected

logger = logging.getLogger("vaultgw.core.enrollment")

# Vault returns the leaf plus any non-root issuer chain in "certificate".
SIGNING_FORMAT = "pem_bundle"


def build_signing_request(
    csr: str,
    subject: str,
    san: Mapping[str, Iterable[str]] | None,
    product: ProductParameters,
) -> SigningRequest:
    """
    Build the signing request for one enrollment.

    Args:
        csr: PEM-encoded certificate signing request; passed through
            verbatim, never parsed here.
        subject: Requested subject, e.g. ``CN=web01.corp.local,O=Corp``.
        san: SAN values keyed by category (``dns``, ``ip``, ``uri``,
            ``email``; case-insensitive).
        product: Role and optional template parameters.

    Returns:
        A :class:`SigningRequest` ready to post to ``sign/<role>``.
        ``alt_names`` holds the DNS SANs followed by the email SANs;
        Vault sorts email addresses into rfc822Name entries itself.

    Raises:
        EnrollmentRejected: No role was given, a SAN category is not
            supported, or neither a CN nor a DNS SAN is available.
    """
    role_name = (product.role_name or "").strip()
    if not role_name:
        raise EnrollmentRejected("no PKI role (product ID) provided")

    sans = normalize_sans(san)
    common_name = resolve_common_name(subject, sans)

    alt_names = sans[SAN_DNS] + sans[SAN_EMAIL]
    request = SigningRequest(
        csr=csr,
        common_name=common_name,
        role_name=role_name,
        format=SIGNING_FORMAT,
        alt_names=_join(alt_names),
        ip_sans=_join(sans[SAN_IP]),
        uri_sans=_join(sans[SAN_URI]),
        other_sans=product.other_sans or None,
        ttl=product.ttl or None,
        exclude_cn_from_sans=product.exclude_cn_from_sans,
    )

    logger.debug(
        "built signing request: role=%s common_name=%s alt_names=%s",
        role_name,
        common_name,
        request.alt_names,
    )
    return request


def _join(values: list[str]) -> str | None:
    return ",".join(values) if values else None
