"""Vault CA Gateway: enrollment, revocation and inventory sync against Vault PKI."""

__version__ = "0.1.0"
