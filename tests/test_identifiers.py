"""Tests for serial number / tracking ID conversion."""

from __future__ import annotations

import pytest

from vault_gateway.core.identifiers import normalize_hex_serial, to_serial, to_tracking_id
from vault_gateway.errors import MalformedIdentifier


VAULT_SERIAL = "17:67:16:b0:b9:45:58:c0:3a:29:e3:cb:d6:98:33:7a:a6:3b:66:c1"
TRACKING_ID = "176716b0b94558c03a29e3cbd698337aa63b66c1"


# ---------------------------------------------------------------------------
# Serial -> tracking ID
# ---------------------------------------------------------------------------

class TestToTrackingId:
    """to_tracking_id strips the delimiter and nothing else."""

    def test_vault_serial(self):
        assert to_tracking_id(VAULT_SERIAL) == TRACKING_ID

    def test_single_byte(self):
        assert to_tracking_id("0a") == "0a"

    def test_case_preserved(self):
        assert to_tracking_id("AB:cd:Ef") == "ABcdEf"

    @pytest.mark.parametrize("bad", ["", "a:bb", "aa:bb:", "aa::bb", "zz:00", "aabb"])
    def test_malformed(self, bad):
        """Anything but colon-separated hex pairs is rejected."""
        with pytest.raises(MalformedIdentifier):
            to_tracking_id(bad)


# ---------------------------------------------------------------------------
# Tracking ID -> serial
# ---------------------------------------------------------------------------

class TestToSerial:
    """to_serial re-inserts a colon after every two hex digits."""

    def test_tracking_id(self):
        assert to_serial(TRACKING_ID) == VAULT_SERIAL

    def test_case_preserved(self):
        assert to_serial("ABcdEf") == "AB:cd:Ef"

    def test_round_trip(self):
        assert to_tracking_id(to_serial("00ff10")) == "00ff10"
        assert to_serial(to_tracking_id(VAULT_SERIAL)) == VAULT_SERIAL

    def test_empty(self):
        with pytest.raises(MalformedIdentifier, match="empty"):
            to_serial("")

    def test_odd_length(self):
        with pytest.raises(MalformedIdentifier, match="odd"):
            to_serial("abc")

    def test_non_hex(self):
        with pytest.raises(MalformedIdentifier, match="non-hex"):
            to_serial("abzz")

    def test_is_value_error(self):
        """Callers that only know ValueError still catch it."""
        with pytest.raises(ValueError):
            to_serial("xyz1")


# ---------------------------------------------------------------------------
# Advisory serial normalization
# ---------------------------------------------------------------------------

class TestNormalizeHexSerial:

    @pytest.mark.parametrize(
        "rendering",
        ["17:67:16", "17-67-16", "17 67 16", "176716"],
    )
    def test_renderings(self, rendering):
        assert normalize_hex_serial(rendering) == "176716"

    def test_rejects_partial_byte(self):
        with pytest.raises(MalformedIdentifier):
            normalize_hex_serial("17:67:1")
