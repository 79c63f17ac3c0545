"""
Tests for the sanitizer: field redaction and PII masking.
"""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

from crm_security.sanitizer import (
    REDACTION_MARKER,
    mask_contact_patterns,
    mask_credit_card,
    mask_email,
    mask_patterns,
    mask_phone,
    mask_ssn,
    redact,
    scrub_text,
)


class TestMasking:
    """Tests for individual maskers."""

    def test_mask_credit_card_dashed(self):
        """Should keep only the last four digits of a dashed card."""
        assert mask_credit_card("4532-1234-5678-9010") == "****-****-****-9010"

    def test_mask_credit_card_plain(self):
        """Should star out all but the last four digits."""
        assert mask_credit_card("4532123456789010") == "************9010"

    def test_mask_credit_card_bad_length(self):
        """Implausible card lengths are fully redacted."""
        assert mask_credit_card("123456") == REDACTION_MARKER

    def test_mask_ssn(self):
        """Should mask dashed and undashed SSNs."""
        assert mask_ssn("123-45-6789") == "***-**-6789"
        assert mask_ssn("123456789") == "*****6789"
        assert mask_ssn("12345") == REDACTION_MARKER

    def test_mask_email(self):
        """Should keep the first character and the domain."""
        assert mask_email("john.doe@example.com") == "j***@example.com"
        assert mask_email("not-an-email") == REDACTION_MARKER

    def test_mask_phone(self):
        """Should keep the last four digits."""
        assert mask_phone("555-123-4567") == "***-***-4567"
        assert mask_phone("+1-555-123-4567") == "+* ***-***-4567"
        assert mask_phone("5551234567") == "******4567"

    def test_mask_patterns_in_text(self):
        """Should mask cards and SSNs embedded in free text."""
        text = "card 4532-1234-5678-9010 and ssn 123-45-6789 on file"
        masked = mask_patterns(text)

        assert "4532" not in masked
        assert "****-****-****-9010" in masked
        assert "***-**-6789" in masked
        assert masked.startswith("card ")

    def test_mask_patterns_leaves_plain_text(self):
        """Text without PII is unchanged."""
        assert mask_patterns("Deal closed for 12 units") == "Deal closed for 12 units"

    def test_mask_contact_patterns(self):
        """Should mask emails and phones embedded in text."""
        masked = mask_contact_patterns("reach jane@broker.com or 555-123-4567")

        assert "jane@" not in masked
        assert "j***@broker.com" in masked
        assert "***-***-4567" in masked


class TestRedact:
    """Tests for recursive redaction."""

    def test_redacts_sensitive_keys(self):
        """Sensitive keys are replaced with the marker."""
        result = redact({"email": "a@b.co", "password": "secret123"})

        assert result["password"] == REDACTION_MARKER

    def test_redacts_at_any_depth(self):
        """Nested dicts and lists are redacted too."""
        record = {"user": {"profile": {"settings": [{"apiKey": "k-1", "name": "x"}]}}}
        result = redact(record)

        item = result["user"]["profile"]["settings"][0]
        assert item["apiKey"] == REDACTION_MARKER
        assert item["name"] == "x"

    def test_case_insensitive_substring_match(self):
        """Key matching ignores case and matches substrings."""
        result = redact({"NewPassword": "a", "X-Refresh-Token-Id": "b", "accessTOKEN": "c"})

        assert all(v == REDACTION_MARKER for v in result.values())

    def test_input_not_mutated(self):
        """The caller's record is left untouched."""
        record = {"password": "secret123", "nested": {"token": "t"}}
        redact(record)

        assert record == {"password": "secret123", "nested": {"token": "t"}}

    def test_masks_string_values(self):
        """PII in values under innocuous keys is masked."""
        result = redact({"notes": "card 4532123456789010"})

        assert result["notes"] == "card ************9010"

    def test_masks_contact_fields(self):
        """Email/phone-ish keys get contact masking."""
        result = redact({"contactEmail": "jane@broker.com", "mobilePhone": "555-123-4567"})

        assert result["contactEmail"] == "j***@broker.com"
        assert result["mobilePhone"] == "***-***-4567"

    def test_custom_sensitive_fields(self):
        """A custom list replaces the default one."""
        result = redact({"password": "p", "commission": 0.03}, sensitive_fields=["commission"])

        assert result["password"] == "p"
        assert result["commission"] == REDACTION_MARKER

    def test_converts_known_types(self):
        """Datetimes, UUIDs and decimals become strings; tuples become lists."""
        moment = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        uid = UUID("12345678-1234-5678-1234-567812345678")
        result = redact({"at": moment, "id": uid, "price": Decimal("10.50"), "tags": ("a", "b")})

        assert result == {
            "at": "2024-01-02T03:04:05+00:00",
            "id": "12345678-1234-5678-1234-567812345678",
            "price": "10.50",
            "tags": ["a", "b"],
        }

    def test_unserializable_values_redacted(self):
        """Unknown objects are never serialized."""
        result = redact({"blob": b"\x00\x01", "obj": object(), "ok": 1})

        assert result["blob"] == REDACTION_MARKER
        assert result["obj"] == REDACTION_MARKER
        assert result["ok"] == 1

    def test_unencodable_strings_redacted(self):
        """Strings that cannot be encoded as UTF-8 are replaced, not raised on."""
        result = redact({"name": "ok\ud800", "nested": ["\udc00"], "fine": "caf\u00e9"})

        assert result == {"name": REDACTION_MARKER, "nested": [REDACTION_MARKER], "fine": "caf\u00e9"}

    def test_scrub_text(self):
        assert scrub_text("\ud800") == REDACTION_MARKER
        assert scrub_text("plain") == "plain"
        assert scrub_text(7) == 7
        assert scrub_text(None) is None

    def test_scalars_pass_through(self):
        assert redact(None) is None
        assert redact(5) == 5
        assert redact(True) is True
