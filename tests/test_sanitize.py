"""Tests for input sanitization (PII redaction, amounts, dates)."""

from datetime import date

from fixtures import make_transaction
from taxman.decision import (
    MAX_MEMO_LENGTH,
    normalize_date,
    parse_date,
    redact_sensitive_text,
    sanitize_amount,
    sanitize_transaction,
)


class TestRedactSensitiveText:
    """Tests for redact_sensitive_text()."""

    def test_email_phone_and_account_number(self) -> None:
        text = "連絡先 foo@bar.com 電話090-1234-5678 口座1234567812345678"

        redacted = redact_sensitive_text(text)

        assert "foo@bar.com" not in redacted
        assert "090-1234-5678" not in redacted
        assert "1234567812345678" not in redacted
        assert "[REDACTED_EMAIL]" in redacted
        assert "[REDACTED_PHONE]" in redacted
        assert "[REDACTED_NUMBER]" in redacted

    def test_card_number_with_separators(self) -> None:
        redacted = redact_sensitive_text("card 4111 1111 1111 1111 paid")
        assert redacted == "card [REDACTED_NUMBER] paid"

    def test_date_in_text(self) -> None:
        redacted = redact_sensitive_text("2026/02/14に購入")
        assert redacted == "[REDACTED_DATE_IN_TEXT]に購入"

    def test_long_digit_runs(self) -> None:
        redacted = redact_sensitive_text("会員番号A1234567")
        assert redacted == "会員番号A[REDACTED_DIGITS]"

    def test_short_numbers_are_kept(self) -> None:
        assert redact_sensitive_text("コピー用紙 500枚") == "コピー用紙 500枚"

    def test_length_cap(self) -> None:
        assert len(redact_sensitive_text("あ" * 500)) == MAX_MEMO_LENGTH

    def test_none(self) -> None:
        assert redact_sensitive_text(None) == ""


class TestSanitizeAmount:
    """Tests for sanitize_amount()."""

    def test_floors_to_integer(self) -> None:
        assert sanitize_amount("1200.9") == 1200
        assert sanitize_amount(1500) == 1500

    def test_clamps_to_one(self) -> None:
        assert sanitize_amount(0) == 1
        assert sanitize_amount(-300) == 1
        assert sanitize_amount("abc") == 1
        assert sanitize_amount(None) == 1


class TestDates:
    """Tests for parse_date() and normalize_date()."""

    def test_formats(self) -> None:
        assert parse_date("2026-02-14") == "2026-02-14"
        assert parse_date("2026/02/14") == "2026-02-14"
        assert parse_date("2026.02.14") == "2026-02-14"
        assert parse_date("20260214") == "2026-02-14"
        assert parse_date("14.02.2026") == "2026-02-14"
        assert parse_date("2026年02月14日") == "2026-02-14"
        assert parse_date("2026-02-14T09:30:00Z") == "2026-02-14"
        assert parse_date(date(2026, 2, 14)) == "2026-02-14"

    def test_invalid(self) -> None:
        assert parse_date("2026-02-30") is None
        assert parse_date("yesterday") is None
        assert parse_date("") is None

    def test_normalize_falls_back_to_today(self) -> None:
        assert normalize_date("not a date", lambda: date(2026, 3, 1)) == "2026-03-01"


class TestSanitizeTransaction:
    """Tests for sanitize_transaction()."""

    def test_returns_sanitized_copy(self) -> None:
        original = make_transaction(
            memo="foo@bar.com", amount=-5, occurred_at="2026/02/14", country_code="jp"
        )

        sanitized = sanitize_transaction(original)

        assert sanitized.memo_redacted == "[REDACTED_EMAIL]"
        assert sanitized.amount == 1
        assert sanitized.occurred_at == "2026-02-14"
        assert sanitized.country_code == "JP"
        assert original.memo_redacted == "foo@bar.com"
        assert original.amount == -5
