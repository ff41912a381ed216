from __future__ import annotations

from device_dna.utils.sanitize import odata_literal, sanitize_log_message


def test_odata_literal_escapes_quotes() -> None:
    assert odata_literal(" O'Brien-PC ") == "'O''Brien-PC'"


def test_sanitize_log_message_strips_control_characters() -> None:
    assert sanitize_log_message("a\rb\r\nc\x07d\tz") == "a\nb\ncd\tz"
