"""Tests for configuration helpers."""

from morobooth.config import Settings, parse_allowed_origins


def test_parse_allowed_origins() -> None:
    assert parse_allowed_origins(None) == ["*"]
    assert parse_allowed_origins(" * ") == ["*"]
    assert parse_allowed_origins("https://a.example/, https://b.example") == [
        "https://a.example",
        "https://b.example",
    ]


def test_remote_configured() -> None:
    assert not Settings(admin_token="t").remote_configured
    assert Settings(
        admin_token="t",
        supabase_url="https://example.supabase.co",
        supabase_service_key="key",
    ).remote_configured
