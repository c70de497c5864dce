"""Tests for signed download URLs."""
from urllib.parse import parse_qs, urlparse

from record_transfer.services.signing import build_download_url, sign_download, verify_download

NOW = 1_760_000_000


def test_url_carries_expiry_and_signature():
    url = build_download_url("https://api.example.com/", "exp-1", "secret", 3600, now=NOW)
    parsed = urlparse(url)
    query = parse_qs(parsed.query)

    assert parsed.netloc == "api.example.com"
    assert parsed.path == "/api/exports/exp-1/download"
    assert query["expires"] == [str(NOW + 3600)]
    assert query["signature"] == [sign_download("exp-1", NOW + 3600, "secret")]


def test_verify_accepts_valid_signature():
    signature = sign_download("exp-1", NOW + 60, "secret")
    assert verify_download("exp-1", NOW + 60, signature, "secret", now=NOW)


def test_verify_rejects_tampering():
    signature = sign_download("exp-1", NOW + 60, "secret")
    assert not verify_download("exp-2", NOW + 60, signature, "secret", now=NOW)
    assert not verify_download("exp-1", NOW + 61, signature, "secret", now=NOW)
    assert not verify_download("exp-1", NOW + 60, signature, "other-secret", now=NOW)


def test_verify_rejects_expired_link():
    signature = sign_download("exp-1", NOW - 1, "secret")
    assert not verify_download("exp-1", NOW - 1, signature, "secret", now=NOW)
