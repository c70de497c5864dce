"""HMAC-signed, time-limited download URLs for export artifacts."""
import hashlib
import hmac
import time
from typing import Optional
from urllib.parse import urlencode


def sign_download(export_id: str, expires: int, secret: str) -> str:
    message = f"{export_id}:{expires}".encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def build_download_url(
    base_url: str,
    export_id: str,
    secret: str,
    ttl_seconds: int,
    now: Optional[float] = None,
) -> str:
    """Return an absolute URL valid for ``ttl_seconds``."""
    expires = int(now if now is not None else time.time()) + ttl_seconds
    query = urlencode({"expires": expires, "signature": sign_download(export_id, expires, secret)})
    return f"{base_url.rstrip('/')}/api/exports/{export_id}/download?{query}"


def verify_download(
    export_id: str,
    expires: int,
    signature: str,
    secret: str,
    now: Optional[float] = None,
) -> bool:
    if expires < int(now if now is not None else time.time()):
        return False
    return hmac.compare_digest(sign_download(export_id, expires, secret), signature)
