"""Signed bootstrap callback URLs.

The bootstrap script on the target host gets one URL per server. It appends
``step`` and ``status`` to it; the signature covers the path and expiry.
"""

import hashlib
import hmac
import time

from stackhand.config import Settings


def callback_path(server_id: int) -> str:
    return f"/api/servers/{server_id}/provision/step"


def build_signature(secret: str, path: str, expires: int) -> str:
    message = f"{path}?expires={expires}".encode()
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def signed_callback_url(settings: Settings, server_id: int, now: float | None = None) -> str:
    path = callback_path(server_id)
    expires = int(now if now is not None else time.time()) + settings.callback_url_ttl
    signature = build_signature(settings.callback_signing_key, path, expires)
    return f"{settings.public_url.rstrip('/')}{path}?expires={expires}&signature={signature}"


def verify_signature(
    secret: str,
    path: str,
    expires: int | None,
    signature: str | None,
    now: float | None = None,
) -> bool:
    if expires is None or not signature:
        return False
    if expires < int(now if now is not None else time.time()):
        return False
    expected = build_signature(secret, path, expires)
    return hmac.compare_digest(expected.encode(), signature.encode())
