from __future__ import annotations

import hashlib
import hmac

from rtms.errors import MissingCredentialsError


def _hmac_sha256_hex(key: str, message: str) -> str:
    return hmac.new(key.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()


def generate_signature(
    client_id: str | None,
    client_secret: str | None,
    session_id: str,
    stream_id: str,
) -> str:
    """Sign an RTMS handshake.

    The signature is the hex HMAC-SHA256 of ``"<client_id>,<session_id>,<stream_id>"``
    keyed by the client secret.

    Raises:
        MissingCredentialsError: if the client id or secret is not configured.
    """

    if not client_id or not client_secret:
        raise MissingCredentialsError("ZOOM_CLIENT_ID/ZOOM_CLIENT_SECRET not configured")

    return _hmac_sha256_hex(client_secret, f"{client_id},{session_id},{stream_id}")


def url_validation_token(secret_token: str | None, plain_token: str) -> str:
    """Answer a webhook endpoint validation challenge."""

    if not secret_token:
        raise MissingCredentialsError("ZOOM_SECRET_TOKEN not configured")

    return _hmac_sha256_hex(secret_token, plain_token)
