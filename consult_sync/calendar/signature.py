"""HMAC-SHA256 verification of inbound webhook calls."""
import hashlib
import hmac


def sign(raw_payload: bytes, secret: str) -> str:
    """Return the hex HMAC-SHA256 digest of the payload keyed by secret."""
    return hmac.new(secret.encode("utf-8"), raw_payload, hashlib.sha256).hexdigest()


def _extract_digest(provided_signature: str) -> str:
    """
    Pull the hex digest out of a signature header value.

    Accepted forms:
        <hex>
        sha256=<hex>
        t=<timestamp>,v1=<hex>
    """
    value = provided_signature.strip()
    if "," in value or value.startswith("v1="):
        parts = dict(
            part.strip().split("=", 1) for part in value.split(",") if "=" in part
        )
        return parts.get("v1", "")
    if value.startswith("sha256="):
        return value[len("sha256="):]
    return value


def verify(raw_payload: bytes, provided_signature: str | None, secret: str | None) -> bool:
    """
    Check that provided_signature is the HMAC-SHA256 of raw_payload.

    Returns False for a missing secret, a missing or undecodable signature,
    or any mismatch. The comparison is constant-time.
    """
    if not secret or not provided_signature:
        return False

    try:
        provided = _extract_digest(provided_signature).lower().encode("ascii")
    except (UnicodeEncodeError, ValueError):
        return False
    if not provided:
        return False

    expected = sign(raw_payload, secret).encode("ascii")
    return hmac.compare_digest(expected, provided)
