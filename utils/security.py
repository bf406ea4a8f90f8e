import hashlib
import hmac


def hmac_sha256_hex(secret: str, body: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def safe_compare(expected: str, received: str) -> bool:
    a = (expected or "").strip().lower().encode()
    b = (received or "").strip().lower().encode()
    if len(a) != len(b):
        return False
    return hmac.compare_digest(a, b)
