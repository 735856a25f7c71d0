# =============================================================================
# Webhook Security - Ed25519 Request Verification
# =============================================================================
# Discord signs every interaction request:
#   X-Signature-Ed25519:   hex(ed25519_sign(timestamp + body))
#   X-Signature-Timestamp: unix seconds
#
# Verification fails closed: anything unexpected is a rejection, never an
# exception that skips the rejection.
# =============================================================================

import logging
import time
from functools import lru_cache
from typing import Optional, Tuple, Union

from nacl.exceptions import BadSignatureError
from nacl.signing import VerifyKey

from src.runtime.errors import AuthenticationError

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Signature-Ed25519"
TIMESTAMP_HEADER = "X-Signature-Timestamp"

# Reject requests whose timestamp is further than this from our clock
TIMESTAMP_TOLERANCE_SECONDS = 300

ED25519_SIGNATURE_BYTES = 64
ED25519_KEY_BYTES = 32


@lru_cache(maxsize=8)
def load_verify_key(public_key: str) -> VerifyKey:
    """Parse a hex public key. Cached: keys are fixed for the process lifetime."""
    key_bytes = bytes.fromhex(public_key.strip())
    if len(key_bytes) != ED25519_KEY_BYTES:
        raise ValueError(f"Public key must be {ED25519_KEY_BYTES} bytes, got {len(key_bytes)}")
    return VerifyKey(key_bytes)


def validate_timestamp(timestamp: str, now: Optional[float] = None,
                       tolerance_seconds: int = TIMESTAMP_TOLERANCE_SECONDS) -> Tuple[bool, str]:
    """Validate request timestamp to prevent replay attacks.

    Returns: (is_valid, error_message)
    """
    if not timestamp:
        return False, "Missing timestamp"
    try:
        ts = int(timestamp)
    except (TypeError, ValueError):
        return False, "Invalid timestamp format"

    current = time.time() if now is None else now
    time_diff = abs(current - ts)
    if time_diff > tolerance_seconds:
        return False, f"Timestamp outside tolerance. Difference: {int(time_diff)}s, max allowed: {tolerance_seconds}s"
    return True, ""


def validate_signature(raw_body: bytes, timestamp: str, signature: str,
                       public_key: Union[str, VerifyKey]) -> Tuple[bool, str]:
    """Check the Ed25519 signature over timestamp + body.

    Returns: (is_valid, error_message)
    """
    if not signature:
        return False, "Missing signature"
    try:
        sig_bytes = bytes.fromhex(signature)
    except (TypeError, ValueError):
        return False, "Signature is not valid hex"
    if len(sig_bytes) != ED25519_SIGNATURE_BYTES:
        return False, "Signature has wrong length"

    try:
        key = public_key if isinstance(public_key, VerifyKey) else load_verify_key(public_key)
    except (TypeError, ValueError) as e:
        return False, f"Public key not usable: {e}"

    if isinstance(raw_body, str):
        raw_body = raw_body.encode("utf-8")

    try:
        key.verify(timestamp.encode("utf-8") + raw_body, sig_bytes)
    except BadSignatureError:
        return False, "Signature mismatch"
    except Exception as e:
        logger.warning(f"Unexpected signature verification failure: {e}")
        return False, "Signature verification failed"
    return True, ""


def verify_signature(raw_body: bytes, timestamp: str, signature: str,
                     public_key: Union[str, VerifyKey], now: Optional[float] = None,
                     tolerance_seconds: int = TIMESTAMP_TOLERANCE_SECONDS) -> bool:
    """True only for a fresh timestamp and a valid signature. Never raises."""
    try:
        ok, reason = validate_timestamp(timestamp, now=now, tolerance_seconds=tolerance_seconds)
        if ok:
            ok, reason = validate_signature(raw_body, timestamp, signature, public_key)
    except Exception as e:
        logger.warning(f"Signature verification error: {e}")
        return False
    if not ok:
        logger.info(f"Rejected request signature: {reason}")
    return ok


class SignatureVerifier:
    """Verifier bound to the application's public key.

    The key is parsed once (cold start) and reused for every request. A key
    that cannot be parsed makes every verification fail.
    """

    def __init__(self, public_key: str, tolerance_seconds: int = TIMESTAMP_TOLERANCE_SECONDS):
        self.tolerance_seconds = tolerance_seconds
        self._key: Optional[VerifyKey] = None
        try:
            self._key = load_verify_key(public_key)
        except (TypeError, ValueError, AttributeError) as e:
            logger.error(f"Configured public key is invalid, all requests will be rejected: {e}")

    def verify(self, raw_body: bytes, timestamp: str, signature: str,
               now: Optional[float] = None) -> bool:
        if self._key is None:
            return False
        return verify_signature(raw_body, timestamp, signature, self._key,
                                now=now, tolerance_seconds=self.tolerance_seconds)

    def require_valid(self, raw_body: bytes, timestamp: str, signature: str,
                      now: Optional[float] = None) -> None:
        """Raise AuthenticationError unless the request verifies."""
        if not self.verify(raw_body, timestamp, signature, now=now):
            raise AuthenticationError("Invalid request signature")
