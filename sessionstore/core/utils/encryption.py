"""
Authenticated cookie tokens for session identifiers and payloads.

A codec turns a trusted value into a tamper-evident token bound to a cookie
name. Codecs built with a block key encrypt with Fernet; codecs built with a
hash key alone sign with HMAC-SHA256 and leave the value readable.
"""

import base64
import json
import logging
import re
import time
from datetime import datetime
from functools import lru_cache
from typing import Any, Callable, List, Optional, Sequence, Union

from cryptography.exceptions import InvalidSignature
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes, hmac
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from sessionstore.core.config import DEFAULT_MAX_AGE
from sessionstore.core.exceptions import DecodeError, EncodingError

logger = logging.getLogger(__name__)

KeyMaterial = Union[str, bytes]

DEFAULT_SALT = "sessionstore.cookie"
DEFAULT_KDF_ITERATIONS = 300000
DEFAULT_MAX_LENGTH = 4096

# Version prefix of sign-only tokens. Fernet tokens carry their own.
SIGNED_TOKEN_VERSION = b"1"

_DATETIME_TAG = "__datetime__"

_JSON_SCALARS = (str, int, float, bool)

_TOKEN_PATTERN = re.compile(r"[A-Za-z0-9_-]+")


def get_kdf_iterations(value: Any) -> int:
    """Parse and bound the PBKDF2 iteration count"""
    try:
        iterations = int(value)
        if iterations > 1_000_000:
            logger.warning(f"KDF iterations {iterations} exceeds maximum, using 1,000,000")
            iterations = 1_000_000
    except (ValueError, TypeError):
        iterations = DEFAULT_KDF_ITERATIONS
        logger.warning(f"Invalid KDF iterations value, using default: {iterations}")

    if iterations < 100_000:
        logger.warning(f"KDF iterations {iterations} below recommended minimum, using 300,000")
        iterations = DEFAULT_KDF_ITERATIONS

    return iterations


@lru_cache(maxsize=64)
def derive_key(secret: bytes, salt: bytes, iterations: int) -> bytes:
    """Derive 32 bytes of key material from a configured secret."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(secret)


def _to_bytes(value: KeyMaterial) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else value


def _b64encode(data: bytes) -> bytes:
    return base64.urlsafe_b64encode(data).rstrip(b"=")


def _b64decode(data: bytes) -> bytes:
    return base64.urlsafe_b64decode(data + b"=" * (-len(data) % 4))


def _to_json(value: Any) -> Any:
    # Only values that come back equal from deserialize() are accepted
    if value is None or type(value) in _JSON_SCALARS:
        return value
    if isinstance(value, datetime):
        return {_DATETIME_TAG: value.isoformat()}
    if type(value) is list:
        return [_to_json(item) for item in value]
    if type(value) is dict:
        if _DATETIME_TAG in value:
            raise EncodingError(f"Mapping key {_DATETIME_TAG!r} is reserved")
        converted = {}
        for key, item in value.items():
            if type(key) is not str:
                raise EncodingError(f"Mapping keys must be strings, got {type(key).__name__}")
            converted[key] = _to_json(item)
        return converted
    raise EncodingError(f"Object of type {type(value).__name__} is not serializable")


def _json_object_hook(obj: dict) -> Any:
    if _DATETIME_TAG not in obj:
        return obj
    tagged = obj[_DATETIME_TAG]
    if len(obj) != 1 or not isinstance(tagged, str):
        raise ValueError(f"Malformed {_DATETIME_TAG} value")
    return datetime.fromisoformat(tagged)


def serialize(value: Any) -> bytes:
    """
    Serialize a value to JSON bytes.

    The accepted values are None, str, int, float, bool, datetime, lists of
    accepted values and dicts with str keys. Anything else, tuples and sets
    included, is refused rather than coming back as a different type. The
    key "__datetime__" is reserved. NaN and infinities are refused.

    Raises:
        EncodingError: If the value cannot be serialized
    """
    try:
        return json.dumps(_to_json(value), separators=(",", ":"), allow_nan=False).encode("utf-8")
    except ValueError as e:
        raise EncodingError(f"Failed to serialize value: {e}") from e


def deserialize(data: bytes) -> Any:
    """Inverse of serialize(), raising DecodeError on malformed input."""
    try:
        return json.loads(data.decode("utf-8"), object_hook=_json_object_hook)
    except (UnicodeDecodeError, ValueError, TypeError) as e:
        raise DecodeError(f"Failed to deserialize value: {e}") from e


class CookieCodec:
    """Encodes and decodes values bound to a cookie name."""

    def __init__(
        self,
        hash_key: KeyMaterial,
        block_key: Optional[KeyMaterial] = None,
        salt: KeyMaterial = DEFAULT_SALT,
        iterations: int = DEFAULT_KDF_ITERATIONS,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the codec.

        Args:
            hash_key: Secret used to authenticate tokens
            block_key: Optional secret used to encrypt tokens
            salt: PBKDF2 salt shared by all keys
            iterations: PBKDF2 iteration count
            clock: Source of the token timestamps, in seconds since the epoch
        """
        if not hash_key:
            raise ValueError("hash key must not be empty")

        salt_bytes = _to_bytes(salt)
        iterations = get_kdf_iterations(iterations)
        self._hash_key = derive_key(_to_bytes(hash_key), salt_bytes, iterations)
        self._cipher: Optional[Fernet] = None
        if block_key:
            block = derive_key(_to_bytes(block_key), salt_bytes, iterations)
            # Fernet keys are a 16 byte signing key followed by a 16 byte encryption key
            self._cipher = Fernet(base64.urlsafe_b64encode(self._hash_key[:16] + block[:16]))

        self._max_age = DEFAULT_MAX_AGE
        self._max_length = DEFAULT_MAX_LENGTH
        self._clock = clock

    @property
    def encrypted(self) -> bool:
        return self._cipher is not None

    @property
    def max_age(self) -> int:
        return self._max_age

    @property
    def max_length(self) -> int:
        return self._max_length

    def set_max_age(self, age: int) -> None:
        """Reject tokens older than age seconds. 0 disables the check."""
        self._max_age = max(age, 0)

    def set_max_length(self, length: int) -> None:
        """Reject tokens longer than length characters. 0 disables the check."""
        self._max_length = max(length, 0)

    def encode(self, name: str, value: Any) -> str:
        """
        Encode a value into a token bound to the cookie name.

        Raises:
            EncodingError: If the value cannot be serialized or the token is too long
        """
        now = int(self._clock())
        if self._cipher is not None:
            envelope = serialize({"n": name, "v": value})
            token = self._cipher.encrypt_at_time(envelope, now)
            token = token.rstrip(b"=")
        else:
            timestamp = str(now).encode("ascii")
            encoded_value = _b64encode(serialize(value))
            mac = self._sign(name, timestamp, encoded_value)
            token = _b64encode(
                b"|".join([SIGNED_TOKEN_VERSION, timestamp, encoded_value, _b64encode(mac)])
            )

        result = token.decode("ascii")
        if self._max_length and len(result) > self._max_length:
            raise EncodingError(
                f"Encoded value is too long ({len(result)} > {self._max_length})"
            )
        return result

    def decode(self, name: str, token: str) -> Any:
        """
        Decode a token produced by encode() for the same cookie name.

        Raises:
            DecodeError: If the token is malformed, forged, expired or too long
        """
        if not token:
            raise DecodeError("Empty token")
        if self._max_length and len(token) > self._max_length:
            raise DecodeError("Token is too long")

        if not _TOKEN_PATTERN.fullmatch(token):
            raise DecodeError("Token contains invalid characters")
        raw = token.encode("ascii")
        # Only the exact unpadded form encode() produced is accepted
        try:
            canonical = _b64encode(_b64decode(raw)) == raw
        except ValueError as e:
            raise DecodeError("Token is not valid base64") from e
        if not canonical:
            raise DecodeError("Token is not in canonical form")

        if self._cipher is not None:
            return self._decrypt(name, raw)
        return self._verify(name, raw)

    def _decrypt(self, name: str, raw: bytes) -> Any:
        padded = raw + b"=" * (-len(raw) % 4)
        now = int(self._clock())
        try:
            if self._max_age:
                envelope = self._cipher.decrypt_at_time(padded, self._max_age, now)
            else:
                envelope = self._cipher.decrypt(padded)
        except InvalidToken as e:
            raise DecodeError("Token failed authentication or has expired") from e

        data = deserialize(envelope)
        if not isinstance(data, dict) or data.get("n") != name or "v" not in data:
            raise DecodeError("Token was issued for a different cookie")
        return data["v"]

    def _verify(self, name: str, raw: bytes) -> Any:
        try:
            decoded = _b64decode(raw)
        except ValueError as e:
            raise DecodeError("Token is not valid base64") from e

        parts = decoded.split(b"|")
        if len(parts) != 4 or parts[0] != SIGNED_TOKEN_VERSION:
            raise DecodeError("Token has an unknown format")
        _, timestamp, encoded_value, encoded_mac = parts

        try:
            mac = _b64decode(encoded_mac)
        except ValueError as e:
            raise DecodeError("Token signature is not valid base64") from e
        if _b64encode(mac) != encoded_mac:
            raise DecodeError("Token signature is not in canonical form")

        h = hmac.HMAC(self._hash_key, hashes.SHA256())
        h.update(b"|".join([name.encode("utf-8"), timestamp, encoded_value]))
        try:
            h.verify(mac)
        except InvalidSignature as e:
            raise DecodeError("Token failed authentication") from e

        try:
            issued = int(timestamp)
        except ValueError as e:
            raise DecodeError("Token timestamp is invalid") from e
        if self._max_age and issued < int(self._clock()) - self._max_age:
            raise DecodeError("Token has expired")

        try:
            payload = _b64decode(encoded_value)
        except ValueError as e:
            raise DecodeError("Token value is not valid base64") from e
        return deserialize(payload)

    def _sign(self, name: str, timestamp: bytes, encoded_value: bytes) -> bytes:
        h = hmac.HMAC(self._hash_key, hashes.SHA256())
        h.update(b"|".join([name.encode("utf-8"), timestamp, encoded_value]))
        return h.finalize()


def codecs_from_pairs(
    *key_pairs: Optional[KeyMaterial],
    salt: KeyMaterial = DEFAULT_SALT,
    iterations: int = DEFAULT_KDF_ITERATIONS,
) -> List[CookieCodec]:
    """
    Build codecs from a flat hash_key, block_key, hash_key, block_key... sequence.

    A trailing hash key without a block key produces a sign-only codec.
    """
    codecs = []
    for i in range(0, len(key_pairs), 2):
        hash_key = key_pairs[i]
        block_key = key_pairs[i + 1] if i + 1 < len(key_pairs) else None
        codecs.append(CookieCodec(hash_key, block_key, salt=salt, iterations=iterations))
    return codecs


def encode_multi(name: str, value: Any, codecs: Sequence[CookieCodec]) -> str:
    """Encode with the first (newest) codec."""
    if not codecs:
        raise EncodingError("No codecs configured")
    return codecs[0].encode(name, value)


def decode_multi(name: str, token: str, codecs: Sequence[CookieCodec]) -> Any:
    """
    Decode with each codec in turn so rotated-out keys are still accepted.

    Raises:
        DecodeError: If no codec accepts the token
    """
    if not codecs:
        raise DecodeError("No codecs configured")

    last_error: Optional[DecodeError] = None
    for codec in codecs:
        try:
            return codec.decode(name, token)
        except DecodeError as e:
            last_error = e
    raise DecodeError(f"Token rejected by all {len(codecs)} codecs") from last_error
