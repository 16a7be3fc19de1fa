"""Opaque, signed pagination cursors for scholarship search.

A cursor is the (deadline, id) sort key of the last row on a page. It is
serialised as compact JSON, base64url-encoded and signed with HMAC-SHA256
so callers can only hand back cursors the server issued.
"""

import base64
import binascii
import hashlib
import hmac
import json
from dataclasses import dataclass
from datetime import date
from typing import Union
from uuid import UUID

from magpie.config import Settings
from magpie.errors import ScholarshipSearchError

SIGNATURE_BYTES = 16


@dataclass(frozen=True)
class Cursor:
    """Resume position: the last row returned, in (deadline, id) order."""

    deadline: date
    id: UUID


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(text: str) -> bytes:
    padding = "=" * (-len(text) % 4)
    return base64.urlsafe_b64decode(text + padding)


class CursorCodec:
    """Encode and verify search cursors."""

    def __init__(self, secret: Union[str, bytes]):
        if not secret:
            raise ValueError("Cursor secret must not be empty")
        self._key = secret.encode() if isinstance(secret, str) else secret

    @classmethod
    def from_settings(cls, settings: Settings) -> "CursorCodec":
        """Use the configured secret, or derive one from the other server secrets."""
        if settings.cursor_secret:
            return cls(settings.cursor_secret)
        seed = f"magpie-cursor:{settings.supabase_jwt_secret}:{settings.database_url}"
        return cls(hashlib.sha256(seed.encode()).digest())

    def _sign(self, payload: bytes) -> bytes:
        return hmac.new(self._key, payload, hashlib.sha256).digest()[:SIGNATURE_BYTES]

    def encode(self, cursor: Cursor) -> str:
        payload = json.dumps(
            {"d": cursor.deadline.isoformat(), "i": str(cursor.id)},
            separators=(",", ":"),
        ).encode()
        return f"{_b64encode(payload)}.{_b64encode(self._sign(payload))}"

    def decode(self, token: str) -> Cursor:
        """Parse a cursor previously produced by ``encode``.

        Raises:
            ScholarshipSearchError: 400 for malformed or tampered cursors
        """
        try:
            encoded_payload, encoded_signature = token.split(".")
            payload = _b64decode(encoded_payload)
            signature = _b64decode(encoded_signature)
        except (ValueError, binascii.Error):
            raise ScholarshipSearchError(400, "Invalid cursor") from None

        if not hmac.compare_digest(signature, self._sign(payload)):
            raise ScholarshipSearchError(400, "Invalid cursor")

        try:
            data = json.loads(payload)
            return Cursor(deadline=date.fromisoformat(data["d"]), id=UUID(data["i"]))
        except (ValueError, KeyError, TypeError):
            raise ScholarshipSearchError(400, "Invalid cursor") from None
