"""Incoming message callbacks posted by the gateway."""

from __future__ import annotations

import hashlib
import hmac
from dataclasses import dataclass
from urllib.parse import parse_qs

from threema_gateway.crypto import EncryptedMessage
from threema_gateway.errors import BadMacError, MessageDecodeError
from threema_gateway.schema import NONCE_LENGTH

_MAC_FIELDS = ("from", "to", "messageId", "date", "nonce", "box")


def compute_mac(form: dict[str, str], secret: str) -> str:
    msg = "".join(form[name] for name in _MAC_FIELDS).encode("utf-8")
    return hmac.new(secret.encode("utf-8"), msg, hashlib.sha256).hexdigest()


@dataclass(frozen=True)
class IncomingMessage:
    from_id: str
    to: str
    message_id: str
    date: int
    nonce: bytes
    box: bytes
    mac: str
    nickname: str | None = None

    @property
    def encrypted(self) -> EncryptedMessage:
        return EncryptedMessage(nonce=self.nonce, ciphertext=self.box)

    @classmethod
    def from_form(cls, form: dict[str, str], secret: str) -> IncomingMessage:
        """Parse callback form fields, verifying the MAC before anything else."""
        missing = [name for name in (*_MAC_FIELDS, "mac") if name not in form]
        if missing:
            raise MessageDecodeError("incoming message is missing fields", missing=missing)
        expected = compute_mac(form, secret).encode("ascii")
        if not hmac.compare_digest(expected, form["mac"].lower().encode("utf-8")):
            raise BadMacError("incoming message MAC mismatch", message_id=form["messageId"])
        try:
            msg = cls(
                from_id=form["from"],
                to=form["to"],
                message_id=form["messageId"],
                date=int(form["date"]),
                nonce=bytes.fromhex(form["nonce"]),
                box=bytes.fromhex(form["box"]),
                mac=form["mac"],
                nickname=form.get("nickname"),
            )
        except ValueError as e:
            raise MessageDecodeError(f"malformed incoming message: {e}") from e
        if len(msg.nonce) != NONCE_LENGTH:
            raise MessageDecodeError("incoming message has a bad nonce", length=len(msg.nonce))
        return msg

    @classmethod
    def from_urlencoded(cls, body: bytes, secret: str) -> IncomingMessage:
        try:
            text = body.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MessageDecodeError("incoming message body is not valid UTF-8") from e
        parsed = parse_qs(text, keep_blank_values=True)
        return cls.from_form({k: v[0] for k, v in parsed.items()}, secret)
