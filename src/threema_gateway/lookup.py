"""Directory lookups: public keys, IDs, capabilities and credits."""

from __future__ import annotations

import hashlib
import hmac
import logging
import re
from dataclasses import dataclass
from enum import Enum
from urllib.parse import quote

from threema_gateway.connection import GatewayConnection
from threema_gateway.crypto import RecipientKey
from threema_gateway.errors import BadHashLengthError, InvalidKeyError, UnparsedResponseError

logger = logging.getLogger(__name__)

# HMAC keys used by the directory for hashed e-mail / phone lookups.
_EMAIL_HMAC_KEY = bytes.fromhex("30a5500fed9701fa6defdb610841900febb8e430881f7ad816826264ec09bad7")
_PHONE_HMAC_KEY = bytes.fromhex("85adf8226953f3d96cfd5d09bf29555eb955fcd8aa5ec4f9fcd869e258370723")

_HASH_RE = re.compile(r"^[0-9a-fA-F]{64}$")


def hash_email(email: str) -> str:
    normalized = email.strip().lower().encode("utf-8")
    return hmac.new(_EMAIL_HMAC_KEY, normalized, hashlib.sha256).hexdigest()


def hash_phone(phone: str) -> str:
    normalized = re.sub(r"[^0-9]", "", phone).encode("ascii")
    return hmac.new(_PHONE_HMAC_KEY, normalized, hashlib.sha256).hexdigest()


@dataclass(frozen=True)
class LookupCriterion:
    """What to look a Threema ID up by. Build with the classmethods."""

    kind: str
    value: str

    @classmethod
    def phone(cls, number: str) -> LookupCriterion:
        return cls("phone", number)

    @classmethod
    def phone_hash(cls, digest: str) -> LookupCriterion:
        return cls("phone_hash", digest)

    @classmethod
    def email(cls, address: str) -> LookupCriterion:
        return cls("email", address)

    @classmethod
    def email_hash(cls, digest: str) -> LookupCriterion:
        return cls("email_hash", digest)

    @property
    def is_hashed(self) -> bool:
        return self.kind.endswith("_hash")

    @property
    def path(self) -> str:
        return f"/lookup/{self.kind}/{quote(self.value, safe='@+')}"


class Capability(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    FILE = "file"


@dataclass(frozen=True)
class Capabilities:
    """Message types a Threema ID can receive."""

    flags: frozenset[Capability] = frozenset()

    @classmethod
    def parse(cls, body: str) -> Capabilities:
        """Parse a comma separated capability list. Unknown tokens are skipped."""
        flags = set()
        for token in body.split(","):
            token = token.strip()
            if not token:
                continue
            try:
                flags.add(Capability(token))
            except ValueError:
                logger.debug("Ignoring unknown capability %r", token)
        return cls(frozenset(flags))

    def __contains__(self, item: object) -> bool:
        return item in self.flags

    @property
    def text(self) -> bool:
        return Capability.TEXT in self.flags

    @property
    def image(self) -> bool:
        return Capability.IMAGE in self.flags

    @property
    def video(self) -> bool:
        return Capability.VIDEO in self.flags

    @property
    def audio(self) -> bool:
        return Capability.AUDIO in self.flags

    @property
    def file(self) -> bool:
        return Capability.FILE in self.flags


def _auth(our_id: str, secret: str) -> dict[str, str]:
    return {"from": our_id, "secret": secret}


def lookup_pubkey(conn: GatewayConnection, our_id: str, their_id: str, secret: str) -> RecipientKey:
    path = f"/pubkeys/{quote(their_id, safe='*')}"
    body = conn.request_text("GET", path, params=_auth(our_id, secret))
    try:
        return RecipientKey.from_hex(body)
    except InvalidKeyError as e:
        raise UnparsedResponseError(f"Invalid public key in response: {e}", endpoint=path) from e


def lookup_id(conn: GatewayConnection, criterion: LookupCriterion, our_id: str, secret: str) -> str:
    if criterion.is_hashed and not _HASH_RE.match(criterion.value):
        raise BadHashLengthError(endpoint=criterion.path)
    bad_request = BadHashLengthError if criterion.is_hashed else None
    return conn.request_text(
        "GET", criterion.path, params=_auth(our_id, secret), bad_request=bad_request
    )


def lookup_capabilities(conn: GatewayConnection, our_id: str, their_id: str, secret: str) -> Capabilities:
    path = f"/capabilities/{quote(their_id, safe='*')}"
    return Capabilities.parse(conn.request_text("GET", path, params=_auth(our_id, secret)))


def lookup_credits(conn: GatewayConnection, our_id: str, secret: str) -> int:
    body = conn.request_text("GET", "/credits", params=_auth(our_id, secret))
    try:
        return int(body)
    except ValueError as e:
        raise UnparsedResponseError(f"Could not parse credits: {body!r}", endpoint="/credits") from e
