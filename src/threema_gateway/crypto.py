"""Key material, NaCl box encrypt/decrypt and per-message-type encryption."""

from __future__ import annotations

from dataclasses import dataclass, field

import nacl.exceptions
import nacl.utils
from nacl.public import Box
from nacl.public import PrivateKey as _NaclPrivateKey
from nacl.public import PublicKey as _NaclPublicKey
from nacl.secret import SecretBox

from threema_gateway import schema
from threema_gateway.errors import (
    AuthenticationFailure,
    InvalidKeyEncodingError,
    InvalidKeyError,
    InvalidNonceError,
)
from threema_gateway.schema import BlobId, DecodedMessage, FileMessage

# Fixed nonces for symmetric blob encryption; each blob key is used exactly once per slot.
FILE_NONCE = b"\x00" * 23 + b"\x01"
THUMBNAIL_NONCE = b"\x00" * 23 + b"\x02"


def _decode_hex_key(hex_str: str, kind: str) -> bytes:
    try:
        return bytes.fromhex(hex_str.strip())
    except ValueError as e:
        raise InvalidKeyEncodingError(f"Could not decode {kind} hex string: {e}") from e


def _check_key_length(raw: bytes, kind: str) -> None:
    if len(raw) != schema.KEY_LENGTH:
        raise InvalidKeyError(
            f"{kind} must be {schema.KEY_LENGTH} bytes", length=len(raw)
        )


@dataclass(frozen=True)
class RecipientKey:
    """Public key of a Threema ID."""

    raw: bytes

    def __post_init__(self) -> None:
        _check_key_length(self.raw, "public key")

    @classmethod
    def from_bytes(cls, raw: bytes) -> RecipientKey:
        return cls(bytes(raw))

    @classmethod
    def from_hex(cls, hex_str: str) -> RecipientKey:
        return cls(_decode_hex_key(hex_str, "public key"))

    def to_hex(self) -> str:
        return self.raw.hex()

    def __bytes__(self) -> bytes:
        return self.raw


@dataclass(frozen=True)
class PrivateKey:
    """Long-term secret key of the gateway ID. The key bytes are kept out of repr."""

    raw: bytes = field(repr=False)

    def __post_init__(self) -> None:
        _check_key_length(self.raw, "private key")

    @classmethod
    def from_bytes(cls, raw: bytes) -> PrivateKey:
        return cls(bytes(raw))

    @classmethod
    def from_hex(cls, hex_str: str) -> PrivateKey:
        return cls(_decode_hex_key(hex_str, "private key"))

    @classmethod
    def generate(cls) -> PrivateKey:
        return cls(bytes(_NaclPrivateKey.generate()))

    @property
    def public_key(self) -> RecipientKey:
        return RecipientKey(bytes(_NaclPrivateKey(self.raw).public_key))

    def to_hex(self) -> str:
        return self.raw.hex()

    def __bytes__(self) -> bytes:
        return self.raw


@dataclass(frozen=True)
class EncryptedMessage:
    """Nonce and ciphertext of one box. Sent as two separate hex fields."""

    nonce: bytes
    ciphertext: bytes

    def __post_init__(self) -> None:
        _check_nonce(self.nonce)


@dataclass(frozen=True)
class EncryptedFileData:
    file: bytes
    thumbnail: bytes | None = None


def _check_nonce(nonce: bytes) -> None:
    if len(nonce) != Box.NONCE_SIZE:
        raise InvalidNonceError(f"nonce must be {Box.NONCE_SIZE} bytes", length=len(nonce))


def _box(their_key: RecipientKey, our_key: PrivateKey) -> Box:
    return Box(_NaclPrivateKey(our_key.raw), _NaclPublicKey(their_key.raw))


def generate_keypair() -> tuple[PrivateKey, RecipientKey]:
    """Return (private_key, public_key) for a new gateway identity."""
    sk = PrivateKey.generate()
    return sk, sk.public_key


def seal(
    plaintext: bytes, recipient_key: RecipientKey, private_key: PrivateKey, nonce: bytes
) -> bytes:
    """Encrypt plaintext using NaCl Box (X25519 + XSalsa20-Poly1305).

    Deterministic: all randomness comes from ``nonce``. The result is the
    16-byte authenticator followed by the encrypted bytes.
    """
    _check_nonce(nonce)
    return _box(recipient_key, private_key).encrypt(plaintext, nonce).ciphertext


def open_box(
    ciphertext: bytes, sender_key: RecipientKey, private_key: PrivateKey, nonce: bytes
) -> bytes:
    """Decrypt ciphertext using NaCl Box. Any failure is an AuthenticationFailure."""
    _check_nonce(nonce)
    try:
        return _box(sender_key, private_key).decrypt(ciphertext, nonce)
    except nacl.exceptions.CryptoError as e:
        raise AuthenticationFailure() from e


def _encrypt(plaintext: bytes, recipient_key: RecipientKey, private_key: PrivateKey) -> EncryptedMessage:
    nonce = nacl.utils.random(Box.NONCE_SIZE)
    return EncryptedMessage(nonce=nonce, ciphertext=seal(plaintext, recipient_key, private_key, nonce))


def encrypt_raw(data: bytes, recipient_key: RecipientKey, private_key: PrivateKey) -> EncryptedMessage:
    """Encrypt bytes verbatim, without type byte or padding (e.g. image blobs)."""
    return _encrypt(data, recipient_key, private_key)


def encrypt_text(text: str, recipient_key: RecipientKey, private_key: PrivateKey) -> EncryptedMessage:
    return _encrypt(schema.encode_text(text), recipient_key, private_key)


def encrypt_image(
    blob_id: BlobId,
    img_size_bytes: int,
    image_data_nonce: bytes,
    recipient_key: RecipientKey,
    private_key: PrivateKey,
) -> EncryptedMessage:
    return _encrypt(
        schema.encode_image(blob_id, img_size_bytes, image_data_nonce), recipient_key, private_key
    )


def encrypt_file(msg: FileMessage, recipient_key: RecipientKey, private_key: PrivateKey) -> EncryptedMessage:
    return _encrypt(schema.encode_file(msg), recipient_key, private_key)


def decrypt(message: EncryptedMessage, sender_key: RecipientKey, private_key: PrivateKey) -> DecodedMessage:
    plaintext = open_box(message.ciphertext, sender_key, private_key, message.nonce)
    return schema.decode_message(plaintext)


def encrypt_file_data(data: bytes, thumbnail: bytes | None = None) -> tuple[EncryptedFileData, bytes]:
    """Encrypt file (and thumbnail) contents with a fresh random symmetric key.

    Returns the encrypted data and the key; the key goes into the FileMessage.
    """
    key = nacl.utils.random(SecretBox.KEY_SIZE)
    box = SecretBox(key)
    encrypted_thumbnail = None
    if thumbnail is not None:
        encrypted_thumbnail = box.encrypt(thumbnail, THUMBNAIL_NONCE).ciphertext
    return EncryptedFileData(box.encrypt(data, FILE_NONCE).ciphertext, encrypted_thumbnail), key


def decrypt_file_data(encrypted: EncryptedFileData, key: bytes) -> tuple[bytes, bytes | None]:
    _check_key_length(key, "blob key")
    box = SecretBox(key)
    try:
        data = box.decrypt(encrypted.file, FILE_NONCE)
        thumbnail = None
        if encrypted.thumbnail is not None:
            thumbnail = box.decrypt(encrypted.thumbnail, THUMBNAIL_NONCE)
    except nacl.exceptions.CryptoError as e:
        raise AuthenticationFailure() from e
    return data, thumbnail
