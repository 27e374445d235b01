"""Message types and their canonical plaintext encoding (type byte + fields + padding)."""

from __future__ import annotations

import json
import secrets
import struct
from dataclasses import dataclass
from enum import IntEnum

from threema_gateway.errors import (
    InvalidBlobIdError,
    InvalidFieldError,
    InvalidNonceError,
    MessageDecodeError,
    MessageTooLongError,
)

NONCE_LENGTH = 24
KEY_LENGTH = 32
BLOB_ID_LENGTH = 16
MAC_LENGTH = 16
MAX_PADDING = 255
MAX_BOX_LENGTH = 4000  # largest box the gateway accepts
MAX_PLAINTEXT_LENGTH = MAX_BOX_LENGTH - MAC_LENGTH - MAX_PADDING

_IMAGE_BODY = struct.Struct(f">{BLOB_ID_LENGTH}sI{NONCE_LENGTH}s")
_MESSAGE_ID_LENGTH = 8


class MessageType(IntEnum):
    """Leading type byte of an end-to-end message."""

    TEXT = 0x01
    IMAGE = 0x02
    LOCATION = 0x10
    VIDEO = 0x13
    FILE = 0x17
    DELIVERY_RECEIPT = 0x80


class RenderingType(IntEnum):
    """How the receiving client displays a file message."""

    FILE = 0
    MEDIA = 1
    STICKER = 2


class DeliveryStatus(IntEnum):
    RECEIVED = 1
    READ = 2
    USER_ACK = 3
    USER_DECLINE = 4


@dataclass(frozen=True)
class BlobId:
    """Server-assigned identifier of an uploaded blob."""

    value: bytes

    def __post_init__(self) -> None:
        if len(self.value) != BLOB_ID_LENGTH:
            raise InvalidBlobIdError(f"blob id must be {BLOB_ID_LENGTH} bytes, got {len(self.value)}")

    @classmethod
    def from_hex(cls, hex_str: str) -> BlobId:
        try:
            raw = bytes.fromhex(hex_str.strip())
        except ValueError as e:
            raise InvalidBlobIdError(f"blob id is not valid hex: {hex_str!r}") from e
        return cls(raw)

    def to_hex(self) -> str:
        return self.value.hex()

    def __str__(self) -> str:
        return self.to_hex()


@dataclass(frozen=True)
class ImageMessage:
    blob_id: BlobId
    size: int
    blob_nonce: bytes


@dataclass(frozen=True)
class FileMessage:
    """Reference to an encrypted file blob (and optional thumbnail) on the blob server.

    The blobs must be uploaded before the message is sent. ``blob_key`` is the
    symmetric key returned by ``crypto.encrypt_file_data``.
    """

    blob_id: BlobId
    blob_key: bytes
    mime_type: str
    file_size: int
    file_name: str | None = None
    thumbnail_blob_id: BlobId | None = None
    thumbnail_media_type: str | None = None
    description: str | None = None
    rendering_type: RenderingType = RenderingType.FILE

    def __post_init__(self) -> None:
        if len(self.blob_key) != KEY_LENGTH:
            raise InvalidFieldError(f"blob key must be {KEY_LENGTH} bytes, got {len(self.blob_key)}")
        if self.file_size < 0:
            raise InvalidFieldError("file size must not be negative", file_size=self.file_size)

    def to_json_bytes(self) -> bytes:
        d: dict = {
            "b": self.blob_id.to_hex(),
            "k": self.blob_key.hex(),
            "m": self.mime_type,
            "s": self.file_size,
            "i": 1 if self.rendering_type == RenderingType.MEDIA else 0,
            "j": int(self.rendering_type),
        }
        if self.file_name is not None:
            d["n"] = self.file_name
        if self.thumbnail_blob_id is not None:
            d["t"] = self.thumbnail_blob_id.to_hex()
            if self.thumbnail_media_type is not None:
                d["p"] = self.thumbnail_media_type
        if self.description is not None:
            d["d"] = self.description
        return json.dumps(d, separators=(",", ":")).encode("utf-8")

    @classmethod
    def from_json_bytes(cls, data: bytes) -> FileMessage:
        try:
            d = json.loads(data.decode("utf-8"))
            thumbnail = d.get("t")
            return cls(
                blob_id=BlobId.from_hex(d["b"]),
                blob_key=bytes.fromhex(d["k"]),
                mime_type=d["m"],
                file_size=int(d["s"]),
                file_name=d.get("n"),
                thumbnail_blob_id=BlobId.from_hex(thumbnail) if thumbnail else None,
                thumbnail_media_type=d.get("p"),
                description=d.get("d"),
                rendering_type=RenderingType(d.get("j", d.get("i", 0))),
            )
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise MessageDecodeError(f"malformed file message: {e}") from e


@dataclass(frozen=True)
class DeliveryReceipt:
    status: DeliveryStatus
    message_ids: tuple[str, ...]


@dataclass(frozen=True)
class DecodedMessage:
    """Decrypted, unpadded message. ``content`` depends on ``message_type``:
    str for text, ImageMessage, FileMessage, DeliveryReceipt, or the raw
    body bytes for types this library does not model.
    """

    message_type: MessageType | int
    content: object


def pad(data: bytes) -> bytes:
    """Append 1-255 random-length PKCS#7 style padding."""
    amount = secrets.randbelow(MAX_PADDING) + 1
    return data + bytes([amount]) * amount


def unpad(data: bytes) -> bytes:
    if not data:
        raise MessageDecodeError("cannot unpad empty message")
    amount = data[-1]
    if amount == 0 or amount > len(data) or data[-amount:] != bytes([amount]) * amount:
        raise MessageDecodeError("invalid padding")
    return data[:-amount]


def _finish(msgtype: MessageType, body: bytes) -> bytes:
    payload = bytes([msgtype]) + body
    if len(payload) > MAX_PLAINTEXT_LENGTH:
        raise MessageTooLongError(
            f"message is {len(payload)} bytes, limit is {MAX_PLAINTEXT_LENGTH}", code=None
        )
    return pad(payload)


def encode_text(text: str) -> bytes:
    return _finish(MessageType.TEXT, text.encode("utf-8"))


def encode_image(blob_id: BlobId, size: int, blob_nonce: bytes) -> bytes:
    if len(blob_nonce) != NONCE_LENGTH:
        raise InvalidNonceError(f"nonce must be {NONCE_LENGTH} bytes", length=len(blob_nonce))
    if not 0 <= size <= 0xFFFFFFFF:
        raise InvalidFieldError("image size must fit in an unsigned 32-bit integer")
    return _finish(MessageType.IMAGE, _IMAGE_BODY.pack(blob_id.value, size, blob_nonce))


def encode_file(msg: FileMessage) -> bytes:
    return _finish(MessageType.FILE, msg.to_json_bytes())


def _decode_delivery_receipt(body: bytes) -> DeliveryReceipt:
    if not body or (len(body) - 1) % _MESSAGE_ID_LENGTH:
        raise MessageDecodeError("malformed delivery receipt")
    try:
        status = DeliveryStatus(body[0])
    except ValueError as e:
        raise MessageDecodeError(f"unknown delivery status {body[0]}") from e
    ids = tuple(
        body[i : i + _MESSAGE_ID_LENGTH].hex() for i in range(1, len(body), _MESSAGE_ID_LENGTH)
    )
    return DeliveryReceipt(status=status, message_ids=ids)


def decode_message(plaintext: bytes) -> DecodedMessage:
    """Strip padding and parse a decrypted message."""
    data = unpad(plaintext)
    if not data:
        raise MessageDecodeError("message has no type byte")
    type_byte, body = data[0], data[1:]
    try:
        msgtype: MessageType | int = MessageType(type_byte)
    except ValueError:
        return DecodedMessage(type_byte, body)

    if msgtype == MessageType.TEXT:
        try:
            return DecodedMessage(msgtype, body.decode("utf-8"))
        except UnicodeDecodeError as e:
            raise MessageDecodeError("text message is not valid UTF-8") from e
    if msgtype == MessageType.IMAGE:
        if len(body) != _IMAGE_BODY.size:
            raise MessageDecodeError(f"image message body must be {_IMAGE_BODY.size} bytes")
        blob_id, size, nonce = _IMAGE_BODY.unpack(body)
        return DecodedMessage(msgtype, ImageMessage(BlobId(blob_id), size, nonce))
    if msgtype == MessageType.FILE:
        return DecodedMessage(msgtype, FileMessage.from_json_bytes(body))
    if msgtype == MessageType.DELIVERY_RECEIPT:
        return DecodedMessage(msgtype, _decode_delivery_receipt(body))
    return DecodedMessage(msgtype, body)
