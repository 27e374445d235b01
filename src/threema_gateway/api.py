"""Caller-facing API objects for simple and end-to-end mode, and their builder."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from urllib.parse import urlsplit

import httpx

from threema_gateway import connection, crypto, lookup
from threema_gateway.connection import MSGAPI_URL, GatewayConnection, Recipient
from threema_gateway.crypto import EncryptedMessage, PrivateKey, RecipientKey
from threema_gateway.errors import InvalidEndpointError, MissingPrivateKeyError
from threema_gateway.lookup import Capabilities, LookupCriterion
from threema_gateway.receive import IncomingMessage
from threema_gateway.schema import BlobId, DecodedMessage, FileMessage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Credentials:
    id: str
    secret: str = field(repr=False)


@dataclass(frozen=True)
class LookupClient:
    """Lookup operations shared by both API flavours."""

    credentials: Credentials
    conn: GatewayConnection

    def lookup_pubkey(self, id: str) -> RecipientKey:
        """Fetch the public key for the specified Threema ID.

        It is best to obtain the key directly from the recipient (QR code).
        If you look it up, cache it; the library never does.
        """
        return lookup.lookup_pubkey(self.conn, self.credentials.id, id, self.credentials.secret)

    def lookup_id(self, criterion: LookupCriterion) -> str:
        """Look up a Threema ID by phone number or e-mail, plain or hashed."""
        return lookup.lookup_id(self.conn, criterion, self.credentials.id, self.credentials.secret)

    def lookup_capabilities(self, id: str) -> Capabilities:
        """Which message types the given ID can receive, e.g. before sending a file."""
        return lookup.lookup_capabilities(self.conn, self.credentials.id, id, self.credentials.secret)

    def lookup_credits(self) -> int:
        return lookup.lookup_credits(self.conn, self.credentials.id, self.credentials.secret)


class _Lookups:
    """Forward lookup calls to the composed LookupClient."""

    lookups: LookupClient

    def lookup_pubkey(self, id: str) -> RecipientKey:
        return self.lookups.lookup_pubkey(id)

    def lookup_id(self, criterion: LookupCriterion) -> str:
        return self.lookups.lookup_id(criterion)

    def lookup_capabilities(self, id: str) -> Capabilities:
        return self.lookups.lookup_capabilities(id)

    def lookup_credits(self) -> int:
        return self.lookups.lookup_credits()


@dataclass(frozen=True)
class SimpleApi(_Lookups):
    """Simple mode: the gateway sees the message text."""

    lookups: LookupClient

    @property
    def id(self) -> str:
        return self.lookups.credentials.id

    def send(self, to: Recipient | str, text: str) -> str:
        """Send a text without end-to-end encryption. Costs 1 credit.

        A plain string is taken as a Threema ID. Returns the message id.
        """
        if isinstance(to, str):
            to = Recipient.id(to)
        creds = self.lookups.credentials
        return connection.send_simple(self.lookups.conn, creds.id, to, creds.secret, text)


@dataclass(frozen=True)
class E2eApi(_Lookups):
    """End-to-end mode: messages are encrypted with the gateway's private key."""

    lookups: LookupClient
    private_key: PrivateKey

    @property
    def id(self) -> str:
        return self.lookups.credentials.id

    def encrypt_raw(self, data: bytes, recipient_key: RecipientKey) -> EncryptedMessage:
        return crypto.encrypt_raw(data, recipient_key, self.private_key)

    def encrypt_text_msg(self, text: str, recipient_key: RecipientKey) -> EncryptedMessage:
        return crypto.encrypt_text(text, recipient_key, self.private_key)

    def encrypt_image_msg(
        self,
        blob_id: BlobId,
        img_size_bytes: int,
        image_data_nonce: bytes,
        recipient_key: RecipientKey,
    ) -> EncryptedMessage:
        """Encrypt an image message.

        Encrypt the JPEG data with ``encrypt_raw`` and upload the ciphertext
        first; ``image_data_nonce`` is the nonce of that upload. The size is
        only used for display.
        """
        return crypto.encrypt_image(
            blob_id, img_size_bytes, image_data_nonce, recipient_key, self.private_key
        )

    def encrypt_file_msg(self, msg: FileMessage, recipient_key: RecipientKey) -> EncryptedMessage:
        return crypto.encrypt_file(msg, recipient_key, self.private_key)

    def send(self, to: str, message: EncryptedMessage, delivery_receipts: bool = False) -> str:
        """Send an encrypted message to the specified Threema ID. Costs 1 credit.

        With ``delivery_receipts=False`` the recipient's device is told not to
        send receipts, which suits one-way communication.
        """
        return self.send_with_params(to, message, delivery_receipts, None)

    def send_with_params(
        self,
        to: str,
        message: EncryptedMessage,
        delivery_receipts: bool,
        additional_params: dict[str, str] | None,
    ) -> str:
        creds = self.lookups.credentials
        return connection.send_e2e(
            self.lookups.conn,
            creds.id,
            to,
            creds.secret,
            message.nonce,
            message.ciphertext,
            delivery_receipts,
            additional_params,
        )

    def blob_upload(self, data: EncryptedMessage, persist: bool = False) -> BlobId:
        """Upload the ciphertext of ``data``. ``persist`` keeps it after download."""
        return self.blob_upload_raw(data.ciphertext, persist)

    def blob_upload_raw(
        self, data: bytes, persist: bool = False, additional_params: dict[str, str] | None = None
    ) -> BlobId:
        creds = self.lookups.credentials
        return connection.blob_upload(
            self.lookups.conn, creds.id, creds.secret, data, persist, additional_params
        )

    def blob_download(self, blob_id: BlobId) -> bytes:
        creds = self.lookups.credentials
        return connection.blob_download(self.lookups.conn, creds.id, creds.secret, blob_id)

    def decode_incoming_message(self, form: dict[str, str]) -> IncomingMessage:
        """Parse a callback request and verify its MAC with our secret."""
        return IncomingMessage.from_form(form, self.lookups.credentials.secret)

    def decrypt_incoming_message(
        self, message: IncomingMessage, sender_key: RecipientKey
    ) -> DecodedMessage:
        return crypto.decrypt(message.encrypted, sender_key, self.private_key)


def _check_endpoint(endpoint: str) -> str:
    parts = urlsplit(endpoint)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise InvalidEndpointError("Endpoint must be an http(s) URL", endpoint=endpoint)
    return endpoint.rstrip("/")


class ApiBuilder:
    """Collect credentials and settings, then build a SimpleApi or E2eApi.

    >>> api = ApiBuilder("*3MAGWID", "hihghrg98h00ghrg").into_simple()
    >>> e2e = (
    ...     ApiBuilder("*3MAGWID", "hihghrg98h00ghrg")
    ...     .with_private_key_str("998730fbcac1c57dbb181139de41d12835b3fae6af6acdf6ce91670262e88453")
    ...     .into_e2e()
    ... )
    """

    def __init__(self, id: str, secret: str) -> None:
        self.id = id
        self.secret = secret
        self.private_key: PrivateKey | None = None
        self.endpoint = MSGAPI_URL
        self.timeout = connection.DEFAULT_TIMEOUT
        self.transport: httpx.BaseTransport | None = None

    def with_custom_endpoint(self, endpoint: str) -> ApiBuilder:
        """Use another API endpoint (http or https, trailing slash optional)."""
        self.endpoint = _check_endpoint(endpoint)
        logger.debug("Using custom endpoint: %s", self.endpoint)
        return self

    def with_timeout(self, timeout: float) -> ApiBuilder:
        self.timeout = timeout
        return self

    def with_transport(self, transport: httpx.BaseTransport) -> ApiBuilder:
        self.transport = transport
        return self

    def with_private_key(self, private_key: PrivateKey) -> ApiBuilder:
        self.private_key = private_key
        return self

    def with_private_key_bytes(self, private_key: bytes) -> ApiBuilder:
        return self.with_private_key(PrivateKey.from_bytes(private_key))

    def with_private_key_str(self, private_key: str) -> ApiBuilder:
        return self.with_private_key(PrivateKey.from_hex(private_key))

    def _lookups(self) -> LookupClient:
        conn = GatewayConnection(self.endpoint, self.timeout, self.transport)
        return LookupClient(Credentials(self.id, self.secret), conn)

    def into_simple(self) -> SimpleApi:
        return SimpleApi(self._lookups())

    def into_e2e(self) -> E2eApi:
        if self.private_key is None:
            raise MissingPrivateKeyError()
        return E2eApi(self._lookups(), self.private_key)
