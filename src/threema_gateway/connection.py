"""HTTP client for the Threema Gateway API: request plumbing, sending and blobs."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from threema_gateway.errors import (
    ApiError,
    BadCredentialsError,
    BadSenderOrRecipientError,
    IdNotFoundError,
    InvalidBlobIdError,
    MessageTooLongError,
    NoCreditsError,
    ServerError,
    TransportError,
    UnexpectedStatusError,
    UnparsedResponseError,
)
from threema_gateway.schema import BlobId

logger = logging.getLogger(__name__)

MSGAPI_URL = "https://msgapi.threema.ch"
DEFAULT_TIMEOUT = 30.0


def map_response_code(
    status: int, endpoint: str, bad_request: type[ApiError] | None = None
) -> None:
    """Raise the error matching a non-200 status code.

    The meaning of 400 depends on the request; ``bad_request`` supplies it.
    """
    if status == 200:
        return
    if status == 400 and bad_request is not None:
        raise bad_request(endpoint=endpoint)
    if status == 401:
        raise BadCredentialsError(endpoint=endpoint)
    if status == 402:
        raise NoCreditsError(endpoint=endpoint)
    if status == 404:
        raise IdNotFoundError(endpoint=endpoint)
    if status == 413:
        raise MessageTooLongError(endpoint=endpoint)
    if status == 500:
        raise ServerError(endpoint=endpoint)
    raise UnexpectedStatusError(status, endpoint=endpoint)


@dataclass(frozen=True)
class GatewayConnection:
    """Where and how to reach the gateway. Holds no credentials."""

    endpoint: str = MSGAPI_URL
    timeout: float = DEFAULT_TIMEOUT
    transport: httpx.BaseTransport | None = None

    def _client(self) -> httpx.Client:
        return httpx.Client(base_url=self.endpoint, timeout=self.timeout, transport=self.transport)

    def request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        data: dict[str, str] | None = None,
        files: dict | None = None,
        bad_request: type[ApiError] | None = None,
    ) -> bytes:
        """Issue one request and return the body of a 200 response."""
        logger.debug("%s %s%s", method, self.endpoint, path)
        try:
            with self._client() as c:
                r = c.request(method, path, params=params, data=data, files=files)
        except httpx.HTTPError as e:
            raise TransportError(f"Request failed: {e}", endpoint=path) from e
        logger.debug("%s %s -> %d", method, path, r.status_code)
        map_response_code(r.status_code, path, bad_request)
        return r.content

    def request_text(self, method: str, path: str, **kwargs) -> str:
        body = self.request(method, path, **kwargs)
        try:
            return body.decode("utf-8").strip()
        except UnicodeDecodeError as e:
            raise TransportError("Response body is not valid UTF-8", endpoint=path) from e


@dataclass(frozen=True)
class Recipient:
    """Target of a simple-mode message: a Threema ID, phone number or e-mail."""

    param: str
    value: str

    @classmethod
    def id(cls, threema_id: str) -> Recipient:
        return cls("to", threema_id)

    @classmethod
    def phone(cls, number: str) -> Recipient:
        return cls("phone", number)

    @classmethod
    def email(cls, address: str) -> Recipient:
        return cls("email", address)


def send_simple(conn: GatewayConnection, from_id: str, to: Recipient, secret: str, text: str) -> str:
    """Send a message in basic mode. Returns the message id."""
    data = {"from": from_id, to.param: to.value, "secret": secret, "text": text}
    return conn.request_text("POST", "/send_simple", data=data, bad_request=BadSenderOrRecipientError)


def send_e2e(
    conn: GatewayConnection,
    from_id: str,
    to: str,
    secret: str,
    nonce: bytes,
    ciphertext: bytes,
    delivery_receipts: bool = False,
    additional_params: dict[str, str] | None = None,
) -> str:
    """Send an already encrypted E2E message. Returns the message id."""
    data = {
        "from": from_id,
        "to": to,
        "secret": secret,
        "nonce": nonce.hex(),
        "box": ciphertext.hex(),
        "delivery_receipts": "1" if delivery_receipts else "0",
    }
    if additional_params:
        data.update(additional_params)
    return conn.request_text("POST", "/send_e2e", data=data, bad_request=BadSenderOrRecipientError)


def blob_upload(
    conn: GatewayConnection,
    from_id: str,
    secret: str,
    data: bytes,
    persist: bool = False,
    additional_params: dict[str, str] | None = None,
) -> BlobId:
    """Upload encrypted data to the blob server. Returns the new blob id."""
    params = {"from": from_id, "secret": secret, "persist": "1" if persist else "0"}
    if additional_params:
        params.update(additional_params)
    files = {"blob": ("blob", data, "application/octet-stream")}
    body = conn.request_text("POST", "/upload_blob", params=params, files=files)
    try:
        return BlobId.from_hex(body)
    except InvalidBlobIdError as e:
        raise UnparsedResponseError(f"Invalid blob id in response: {body!r}", endpoint="/upload_blob") from e


def blob_download(conn: GatewayConnection, from_id: str, secret: str, blob_id: BlobId) -> bytes:
    """Download a blob. The data is returned exactly as uploaded (still encrypted)."""
    params = {"from": from_id, "secret": secret}
    return conn.request("GET", f"/blobs/{blob_id.to_hex()}", params=params)
