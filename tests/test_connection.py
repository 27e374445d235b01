"""Tests for threema_gateway.connection: requests and status mapping with respx mocking."""

from urllib.parse import parse_qs

import httpx
import pytest
import respx

from threema_gateway.connection import (
    GatewayConnection,
    Recipient,
    blob_download,
    blob_upload,
    map_response_code,
    send_e2e,
    send_simple,
)
from threema_gateway.errors import (
    BadCredentialsError,
    BadHashLengthError,
    BadSenderOrRecipientError,
    IdNotFoundError,
    MessageTooLongError,
    NoCreditsError,
    ServerError,
    TransportError,
    UnexpectedStatusError,
    UnparsedResponseError,
)
from threema_gateway.schema import BlobId

HOST = "msgapi.test"
CONN = GatewayConnection(f"https://{HOST}")


def _form(request: httpx.Request) -> dict[str, str]:
    return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


@pytest.mark.parametrize(
    "status, error",
    [
        (401, BadCredentialsError),
        (402, NoCreditsError),
        (404, IdNotFoundError),
        (413, MessageTooLongError),
        (500, ServerError),
    ],
)
def test_map_response_code(status, error):
    with pytest.raises(error) as exc:
        map_response_code(status, "/x")
    assert exc.value.code == status
    assert exc.value.endpoint == "/x"


def test_map_response_code_ok():
    map_response_code(200, "/x")


def test_map_response_code_unclassified_keeps_code():
    with pytest.raises(UnexpectedStatusError) as exc:
        map_response_code(418, "/x")
    assert exc.value.code == 418


def test_map_response_code_400_meaning():
    with pytest.raises(BadHashLengthError):
        map_response_code(400, "/x", BadHashLengthError)
    with pytest.raises(UnexpectedStatusError) as exc:
        map_response_code(400, "/x")
    assert exc.value.code == 400


@respx.mock
def test_send_e2e_form_fields():
    route = respx.post(host=HOST, path="/send_e2e").mock(
        return_value=httpx.Response(200, text="0a1b2c3d4e5f6071")
    )
    result = send_e2e(CONN, "*GATEWAY", "ECHOECHO", "s3cret", b"\x01" * 24, b"\xab\xcd")
    assert result == "0a1b2c3d4e5f6071"
    request = route.calls.last.request
    assert request.headers["content-type"] == "application/x-www-form-urlencoded"
    assert _form(request) == {
        "from": "*GATEWAY",
        "to": "ECHOECHO",
        "secret": "s3cret",
        "nonce": "01" * 24,
        "box": "abcd",
        "delivery_receipts": "0",
    }


@respx.mock
def test_send_e2e_delivery_receipts_and_extra_params():
    route = respx.post(host=HOST, path="/send_e2e").mock(return_value=httpx.Response(200, text="id"))
    send_e2e(
        CONN, "*GATEWAY", "ECHOECHO", "s3cret", b"\x01" * 24, b"\x00",
        delivery_receipts=True, additional_params={"group": "1"},
    )
    form = _form(route.calls.last.request)
    assert form["delivery_receipts"] == "1"
    assert form["group"] == "1"


@respx.mock
def test_send_e2e_400_is_bad_recipient():
    respx.post(host=HOST, path="/send_e2e").mock(return_value=httpx.Response(400))
    with pytest.raises(BadSenderOrRecipientError):
        send_e2e(CONN, "*GATEWAY", "INVALID!", "s3cret", b"\x01" * 24, b"\x00")


@respx.mock
def test_send_e2e_402_no_credits():
    respx.post(host=HOST, path="/send_e2e").mock(return_value=httpx.Response(402))
    with pytest.raises(NoCreditsError):
        send_e2e(CONN, "*GATEWAY", "ECHOECHO", "s3cret", b"\x01" * 24, b"\x00")


@pytest.mark.parametrize(
    "recipient, field",
    [
        (Recipient.id("ECHOECHO"), "to"),
        (Recipient.phone("41791234567"), "phone"),
        (Recipient.email("user@example.com"), "email"),
    ],
)
@respx.mock
def test_send_simple(recipient, field):
    route = respx.post(host=HOST, path="/send_simple").mock(
        return_value=httpx.Response(200, text="msgid\n")
    )
    assert send_simple(CONN, "*GATEWAY", recipient, "s3cret", "hi there") == "msgid"
    form = _form(route.calls.last.request)
    assert form == {"from": "*GATEWAY", field: recipient.value, "secret": "s3cret", "text": "hi there"}


@respx.mock
def test_blob_upload():
    route = respx.post(host=HOST, path="/upload_blob").mock(
        return_value=httpx.Response(200, text="00112233445566778899aabbccddeeff")
    )
    blob_id = blob_upload(CONN, "*GATEWAY", "s3cret", b"\x00encrypted\xff", persist=True)
    assert blob_id == BlobId.from_hex("00112233445566778899aabbccddeeff")

    request = route.calls.last.request
    assert request.url.params["from"] == "*GATEWAY"
    assert request.url.params["secret"] == "s3cret"
    assert request.url.params["persist"] == "1"
    assert request.headers["content-type"].startswith("multipart/form-data")
    content = request.read()
    assert b'name="blob"' in content
    assert b"\x00encrypted\xff" in content


@respx.mock
def test_blob_upload_bad_blob_id():
    respx.post(host=HOST, path="/upload_blob").mock(return_value=httpx.Response(200, text="nope"))
    with pytest.raises(UnparsedResponseError):
        blob_upload(CONN, "*GATEWAY", "s3cret", b"data")


@respx.mock
def test_blob_download():
    blob_id = BlobId(b"\x11" * 16)
    route = respx.get(host=HOST, path=f"/blobs/{'11' * 16}").mock(
        return_value=httpx.Response(200, content=b"\xde\xad\xbe\xef")
    )
    assert blob_download(CONN, "*GATEWAY", "s3cret", blob_id) == b"\xde\xad\xbe\xef"
    assert route.calls.last.request.url.params["secret"] == "s3cret"


@respx.mock
def test_blob_download_404():
    respx.get(host=HOST, path=f"/blobs/{'11' * 16}").mock(return_value=httpx.Response(404))
    with pytest.raises(IdNotFoundError):
        blob_download(CONN, "*GATEWAY", "s3cret", BlobId(b"\x11" * 16))


@respx.mock
def test_transport_failure_is_distinct():
    respx.post(host=HOST, path="/send_e2e").mock(side_effect=httpx.ConnectError("refused"))
    with pytest.raises(TransportError) as exc:
        send_e2e(CONN, "*GATEWAY", "ECHOECHO", "s3cret", b"\x01" * 24, b"\x00")
    assert exc.value.code is None
    assert isinstance(exc.value.__cause__, httpx.ConnectError)


@respx.mock
def test_timeout_is_transport_failure():
    respx.get(host=HOST, path="/credits").mock(side_effect=httpx.ReadTimeout("slow"))
    with pytest.raises(TransportError):
        CONN.request("GET", "/credits")


@respx.mock
def test_non_utf8_body_is_transport_failure():
    respx.get(host=HOST, path="/credits").mock(return_value=httpx.Response(200, content=b"\xff\xfe"))
    with pytest.raises(TransportError):
        CONN.request_text("GET", "/credits")


def test_injected_transport():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, text="42")

    conn = GatewayConnection("https://custom.test", transport=httpx.MockTransport(handler))
    assert conn.request_text("GET", "/credits", params={"from": "*GATEWAY"}) == "42"
    assert seen[0].url.host == "custom.test"
    assert seen[0].url.path == "/credits"
    assert seen[0].url.params["from"] == "*GATEWAY"
