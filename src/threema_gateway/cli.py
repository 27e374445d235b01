"""threema-gateway CLI: typer entry point."""

from __future__ import annotations

import json
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

import typer

from threema_gateway import config, crypto
from threema_gateway.api import E2eApi, SimpleApi
from threema_gateway.connection import Recipient
from threema_gateway.crypto import EncryptedMessage, RecipientKey
from threema_gateway.errors import GatewayError
from threema_gateway.lookup import LookupCriterion
from threema_gateway.schema import BlobId, DecodedMessage

app = typer.Typer(name="threema-gateway", no_args_is_help=True)

PRETTY = typer.Option(False, "--pretty", help="Human-readable output")


def _out(data: object, pretty: bool) -> None:
    if pretty:
        typer.echo(json.dumps(data, indent=2))
    else:
        typer.echo(json.dumps(data))


@contextmanager
def _gateway_errors() -> Iterator[None]:
    try:
        yield
    except GatewayError as e:
        typer.echo(json.dumps({"error": str(e), "kind": type(e).__name__}), err=True)
        raise typer.Exit(1) from e


def _simple() -> SimpleApi:
    return config.builder_from_settings(config.load_settings()).into_simple()


def _e2e() -> E2eApi:
    return config.builder_from_settings(config.load_settings()).into_e2e()


def _decoded_to_json(msg: DecodedMessage) -> dict:
    content = msg.content
    if isinstance(content, bytes):
        content = content.hex()
    elif not isinstance(content, str):
        content = repr(content)
    return {"type": int(msg.message_type), "content": content}


@app.command("generate-keypair")
def generate_keypair(
    out: Path = typer.Option(None, help="Write the private key to this file (mode 0600)"),
    pretty: bool = PRETTY,
) -> None:
    """Generate a new gateway key pair."""
    priv, pub = crypto.generate_keypair()
    result = {"public_key": pub.to_hex()}
    if out:
        config.save_private_key(out, priv)
        result["private_key_file"] = str(out)
    else:
        result["private_key"] = priv.to_hex()
    _out(result, pretty)


@app.command("lookup-pubkey")
def lookup_pubkey(threema_id: str, pretty: bool = PRETTY) -> None:
    """Fetch the public key of a Threema ID."""
    with _gateway_errors():
        key = _simple().lookup_pubkey(threema_id)
    _out({"id": threema_id, "public_key": key.to_hex()}, pretty)


@app.command("lookup-id")
def lookup_id(
    value: str,
    by: str = typer.Option("phone", help="phone, phone_hash, email or email_hash"),
    pretty: bool = PRETTY,
) -> None:
    """Look up a Threema ID by phone number or e-mail."""
    factories = {
        "phone": LookupCriterion.phone,
        "phone_hash": LookupCriterion.phone_hash,
        "email": LookupCriterion.email,
        "email_hash": LookupCriterion.email_hash,
    }
    if by not in factories:
        typer.echo(json.dumps({"error": f"unknown criterion: {by}"}), err=True)
        raise typer.Exit(1)
    with _gateway_errors():
        found = _simple().lookup_id(factories[by](value))
    _out({"id": found}, pretty)


@app.command()
def capabilities(threema_id: str, pretty: bool = PRETTY) -> None:
    """Show which message types a Threema ID can receive."""
    with _gateway_errors():
        caps = _simple().lookup_capabilities(threema_id)
    _out({"id": threema_id, "capabilities": sorted(c.value for c in caps.flags)}, pretty)


@app.command()
def credits(pretty: bool = PRETTY) -> None:
    """Show remaining credits."""
    with _gateway_errors():
        remaining = _simple().lookup_credits()
    _out({"credits": remaining}, pretty)


@app.command("send-simple")
def send_simple(
    to: str,
    text: str,
    by: str = typer.Option("id", help="id, phone or email"),
    pretty: bool = PRETTY,
) -> None:
    """Send a message without end-to-end encryption."""
    factories = {"id": Recipient.id, "phone": Recipient.phone, "email": Recipient.email}
    if by not in factories:
        typer.echo(json.dumps({"error": f"unknown recipient type: {by}"}), err=True)
        raise typer.Exit(1)
    with _gateway_errors():
        message_id = _simple().send(factories[by](to), text)
    _out({"message_id": message_id}, pretty)


@app.command("send-e2e")
def send_e2e(
    to: str,
    text: str,
    public_key: str = typer.Option(None, help="Recipient public key (hex); looked up if omitted"),
    delivery_receipts: bool = typer.Option(False, "--delivery-receipts"),
    pretty: bool = PRETTY,
) -> None:
    """Encrypt and send a text message."""
    with _gateway_errors():
        api = _e2e()
        key = RecipientKey.from_hex(public_key) if public_key else api.lookup_pubkey(to)
        message_id = api.send(to, api.encrypt_text_msg(text, key), delivery_receipts)
    _out({"message_id": message_id}, pretty)


@app.command("upload-blob")
def upload_blob(
    path: Path,
    persist: bool = typer.Option(False, "--persist"),
    pretty: bool = PRETTY,
) -> None:
    """Upload a file's bytes as-is to the blob server."""
    with _gateway_errors():
        blob_id = _e2e().blob_upload_raw(path.read_bytes(), persist)
    _out({"blob_id": blob_id.to_hex()}, pretty)


@app.command("download-blob")
def download_blob(blob_id: str, out: Path, pretty: bool = PRETTY) -> None:
    """Download a blob to a file."""
    with _gateway_errors():
        data = _e2e().blob_download(BlobId.from_hex(blob_id))
    out.write_bytes(data)
    _out({"blob_id": blob_id, "bytes": len(data)}, pretty)


@app.command()
def decrypt(
    sender_key: str,
    nonce: str,
    box: str,
    pretty: bool = PRETTY,
) -> None:
    """Decrypt a message box with our private key."""
    with _gateway_errors():
        api = _e2e()
        try:
            message = EncryptedMessage(bytes.fromhex(nonce), bytes.fromhex(box))
        except ValueError as e:
            typer.echo(json.dumps({"error": f"invalid hex: {e}"}), err=True)
            raise typer.Exit(1) from e
        decoded = crypto.decrypt(message, RecipientKey.from_hex(sender_key), api.private_key)
    _out(_decoded_to_json(decoded), pretty)

