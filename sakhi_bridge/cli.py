"""Click CLI for inspecting what the bridge would send."""

from __future__ import annotations

import asyncio
import json
import mimetypes
from pathlib import Path

import click

from sakhi_bridge.models import InfographicAttachment
from sakhi_bridge.reply.builder import compose_reply_messages
from sakhi_bridge.whatsapp.images import MAX_IMAGE_BYTES, normalise_image
from sakhi_bridge.whatsapp.payloads import build_outbound_payloads


@click.group()
def cli() -> None:
    """Sakhi WhatsApp bridge tools."""


@cli.command()
@click.argument("reply")
@click.option("--link", default=None, help="Preferred link, as the support API's youtube_link.")
@click.option("--infographic", default=None, help="Infographic URL, sent by link.")
@click.option("--to", default="15550000000", show_default=True, help="Recipient phone number.")
def preview(reply: str, link: str | None, infographic: str | None, to: str) -> None:
    """Print the WhatsApp payloads a support API REPLY turns into."""
    attachment = InfographicAttachment(link=infographic) if infographic else None
    payloads = [
        payload
        for message in compose_reply_messages(reply, link, attachment)
        for payload in build_outbound_payloads(to, message)
    ]
    click.echo(json.dumps(payloads, indent=2, ensure_ascii=False))


@cli.command("shrink-image")
@click.argument("src", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("dest", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--max-bytes", default=MAX_IMAGE_BYTES, show_default=True, type=click.IntRange(min=1))
def shrink_image_command(src: Path, dest: Path, max_bytes: int) -> None:
    """Shrink the image at SRC to fit WhatsApp's limit and write it to DEST."""
    data = src.read_bytes()
    content_type = mimetypes.guess_type(src.name)[0] or "application/octet-stream"
    image = asyncio.run(normalise_image(data, content_type, max_bytes))
    dest.write_bytes(image.data)
    click.echo(f"{src} ({len(data)} bytes) -> {dest} ({len(image.data)} bytes, {image.content_type})")
    if len(image.data) > max_bytes:
        click.echo(f"Warning: result still exceeds {max_bytes} bytes", err=True)


if __name__ == "__main__":
    cli()
