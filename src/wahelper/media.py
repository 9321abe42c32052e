"""Media helpers for outgoing messages: thumbnails, mimetype sniffing, link previews."""

from __future__ import annotations

import asyncio
import io
import logging
import mimetypes
from dataclasses import dataclass
from html.parser import HTMLParser
from urllib.parse import urljoin

import httpx
from PIL import Image

logger = logging.getLogger(__name__)

THUMBNAIL_MAX_SIZE = 100
FFMPEG_TIMEOUT = 30.0

# Leading-byte signatures, checked in order
_SIGNATURES: list[tuple[bytes, int, str]] = [
    (b"\xff\xd8\xff", 0, "image/jpeg"),
    (b"\x89PNG\r\n\x1a\n", 0, "image/png"),
    (b"GIF87a", 0, "image/gif"),
    (b"GIF89a", 0, "image/gif"),
    (b"%PDF-", 0, "application/pdf"),
    (b"OggS", 0, "audio/ogg"),
    (b"ID3", 0, "audio/mpeg"),
    (b"fLaC", 0, "audio/flac"),
    (b"\x1aE\xdf\xa3", 0, "video/webm"),
    (b"PK\x03\x04", 0, "application/zip"),
    (b"ftyp", 4, "video/mp4"),
]

# mimetypes.guess_extension is platform dependent for these
_PREFERRED_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "audio/ogg": ".ogg",
    "audio/mpeg": ".mp3",
    "video/mp4": ".mp4",
    "application/pdf": ".pdf",
    "text/plain": ".txt",
}


class MediaError(Exception):
    """Thumbnail or preview generation failed."""


def sniff_mimetype(data: bytes) -> str:
    """Guess a mimetype from content, defaulting to ``application/octet-stream``."""
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    if data[:4] == b"RIFF" and data[8:12] == b"WAVE":
        return "audio/wav"
    if len(data) > 1 and data[0] == 0xFF and data[1] & 0xE0 == 0xE0 and data[:3] != b"\xff\xd8\xff":
        return "audio/mpeg"
    for magic, offset, mimetype in _SIGNATURES:
        if data[offset:offset + len(magic)] == magic:
            return mimetype
    try:
        data[:512].decode("utf-8")
    except UnicodeDecodeError:
        return "application/octet-stream"
    return "text/plain; charset=utf-8"


def extension_for(mimetype: str) -> str:
    """File extension for a mimetype, ``.bin`` when unknown."""
    base = mimetype.split(";", 1)[0].strip().lower()
    if base in _PREFERRED_EXTENSIONS:
        return _PREFERRED_EXTENSIONS[base]
    return mimetypes.guess_extension(base) or ".bin"


def make_thumbnail(data: bytes, max_size: int = THUMBNAIL_MAX_SIZE) -> bytes:
    """Shrink an image so its longest side is at most ``max_size`` and encode as JPEG."""
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (OSError, ValueError) as e:
        raise MediaError(f"cannot decode image: {e}") from e
    if max(img.size) > max_size:
        img.thumbnail((max_size, max_size), Image.Resampling.LANCZOS)
    if img.mode not in ("RGB", "L"):
        img = img.convert("RGB")
    buf = io.BytesIO()
    img.save(buf, format="JPEG")
    return buf.getvalue()


def image_size(data: bytes) -> tuple[int, int]:
    try:
        with Image.open(io.BytesIO(data)) as img:
            return img.size
    except (OSError, ValueError) as e:
        raise MediaError(f"cannot decode image: {e}") from e


async def extract_first_frame(path: str, ffmpeg: str = "ffmpeg") -> bytes:
    """Grab the first video frame as MJPEG bytes via the ffmpeg executable."""
    try:
        proc = await asyncio.create_subprocess_exec(
            ffmpeg, "-y", "-i", path, "-vframes", "1", "-q:v", "2", "-f", "mjpeg", "pipe:1",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise MediaError(f"cannot run {ffmpeg}: {e}") from e
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=FFMPEG_TIMEOUT)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        raise MediaError(f"{ffmpeg} timed out on {path}") from None
    if proc.returncode != 0 or not stdout:
        raise MediaError(f"{ffmpeg} exited {proc.returncode}: {stderr.decode(errors='replace')[-300:]}")
    return stdout


async def video_thumbnail(path: str, ffmpeg: str = "ffmpeg") -> bytes:
    frame = await extract_first_frame(path, ffmpeg)
    return make_thumbnail(frame)


@dataclass
class LinkPreview:
    title: str
    description: str
    image_url: str


class _OpenGraphParser(HTMLParser):
    def __init__(self):
        super().__init__(convert_charrefs=True)
        self.properties: dict[str, str] = {}

    def handle_starttag(self, tag, attrs):
        if tag != "meta":
            return
        attr = dict(attrs)
        key = attr.get("property") or attr.get("name") or ""
        if key.startswith("og:") and key not in self.properties:
            self.properties[key] = attr.get("content") or ""


def parse_open_graph(html: str, base_url: str) -> LinkPreview | None:
    """Extract title/description/image from OpenGraph tags; None if any is missing."""
    parser = _OpenGraphParser()
    parser.feed(html)
    props = parser.properties
    title = props.get("og:title", "").strip()
    description = props.get("og:description", "").strip()
    image = props.get("og:image", "").strip()
    if not (title and description and image):
        return None
    return LinkPreview(title=title, description=description, image_url=urljoin(base_url, image))


async def fetch_link_preview(client: httpx.AsyncClient, url: str) -> LinkPreview | None:
    try:
        response = await client.get(url, follow_redirects=True)
        response.raise_for_status()
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        logger.error(f"Could not fetch Open Graph data: {e}")
        return None
    preview = parse_open_graph(response.text, str(response.url))
    if preview is None:
        logger.error(f"Could not fetch Open Graph data: incomplete tags at {url}")
    return preview


async def fetch_bytes(client: httpx.AsyncClient, url: str) -> bytes:
    try:
        response = await client.get(url, follow_redirects=True)
        response.raise_for_status()
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        raise MediaError(f"could not fetch {url}: {e}") from e
    return response.content
