"""Builders and fakes shared across test modules."""

from io import BytesIO

from PIL import Image

from core.gemini import GeminiImageResult, InlineImage
from imaging.fetcher import FetchBatch, SourceImage
from imaging.helpers import sha256_hex
from utils.exceptions import FetchError


def make_png(width=64, height=48, color=(200, 30, 30), mode="RGB"):
    img = Image.new(mode, (width, height), color)
    buf = BytesIO()
    img.save(buf, "PNG")
    return buf.getvalue()


def make_source(url, data=None, mime="image/png"):
    data = data or make_png()
    return SourceImage(url=url, data=data, mime_type=mime, hash=sha256_hex(data))


def ok_result(tag="x", notes=None):
    """Gemini result whose bytes differ per *tag*."""
    shade = sum(tag.encode()) % 255
    return GeminiImageResult(
        image=InlineImage(make_png(color=(shade, 10, 10)), "image/png"),
        text_notes=list(notes or []),
    )


class FakeGeminiClient:
    """
    Scripted stand-in for ``GeminiImageClient``.

    ``script[model]`` is a list of outcomes consumed in order: a
    ``GeminiImageResult`` is returned, an exception is raised.
    """

    def __init__(self, script):
        self.script = {k: list(v) for k, v in script.items()}
        self.calls = []

    def generate(self, model, parts):
        self.calls.append((model, parts))
        queue = self.script.get(model)
        if not queue:
            raise AssertionError(f"unexpected call to {model}")
        outcome = queue.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class StubFetcher:
    """Serves canned ``SourceImage``s by URL; unknown URLs fail with 404 semantics."""

    def __init__(self, images=None):
        self.images = dict(images or {})
        self.fetched = []

    def fetch(self, url):
        self.fetched.append(url)
        if url not in self.images:
            raise FetchError("Failed to fetch source image (404)", status=400)
        return self.images[url]

    def fetch_many(self, urls, max_total_bytes):
        batch = FetchBatch()
        for url in urls:
            batch.images.append(self.fetch(url))
        return batch
