"""asset resolution pipeline.

slides are resolved one at a time, in order. within a slide every asset is
fetched concurrently and bound before the slide's template is instantiated.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
from dataclasses import dataclass, field
from typing import Callable, Iterator, Optional, Protocol, runtime_checkable
from urllib.parse import quote, unquote_to_bytes

import httpx

from .errors import AssetFetchError, ErrorReporter, get_reporter
from .models import ElementKind, Rect


# --- configuration ---

DEFAULT_FETCH_TIMEOUT = 30.0  # seconds

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AssetRef:
    """remote resource a slide needs, bound under id once fetched."""

    id: str
    url: str


@dataclass
class ElementSpec:
    """element to create when a template is instantiated."""

    kind: ElementKind
    xywh: Rect
    props: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "xywh": self.xywh.serialize(), "props": dict(self.props)}

    @classmethod
    def from_dict(cls, d: dict) -> ElementSpec:
        xywh = d["xywh"]
        return cls(
            kind=ElementKind(d["kind"]),
            xywh=Rect.parse(xywh) if isinstance(xywh, str) else Rect(*xywh),
            props=dict(d.get("props", {})),
        )


@dataclass
class SlideTemplate:
    """content of one slide."""

    elements: list[ElementSpec] = field(default_factory=list)

    def asset_ids(self) -> list[str]:
        """asset ids referenced by image elements."""
        return [
            spec.props["source_id"]
            for spec in self.elements
            if spec.kind == ElementKind.IMAGE and "source_id" in spec.props
        ]


@dataclass
class Slide:
    template: SlideTemplate
    assets: list[AssetRef] = field(default_factory=list)


class AssetBinding:
    """asset id -> binary payload, filled as fetches complete."""

    def __init__(self) -> None:
        self._blobs: dict[str, bytes] = {}

    def bind(self, asset_id: str, data: bytes) -> None:
        self._blobs[asset_id] = data

    def get(self, asset_id: str) -> Optional[bytes]:
        return self._blobs.get(asset_id)

    def missing(self, asset_ids: list[str]) -> list[str]:
        return [a for a in asset_ids if a not in self._blobs]

    def items(self) -> Iterator[tuple[str, bytes]]:
        return iter(self._blobs.items())

    def __contains__(self, asset_id: object) -> bool:
        return asset_id in self._blobs

    def __len__(self) -> int:
        return len(self._blobs)


# --- fetching ---

@runtime_checkable
class AssetFetcher(Protocol):
    """anything that turns a url into bytes."""

    async def fetch(self, url: str) -> bytes:
        ...


class HttpAssetFetcher:
    """fetches assets over http with httpx. data urls are decoded inline.

    image_proxy: if set, remote urls are fetched as {proxy}?url=<url>.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        image_proxy: Optional[str] = None,
        timeout: float = DEFAULT_FETCH_TIMEOUT,
    ):
        self._client = client
        self.image_proxy = image_proxy
        self.timeout = timeout

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> HttpAssetFetcher:
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()

    def resolve_url(self, url: str) -> str:
        if self.image_proxy and url.startswith(("http://", "https://")):
            return f"{self.image_proxy}?url={quote(url, safe='')}"
        return url

    async def fetch(self, url: str) -> bytes:
        if url.startswith("data:"):
            return decode_data_url(url)

        try:
            response = await self.client.get(self.resolve_url(url))
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise AssetFetchError(url, f"http {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise AssetFetchError(url, str(e) or type(e).__name__) from e

        logger.debug("fetched %d bytes from %s", len(response.content), url[:80])
        return response.content


def decode_data_url(url: str) -> bytes:
    """decode a data: url into bytes."""
    header, sep, data = url.partition(",")
    if not sep:
        raise AssetFetchError(url, "malformed data url")
    if header.endswith(";base64"):
        try:
            return base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise AssetFetchError(url, "invalid base64 payload") from e
    return unquote_to_bytes(data)


# --- pipeline ---

@dataclass
class PipelineResult:
    inserted: int = 0
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class AssetPipeline:
    """resolves remote assets before the content that uses them is committed."""

    def __init__(self, fetcher: AssetFetcher, reporter: Optional[ErrorReporter] = None):
        self.fetcher = fetcher
        self.reporter = reporter or get_reporter()

    async def fetch_asset(self, ref: AssetRef, binding: AssetBinding) -> None:
        data = await self.fetcher.fetch(ref.url)
        binding.bind(ref.id, data)

    async def resolve_slide(self, slide: Slide, binding: AssetBinding) -> None:
        """fetch all of a slide's assets concurrently."""
        await asyncio.gather(*(self.fetch_asset(ref, binding) for ref in slide.assets))

    async def fetch_image(self, url: str) -> bytes:
        return await self.fetcher.fetch(url)

    async def run(
        self,
        slides: list[Slide],
        instantiate: Callable[[Slide, AssetBinding], None],
    ) -> PipelineResult:
        """resolve and insert slides in order. stops at the first failure.

        the failure is logged and reported. slides already inserted stay.
        """
        binding = AssetBinding()
        result = PipelineResult()
        for index, slide in enumerate(slides):
            try:
                await self.resolve_slide(slide, binding)
                instantiate(slide, binding)
            except Exception as e:
                logger.warning("slide %d/%d failed, stopping: %s", index + 1, len(slides), e)
                self.reporter.report(e, f"slide {index + 1}")
                result.error = e
                return result
            result.inserted += 1
            logger.info("inserted slide %d/%d", index + 1, len(slides))
        return result
