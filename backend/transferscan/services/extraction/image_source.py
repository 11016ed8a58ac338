"""Resolve an opaque image reference to raw bytes."""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
from pathlib import Path
from typing import Union

from .errors import ImageAcquisitionError

logger = logging.getLogger(__name__)

# bytes, a filesystem path, an http(s) URL or a data: URI
ImageRef = Union[bytes, bytearray, str, Path]

# What backends accept: raw bytes, or a URL / data URI passed through as-is.
ImagePayload = Union[bytes, str]


def is_remote_reference(image: object) -> bool:
    return isinstance(image, str) and image.lower().startswith(("http://", "https://", "data:"))


class ImageSource:
    def __init__(self, *, fetch_timeout_seconds: float = 10.0) -> None:
        self._fetch_timeout_seconds = fetch_timeout_seconds

    async def resolve(self, image_ref: ImageRef) -> bytes:
        if isinstance(image_ref, (bytes, bytearray)):
            content = bytes(image_ref)
        elif isinstance(image_ref, Path):
            content = await self._read_file(image_ref)
        elif isinstance(image_ref, str):
            lowered = image_ref.lower()
            if lowered.startswith("data:"):
                content = self._decode_data_uri(image_ref)
            elif lowered.startswith(("http://", "https://")):
                content = await self._fetch(image_ref)
            else:
                content = await self._read_file(Path(image_ref))
        else:
            msg = f"unsupported image reference type: {type(image_ref).__name__}"
            raise ImageAcquisitionError(msg)

        if not content:
            raise ImageAcquisitionError("image reference resolved to zero bytes")
        return content

    @staticmethod
    async def _read_file(path: Path) -> bytes:
        try:
            return await asyncio.to_thread(path.read_bytes)
        except OSError as exc:
            raise ImageAcquisitionError(f"cannot read image file: {exc.strerror or exc}") from exc

    @staticmethod
    def _decode_data_uri(uri: str) -> bytes:
        header, sep, data = uri.partition(",")
        if not sep or ";base64" not in header.lower():
            raise ImageAcquisitionError("only base64 data URIs are supported")
        try:
            return base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ImageAcquisitionError("data URI is not valid base64") from exc

    async def _fetch(self, url: str) -> bytes:
        import httpx

        try:
            async with httpx.AsyncClient(timeout=self._fetch_timeout_seconds, follow_redirects=True) as client:
                resp = await client.get(url)
                resp.raise_for_status()
                return resp.content
        except httpx.HTTPError as exc:
            raise ImageAcquisitionError(f"cannot fetch image: {exc.__class__.__name__}") from exc
