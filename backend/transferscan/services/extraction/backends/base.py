"""Abstract base for all recognition backends."""

from __future__ import annotations

import abc

from ..contracts import ExtractedBankData
from ..image_source import ImagePayload


class ExtractionBackend(abc.ABC):
    """Contract that every recognition backend must implement.

    Backends do not retry and do not enforce their own deadline; the
    orchestrator wraps every call in a timeout.
    """

    name: str = "base"

    @abc.abstractmethod
    async def recognize(
        self,
        image: ImagePayload,
        context: ExtractedBankData | None = None,
    ) -> ExtractedBankData:
        """Extract bank details from *image*.

        *image* is raw bytes, or an http(s) URL / data URI when the bytes
        could not be acquired locally. *context* is a prior backend's result.
        """
