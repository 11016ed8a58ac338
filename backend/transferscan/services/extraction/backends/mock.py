"""Scripted backend for tests and key-less deployments."""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Iterable
from typing import Union

from ..contracts import ExtractedBankData
from ..image_source import ImagePayload
from .base import ExtractionBackend

ScriptItem = Union[ExtractedBankData, BaseException]


class MockBackend(ExtractionBackend):
    """Replays a script of results or exceptions, one per call.

    The last item repeats once the script is exhausted; an empty script
    answers with the empty result.
    """

    name = "mock"

    def __init__(
        self,
        script: Iterable[ScriptItem] | ScriptItem | None = None,
        *,
        delay_seconds: float = 0.0,
        name: str | None = None,
    ) -> None:
        if script is None:
            items: list[ScriptItem] = []
        elif isinstance(script, (ExtractedBankData, BaseException)):
            items = [script]
        else:
            items = list(script)
        self._script: deque[ScriptItem] = deque(items)
        self._last: ScriptItem = items[-1] if items else ExtractedBankData.empty()
        self._delay_seconds = delay_seconds
        if name:
            self.name = name
        self.calls: list[tuple[ImagePayload, ExtractedBankData | None]] = []

    async def recognize(
        self,
        image: ImagePayload,
        context: ExtractedBankData | None = None,
    ) -> ExtractedBankData:
        self.calls.append((image, context))
        if self._delay_seconds:
            await asyncio.sleep(self._delay_seconds)

        item = self._script.popleft() if self._script else self._last
        if isinstance(item, BaseException):
            raise item
        return item

    @property
    def call_count(self) -> int:
        return len(self.calls)
