"""Context-aware vision-language backend (OpenAI-compatible chat completions)."""

from __future__ import annotations

import base64
import logging
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..contracts import ExtractedBankData, sanitize_account_number
from ..errors import BackendProtocolError, FieldValidationError
from ..image_source import ImagePayload
from ..json_tools import require_json_object
from ..prompts import PromptAdapter
from .base import ExtractionBackend

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4o"

Scalar = Union[str, int, float, None]


class LLMExtractionPayload(BaseModel):
    """Loose schema for the model's JSON answer; camelCase and snake_case both accepted."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    bank_name: Scalar = Field(default=None, alias="bankName")
    account_number: Scalar = Field(default=None, alias="accountNumber")
    account_holder_name: Scalar = Field(default=None, alias="accountHolderName")
    amount: Scalar = None
    confidence: Scalar = None

    @field_validator("bank_name", "account_number", "account_holder_name", "amount", mode="before")
    @classmethod
    def _stringify(cls, v: Any) -> Any:
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        if isinstance(v, (list, dict, bool)):
            return None
        return v


class ChatMessage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    content: str | None = None


class ChatChoice(BaseModel):
    model_config = ConfigDict(extra="ignore")

    message: ChatMessage


class ChatCompletionResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    model: str = ""
    choices: list[ChatChoice] = Field(default_factory=list)


def _image_url(image: ImagePayload) -> str:
    if isinstance(image, str):
        return image
    mime = "image/png" if image.startswith(b"\x89PNG") else "image/jpeg"
    return f"data:{mime};base64,{base64.b64encode(image).decode('ascii')}"


def _text(value: Scalar) -> str:
    return str(value).strip() if value is not None else ""


def merge_with_context(payload: LLMExtractionPayload, prior: ExtractedBankData | None) -> ExtractedBankData:
    """Build the result, filling anything the model left out from *prior*."""
    prior = prior or ExtractedBankData.empty()

    try:
        account = sanitize_account_number(payload.account_number)
    except FieldValidationError as exc:
        logger.debug("Model returned an invalid account number: %s", exc)
        account = ""

    return ExtractedBankData(
        bank_name=_text(payload.bank_name) or prior.bank_name,
        account_number=account or prior.account_number,
        account_holder_name=_text(payload.account_holder_name) or prior.account_holder_name,
        amount=_text(payload.amount) or prior.amount,
        confidence=payload.confidence,
    )


class ContextAwareLLMBackend(ExtractionBackend):
    name = "context_llm"

    def __init__(
        self,
        api_key: str,
        prompts: PromptAdapter,
        *,
        base_url: str = DEFAULT_BASE_URL,
        model: str = DEFAULT_MODEL,
        temperature: float = 0.1,
        max_tokens: int = 1024,
        timeout_seconds: float = 20.0,
    ) -> None:
        self._api_key = api_key
        self._prompts = prompts
        self._base_url = base_url.rstrip("/")
        self._model = model
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._timeout_seconds = timeout_seconds

    def build_request(self, image: ImagePayload, context: ExtractedBankData | None) -> dict[str, Any]:
        hint = context.bank_name if context is not None else None
        prompt = self._prompts.render_llm_prompt(self._prompts.build_context(hint), context)
        return {
            "model": self._model,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": prompt},
                        {"type": "image_url", "image_url": {"url": _image_url(image)}},
                    ],
                }
            ],
            "max_tokens": self._max_tokens,
            "temperature": self._temperature,
            "response_format": {"type": "json_object"},
        }

    async def recognize(
        self,
        image: ImagePayload,
        context: ExtractedBankData | None = None,
    ) -> ExtractedBankData:
        import httpx

        async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
            resp = await client.post(
                f"{self._base_url}/chat/completions",
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "Content-Type": "application/json",
                },
                json=self.build_request(image, context),
            )
            resp.raise_for_status()
            data = resp.json()

        return self.parse_response(data, context)

    def parse_response(self, data: object, context: ExtractedBankData | None = None) -> ExtractedBankData:
        try:
            completion = ChatCompletionResponse.model_validate(data)
        except ValidationError as exc:
            raise BackendProtocolError(f"unexpected chat completion shape: {exc.error_count()} errors") from exc
        if not completion.choices or not completion.choices[0].message.content:
            raise BackendProtocolError("chat completion has no content")

        raw = completion.choices[0].message.content
        try:
            payload = LLMExtractionPayload.model_validate(require_json_object(raw))
        except ValidationError as exc:
            raise BackendProtocolError("model JSON does not match the extraction schema", raw=raw) from exc

        return merge_with_context(payload, context)
