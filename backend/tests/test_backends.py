"""Tests for the recognition backends, OCR text parser and backend factory."""

import asyncio
import base64
import json
import unittest
from unittest.mock import AsyncMock, patch

import httpx

from tests.conftest import make_corrector, make_data
from transferscan.core.config import Settings
from transferscan.services.extraction.backends import MockBackend, get_backend
from transferscan.services.extraction.backends.context_llm import (
    ContextAwareLLMBackend,
    LLMExtractionPayload,
    merge_with_context,
)
from transferscan.services.extraction.backends.vision_ocr import VisionOCRBackend, parse_ocr_text
from transferscan.services.extraction.errors import BackendProtocolError
from transferscan.services.extraction.patterns import BankPatternSet
from transferscan.services.extraction.prompts import PromptAdapter


def _response(payload: dict, url: str = "https://example.test") -> httpx.Response:
    return httpx.Response(200, json=payload, request=httpx.Request("POST", url))


def _vision_payload(text: str, words: list[tuple[str, float]] | None = None) -> dict:
    annotations = [{"description": text}]
    annotations += [{"description": w, "confidence": c} for w, c in (words or [])]
    return {"responses": [{"textAnnotations": annotations, "fullTextAnnotation": {"text": text}}]}


def _chat_payload(content: str) -> dict:
    return {"model": "gpt-4o", "choices": [{"message": {"role": "assistant", "content": content}}]}


class OcrTextParserTests(unittest.TestCase):
    def setUp(self):
        self.corrector = make_corrector()

    def test_single_line_receipt(self):
        data = parse_ocr_text("GTB 0123456789 JOHN DOE", self.corrector)
        self.assertEqual(data.bank_name, "GTB")
        self.assertEqual(data.account_number, "0123456789")
        self.assertEqual(data.account_holder_name, "JOHN DOE")
        self.assertEqual(data.amount, "")
        self.assertEqual(data.confidence, 100)

    def test_multi_line_receipt(self):
        text = "\n".join(
            [
                "Transfer Successful",
                "Amount: ₦25,000.00",
                "Beneficiary: Chinedu Okafor",
                "Bank: Access Bank",
                "Account Number: 0690000031",
            ]
        )
        data = parse_ocr_text(text, self.corrector)
        self.assertEqual(data.bank_name, "Access Bank")
        self.assertEqual(data.account_number, "0690000031")
        self.assertEqual(data.account_holder_name, "Chinedu Okafor")
        self.assertEqual(data.amount, "25000.00")
        self.assertEqual(data.confidence, 100)

    def test_account_with_context_keyword_preferred(self):
        text = "Ref 1234567890\nAcct number 0123456789"
        data = parse_ocr_text(text, self.corrector)
        self.assertEqual(data.account_number, "0123456789")

    def test_amount_out_of_range_ignored(self):
        data = parse_ocr_text("NGN 50,000,000", self.corrector)
        self.assertEqual(data.amount, "")

    def test_high_confidence_fragment_preferred_for_name(self):
        data = parse_ocr_text(
            "Opay 8012345678\nSome Other Person",
            self.corrector,
            confident_texts=["Amaka Nwosu"],
        )
        self.assertEqual(data.account_holder_name, "Amaka Nwosu")

    def test_empty_text(self):
        self.assertTrue(parse_ocr_text("   ", self.corrector).is_empty)


class VisionOCRBackendTests(unittest.TestCase):
    def setUp(self):
        self.backend = VisionOCRBackend("vision-key", make_corrector(), url="https://vision.test/v1/images:annotate")

    def test_request_body_for_bytes(self):
        body = self.backend.build_request(b"\xff\xd8jpeg")
        request = body["requests"][0]
        self.assertEqual(request["image"]["content"], base64.b64encode(b"\xff\xd8jpeg").decode())
        self.assertEqual([f["type"] for f in request["features"]], ["DOCUMENT_TEXT_DETECTION", "TEXT_DETECTION"])
        self.assertEqual(request["imageContext"]["languageHints"], ["en", "en-NG"])

    def test_request_body_for_url(self):
        body = self.backend.build_request("https://cdn.test/receipt.jpg")
        self.assertEqual(body["requests"][0]["image"], {"source": {"imageUri": "https://cdn.test/receipt.jpg"}})

    def test_recognize_posts_with_key(self):
        mock_post = AsyncMock(return_value=_response(_vision_payload("GTB 0123456789 JOHN DOE")))
        with patch("httpx.AsyncClient.post", mock_post):
            data = asyncio.run(self.backend.recognize(b"img"))

        self.assertEqual(data.account_number, "0123456789")
        _, kwargs = mock_post.call_args
        self.assertEqual(kwargs["params"], {"key": "vision-key"})

    def test_no_text_is_protocol_error(self):
        with self.assertRaises(BackendProtocolError):
            self.backend.parse_response({"responses": [{}]})

    def test_api_error_is_protocol_error(self):
        with self.assertRaises(BackendProtocolError):
            self.backend.parse_response({"responses": [{"error": {"code": 3, "message": "Bad image data."}}]})

    def test_malformed_response_is_protocol_error(self):
        with self.assertRaises(BackendProtocolError):
            self.backend.parse_response({"responses": "nope"})

    def test_http_error_propagates(self):
        failing = httpx.Response(500, request=httpx.Request("POST", "https://vision.test"))
        with patch("httpx.AsyncClient.post", AsyncMock(return_value=failing)):
            with self.assertRaises(httpx.HTTPStatusError):
                asyncio.run(self.backend.recognize(b"img"))


class ContextAwareLLMBackendTests(unittest.TestCase):
    def setUp(self):
        patterns = BankPatternSet()
        corrector = make_corrector()
        self.backend = ContextAwareLLMBackend(
            "llm-key",
            PromptAdapter(patterns, corrector),
            base_url="https://llm.test/v1/",
        )

    def test_request_carries_image_and_prior(self):
        prior = make_data(account_holder_name="")
        body = self.backend.build_request(b"\x89PNG....", prior)
        content = body["messages"][0]["content"]
        self.assertEqual(content[0]["type"], "text")
        self.assertIn("Account Number: 0123456789", content[0]["text"])
        self.assertTrue(content[1]["image_url"]["url"].startswith("data:image/png;base64,"))
        self.assertEqual(body["response_format"], {"type": "json_object"})
        self.assertEqual(body["temperature"], 0.1)

    def test_fenced_json_parsed(self):
        content = '```json\n{"bankName": "Kuda", "accountNumber": "2012345678", "accountHolderName": "Ada Obi", "amount": "1500", "confidence": 92}\n```'
        data = self.backend.parse_response(_chat_payload(content))
        self.assertEqual(data.bank_name, "Kuda")
        self.assertEqual(data.account_number, "2012345678")
        self.assertEqual(data.confidence, 92)

    def test_missing_fields_fall_back_to_prior(self):
        prior = make_data(amount="700", confidence=60)
        content = json.dumps({"accountHolderName": "JOHN A. DOE", "confidence": 88})
        data = self.backend.parse_response(_chat_payload(content), prior)
        self.assertEqual(data.bank_name, "GTBank")
        self.assertEqual(data.account_number, "0123456789")
        self.assertEqual(data.account_holder_name, "JOHN A. DOE")
        self.assertEqual(data.amount, "700")
        self.assertEqual(data.confidence, 88)

    def test_overflowing_confidence_clamped(self):
        content = '{"bankName": "GTBank", "accountNumber": "0123456789", "confidence": 1e999}'
        data = self.backend.parse_response(_chat_payload(content))
        self.assertEqual(data.account_number, "0123456789")
        self.assertEqual(data.confidence, 100)

    def test_invalid_account_falls_back_to_prior(self):
        payload = LLMExtractionPayload.model_validate({"accountNumber": "01234", "confidence": 80})
        data = merge_with_context(payload, make_data())
        self.assertEqual(data.account_number, "0123456789")

    def test_numeric_values_accepted(self):
        payload = LLMExtractionPayload.model_validate({"account_number": 123456789, "amount": 2500.5})
        self.assertEqual(payload.account_number, "123456789")
        self.assertEqual(merge_with_context(payload, None).amount, "2500.5")

    def test_prose_without_json_is_protocol_error(self):
        with self.assertRaises(BackendProtocolError):
            self.backend.parse_response(_chat_payload("I cannot read this image."))

    def test_empty_choices_is_protocol_error(self):
        with self.assertRaises(BackendProtocolError):
            self.backend.parse_response({"choices": []})

    def test_recognize_posts_to_chat_completions(self):
        mock_post = AsyncMock(return_value=_response(_chat_payload('{"bankName": "Opay", "confidence": 70}')))
        with patch("httpx.AsyncClient.post", mock_post):
            data = asyncio.run(self.backend.recognize("https://cdn.test/r.jpg"))

        self.assertEqual(data.bank_name, "Opay")
        args, kwargs = mock_post.call_args
        self.assertEqual(args[0], "https://llm.test/v1/chat/completions")
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer llm-key")


class MockBackendTests(unittest.TestCase):
    def test_script_replays_then_repeats_last(self):
        first, second = make_data(confidence=10), make_data(confidence=20)
        backend = MockBackend([first, second])

        async def run():
            return [await backend.recognize(b"x") for _ in range(3)]

        self.assertEqual(asyncio.run(run()), [first, second, second])
        self.assertEqual(backend.call_count, 3)

    def test_scripted_exception_raised(self):
        backend = MockBackend(RuntimeError("boom"))
        with self.assertRaises(RuntimeError):
            asyncio.run(backend.recognize(b"x"))

    def test_default_is_empty(self):
        self.assertTrue(asyncio.run(MockBackend().recognize(b"x")).is_empty)


class BackendFactoryTests(unittest.TestCase):
    def setUp(self):
        self.corrector = make_corrector()
        self.prompts = PromptAdapter(BankPatternSet(), self.corrector)

    def _get(self, name, **settings_kwargs):
        settings = Settings(**settings_kwargs)
        return get_backend(name, settings, corrector=self.corrector, prompts=self.prompts)

    def test_not_in_allowlist_falls_back_to_mock(self):
        backend = self._get("vision_ocr", scan_allowed_backends_raw="mock", google_vision_api_key="k")
        self.assertIsInstance(backend, MockBackend)

    def test_missing_key_falls_back_to_mock(self):
        backend = self._get("context_llm", llm_api_key="")
        self.assertIsInstance(backend, MockBackend)

    def test_unknown_name_falls_back_to_mock(self):
        backend = self._get("tesseract", scan_allowed_backends_raw="tesseract,mock")
        self.assertIsInstance(backend, MockBackend)

    def test_configured_backends(self):
        vision = self._get("VISION_OCR", google_vision_api_key="k")
        llm = self._get("context_llm", llm_api_key="k")
        self.assertIsInstance(vision, VisionOCRBackend)
        self.assertIsInstance(llm, ContextAwareLLMBackend)
