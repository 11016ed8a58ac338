"""Tests for the /api/v1/scan endpoints."""

import os
import unittest
from unittest.mock import patch

from fastapi.testclient import TestClient

from tests.conftest import make_data
from transferscan.core.config import Settings
from transferscan.core.dependencies import get_scan_services
from transferscan.main import app
from transferscan.services.extraction.backends import MockBackend
from transferscan.services.extraction.service import build_scan_services
from transferscan.services.extraction.stores import InMemoryKeyValueStore

IMAGE = b"\xff\xd8fake-jpeg-bytes"


class ScanApiTests(unittest.TestCase):
    def setUp(self):
        self.primary = MockBackend(make_data(bank_name="gtb", confidence=60), name="vision_ocr")
        self.secondary = MockBackend(make_data(bank_name="GT Bank", confidence=92), name="context_llm")
        self.services = build_scan_services(
            Settings(image_normalize_enabled=False, bank_registry_url=""),
            store=InMemoryKeyValueStore(),
            primary=self.primary,
            secondary=self.secondary,
        )
        app.dependency_overrides[get_scan_services] = lambda: self.services
        self.client = TestClient(app)

    def tearDown(self):
        self.client.close()
        app.dependency_overrides.clear()

    def test_extract_returns_result_and_metadata(self):
        resp = self.client.post(
            "/api/v1/scan/extract",
            files={"file": ("receipt.jpg", IMAGE, "image/jpeg")},
        )
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["result"]["bank_name"], "GTBank")
        self.assertEqual(body["result"]["account_number"], "0123456789")
        self.assertEqual(body["result"]["confidence"], 92)
        self.assertTrue(body["result"]["extracted_fields"]["account_number"])
        self.assertTrue(body["metadata"]["fallback_used"])
        self.assertEqual(len(body["metadata"]["attempts"]), 2)
        self.assertEqual(body["metadata"]["corrected_from"], "GT Bank")

    def test_extract_with_known_values_hits_cache(self):
        cached = make_data(account_holder_name="CACHED NAME")
        self.client.post("/api/v1/scan/confirm", json=cached.model_dump())

        resp = self.client.post(
            "/api/v1/scan/extract",
            files={"file": ("receipt.jpg", IMAGE, "image/jpeg")},
            data={"known_bank_name": "GTBank", "known_account_number": "0123456789"},
        )
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.json()["metadata"]["cache_hit"])
        self.assertEqual(resp.json()["result"]["account_holder_name"], "CACHED NAME")
        self.assertEqual(self.primary.call_count, 0)

    def test_extract_empty_file(self):
        resp = self.client.post(
            "/api/v1/scan/extract",
            files={"file": ("receipt.jpg", b"", "image/jpeg")},
        )
        self.assertEqual(resp.status_code, 400)

    def test_confirm_caches_and_learns(self):
        resp = self.client.post("/api/v1/scan/confirm", json={**make_data().model_dump(), "bank_name": "gtb"})
        self.assertEqual(resp.status_code, 204)

        cached = self.client.get(
            "/api/v1/scan/cache",
            params={"account_number": "0123456789", "bank_name": "GTBank"},
        )
        self.assertEqual(cached.status_code, 200)
        self.assertEqual(cached.json()["bank_name"], "GTBank")
        self.assertEqual(self.services.prompts.stats()["top_banks"], ["GTBank"])

    def test_cache_miss_is_404(self):
        resp = self.client.get(
            "/api/v1/scan/cache",
            params={"account_number": "9999999999", "bank_name": "GTBank"},
        )
        self.assertEqual(resp.status_code, 404)

    def test_correct_bank_name(self):
        resp = self.client.post("/api/v1/scan/correct-bank-name", json={"input": "send via opay to access bank"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(
            resp.json(),
            {"input": "send via opay to access bank", "corrected": "Opay Digital Services Limited"},
        )

    def test_correct_bank_name_validates_input(self):
        resp = self.client.post("/api/v1/scan/correct-bank-name", json={"input": ""})
        self.assertEqual(resp.status_code, 422)

    def test_list_banks(self):
        resp = self.client.get("/api/v1/scan/banks")
        self.assertEqual(resp.status_code, 200)
        codes = {b["code"]: b["name"] for b in resp.json()}
        self.assertEqual(codes["000013"], "GTBank")

    def test_stats(self):
        resp = self.client.get("/api/v1/scan/stats")
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["cache"]["total_entries"], 0)
        self.assertEqual(body["prompts"]["total_extractions"], 0)
        self.assertGreater(body["corrector"]["total_pattern_banks"], 0)

    @patch.dict(os.environ, {"ENABLE_SCAN_API": "false"}, clear=False)
    def test_disabled_returns_404(self):
        resp = self.client.get("/api/v1/scan/banks")
        self.assertEqual(resp.status_code, 404)

    def test_health(self):
        resp = self.client.get("/health")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"status": "ok"})
