import os
import unittest
from unittest.mock import patch

from transferscan.core.config import Settings, get_settings


class SettingsTests(unittest.TestCase):
    @patch.dict(os.environ, {"SCAN_ALLOWED_BACKENDS": "Vision_OCR, mock ,"}, clear=False)
    def test_allowlist_from_csv(self):
        self.assertEqual(Settings().scan_allowed_backends, ["vision_ocr", "mock"])

    @patch.dict(os.environ, {"SCAN_ALLOWED_BACKENDS": '["context_llm", "MOCK"]'}, clear=False)
    def test_allowlist_from_json(self):
        self.assertEqual(Settings().scan_allowed_backends, ["context_llm", "mock"])

    @patch.dict(os.environ, {"SCAN_ALLOWED_BACKENDS": ""}, clear=False)
    def test_empty_allowlist(self):
        self.assertEqual(Settings().scan_allowed_backends, [])

    @patch.dict(os.environ, {"CLOUD_VISION_API_KEY": "vision-key", "OPENAI_API_KEY": "llm-key"}, clear=False)
    def test_legacy_key_aliases(self):
        settings = Settings()
        self.assertEqual(settings.google_vision_api_key, "vision-key")
        self.assertEqual(settings.llm_api_key, "llm-key")

    @patch.dict(os.environ, {"SCAN_PRIMARY_BACKEND": "  Context_LLM "}, clear=False)
    def test_backend_names_normalized(self):
        self.assertEqual(Settings().scan_primary_backend, "context_llm")

    @patch.dict(os.environ, {"CACHE_MIN_CONFIDENCE": "70", "CACHE_MAX_ENTRIES": "50"}, clear=False)
    def test_cache_limits_from_environment(self):
        settings = Settings()
        self.assertEqual(settings.cache_min_confidence, 70)
        self.assertEqual(settings.cache_max_entries, 50)

    def test_cache_max_entries_must_be_positive(self):
        with self.assertRaises(ValueError):
            Settings(cache_max_entries=0)

    def test_cache_ttl_seconds(self):
        self.assertEqual(Settings(cache_ttl_days=2).cache_ttl_seconds, 2 * 86400)

    def test_quality_threshold_bounds(self):
        with self.assertRaises(ValueError):
            Settings(scan_quality_threshold=101)

    def test_unknown_init_field_rejected(self):
        with self.assertRaises(ValueError):
            Settings(not_a_setting=True)

    @patch.dict(os.environ, {"ENABLE_SCAN_API": "false"}, clear=False)
    def test_get_settings_reads_environment(self):
        self.assertFalse(get_settings().enable_scan_api)
