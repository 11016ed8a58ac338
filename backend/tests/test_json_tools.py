"""Tests for locating JSON objects inside model replies."""

import unittest

from transferscan.services.extraction.errors import BackendProtocolError
from transferscan.services.extraction.json_tools import find_json_object, require_json_object, strip_code_fences


class JsonToolsTests(unittest.TestCase):
    def test_plain_object(self):
        self.assertEqual(find_json_object('{"bankName": "GTBank"}'), {"bankName": "GTBank"})

    def test_object_inside_prose(self):
        text = 'Here you go: {"accountNumber": "0123456789", "nested": {"a": 1}} hope it helps'
        result = find_json_object(text)
        self.assertEqual(result["nested"], {"a": 1})

    def test_markdown_fence(self):
        text = '```json\n{"confidence": 90}\n```'
        self.assertEqual(strip_code_fences(text), '{"confidence": 90}')
        self.assertEqual(find_json_object(text), {"confidence": 90})

    def test_braces_inside_strings(self):
        text = 'x {"accountHolderName": "J {weird} \\"D\\"", "amount": "1"} y'
        self.assertEqual(find_json_object(text)["amount"], "1")

    def test_skips_broken_candidate(self):
        text = '{broken} then {"amount": "10"}'
        self.assertEqual(find_json_object(text), {"amount": "10"})

    def test_array_is_not_an_object(self):
        self.assertIsNone(find_json_object("[1, 2, 3]"))

    def test_empty_and_plain_text(self):
        self.assertIsNone(find_json_object(""))
        self.assertIsNone(find_json_object("no json here"))

    def test_require_raises_protocol_error(self):
        with self.assertRaises(BackendProtocolError) as ctx:
            require_json_object("sorry")
        self.assertEqual(ctx.exception.raw, "sorry")
