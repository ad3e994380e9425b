"""
Unit tests for request payload sanitization
"""

import unittest
import sys
import os

# Add backend to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'backend'))

from middleware.security import MAX_PAYLOAD_DEPTH, contains_injection, sanitize_payload, sanitize_string
from utils.errors import SecurityViolationError


class TestSanitizeString(unittest.TestCase):

    def test_strips_control_characters_and_whitespace(self):
        self.assertEqual(sanitize_string("  hello\x00\x07 world \x7f "), "hello world")

    def test_keeps_newlines_inside(self):
        self.assertEqual(sanitize_string("line one\nline two"), "line one\nline two")

    def test_injection_patterns(self):
        self.assertTrue(contains_injection("<SCRIPT src=x>"))
        self.assertTrue(contains_injection("JavaScript:alert(1)"))
        self.assertTrue(contains_injection('<img src=x onerror="alert(1)">'))
        self.assertFalse(contains_injection("Tom & Jerry <3 onions = tasty"))
        self.assertFalse(contains_injection("A description about scripts"))


class TestSanitizePayload(unittest.TestCase):

    def test_nested_strings_cleaned(self):
        payload = {"ipMetadata": {"title": " Art ", "tags": [" a ", "b\x00"]}, "amount": 2, "flag": True}
        self.assertEqual(
            sanitize_payload(payload),
            {"ipMetadata": {"title": "Art", "tags": ["a", "b"]}, "amount": 2, "flag": True},
        )

    def test_script_anywhere_rejected(self):
        payload = {"ipMetadata": {"creators": [{"name": "<script>x</script>"}]}}
        with self.assertRaises(SecurityViolationError) as ctx:
            sanitize_payload(payload)
        self.assertEqual(ctx.exception.code, "SECURITY_VIOLATION")
        self.assertEqual(ctx.exception.status_code, 400)

    def test_deep_nesting_rejected(self):
        payload = "leaf"
        for _ in range(MAX_PAYLOAD_DEPTH + 2):
            payload = [payload]
        with self.assertRaises(SecurityViolationError):
            sanitize_payload(payload)

    def test_nesting_at_limit_allowed(self):
        payload = "leaf"
        for _ in range(MAX_PAYLOAD_DEPTH):
            payload = [payload]
        self.assertIsNotNone(sanitize_payload(payload))


if __name__ == '__main__':
    unittest.main()
