import sys
import os
import unittest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from core.errors import ValidationError
from core.instance_guard import InstanceGuard
from core.utils import generate_session_id
from core.validation import validate_user_metadata, validate_user_text


class TestValidation(unittest.TestCase):

    def test_accepts_text_up_to_limit(self):
        self.assertEqual(validate_user_text("a"), "a")
        self.assertEqual(validate_user_text("x" * 2000), "x" * 2000)

    def test_rejects_missing_or_blank_text(self):
        for value in (None, "", "   \n", 42):
            with self.assertRaises(ValidationError) as ctx:
                validate_user_text(value)
            self.assertEqual(ctx.exception.message, "userText is required")
            self.assertEqual(ctx.exception.status_code, 400)

    def test_rejects_text_over_limit(self):
        with self.assertRaises(ValidationError) as ctx:
            validate_user_text("x" * 2001)
        self.assertEqual(ctx.exception.message, "Message exceeds 2000 character limit")

    def test_metadata(self):
        self.assertEqual(validate_user_metadata(None), {})
        self.assertEqual(validate_user_metadata({"plan": "pro"}), {"plan": "pro"})
        with self.assertRaises(ValidationError):
            validate_user_metadata(["not", "a", "dict"])


class TestInstanceGuard(unittest.TestCase):

    def test_token_comparison(self):
        guard = InstanceGuard("1700000000000")
        self.assertTrue(guard.is_current(None))
        self.assertTrue(guard.is_current(""))
        self.assertTrue(guard.is_current("1700000000000"))
        self.assertFalse(guard.is_current("1600000000000"))

    def test_generated_token_is_numeric(self):
        self.assertTrue(InstanceGuard().token.isdigit())


class TestSessionIds(unittest.TestCase):

    def test_format_and_uniqueness(self):
        first, second = generate_session_id(), generate_session_id()
        self.assertRegex(first, r"^session-\d+-[0-9a-z]{9}$")
        self.assertNotEqual(first, second)


if __name__ == '__main__':
    unittest.main()
