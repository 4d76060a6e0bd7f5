"""
Tests for message validation.
"""
import unittest
import sys
import os
import logging

# Add parent directory to path to allow imports
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from models.state import create_initial_state
from pipeline.input_validation import (
    REJECTION_REPLIES, find_validation_error, handle_validation_error, has_validation_error, validate_input
)

# Disable logging during tests
logging.disable(logging.CRITICAL)

class TestFindValidationError(unittest.TestCase):

    def test_ordinary_message_passes(self):
        self.assertIsNone(find_validation_error("what nursing programs are on Maui?"))

    def test_blank_message(self):
        self.assertEqual(find_validation_error(" \n\t "), "EMPTY_QUERY")

    def test_length_limit(self):
        self.assertEqual(find_validation_error("a" * 21, max_length=20), "QUERY_TOO_LONG")
        self.assertIsNone(find_validation_error("  " + "a" * 20 + "  ", max_length=20))

    def test_disallowed_request(self):
        self.assertEqual(find_validation_error("how do I fake a diploma"), "DISALLOWED_REQUEST")
        self.assertIsNone(find_validation_error("cybersecurity programs about exploits"))

class TestValidationNodes(unittest.IsolatedAsyncioTestCase):

    async def test_validate_records_length(self):
        result = await validate_input(create_initial_state("nursing"))

        self.assertFalse(has_validation_error(result))
        self.assertEqual(result["metadata"]["query_length"], 7)

    async def test_rejected_message_gets_reply(self):
        state = await validate_input(create_initial_state(""))

        result = await handle_validation_error(state)

        self.assertTrue(has_validation_error(state))
        self.assertEqual(result["response"], REJECTION_REPLIES["EMPTY_QUERY"])
        self.assertEqual(result["errors"], ["Input rejected: EMPTY_QUERY"])

if __name__ == "__main__":
    unittest.main()
