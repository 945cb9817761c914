"""Unit tests for Interac request links."""

import unittest
from urllib.parse import parse_qs, urlparse

from rentcycle.errors import ValidationError
from rentcycle.payments.interac import InteracLinkGenerator, new_reference


class TestInteracLinkGenerator(unittest.TestCase):

    def setUp(self):
        self.generator = InteracLinkGenerator(reference_factory=lambda: "rent-0001")

    def test_link_contents(self):
        link = self.generator.create_request_link(
            "john@example.com", "John", "1500", "Rent payment for unit 101"
        )

        parsed = urlparse(link)
        self.assertEqual(f"{parsed.scheme}://{parsed.netloc}{parsed.path}", "https://interac.mock/request")
        query = parse_qs(parsed.query)
        self.assertEqual(query["email"], ["john@example.com"])
        self.assertEqual(query["name"], ["John"])
        self.assertEqual(query["amount"], ["1500.00"])
        self.assertEqual(query["message"], ["Rent payment for unit 101"])
        self.assertEqual(query["reference"], ["rent-0001"])

    def test_references_are_unique(self):
        self.assertNotEqual(new_reference(), new_reference())
        self.assertTrue(new_reference().startswith("rent-"))

    def test_invalid_requests(self):
        with self.assertRaises(ValidationError):
            self.generator.create_request_link("", "John", 1500)
        with self.assertRaises(ValidationError):
            self.generator.create_request_link("john@example.com", "John", 0)


if __name__ == '__main__':
    unittest.main()
