import json
import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from formkit.document_json import DocumentJsonTypeError, canonical_dumps, document_hash, pretty_dumps


class TestCanonicalDumps(unittest.TestCase):
    def test_key_ordering_is_deterministic(self) -> None:
        self.assertEqual(canonical_dumps({"b": 1, "a": 2}), canonical_dumps({"a": 2, "b": 1}))

    def test_list_order_preserved(self) -> None:
        obj = {"form": [{"controlId": "b"}, {"controlId": "a"}]}
        self.assertEqual(canonical_dumps(obj), '{"form":[{"controlId":"b"},{"controlId":"a"}]}')

    def test_non_ascii_preserved(self) -> None:
        out = canonical_dumps({"label": "café"})
        self.assertIn("café", out)
        self.assertNotIn("\\u", out)

    def test_unsupported_type_raises(self) -> None:
        with self.assertRaises(DocumentJsonTypeError):
            canonical_dumps({"bad": {1, 2}})

    def test_reject_nan(self) -> None:
        with self.assertRaises(ValueError):
            canonical_dumps({"bad": float("nan")})

    def test_tuples_allowed(self) -> None:
        self.assertEqual(canonical_dumps({"pair": (1, 2)}), '{"pair":[1,2]}')


class TestPrettyDumps(unittest.TestCase):
    def test_four_space_indent_and_insertion_order(self) -> None:
        out = pretty_dumps({"feeds": [], "code": "x", "form": [{"label": "A"}]})
        self.assertTrue(out.startswith('{\n    "feeds": []'))
        self.assertLess(out.index('"code"'), out.index('"form"'))
        self.assertEqual(json.loads(out)["form"][0]["label"], "A")

    def test_rejects_inf(self) -> None:
        with self.assertRaises(ValueError):
            pretty_dumps({"bad": float("inf")})


class TestDocumentHash(unittest.TestCase):
    def test_hash_format(self) -> None:
        h = document_hash({"a": 1})
        self.assertTrue(h.startswith("sha256:"))
        self.assertEqual(len(h), len("sha256:") + 64)

    def test_hash_ignores_key_order(self) -> None:
        self.assertEqual(document_hash({"b": 1, "a": 2}), document_hash({"a": 2, "b": 1}))

    def test_hash_tracks_sibling_order(self) -> None:
        self.assertNotEqual(document_hash({"form": [1, 2]}), document_hash({"form": [2, 1]}))


if __name__ == "__main__":
    unittest.main()
