import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from drop_adapter import CANVAS, CATALOG, DropEvent, apply_drop, parse_drop
from event_bus import TREE_CHANGED
from form_errors import DocumentError
from form_session import FormSession
from node_store import ROOT as FORM_ROOT


class TestParseDrop(unittest.TestCase):
    def test_catalog_drop(self) -> None:
        event = parse_drop({"sourceKind": "catalog", "itemId": "button", "groupId": "fb-controls", "targetParentId": FORM_ROOT, "targetIndex": 0})
        self.assertEqual(event, DropEvent(CATALOG, "button", FORM_ROOT, 0, "fb-controls"))

    def test_missing_parent_means_root(self) -> None:
        event = parse_drop({"sourceKind": "canvas", "itemId": "w1"})
        self.assertEqual((event.source_kind, event.target_parent_id, event.target_index), (CANVAS, FORM_ROOT, None))

    def test_rejects_bad_shapes(self) -> None:
        cases = [
            ("nope", "$"),
            ({"sourceKind": "palette", "itemId": "button"}, "sourceKind"),
            ({"sourceKind": "catalog"}, "itemId"),
            ({"sourceKind": "catalog", "itemId": "button", "targetParentId": 3}, "targetParentId"),
            ({"sourceKind": "catalog", "itemId": "button", "targetIndex": "0"}, "targetIndex"),
            ({"sourceKind": "catalog", "itemId": "button", "targetIndex": True}, "targetIndex"),
            ({"sourceKind": "catalog", "itemId": "button", "groupId": 1}, "groupId"),
        ]
        for payload, path in cases:
            with self.assertRaises(DocumentError) as ctx:
                parse_drop(payload)
            self.assertEqual(ctx.exception.code, "DROP_INVALID")
            self.assertEqual(ctx.exception.path, path)


class TestApplyDrop(unittest.TestCase):
    def setUp(self) -> None:
        self.session = FormSession(form_id="f1")

    def _drop(self, **payload) -> dict:
        return apply_drop(self.session, payload)

    def test_catalog_drop_inserts(self) -> None:
        result = self._drop(sourceKind="catalog", itemId="button", groupId="fb-controls", targetParentId=FORM_ROOT, targetIndex=0)
        self.assertTrue(result["ok"])
        self.assertEqual(result["mount"], {"nodeId": result["node_id"], "controlId": "button", "parentId": FORM_ROOT, "index": 0})
        self.assertFalse(result["revert"])

    def test_catalog_drop_infers_group(self) -> None:
        result = self._drop(sourceKind="catalog", itemId="container-hbox", targetParentId=FORM_ROOT)
        self.assertTrue(result["ok"])
        self.assertTrue(self.session.store.get(result["node_id"]).is_container)

    def test_canvas_drop_moves(self) -> None:
        box = self._drop(sourceKind="catalog", itemId="container-vbox")["node_id"]
        leaf = self._drop(sourceKind="catalog", itemId="button")["node_id"]
        result = self._drop(sourceKind="canvas", itemId=leaf, targetParentId=box, targetIndex=0)
        self.assertTrue(result["ok"])
        self.assertEqual(result["mount"]["parentId"], box)
        self.assertEqual(self.session.store.root_ids(), [box])

    def test_cycle_rejected_with_one_issue(self) -> None:
        outer = self._drop(sourceKind="catalog", itemId="container-vbox")["node_id"]
        inner = self._drop(sourceKind="catalog", itemId="container-vbox", targetParentId=outer)["node_id"]
        changes = len(self.session.outbox.pending(TREE_CHANGED))
        result = self._drop(sourceKind="canvas", itemId=outer, targetParentId=inner, targetIndex=0)
        self.assertFalse(result["ok"])
        self.assertTrue(result["revert"])
        self.assertEqual([e["code"] for e in result["errors"]], ["INVALID_TARGET"])
        self.assertEqual(self.session.store.root_ids(), [outer])
        self.assertEqual(len(self.session.outbox.pending(TREE_CHANGED)), changes)

    def test_each_rejection_reports_exactly_one_issue(self) -> None:
        leaf = self._drop(sourceKind="catalog", itemId="button")["node_id"]
        cases = [
            ({"sourceKind": "catalog", "itemId": "slider"}, "UNKNOWN_CONTROL_TYPE"),
            ({"sourceKind": "catalog", "itemId": "button", "targetParentId": "c-missing"}, "PARENT_NOT_FOUND"),
            ({"sourceKind": "catalog", "itemId": "button", "targetParentId": leaf}, "PARENT_NOT_FOUND"),
            ({"sourceKind": "canvas", "itemId": "w-missing"}, "NODE_NOT_FOUND"),
            ({"sourceKind": "catalog", "itemId": "button", "targetIndex": 9}, "INVALID_TARGET"),
            ({"sourceKind": "drag"}, "DROP_INVALID"),
        ]
        for payload, code in cases:
            result = apply_drop(self.session, payload)
            self.assertFalse(result["ok"])
            self.assertEqual([e["code"] for e in result["errors"]], [code])
        self.assertEqual(len(self.session.store), 1)

    def test_preview_rejects_drops(self) -> None:
        self.session.toggle_preview()
        result = self._drop(sourceKind="catalog", itemId="button")
        self.assertEqual([e["code"] for e in result["errors"]], ["PREVIEW_READ_ONLY"])


if __name__ == "__main__":
    unittest.main()
