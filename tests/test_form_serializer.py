import json
import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from control_catalog import default_catalog
from event_bus import NODE_MOUNTED, NODE_UNMOUNTED, TREE_CHANGED, EventBus
from form_errors import DocumentError
from form_migrations import MigrationRule
from form_serializer import (
    FormDocument,
    build_document,
    deserialize,
    dumps_document,
    load_store,
    parse_document,
    serialize,
)
from node_store import ROOT as FORM_ROOT
from node_store import NodeStore
from outbox import Outbox


def _strip_ids(form: list) -> list:
    out = []
    for item in form:
        item = dict(item)
        item.pop("id", None)
        if "children" in item:
            item["children"] = _strip_ids(item["children"])
        out.append(item)
    return out


class TestSerialize(unittest.TestCase):
    def setUp(self) -> None:
        self.catalog = default_catalog()
        self.store = NodeStore()

    def _insert(self, control_id: str, parent_id: str = FORM_ROOT):
        group_id = self.catalog.group_for(control_id)
        return self.store.insert_from_catalog(self.catalog.get_definition(control_id, group_id), parent_id)

    def test_container_and_leaf_shapes(self) -> None:
        box = self._insert("container-hbox")
        self._insert("header", box.node_id)
        form = serialize(self.store)
        self.assertEqual(
            form,
            [
                {
                    "controlId": "container-hbox",
                    "groupId": "fb-containers",
                    "children": [{"controlId": "header", "groupId": "fb-display", "label": "Title", "headerSize": 1}],
                }
            ],
        )

    def test_info_and_disabled_properties_not_serialized(self) -> None:
        self._insert("table")
        radio = self._insert("input-radio")
        form = serialize(self.store)
        self.assertNotIn("info", form[0])
        self.assertIn("headers", form[0])
        self.assertIn("staticOptions", form[1])
        self.assertNotIn("options", form[1])
        radio.properties.set_value("staticData", False)
        form = serialize(self.store)
        self.assertIn("options", form[1])
        self.assertNotIn("staticOptions", form[1])

    def test_list_default_flag_serialized(self) -> None:
        radio = self._insert("input-radio")
        radio.properties.list_property("staticOptions").set_default(1)
        entries = serialize(self.store)[0]["staticOptions"]
        self.assertEqual(entries[1], {"label": "Item 2", "value": "item2", "isDefault": True})
        self.assertNotIn("isDefault", entries[0])

    def test_round_trip(self) -> None:
        outer = self._insert("container-vbox")
        self._insert("input-textfield", outer.node_id)
        inner = self._insert("container-hbox", outer.node_id)
        self._insert("input-radio", inner.node_id)
        self._insert("paragraph")
        self._insert("table")
        original = serialize(self.store)

        loaded = deserialize(original, self.catalog)
        self.assertEqual(serialize(loaded.store), original)
        self.assertFalse(loaded.was_migrated)
        self.assertEqual(loaded.skipped, [])
        self.assertEqual(loaded.store.check_integrity(), [])
        old_ids = {n.node_id for n, _, _ in self.store.walk()}
        new_ids = {n.node_id for n, _, _ in loaded.store.walk()}
        self.assertFalse(old_ids & new_ids)


class TestDeserialize(unittest.TestCase):
    def setUp(self) -> None:
        self.catalog = default_catalog()

    def test_legacy_header(self) -> None:
        result = deserialize([{"controlId": "header", "title": "Hi", "size": 2}], self.catalog)
        node = result.store.get(result.store.root_ids()[0])
        self.assertEqual(node.group_id, "fb-display")
        self.assertEqual(node.properties.values(), {"label": "Hi", "headerSize": 2})
        self.assertTrue(result.was_migrated)
        self.assertEqual(result.migrated, {"title_to_label": 1, "size_to_header_size": 1})

    def test_persisted_values_overlay_defaults(self) -> None:
        result = deserialize([{"controlId": "button", "groupId": "fb-controls", "label": "Go"}], self.catalog)
        bag = result.store.get(result.store.root_ids()[0]).properties
        self.assertEqual(bag.value("label"), "Go")
        self.assertEqual(bag.value("isSubmit"), True)

    def test_loaded_item_id_kept(self) -> None:
        result = deserialize([{"controlId": "input-checkbox", "groupId": "fb-controls", "id": "agree"}], self.catalog)
        bag = result.store.get(result.store.root_ids()[0]).properties
        self.assertEqual(bag.value("id"), "agree")

    def test_unknown_control_skipped_siblings_load(self) -> None:
        form = [
            {"controlId": "button", "groupId": "fb-controls"},
            {"controlId": "slider", "groupId": "fb-controls"},
            {"controlId": "container-vbox", "groupId": "fb-containers", "children": [{"controlId": "gauge"}, {"controlId": "header"}]},
        ]
        with self.assertLogs("formkit.serializer", level="WARNING"):
            result = deserialize(form, self.catalog)
        self.assertEqual([n.control_id for n, _, _ in result.store.walk()], ["button", "container-vbox", "header"])
        self.assertEqual([i["code"] for i in result.skipped], ["UNKNOWN_CONTROL_TYPE", "UNKNOWN_CONTROL_TYPE"])
        self.assertEqual([i["path"] for i in result.skipped], ["form[1]", "form[2].children[0]"])

    def test_malformed_nodes_skipped(self) -> None:
        result = deserialize(["oops", {"label": "no control"}], self.catalog)
        self.assertEqual(len(result.store), 0)
        self.assertEqual([i["code"] for i in result.skipped], ["DOCUMENT_INVALID", "DOCUMENT_INVALID"])

    def test_node_with_unusable_value_skipped(self) -> None:
        form = [
            {"controlId": "header", "title": "Hi"},
            {"controlId": "table", "groupId": "fb-display", "title": "People", "headers": ["name", "age"]},
            {"controlId": "button"},
        ]
        with self.assertLogs("formkit.serializer", level="WARNING"):
            result = deserialize(form, self.catalog)
        self.assertEqual([n.control_id for n, _, _ in result.store.walk()], ["header", "button"])
        self.assertEqual([(i["code"], i["path"]) for i in result.skipped], [("PROPERTY_VALUE_INVALID", "form[1].headers")])
        self.assertEqual(result.migrated, {"title_to_label": 1})
        self.assertEqual(result.store.check_integrity(), [])

    def test_unknown_keys_reported(self) -> None:
        result = deserialize([{"controlId": "header", "label": "x", "color": "red"}], self.catalog)
        self.assertEqual([i["path"] for i in result.ignored_keys], ["form[0].color"])

    def test_form_must_be_list(self) -> None:
        with self.assertRaises(DocumentError):
            deserialize({"controlId": "header"}, self.catalog)

    def test_load_replaces_tree_with_one_notification(self) -> None:
        outbox = Outbox()
        result = load_store([{"controlId": "button"}], self.catalog, EventBus(outbox), "f1")
        outbox.clear()
        deserialize([{"controlId": "header"}, {"controlId": "container-vbox", "children": [{"controlId": "button"}]}], self.catalog, result.store)
        self.assertEqual([n.control_id for n, _, _ in result.store.walk()], ["header", "container-vbox", "button"])
        changes = outbox.pending(TREE_CHANGED)
        self.assertEqual(len(changes), 1)
        self.assertEqual(changes[0]["payload"]["op"], "load")
        self.assertEqual(len(outbox.pending(NODE_MOUNTED)), 3)
        self.assertEqual(len(outbox.pending(NODE_UNMOUNTED)), 1)

    def test_failed_load_leaves_store_untouched(self) -> None:
        outbox = Outbox()
        result = load_store([{"controlId": "button"}, {"controlId": "header"}], self.catalog, EventBus(outbox), "f1")
        before = [n.node_id for n, _, _ in result.store.walk()]
        revision = result.store.revision
        outbox.clear()

        def explode(raw: dict) -> dict:
            raise RuntimeError("broken rule")

        rules = [MigrationRule("explode", frozenset({"label"}), frozenset({"caption"}), explode)]
        with self.assertRaises(RuntimeError):
            deserialize([{"controlId": "header"}, {"controlId": "paragraph"}], self.catalog, result.store, rules)
        self.assertEqual([n.node_id for n, _, _ in result.store.walk()], before)
        self.assertEqual(result.store.revision, revision)
        self.assertEqual(outbox.pending(), [])


class TestDocument(unittest.TestCase):
    def test_parse_document_defaults(self) -> None:
        doc = parse_document({"form": []})
        self.assertEqual((doc.feeds, doc.scripts, doc.code, doc.form, doc.metadata), ([], [], "", [], None))

    def test_parse_document_rejects_bad_types(self) -> None:
        for raw, path in (
            ([], "$"),
            ({"form": {}}, "form"),
            ({"feeds": "x"}, "feeds"),
            ({"code": 1}, "code"),
        ):
            with self.assertRaises(DocumentError) as ctx:
                parse_document(raw)
            self.assertEqual(ctx.exception.path, path)

    def test_metadata_preserved(self) -> None:
        raw = {"metadata": {"feeds": []}, "feeds": [], "scripts": [], "code": "", "form": []}
        self.assertEqual(parse_document(raw).to_dict(), raw)
        self.assertNotIn("metadata", FormDocument().to_dict())

    def test_build_and_dump(self) -> None:
        catalog = default_catalog()
        store = NodeStore()
        store.insert_from_catalog(catalog.get_definition("header", "fb-display"))
        doc = build_document(store, [{"name": "f", "url": "/f"}], [], "let x = 1;")
        text = dumps_document(doc)
        self.assertIn('\n    "feeds"', text)
        parsed = json.loads(text)
        self.assertEqual(list(parsed), ["feeds", "scripts", "code", "form"])
        self.assertEqual(_strip_ids(parsed["form"]), [{"controlId": "header", "groupId": "fb-display", "label": "Title", "headerSize": 1}])


if __name__ == "__main__":
    unittest.main()
