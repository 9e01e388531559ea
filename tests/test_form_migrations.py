import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from form_migrations import DEFAULT_RULES, check_rules_independent, migrate_form, migrate_node, rename_rule


class TestMigrateNode(unittest.TestCase):
    def test_header_legacy_fields(self) -> None:
        migrated, applied = migrate_node({"controlId": "header", "title": "Hi", "size": 2})
        self.assertEqual(migrated, {"controlId": "header", "label": "Hi", "headerSize": 2})
        self.assertEqual(applied, ["title_to_label", "size_to_header_size"])

    def test_rename_keeps_key_position(self) -> None:
        migrated, _ = migrate_node({"controlId": "input-textfield", "errorState": "bad", "model": "m"})
        self.assertEqual(list(migrated), ["controlId", "errorMessage", "model"])

    def test_name_to_label(self) -> None:
        migrated, applied = migrate_node({"controlId": "input-checkbox", "name": "Agree"})
        self.assertEqual(migrated["label"], "Agree")
        self.assertNotIn("name", migrated)
        self.assertEqual(applied, ["name_to_label"])

    def test_radio_options_without_static_flag(self) -> None:
        items = [{"label": "A", "value": "a"}]
        migrated, applied = migrate_node({"controlId": "input-radio", "options": items})
        self.assertEqual(migrated["staticOptions"], items)
        self.assertNotIn("options", migrated)
        self.assertEqual(applied, ["radio_options_to_static_options"])

    def test_radio_with_static_flag_untouched(self) -> None:
        raw = {"controlId": "input-radio", "staticData": False, "options": "radioOptions"}
        migrated, applied = migrate_node(raw)
        self.assertEqual(migrated, raw)
        self.assertEqual(applied, [])

    def test_select_options_never_renamed(self) -> None:
        raw = {"controlId": "input-select", "options": "opts"}
        self.assertEqual(migrate_node(raw)[0], raw)

    def test_input_not_mutated(self) -> None:
        raw = {"controlId": "header", "title": "Hi"}
        migrate_node(raw)
        self.assertEqual(raw, {"controlId": "header", "title": "Hi"})

    def test_idempotent(self) -> None:
        samples = [
            {"controlId": "header", "title": "Hi", "size": 2},
            {"controlId": "input-radio", "name": "r", "options": [{"label": "A", "value": "a"}]},
            {"controlId": "input-textfield", "errorState": "bad", "label": "x"},
            {"controlId": "button", "label": "Ok"},
        ]
        for raw in samples:
            once, _ = migrate_node(raw)
            twice, applied = migrate_node(once)
            self.assertEqual(once, twice)
            self.assertEqual(applied, [])


class TestRuleSet(unittest.TestCase):
    def test_default_rules_are_independent(self) -> None:
        self.assertEqual(check_rules_independent(DEFAULT_RULES), [])

    def test_chained_rules_reported(self) -> None:
        rules = [rename_rule("a_to_b", "a", "b"), rename_rule("b_to_c", "b", "c")]
        issues = check_rules_independent(rules)
        self.assertEqual([i["code"] for i in issues], ["MIGRATION_RULES_CHAINED"])
        self.assertEqual(issues[0]["path"], "b_to_c")


class TestMigrateForm(unittest.TestCase):
    def test_recurses_into_containers(self) -> None:
        form = [
            {"controlId": "container-vbox", "groupId": "fb-containers", "children": [{"controlId": "header", "title": "Nested"}]},
            {"controlId": "header", "size": 3},
        ]
        migrated, counts = migrate_form(form)
        self.assertEqual(migrated[0]["children"][0]["label"], "Nested")
        self.assertEqual(migrated[1]["headerSize"], 3)
        self.assertEqual(counts, {"title_to_label": 1, "size_to_header_size": 1})
        self.assertEqual(form[0]["children"][0], {"controlId": "header", "title": "Nested"})

    def test_form_migration_idempotent(self) -> None:
        form = [{"controlId": "container-hbox", "children": [{"controlId": "input-radio", "options": []}]}]
        once, _ = migrate_form(form)
        twice, counts = migrate_form(once)
        self.assertEqual(once, twice)
        self.assertEqual(counts, {})


if __name__ == "__main__":
    unittest.main()
