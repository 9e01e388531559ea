"""Field-rename migrations for leaf nodes of older form documents.

Each rule is a pure function from a stored leaf object to its upgraded shape.
Rules are applied in list order, are idempotent, and never read a key another
rule writes; ``check_rules_independent`` enforces the latter for new rules.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, List, Tuple

from form_errors import Issue, _issue


@dataclass(frozen=True)
class MigrationRule:
    rule_id: str
    sources: FrozenSet[str]
    targets: FrozenSet[str]
    apply: Callable[[dict], dict]
    control_ids: FrozenSet[str] | None = None

    def applies_to(self, raw: dict) -> bool:
        if self.control_ids is not None and raw.get("controlId") not in self.control_ids:
            return False
        return True


def _rename(old: str, new: str) -> Callable[[dict], dict]:
    def apply(raw: dict) -> dict:
        if old not in raw:
            return raw
        out = {}
        for key, value in raw.items():
            if key == old:
                out[new] = value
            elif key == new:
                continue
            else:
                out[key] = value
        return out

    return apply


def _radio_static_options(raw: dict) -> dict:
    # Radio groups saved before the "static data" switch kept their entries under "options".
    if "staticData" in raw or "options" not in raw:
        return raw
    return _rename("options", "staticOptions")(raw)


def rename_rule(rule_id: str, old: str, new: str, control_ids: FrozenSet[str] | None = None) -> MigrationRule:
    return MigrationRule(rule_id, frozenset({old}), frozenset({new}), _rename(old, new), control_ids)


DEFAULT_RULES: List[MigrationRule] = [
    rename_rule("title_to_label", "title", "label"),
    rename_rule("name_to_label", "name", "label"),
    rename_rule("error_state_to_error_message", "errorState", "errorMessage"),
    rename_rule("size_to_header_size", "size", "headerSize"),
    MigrationRule(
        "radio_options_to_static_options",
        frozenset({"options", "staticData"}),
        frozenset({"staticOptions"}),
        _radio_static_options,
        frozenset({"input-radio"}),
    ),
]


def check_rules_independent(rules: List[MigrationRule]) -> list[Issue]:
    issues: List[Issue] = []
    for rule in rules:
        for other in rules:
            if other is rule:
                continue
            chained = rule.targets & other.sources
            if chained:
                issues.append(
                    _issue(
                        "MIGRATION_RULES_CHAINED",
                        f"{other.rule_id} reads {sorted(chained)} written by {rule.rule_id}",
                        other.rule_id,
                    )
                )
    return issues


def migrate_node(raw: dict, rules: List[MigrationRule] | None = None) -> Tuple[dict, list[str]]:
    """Return the upgraded copy of a stored leaf plus the ids of the rules that changed it."""
    current = dict(raw)
    applied: List[str] = []
    for rule in DEFAULT_RULES if rules is None else rules:
        if not rule.applies_to(current):
            continue
        upgraded = rule.apply(current)
        if upgraded != current:
            applied.append(rule.rule_id)
            current = upgraded
    return current, applied


def migrate_form(form: list, rules: List[MigrationRule] | None = None) -> Tuple[list, Dict[str, int]]:
    """Migrate every leaf of a stored form tree; containers only recurse."""
    counts: Dict[str, int] = {}

    def _walk(items: list) -> list:
        out = []
        for item in items:
            if not isinstance(item, dict):
                out.append(item)
                continue
            if isinstance(item.get("children"), list):
                node = dict(item)
                node["children"] = _walk(item["children"])
                out.append(node)
                continue
            migrated, applied = migrate_node(item, rules)
            for rule_id in applied:
                counts[rule_id] = counts.get(rule_id, 0) + 1
            out.append(migrated)
        return out

    return _walk(form if isinstance(form, list) else []), counts
