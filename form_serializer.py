"""Conversion between the node store and the persisted form document."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

from control_catalog import ControlCatalog
from event_bus import EventBus
from form_errors import DocumentError, FormError, Issue, UnknownControlTypeError, _issue
from form_migrations import MigrationRule, migrate_node
from formkit.document_json import pretty_dumps
from node_store import ROOT, NodeStore


logger = logging.getLogger("formkit.serializer")

_NODE_KEYS = ("controlId", "groupId")


@dataclass
class LoadResult:
    store: NodeStore
    migrated: Dict[str, int] = field(default_factory=dict)
    skipped: List[Issue] = field(default_factory=list)
    ignored_keys: List[Issue] = field(default_factory=list)

    @property
    def was_migrated(self) -> bool:
        return bool(self.migrated)


@dataclass
class FormDocument:
    feeds: List[dict] = field(default_factory=list)
    scripts: List[dict] = field(default_factory=list)
    code: str = ""
    form: List[dict] = field(default_factory=list)
    metadata: Any = None

    def to_dict(self) -> dict:
        out: dict = {}
        if self.metadata is not None:
            out["metadata"] = copy.deepcopy(self.metadata)
        out["feeds"] = copy.deepcopy(self.feeds)
        out["scripts"] = copy.deepcopy(self.scripts)
        out["code"] = self.code
        out["form"] = copy.deepcopy(self.form)
        return out


def serialize(store: NodeStore, parent_id: str = ROOT) -> list[dict]:
    out = []
    for node_id in store.children_of(parent_id):
        node = store.get(node_id)
        item = {"controlId": node.control_id, "groupId": node.group_id}
        if node.is_container:
            item["children"] = serialize(store, node_id)
        else:
            item.update(node.properties.serializable_values())
        out.append(item)
    return out


def deserialize(
    form: list,
    catalog: ControlCatalog,
    store: NodeStore | None = None,
    rules: List[MigrationRule] | None = None,
) -> LoadResult:
    """Rebuild ``store`` (or a new one) from a stored form tree.

    Runtime ids are regenerated. Unknown controls and nodes with unusable
    values are skipped with one issue each, together with their subtree;
    their siblings still load. The tree is built aside and swapped in only
    once complete, so a failure leaves ``store`` untouched.
    """
    if not isinstance(form, list):
        raise DocumentError("form must be a list", path="form")
    target = store if store is not None else NodeStore()
    result = LoadResult(store=target)
    scratch = NodeStore(form_id=target.form_id)
    _load_children(form, ROOT, catalog, result, rules, "form", scratch)
    target.replace_contents(scratch)
    logger.info(
        "form_loaded form_id=%s nodes=%s migrated=%s skipped=%s",
        target.form_id,
        len(target),
        sum(result.migrated.values()),
        len(result.skipped),
    )
    return result


def _load_children(
    items: list,
    parent_id: str,
    catalog: ControlCatalog,
    result: LoadResult,
    rules: List[MigrationRule] | None,
    path: str,
    store: NodeStore,
) -> None:
    for idx, raw in enumerate(items):
        item_path = f"{path}[{idx}]"
        if not isinstance(raw, dict) or not isinstance(raw.get("controlId"), str):
            result.skipped.append(DocumentError("node must be an object with a controlId", path=item_path).to_issue())
            continue
        group_id = raw.get("groupId")
        if group_id is None:
            group_id = catalog.group_for(raw["controlId"])
        try:
            definition = catalog.get_definition(raw["controlId"], group_id)
        except UnknownControlTypeError as exc:
            exc.path = item_path
            logger.warning("unknown_control_skipped control_id=%s group_id=%s path=%s", raw["controlId"], group_id, item_path)
            result.skipped.append(exc.to_issue())
            continue

        if definition.is_container:
            node = store.insert_from_catalog(definition, parent_id)
            children = raw.get("children")
            _load_children(children if isinstance(children, list) else [], node.node_id, catalog, result, rules, f"{item_path}.children", store)
            continue

        migrated, applied = migrate_node(raw, rules)
        bag = definition.default_properties()
        values = {k: v for k, v in migrated.items() if k not in _NODE_KEYS}
        try:
            ignored = bag.overlay(values)
        except FormError as exc:
            exc.path = f"{item_path}.{exc.path}" if exc.path else item_path
            logger.warning("invalid_node_skipped control_id=%s path=%s code=%s", raw["controlId"], exc.path, exc.code)
            result.skipped.append(exc.to_issue())
            continue
        for rule_id in applied:
            result.migrated[rule_id] = result.migrated.get(rule_id, 0) + 1
        for key in ignored:
            result.ignored_keys.append(_issue("PROPERTY_UNKNOWN", f"{key} has no descriptor", f"{item_path}.{key}"))
        store.insert_from_catalog(definition, parent_id, properties=bag)


def parse_document(raw: Any) -> FormDocument:
    if not isinstance(raw, dict):
        raise DocumentError("document must be an object", path="$")
    form = raw.get("form", [])
    if not isinstance(form, list):
        raise DocumentError("form must be a list", path="form")
    feeds = raw.get("feeds", [])
    scripts = raw.get("scripts", [])
    for key, value in (("feeds", feeds), ("scripts", scripts)):
        if not isinstance(value, list):
            raise DocumentError(f"{key} must be a list", path=key)
    code = raw.get("code", "")
    if not isinstance(code, str):
        raise DocumentError("code must be a string", path="code")
    return FormDocument(
        feeds=copy.deepcopy(feeds),
        scripts=copy.deepcopy(scripts),
        code=code,
        form=copy.deepcopy(form),
        metadata=copy.deepcopy(raw.get("metadata")),
    )


def build_document(store: NodeStore, feeds: list, scripts: list, code: str, metadata: Any = None) -> FormDocument:
    return FormDocument(
        feeds=copy.deepcopy(feeds),
        scripts=copy.deepcopy(scripts),
        code=code,
        form=serialize(store),
        metadata=copy.deepcopy(metadata),
    )


def dumps_document(document: FormDocument) -> str:
    return pretty_dumps(document.to_dict())


def load_store(form: list, catalog: ControlCatalog, bus: EventBus | None = None, form_id: str | None = None) -> LoadResult:
    """Build a fresh store wired to ``bus`` and fill it from ``form``."""
    return deserialize(form, catalog, NodeStore(bus=bus, form_id=form_id))
