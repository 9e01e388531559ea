"""Editor session: one open form with its tree, selection, events and dirty flag."""

from __future__ import annotations

import copy
import logging
import uuid
from typing import Any, Dict, List

from control_catalog import ControlCatalog, default_catalog
from event_bus import FORM_DIRTY, TREE_CHANGED, EventBus, make_event
from form_errors import EditPendingError, Issue, PropertyValueError, SelectionError
from form_serializer import FormDocument, LoadResult, build_document, deserialize, parse_document
from formkit.document_json import document_hash
from node_store import ROOT, Node, NodeStore
from outbox import Outbox
from property_bag import PropertyBag, validate_bag
from selection import CONTAINER_ACTIVE, LEAF_SELECTED, Selection, SelectionState


logger = logging.getLogger("formkit.session")

RESOURCE_KINDS = ("feeds", "scripts")


class FormSession:
    def __init__(
        self,
        catalog: ControlCatalog | None = None,
        form_id: str | None = None,
        max_pending_events: int | None = None,
    ) -> None:
        self.form_id = form_id or str(uuid.uuid4())
        self.catalog = catalog or default_catalog()
        self.outbox = Outbox(max_pending_events)
        self.bus = EventBus(self.outbox)
        self.store = NodeStore(bus=self.bus, form_id=self.form_id)
        self.selection = SelectionState(self.store)
        self.tab = "designer"
        self.metadata: Any = None
        self.code = ""
        self._resources: Dict[str, List[dict]] = {kind: [] for kind in RESOURCE_KINDS}
        self._dirty = False
        self._loading = False
        self._saved_hash: str | None = None
        self.bus.subscribe(TREE_CHANGED, self._on_tree_changed)

    # ---------------------------------------------------------------- dirty

    @property
    def dirty(self) -> bool:
        return self._dirty

    def mark_dirty(self, reason: str) -> None:
        if self._dirty:
            return
        self._dirty = True
        logger.info("form_dirty form_id=%s reason=%s", self.form_id, reason)
        self.bus.publish(make_event(FORM_DIRTY, {"dirty": True, "reason": reason}, {"form_id": self.form_id}))

    def _on_tree_changed(self, event: dict) -> None:
        if not self._loading:
            self.mark_dirty(event["payload"].get("op") or "tree")

    # ------------------------------------------------------------ structure

    def _guard_editable(self) -> None:
        if self.selection.preview:
            raise SelectionError("the form is read-only in preview mode", code="PREVIEW_READ_ONLY")

    def insert(self, control_id: str, group_id: str | None = None, parent_id: str = ROOT, index: int | None = None) -> Node:
        self._guard_editable()
        if group_id is None:
            group_id = self.catalog.group_for(control_id)
        definition = self.catalog.get_definition(control_id, group_id)
        return self.store.insert_from_catalog(definition, parent_id, index)

    def move(self, node_id: str, parent_id: str, index: int | None = None) -> Node:
        self._guard_editable()
        return self.store.move_existing(node_id, parent_id, index)

    def delete_node(self, node_id: str) -> list[str]:
        self._guard_editable()
        removed = self.store.remove(node_id)
        self.selection.forget(removed)
        return removed

    def delete_selected(self) -> list[str]:
        current = self.selection.current
        if current.state not in (LEAF_SELECTED, CONTAINER_ACTIVE):
            raise SelectionError("nothing is selected", code="SELECTION_EMPTY")
        return self.delete_node(current.node_id)

    def clear_form(self) -> list[str]:
        self._guard_editable()
        removed = self.store.clear()
        self.selection.reset()
        return removed

    # ------------------------------------------------------------ selection

    def select_leaf(self, node_id: str) -> Selection:
        selection = self.selection.select_leaf(node_id)
        self._revalidate(node_id)
        return selection

    def activate_container(self, node_id: str) -> Selection:
        return self.selection.activate_container(node_id)

    def deselect(self) -> Selection:
        return self.selection.deselect()

    def switch_tab(self, tab: str) -> None:
        if not isinstance(tab, str) or not tab:
            raise PropertyValueError("tab must be a non-empty string", path="tab")
        self.selection.deselect()
        self.tab = tab

    def toggle_preview(self) -> bool:
        return self.selection.toggle_preview()

    def set_preview(self, enabled: bool) -> bool:
        if enabled:
            self.selection.enter_preview()
        else:
            self.selection.exit_preview()
        return self.selection.preview

    # ----------------------------------------------------------- properties

    def _leaf_bag(self, node_id: str) -> PropertyBag:
        node = self.store.get(node_id)
        if node.is_container:
            raise PropertyValueError(f"container {node_id!r} has no properties", path="node_id")
        return node.properties

    def _revalidate(self, node_id: str) -> list[Issue]:
        issues = validate_bag(self._leaf_bag(node_id))
        current = self.selection.current
        if current.state == LEAF_SELECTED and current.node_id == node_id:
            self.selection.set_pending(issues)
        return issues

    def node_properties(self, node_id: str) -> dict:
        return self._leaf_bag(node_id).to_dict()

    def edit_property(self, node_id: str, name: str, value: Any) -> list[Issue]:
        return self.edit_properties(node_id, {name: value})

    def edit_properties(self, node_id: str, values: Dict[str, Any]) -> list[Issue]:
        """Write values into the node's bag; returns the validation issues left on the node."""
        self._guard_editable()
        bag = self._leaf_bag(node_id)
        staged = bag.copy()
        for name, value in values.items():
            staged.set_value(name, copy.deepcopy(value))
        for name in values:
            bag.set_value(name, staged.value(name))
        if values:
            self.mark_dirty("property")
        return self._revalidate(node_id)

    def set_list_default(self, node_id: str, name: str, index: int) -> list[Issue]:
        self._guard_editable()
        self._leaf_bag(node_id).list_property(name).set_default(index)
        self.mark_dirty("property")
        return self._revalidate(node_id)

    def add_list_item(self, node_id: str, name: str, label: str, value: str) -> list[Issue]:
        self._guard_editable()
        self._leaf_bag(node_id).list_property(name).add_item(label, value)
        self.mark_dirty("property")
        return self._revalidate(node_id)

    def edit_list_item(self, node_id: str, name: str, index: int, label: str, value: str) -> list[Issue]:
        self._guard_editable()
        self._leaf_bag(node_id).list_property(name).edit_item(index, label, value)
        self.mark_dirty("property")
        return self._revalidate(node_id)

    def delete_list_item(self, node_id: str, name: str, index: int) -> list[Issue]:
        self._guard_editable()
        self._leaf_bag(node_id).list_property(name).delete_item(index)
        self.mark_dirty("property")
        return self._revalidate(node_id)

    # --------------------------------------------------- feeds, scripts, code

    def resources(self, kind: str) -> list[dict]:
        return copy.deepcopy(self._resource_list(kind))

    def _resource_list(self, kind: str) -> List[dict]:
        if kind not in self._resources:
            raise PropertyValueError(f"unknown resource kind {kind!r}", code="RESOURCE_KIND_INVALID", path="kind")
        return self._resources[kind]

    def _resource_entry(self, name: Any, url: Any) -> dict:
        for key, value in (("name", name), ("url", url)):
            if not isinstance(value, str) or not value.strip():
                raise PropertyValueError(f"{key} required", code="RESOURCE_INVALID", path=key)
        return {"name": name, "url": url}

    def _resource_index(self, items: list, index: Any) -> int:
        if isinstance(index, bool) or not isinstance(index, int) or index < 0 or index >= len(items):
            raise PropertyValueError("resource index out of range", code="RESOURCE_INDEX_INVALID", path="index")
        return index

    def add_resource(self, kind: str, name: str, url: str) -> dict:
        items = self._resource_list(kind)
        entry = self._resource_entry(name, url)
        items.append(entry)
        self.mark_dirty(kind)
        return dict(entry)

    def edit_resource(self, kind: str, index: int, name: str, url: str) -> dict:
        items = self._resource_list(kind)
        idx = self._resource_index(items, index)
        items[idx] = self._resource_entry(name, url)
        self.mark_dirty(kind)
        return dict(items[idx])

    def delete_resource(self, kind: str, index: int) -> dict:
        items = self._resource_list(kind)
        removed = items.pop(self._resource_index(items, index))
        self.mark_dirty(kind)
        return removed

    def add_feed(self, name: str, url: str) -> dict:
        return self.add_resource("feeds", name, url)

    def edit_feed(self, index: int, name: str, url: str) -> dict:
        return self.edit_resource("feeds", index, name, url)

    def delete_feed(self, index: int) -> dict:
        return self.delete_resource("feeds", index)

    def add_script(self, name: str, url: str) -> dict:
        return self.add_resource("scripts", name, url)

    def edit_script(self, index: int, name: str, url: str) -> dict:
        return self.edit_resource("scripts", index, name, url)

    def delete_script(self, index: int) -> dict:
        return self.delete_resource("scripts", index)

    def set_code(self, code: str) -> None:
        if not isinstance(code, str):
            raise PropertyValueError("code must be a string", path="code")
        if code != self.code:
            self.code = code
            self.mark_dirty("code")

    # ---------------------------------------------------------- persistence

    @property
    def can_save(self) -> bool:
        return not self.selection.pending_issues

    def to_document(self) -> FormDocument:
        return build_document(self.store, self._resources["feeds"], self._resources["scripts"], self.code, self.metadata)

    def content_hash(self) -> str:
        return document_hash(self.to_document().to_dict())

    def save(self) -> FormDocument:
        """Produce the document to persist and clear the dirty flag.

        Writing the bytes belongs to the caller.
        """
        if not self.can_save:
            pending = self.selection.pending_issues
            raise EditPendingError("cannot save while property values are invalid", path=pending[0].get("path"), detail={"issues": pending})
        document = self.to_document()
        self._saved_hash = document_hash(document.to_dict())
        self._dirty = False
        logger.info("form_saved form_id=%s nodes=%s hash=%s", self.form_id, len(self.store), self._saved_hash)
        return document

    @property
    def saved_hash(self) -> str | None:
        return self._saved_hash

    def load(self, raw: Any) -> LoadResult:
        document = parse_document(raw)
        self._loading = True
        try:
            result = deserialize(document.form, self.catalog, self.store)
        finally:
            self._loading = False
        self._resources = {"feeds": document.feeds, "scripts": document.scripts}
        self.code = document.code
        self.metadata = document.metadata
        self.selection.reset()
        self.selection.exit_preview()
        self._dirty = False
        self._saved_hash = None
        if result.was_migrated:
            self.mark_dirty("migration")
        return result

    def snapshot(self) -> dict:
        return {
            "form_id": self.form_id,
            "dirty": self._dirty,
            "can_save": self.can_save,
            "tab": self.tab,
            "revision": self.store.revision,
            "selection": self.selection.to_dict(),
            "tree": self.store.describe(),
        }
