"""Selection and property-panel state for one editor session.

States: IDLE, LEAF_SELECTED(node), CONTAINER_ACTIVE(node). A selected leaf
and an active container are mutually exclusive. Preview mode forces IDLE and
refuses to start while an edit is waiting on validation.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List

from form_errors import EditPendingError, Issue, SelectionError
from node_store import NodeStore
from property_bag import PropertyBag


IDLE = "idle"
LEAF_SELECTED = "leaf_selected"
CONTAINER_ACTIVE = "container_active"


@dataclass(frozen=True)
class Selection:
    state: str = IDLE
    node_id: str | None = None

    def to_dict(self) -> dict:
        return {"state": self.state, "nodeId": self.node_id}


class SelectionState:
    def __init__(self, store: NodeStore) -> None:
        self._store = store
        self._current = Selection()
        self._preview = False
        self._pending: List[Issue] = []

    @property
    def current(self) -> Selection:
        return self._current

    @property
    def preview(self) -> bool:
        return self._preview

    @property
    def pending_issues(self) -> list[Issue]:
        return list(self._pending)

    def set_pending(self, issues: Iterable[Issue]) -> None:
        self._pending = list(issues)

    def _guard_change(self) -> None:
        if self._preview:
            raise SelectionError("selection is unavailable in preview mode", code="SELECTION_PREVIEW_ACTIVE")
        if self._pending:
            raise EditPendingError(
                "resolve the invalid property values first",
                path=self._pending[0].get("path"),
                detail={"issues": list(self._pending)},
            )

    def select_leaf(self, node_id: str) -> Selection:
        node = self._store.get(node_id)
        if node.is_container:
            raise SelectionError(f"node {node_id!r} is a container", code="SELECTION_KIND_MISMATCH", path="node_id")
        if self._current.state == LEAF_SELECTED and self._current.node_id == node_id:
            return self._current
        self._guard_change()
        self._current = Selection(LEAF_SELECTED, node_id)
        return self._current

    def activate_container(self, node_id: str) -> Selection:
        node = self._store.get(node_id)
        if not node.is_container:
            raise SelectionError(f"node {node_id!r} is not a container", code="SELECTION_KIND_MISMATCH", path="node_id")
        if self._current.state == CONTAINER_ACTIVE and self._current.node_id == node_id:
            return self._current
        self._guard_change()
        self._current = Selection(CONTAINER_ACTIVE, node_id)
        self._pending = []
        return self._current

    def deselect(self) -> Selection:
        if self._current.state == IDLE:
            return self._current
        self._guard_change()
        return self.reset()

    def reset(self) -> Selection:
        self._current = Selection()
        self._pending = []
        return self._current

    def forget(self, node_ids: Iterable[str]) -> Selection:
        """Drop the selection when its node was destroyed."""
        if self._current.node_id is not None and self._current.node_id in set(node_ids):
            return self.reset()
        return self._current

    def enter_preview(self) -> None:
        if self._preview:
            return
        if self._pending:
            raise EditPendingError(
                "preview cannot start while a property edit is invalid",
                path=self._pending[0].get("path"),
                detail={"issues": list(self._pending)},
            )
        self.reset()
        self._preview = True

    def exit_preview(self) -> None:
        self._preview = False

    def toggle_preview(self) -> bool:
        if self._preview:
            self.exit_preview()
        else:
            self.enter_preview()
        return self._preview

    def selected_properties(self) -> PropertyBag | None:
        if self._current.state != LEAF_SELECTED:
            return None
        return self._store.get(self._current.node_id).properties

    def to_dict(self) -> dict:
        out = self._current.to_dict()
        out["preview"] = self._preview
        out["pending"] = list(self._pending)
        return out
