"""Authoritative in-memory tree of form control nodes.

Nodes live in an arena keyed by runtime id. Containers keep an ordered list of
child ids, the root keeps the ordered top-level ids, and a parent map makes a
move a matter of re-linking two lists. Every public mutation runs inside a
batch; the batch publishes the per-node mount descriptions followed by exactly
one ``form.tree_changed`` event once the outermost batch completes.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Tuple

from control_catalog import ControlDefinition
from event_bus import NODE_MOUNTED, NODE_UNMOUNTED, TREE_CHANGED, EventBus, make_event
from form_errors import Issue, InvalidTargetError, NodeNotFoundError, ParentNotFoundError, _issue
from property_bag import PropertyBag


ROOT = "formContainer"

logger = logging.getLogger("formkit.store")


def _new_id(prefix: str) -> str:
    return f"{prefix}{uuid.uuid4().hex}"


@dataclass
class Node:
    node_id: str
    control_id: str
    group_id: str
    is_container: bool
    properties: PropertyBag | None = None
    children: List[str] = field(default_factory=list)


class NodeStore:
    def __init__(self, bus: EventBus | None = None, form_id: str | None = None) -> None:
        self.form_id = form_id or str(uuid.uuid4())
        self.revision = 0
        self._bus = bus
        self._nodes: Dict[str, Node] = {}
        self._parents: Dict[str, str] = {}
        self._root: List[str] = []
        self._batch_depth = 0
        self._pending: List[Tuple[str, dict]] = []
        self._touched: Dict[str, None] = {}

    # ------------------------------------------------------------------ reads

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def get(self, node_id: str) -> Node:
        node = self._nodes.get(node_id)
        if node is None:
            raise NodeNotFoundError(f"node {node_id!r} not found", path="node_id", detail={"node_id": node_id})
        return node

    def root_ids(self) -> list[str]:
        return list(self._root)

    def children_of(self, parent_id: str) -> list[str]:
        return list(self._sibling_list(parent_id))

    def parent_of(self, node_id: str) -> str:
        self.get(node_id)
        return self._parents[node_id]

    def index_of(self, node_id: str) -> int:
        return self._sibling_list(self.parent_of(node_id)).index(node_id)

    def find(self, node_id: str) -> tuple[Node, list[str]] | None:
        """Return the node and its ancestor ids (outermost first), or None."""
        node = self._nodes.get(node_id)
        if node is None:
            return None
        breadcrumb = []
        parent = self._parents[node_id]
        while parent != ROOT:
            breadcrumb.append(parent)
            parent = self._parents[parent]
        breadcrumb.reverse()
        return node, breadcrumb

    def walk(self, parent_id: str = ROOT) -> Iterator[tuple[Node, str, int]]:
        """Depth-first, in rendering order: yields (node, parent_id, depth)."""
        start = self._root if parent_id == ROOT else self.get(parent_id).children
        stack = [(child_id, parent_id, 0) for child_id in reversed(start)]
        while stack:
            node_id, parent, depth = stack.pop()
            node = self._nodes[node_id]
            yield node, parent, depth
            for child_id in reversed(node.children):
                stack.append((child_id, node_id, depth + 1))

    def is_descendant(self, node_id: str, ancestor_id: str) -> bool:
        current = self._parents.get(node_id)
        while current is not None and current != ROOT:
            if current == ancestor_id:
                return True
            current = self._parents.get(current)
        return False

    def describe(self, parent_id: str = ROOT) -> list[dict]:
        out = []
        for node_id in self._sibling_list(parent_id):
            node = self._nodes[node_id]
            item: dict = {
                "nodeId": node.node_id,
                "controlId": node.control_id,
                "groupId": node.group_id,
                "isContainer": node.is_container,
            }
            if node.is_container:
                item["children"] = self.describe(node_id)
            out.append(item)
        return out

    def check_integrity(self) -> list[Issue]:
        issues: List[Issue] = []
        seen: Dict[str, str] = {}
        lists = [(ROOT, self._root)] + [(n.node_id, n.children) for n in self._nodes.values()]
        for owner, ids in lists:
            owner_node = self._nodes.get(owner)
            if owner_node is not None and not owner_node.is_container and ids:
                issues.append(_issue("LEAF_HAS_CHILDREN", "leaf node holds children", owner))
            for child_id in ids:
                if child_id in seen:
                    issues.append(_issue("NODE_DUPLICATED", f"node referenced by {seen[child_id]} and {owner}", child_id))
                    continue
                seen[child_id] = owner
                if child_id not in self._nodes:
                    issues.append(_issue("NODE_DANGLING", "child id has no node", child_id))
                elif self._parents.get(child_id) != owner:
                    issues.append(_issue("PARENT_MISMATCH", "parent map disagrees with children list", child_id))
        for node_id in self._nodes:
            if node_id not in seen:
                issues.append(_issue("NODE_ORPHANED", "node unreachable from the root", node_id))
        reachable = sum(1 for _ in self.walk())
        if reachable != len(self._nodes):
            issues.append(_issue("NODE_COUNT_MISMATCH", f"{reachable} reachable of {len(self._nodes)} stored", None))
        return issues

    # ------------------------------------------------------------ mutations

    @contextmanager
    def batch(self, op: str) -> Iterator[None]:
        """Group mutations of one gesture into a single tree-changed notification."""
        outer = self._batch_depth == 0
        if outer:
            self._pending = []
            self._touched = {}
        self._batch_depth += 1
        try:
            yield
        except BaseException:
            self._batch_depth -= 1
            if outer:
                self._pending = []
                self._touched = {}
            raise
        self._batch_depth -= 1
        if outer:
            self._flush(op)

    def insert_from_catalog(
        self,
        definition: ControlDefinition,
        parent_id: str = ROOT,
        index: int | None = None,
        *,
        properties: PropertyBag | None = None,
    ) -> Node:
        """Create a node for ``definition`` and place it at ``index`` under ``parent_id``.

        ``index=None`` appends. ``properties`` replaces the catalog defaults
        (used when rebuilding from a stored document).
        """
        self._require_container(parent_id)
        self._check_index(parent_id, index, len(self._sibling_list(parent_id)))

        if definition.is_container:
            node = Node(_new_id("c"), definition.control_id, definition.group_id, True)
        else:
            bag = properties if properties is not None else definition.default_properties()
            if properties is None and "id" in bag:
                bag.set_value("id", _new_id("i"))
            node = Node(_new_id("w"), definition.control_id, definition.group_id, False, properties=bag)

        with self.batch("insert"):
            self._nodes[node.node_id] = node
            self._attach(node.node_id, parent_id, index)
            self._record_mount(node.node_id)
        logger.debug("node_inserted node_id=%s control_id=%s parent_id=%s", node.node_id, node.control_id, parent_id)
        return node

    def move_existing(self, node_id: str, new_parent_id: str, new_index: int | None = None) -> Node:
        node = self.get(node_id)
        self._require_container(new_parent_id)
        if new_parent_id == node_id or self.is_descendant(new_parent_id, node_id):
            raise InvalidTargetError(
                "cannot move a node into itself or one of its descendants",
                path="targetParentId",
                detail={"node_id": node_id, "target_parent_id": new_parent_id},
            )

        with self.batch("move"):
            old_parent, old_index = self._detach(node_id)
            try:
                self._attach(node_id, new_parent_id, new_index)
            except InvalidTargetError:
                self._attach(node_id, old_parent, old_index)
                logger.warning("node_move_rolled_back node_id=%s target=%s index=%s", node_id, new_parent_id, new_index)
                raise
            self._record_mount(node_id, moved=True)
        logger.debug("node_moved node_id=%s from=%s to=%s index=%s", node_id, old_parent, new_parent_id, new_index)
        return node

    def remove(self, node_id: str) -> list[str]:
        """Destroy a node and its subtree; returns the destroyed ids, outermost first."""
        self.get(node_id)
        removed = [node_id] + [n.node_id for n, _, _ in self.walk(node_id)]
        with self.batch("remove"):
            self._detach(node_id)
            for rid in removed:
                del self._nodes[rid]
                del self._parents[rid]
                self._record(NODE_UNMOUNTED, {"nodeId": rid})
        logger.debug("node_removed node_id=%s count=%s", node_id, len(removed))
        return removed

    def clear(self) -> list[str]:
        removed = [n.node_id for n, _, _ in self.walk()]
        if not removed:
            return []
        with self.batch("clear"):
            self._root = []
            self._nodes = {}
            self._parents = {}
            for rid in removed:
                self._record(NODE_UNMOUNTED, {"nodeId": rid})
        logger.debug("form_cleared count=%s", len(removed))
        return removed

    def replace_contents(self, other: "NodeStore", op: str = "load") -> list[str]:
        """Take over every node of ``other`` in place of the current tree.

        Runs as one batch: unmounts for the old nodes, mounts for the new ones,
        then a single tree-changed event. ``other`` is left empty.
        """
        removed = [n.node_id for n, _, _ in self.walk()]
        with self.batch(op):
            for rid in removed:
                self._record(NODE_UNMOUNTED, {"nodeId": rid})
            self._nodes, self._parents, self._root = other._nodes, other._parents, other._root
            other._nodes, other._parents, other._root = {}, {}, []
            for node, _, _ in self.walk():
                self._record_mount(node.node_id)
        logger.debug("form_replaced removed=%s count=%s", len(removed), len(self._nodes))
        return removed

    # ------------------------------------------------------------- internals

    def _sibling_list(self, parent_id: str) -> List[str]:
        if parent_id == ROOT:
            return self._root
        node = self._nodes.get(parent_id)
        if node is None or not node.is_container:
            raise ParentNotFoundError(
                f"parent {parent_id!r} is not a container in this form",
                path="parent_id",
                detail={"parent_id": parent_id},
            )
        return node.children

    def _require_container(self, parent_id: str) -> None:
        self._sibling_list(parent_id)

    def _check_index(self, parent_id: str, index: Any, size: int) -> None:
        if index is None:
            return
        if isinstance(index, bool) or not isinstance(index, int) or index < 0 or index > size:
            raise InvalidTargetError(
                f"index {index!r} outside 0..{size}",
                path="index",
                detail={"parent_id": parent_id, "index": index},
            )

    def _detach(self, node_id: str) -> tuple[str, int]:
        parent_id = self._parents[node_id]
        siblings = self._sibling_list(parent_id)
        index = siblings.index(node_id)
        siblings.pop(index)
        return parent_id, index

    def _attach(self, node_id: str, parent_id: str, index: int | None) -> None:
        siblings = self._sibling_list(parent_id)
        self._check_index(parent_id, index, len(siblings))
        if index is None:
            siblings.append(node_id)
        else:
            siblings.insert(index, node_id)
        self._parents[node_id] = parent_id

    def _record(self, name: str, payload: dict) -> None:
        self._pending.append((name, payload))
        node_id = payload.get("nodeId")
        if node_id:
            self._touched.setdefault(node_id)

    def _record_mount(self, node_id: str, moved: bool = False) -> None:
        node = self._nodes[node_id]
        parent_id = self._parents[node_id]
        payload = {
            "nodeId": node_id,
            "controlId": node.control_id,
            "parentId": parent_id,
            "index": self._sibling_list(parent_id).index(node_id),
        }
        if moved:
            payload["moved"] = True
        self._record(NODE_MOUNTED, payload)

    def _flush(self, op: str) -> None:
        pending, touched = self._pending, self._touched
        self._pending, self._touched = [], {}
        if not pending:
            return
        self.revision += 1
        if self._bus is None:
            return
        meta = {"form_id": self.form_id}
        for name, payload in pending:
            self._bus.publish(make_event(name, payload, meta))
        self._bus.publish(
            make_event(TREE_CHANGED, {"op": op, "nodeIds": list(touched), "revision": self.revision, "size": len(self._nodes)}, meta)
        )
