"""Maps a completed drag/drop gesture onto exactly one structural operation.

Wire shape reported by the gesture recognizer::

    {"sourceKind": "catalog" | "canvas", "itemId": str, "groupId": str?,
     "targetParentId": str, "targetIndex": int?}

For ``catalog`` drops ``itemId`` is the palette control id; for ``canvas``
drops it is the runtime id of the node being moved. A rejected drop returns
one error issue and ``revert: True`` so the view restores its pre-drag layout.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from form_errors import DocumentError, FormError
from node_store import ROOT


logger = logging.getLogger("formkit.drop")

CATALOG = "catalog"
CANVAS = "canvas"
SOURCE_KINDS = (CATALOG, CANVAS)


@dataclass(frozen=True)
class DropEvent:
    source_kind: str
    item_id: str
    target_parent_id: str = ROOT
    target_index: int | None = None
    group_id: str | None = None


def parse_drop(payload: Any) -> DropEvent:
    if not isinstance(payload, dict):
        raise DocumentError("drop payload must be an object", code="DROP_INVALID", path="$")
    kind = payload.get("sourceKind")
    if kind not in SOURCE_KINDS:
        raise DocumentError(f"sourceKind must be one of {list(SOURCE_KINDS)}", code="DROP_INVALID", path="sourceKind")
    item_id = payload.get("itemId")
    if not isinstance(item_id, str) or not item_id:
        raise DocumentError("itemId required", code="DROP_INVALID", path="itemId")
    parent_id = payload.get("targetParentId", ROOT)
    if parent_id is None:
        parent_id = ROOT
    if not isinstance(parent_id, str) or not parent_id:
        raise DocumentError("targetParentId must be a string", code="DROP_INVALID", path="targetParentId")
    index = payload.get("targetIndex")
    if index is not None and (isinstance(index, bool) or not isinstance(index, int)):
        raise DocumentError("targetIndex must be an integer", code="DROP_INVALID", path="targetIndex")
    group_id = payload.get("groupId")
    if group_id is not None and not isinstance(group_id, str):
        raise DocumentError("groupId must be a string", code="DROP_INVALID", path="groupId")
    return DropEvent(kind, item_id, parent_id, index, group_id)


def apply_drop(session, payload: Any) -> dict:
    try:
        event = parse_drop(payload)
        if event.source_kind == CATALOG:
            node = session.insert(event.item_id, event.group_id, event.target_parent_id, event.target_index)
        else:
            node = session.move(event.item_id, event.target_parent_id, event.target_index)
    except FormError as exc:
        logger.info("drop_rejected form_id=%s code=%s path=%s", session.form_id, exc.code, exc.path)
        return {"ok": False, "errors": [exc.to_issue()], "warnings": [], "node_id": None, "mount": None, "revert": True}

    parent_id = session.store.parent_of(node.node_id)
    mount = {
        "nodeId": node.node_id,
        "controlId": node.control_id,
        "parentId": parent_id,
        "index": session.store.index_of(node.node_id),
    }
    return {"ok": True, "errors": [], "warnings": [], "node_id": node.node_id, "mount": mount, "revert": False}
