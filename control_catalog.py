"""Control catalog: palette groups, control definitions and their default properties."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List

from form_errors import DocumentError, UnknownControlTypeError
from property_bag import PropertyBag, PropertyDescriptor, descriptor_from_dict


CONTAINER_GROUP_ID = "fb-containers"


@dataclass
class ControlDefinition:
    control_id: str
    group_id: str
    label: str = ""
    description: str = ""
    is_container: bool = False
    property_schema: Dict[str, PropertyDescriptor] = field(default_factory=dict)

    def default_properties(self) -> PropertyBag:
        return PropertyBag({name: copy.deepcopy(desc) for name, desc in self.property_schema.items()})

    def describe(self) -> dict:
        return {
            "controlId": self.control_id,
            "groupId": self.group_id,
            "label": self.label,
            "description": self.description,
            "isContainer": self.is_container,
            "props": {name: desc.to_dict() for name, desc in self.property_schema.items()},
        }


@dataclass
class ControlGroup:
    group_id: str
    label: str
    items: List[ControlDefinition] = field(default_factory=list)


class ControlCatalog:
    def __init__(self, groups: Iterable[ControlGroup] | None = None) -> None:
        self._groups: Dict[str, ControlGroup] = {}
        self._by_key: Dict[tuple, ControlDefinition] = {}
        for group in groups or []:
            self.register_group(group)

    def register_group(self, group: ControlGroup) -> None:
        if group.group_id in self._groups:
            raise ValueError(f"group already registered: {group.group_id}")
        for item in group.items:
            if item.group_id != group.group_id:
                raise ValueError(f"control {item.control_id} does not belong to group {group.group_id}")
        self._groups[group.group_id] = group
        for item in group.items:
            self._by_key[(item.control_id, item.group_id)] = item

    def groups(self) -> list[ControlGroup]:
        return list(self._groups.values())

    def definitions(self) -> list[ControlDefinition]:
        return list(self._by_key.values())

    def get_definition(self, control_id: str, group_id: str | None) -> ControlDefinition:
        definition = self._by_key.get((control_id, group_id))
        if definition is None:
            raise UnknownControlTypeError(
                f"no catalog entry for control {control_id!r} in group {group_id!r}",
                path="controlId",
                detail={"controlId": control_id, "groupId": group_id},
            )
        return definition

    def group_for(self, control_id: str) -> str | None:
        for group in self._groups.values():
            for item in group.items:
                if item.control_id == control_id:
                    return group.group_id
        return None

    def describe(self) -> list[dict]:
        return [
            {"id": group.group_id, "label": group.label, "items": [item.describe() for item in group.items]}
            for group in self._groups.values()
        ]


def catalog_from_dict(raw: List[dict]) -> ControlCatalog:
    """Build a catalog from the palette description used by the designer.

    ``raw`` is a list of ``{id, label, items: [{controlId, label, props? , children?}]}``;
    an item carrying ``children`` is a container.
    """
    if not isinstance(raw, list):
        raise DocumentError("catalog must be a list of groups", path="$")
    groups = []
    for gidx, group_raw in enumerate(raw):
        if not isinstance(group_raw, dict) or not isinstance(group_raw.get("id"), str):
            raise DocumentError("group id required", path=f"$[{gidx}].id")
        group_id = group_raw["id"]
        items = []
        for item_raw in group_raw.get("items") or []:
            props_raw = item_raw.get("props") or {}
            items.append(
                ControlDefinition(
                    control_id=item_raw["controlId"],
                    group_id=group_id,
                    label=item_raw.get("label", ""),
                    description=item_raw.get("description", ""),
                    is_container="children" in item_raw,
                    property_schema={name: descriptor_from_dict(p) for name, p in props_raw.items()},
                )
            )
        groups.append(ControlGroup(group_id=group_id, label=group_raw.get("label", group_id), items=items))
    return ControlCatalog(groups)


def _text(label: str, value: Any = "", placeholder: str | None = None, required: bool = False, **extra: Any) -> dict:
    out = {"type": "text", "label": label, "value": value, "required": required, **extra}
    if placeholder is not None:
        out["placeholder"] = placeholder
    return out


def _checkbox(label: str, value: bool) -> dict:
    return {"type": "checkbox", "label": label, "value": value}


def _number(label: str, value: float, min: float | None = None, max: float | None = None, step: float = 1, required: bool = False) -> dict:
    return {"type": "number", "label": label, "value": value, "min": min, "max": max, "step": step, "required": required}


def _dropdown(label: str, value: str, items: List[tuple], required: bool = False) -> dict:
    return {
        "type": "dropdown",
        "label": label,
        "value": value,
        "required": required,
        "items": [{"label": item_label, "value": item_value} for item_label, item_value in items],
    }


def _list(label: str, label_text: str, value_text: str, entries: List[tuple], enabled_on: dict | None = None) -> dict:
    out = {
        "type": "list",
        "label": label,
        "labelText": label_text,
        "valueText": value_text,
        "value": [{"label": item_label, "value": item_value} for item_label, item_value in entries],
    }
    if enabled_on is not None:
        out["enabledOn"] = enabled_on
    return out


def _input_base(label: str = "Input") -> dict:
    return {
        "id": _text("ID", "", "Form Item ID", required=True),
        "label": _text("Label", label, "Input label"),
        "horizontal": _checkbox("Is horizontal", False),
        "isCompact": _checkbox("Compact", False),
    }


_INPUT_TYPES = [("Text", "text"), ("Email", "email"), ("Password", "password"), ("URL", "URL")]
_STATIC_OFF = {"key": "staticData", "value": False}
_STATIC_ON = {"key": "staticData", "value": True}


def _text_input() -> dict:
    return {
        **_input_base(),
        "placeholder": _text("Placeholder", "", "Input placeholder"),
        "type": _dropdown("Input type", "text", _INPUT_TYPES, required=True),
        "model": _text("Model", "", "inputVar"),
        "required": _checkbox("Is required", True),
        "minLength": _number("Minimum length", 0, min=0),
        "maxLength": _number("Maximum length", -1, min=-1),
        "validationRegex": _text("Regex validation", "", "^[^/]*$"),
        "errorMessage": _text("Error state popover message", "Incorrect input", "Input label"),
    }


def _options_source(static_default: bool, options_label: str, options_placeholder: str) -> dict:
    return {
        "staticData": _checkbox("Static Data", static_default),
        "model": _text("Model", "", ""),
        "options": _text(options_label, "", options_placeholder, enabledOn=_STATIC_OFF),
        "optionLabel": _text("Option label key", "label", "label", enabledOn=_STATIC_OFF),
        "optionValue": _text("Option value key", "value", "value", enabledOn=_STATIC_OFF),
        "staticOptions": _list("Options", "Label", "Value", [("Item 1", "item1"), ("Item 2", "item2")], enabled_on=_STATIC_ON),
        "required": _checkbox("Is required", True),
    }


_BORDERS = [("All", ""), ("Horizontal", "horizontal"), ("Vertical", "vertical"), ("Top", "top")]

BUILTIN_PALETTE: List[dict] = [
    {
        "id": "fb-controls",
        "label": "Controls",
        "items": [
            {
                "controlId": "button",
                "label": "Button",
                "description": "Button",
                "props": {
                    "label": _text("Label", "Button", "Button label", required=True),
                    "type": _dropdown(
                        "Button state",
                        "",
                        [
                            ("Default", ""),
                            ("Emphasized", "emphasized"),
                            ("Ghost", "ghost"),
                            ("Positive", "positive"),
                            ("Negative", "negative"),
                            ("Attention", "attention"),
                            ("Transparent", "transparent"),
                        ],
                    ),
                    "sizeToText": _checkbox("Size to text", False),
                    "isSubmit": _checkbox("Submits form", True),
                    "isCompact": _checkbox("Compact", False),
                    "callback": _text("Callback function", "", "callbackFn()"),
                },
            },
            {"controlId": "input-textfield", "label": "Text Field", "description": "Input field", "props": _text_input()},
            {"controlId": "input-textarea", "label": "Text Area", "description": "Text Area", "props": _text_input()},
            {
                "controlId": "input-time",
                "label": "Time Field",
                "description": "Time input",
                "props": {
                    **_input_base(),
                    "model": _text("Model", "", "inputVar"),
                    "required": _checkbox("Is required", True),
                },
            },
            {
                "controlId": "input-date",
                "label": "Date Field",
                "description": "Date input",
                "props": {
                    **_input_base(),
                    "type": _dropdown("Input type", "date", [("Date", "date"), ("Datetime", "datetime-local")], required=True),
                    "model": _text("Model", "", "inputVar"),
                    "required": _checkbox("Is required", True),
                },
            },
            {
                "controlId": "input-number",
                "label": "Number Field",
                "description": "Stepped number input",
                "props": {
                    **_input_base(),
                    "placeholder": _text("Placeholder", "", "Input placeholder"),
                    "model": _text("Model", "", "inputVar"),
                    "required": _checkbox("Is required", True),
                    "minNum": _number("Minimum number", 0, min=0),
                    "maxNum": _number("Maximum number", -1, min=-1),
                    "step": _number("Step number", 1),
                },
            },
            {
                "controlId": "input-color",
                "label": "Color",
                "description": "Color input",
                "props": {
                    **_input_base(),
                    "model": _text("Model", "", "inputVar"),
                    "required": _checkbox("Is required", True),
                },
            },
            {
                "controlId": "input-combobox",
                "label": "Combo Box",
                "description": "Combobox selection",
                "props": {
                    **_input_base(),
                    "placeholder": _text("Placeholder", "", "Input placeholder"),
                    "filter": _dropdown("Filter type", "", [("Starts With", ""), ("Contains", "Contains"), ("Contains Each", "ContainsEach")]),
                    "model": _text("Model", "", ""),
                    "items": _text("Items", "", ""),
                    "required": _checkbox("Is required", True),
                },
            },
            {
                "controlId": "input-select",
                "label": "Dropdown",
                "description": "Dropdown selection",
                "props": {**_input_base(), **_options_source(False, "Options", "")},
            },
            {
                "controlId": "input-checkbox",
                "label": "Checkbox",
                "description": "Checkbox",
                "props": {
                    "id": _text("ID", "", "Form Item ID", required=True),
                    "label": _text("Label", "Checkbox", "", required=True),
                    "model": _text("Model", "", "modelVar"),
                    "isCompact": _checkbox("Compact", False),
                },
            },
            {
                "controlId": "input-radio",
                "label": "Radio",
                "description": "Radio select",
                "props": {
                    "id": _text("Name", "", "The name of the radio button(s)", required=True),
                    "label": _text("Group title", "Radio group", ""),
                    **_options_source(True, "Options array name", "radioOptions"),
                    "isCompact": _checkbox("Compact", False),
                },
            },
        ],
    },
    {
        "id": "fb-display",
        "label": "Display",
        "items": [
            {
                "controlId": "header",
                "label": "Header",
                "description": "Text header",
                "props": {
                    "label": _text("Label", "Title", required=True),
                    "headerSize": _number("Size", 1, min=1, max=6, required=True),
                },
            },
            {
                "controlId": "image",
                "label": "Image",
                "description": "Image",
                "props": {
                    "imageLink": _text("Image Link", "/services/web/resources/images/dirigible.svg", "https://...", required=True),
                    "desc": _text("Description", "Image description", "", required=True),
                    "link": _text("Link To", "", "Link to open on click"),
                    "width": _text("Width", "100%", "100% or 100px"),
                    "height": _text("Height", "96px", "100% or 100px"),
                },
            },
            {
                "controlId": "paragraph",
                "label": "Paragraph",
                "description": "Paragraph",
                "props": {
                    "format": _checkbox("Preserve formatting", True),
                    "text": {"type": "textarea", "label": "Text", "value": "Multiline\nParagraph\nText"},
                    "model": _text("Model", "", ""),
                },
            },
            {
                "controlId": "table",
                "label": "Table",
                "description": "Table container",
                "props": {
                    "id": _text("ID", "", "Form Item ID", required=True),
                    "isFixed": _checkbox("Fixed", False),
                    "displayMode": _dropdown("Display mode", "", [("Default", ""), ("Compact", "compact"), ("Condensed", "condensed")]),
                    "outerBorders": _dropdown("Outer borders", "", _BORDERS + [("Bottom", "bottom"), ("None", "none")]),
                    "innerBorders": _dropdown("Inner borders", "", _BORDERS + [("None", "none")]),
                    "headers": _list("Headers", "Label", "Key", [("Name", "name"), ("Age", "age")]),
                    "model": _text("Model", "", "tableData"),
                    "info": {
                        "type": "textinfo",
                        "label": "Example model data",
                        "value": '[\n   {\n      "name":"John Doe",\n      "age":34\n   }\n]',
                    },
                },
            },
        ],
    },
    {
        "id": CONTAINER_GROUP_ID,
        "label": "Containers",
        "items": [
            {"controlId": "container-vbox", "label": "Vertical Box", "description": "Vertical box container", "children": []},
            {"controlId": "container-hbox", "label": "Horizontal Box", "description": "Horizontal box container", "children": []},
        ],
    },
]


def default_catalog() -> ControlCatalog:
    return catalog_from_dict(BUILTIN_PALETTE)
