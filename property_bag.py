"""Typed property descriptors and the per-node property bag."""

from __future__ import annotations

import copy
import math
import re
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, Iterator, List, Mapping

from form_errors import FormError, Issue, PropertyNotFoundError, PropertyValueError, _issue


_LIST_VALUE_PATTERN = re.compile(r"^\S*$")


@dataclass(frozen=True)
class EnabledOn:
    key: str
    value: Any

    def to_dict(self) -> dict:
        return {"key": self.key, "value": self.value}


@dataclass
class PropertyDescriptor:
    kind: ClassVar[str] = ""
    serializable: ClassVar[bool] = True

    label: str = ""
    value: Any = None
    required: bool = False
    placeholder: str | None = None
    enabled_on: EnabledOn | None = None

    def to_dict(self) -> dict:
        out: dict = {"type": self.kind, "label": self.label, "value": copy.deepcopy(self.value)}
        if self.required:
            out["required"] = True
        if self.placeholder is not None:
            out["placeholder"] = self.placeholder
        if self.enabled_on is not None:
            out["enabledOn"] = self.enabled_on.to_dict()
        out.update(self._extra_dict())
        return out

    def _extra_dict(self) -> dict:
        return {}

    def assign(self, value: Any) -> None:
        self.value = value


@dataclass
class TextProperty(PropertyDescriptor):
    kind: ClassVar[str] = "text"


@dataclass
class TextareaProperty(PropertyDescriptor):
    kind: ClassVar[str] = "textarea"


@dataclass
class NumberProperty(PropertyDescriptor):
    kind: ClassVar[str] = "number"

    min: float | None = None
    max: float | None = None
    step: float | None = None

    def _extra_dict(self) -> dict:
        out = {}
        for key in ("min", "max", "step"):
            if getattr(self, key) is not None:
                out[key] = getattr(self, key)
        return out


@dataclass
class CheckboxProperty(PropertyDescriptor):
    kind: ClassVar[str] = "checkbox"


@dataclass
class DropdownProperty(PropertyDescriptor):
    kind: ClassVar[str] = "dropdown"

    items: List[dict] = field(default_factory=list)

    def _extra_dict(self) -> dict:
        return {"items": copy.deepcopy(self.items)}


@dataclass
class ListProperty(PropertyDescriptor):
    """Option list. At most one entry carries ``isDefault``."""

    kind: ClassVar[str] = "list"

    label_text: str = "Label"
    value_text: str = "Value"
    default_value: Any = ""

    def __post_init__(self) -> None:
        if self.value is None:
            self.value = []
        self._sync_default()

    def _extra_dict(self) -> dict:
        return {"labelText": self.label_text, "valueText": self.value_text, "defaultValue": self.default_value}

    def _sync_default(self) -> None:
        found = False
        self.default_value = ""
        for entry in self.value:
            if not entry.get("isDefault"):
                continue
            if found:
                del entry["isDefault"]
                continue
            found = True
            self.default_value = entry.get("value")

    def assign(self, value: Any) -> None:
        if not isinstance(value, list) or not all(isinstance(entry, dict) for entry in value):
            raise PropertyValueError("list value must be a list of objects", path="value")
        self.value = copy.deepcopy(value)
        self._sync_default()

    def _check_index(self, index: int) -> None:
        if not isinstance(index, int) or isinstance(index, bool) or index < 0 or index >= len(self.value):
            raise PropertyValueError("list index out of range", path="index", detail={"index": index})

    def set_default(self, index: int) -> None:
        self._check_index(index)
        for entry in self.value:
            if entry.get("isDefault"):
                del entry["isDefault"]
        self.value[index]["isDefault"] = True
        self.default_value = self.value[index].get("value")

    def add_item(self, label: str, value: str) -> None:
        self.value.append({"label": label, "value": value})

    def edit_item(self, index: int, label: str, value: str) -> None:
        self._check_index(index)
        entry = self.value[index]
        entry["label"] = label
        entry["value"] = value
        if entry.get("isDefault"):
            self.default_value = value

    def delete_item(self, index: int) -> None:
        self._check_index(index)
        removed = self.value.pop(index)
        if removed.get("isDefault"):
            self.default_value = ""


@dataclass
class InfoProperty(PropertyDescriptor):
    """Help text shown in the property panel only."""

    kind: ClassVar[str] = "textinfo"
    serializable: ClassVar[bool] = False


DESCRIPTOR_TYPES: Dict[str, type] = {
    cls.kind: cls
    for cls in (
        TextProperty,
        TextareaProperty,
        NumberProperty,
        CheckboxProperty,
        DropdownProperty,
        ListProperty,
        InfoProperty,
    )
}


def descriptor_from_dict(raw: Mapping[str, Any]) -> PropertyDescriptor:
    kind = raw.get("type")
    cls = DESCRIPTOR_TYPES.get(kind)
    if cls is None:
        raise PropertyValueError(f"unknown property type {kind!r}", path="type")
    enabled_on = raw.get("enabledOn")
    kwargs: dict = {
        "label": raw.get("label", ""),
        "value": copy.deepcopy(raw.get("value")),
        "required": bool(raw.get("required", False)),
        "placeholder": raw.get("placeholder"),
        "enabled_on": EnabledOn(enabled_on["key"], enabled_on["value"]) if isinstance(enabled_on, dict) else None,
    }
    if cls is NumberProperty:
        kwargs.update(min=raw.get("min"), max=raw.get("max"), step=raw.get("step"))
    elif cls is DropdownProperty:
        kwargs["items"] = copy.deepcopy(raw.get("items") or [])
    elif cls is ListProperty:
        kwargs.update(label_text=raw.get("labelText", "Label"), value_text=raw.get("valueText", "Value"))
    return cls(**kwargs)


def is_property_enabled(descriptor: PropertyDescriptor, values: Mapping[str, Any]) -> bool:
    """A gated property only applies while its governing sibling holds the given value."""
    if descriptor.enabled_on is None:
        return True
    key = descriptor.enabled_on.key
    if key not in values:
        return False
    return values[key] == descriptor.enabled_on.value


class PropertyBag:
    def __init__(self, descriptors: Mapping[str, PropertyDescriptor] | None = None) -> None:
        self._props: Dict[str, PropertyDescriptor] = dict(descriptors or {})

    def __contains__(self, name: object) -> bool:
        return name in self._props

    def __iter__(self) -> Iterator[str]:
        return iter(self._props)

    def __len__(self) -> int:
        return len(self._props)

    def names(self) -> list[str]:
        return list(self._props.keys())

    def get(self, name: str) -> PropertyDescriptor:
        descriptor = self._props.get(name)
        if descriptor is None:
            raise PropertyNotFoundError(f"unknown property {name!r}", path=name)
        return descriptor

    def value(self, name: str) -> Any:
        return self.get(name).value

    def values(self) -> dict:
        return {name: desc.value for name, desc in self._props.items()}

    def set_value(self, name: str, value: Any) -> None:
        self.get(name).assign(value)

    def list_property(self, name: str) -> ListProperty:
        descriptor = self.get(name)
        if not isinstance(descriptor, ListProperty):
            raise PropertyValueError(f"property {name!r} is not a list", path=name)
        return descriptor

    def is_enabled(self, name: str) -> bool:
        return is_property_enabled(self.get(name), self.values())

    def serializable_values(self) -> dict:
        values = self.values()
        out = {}
        for name, desc in self._props.items():
            if not desc.serializable:
                continue
            if not is_property_enabled(desc, values):
                continue
            out[name] = copy.deepcopy(desc.value)
        return out

    def overlay(self, persisted: Mapping[str, Any]) -> list[str]:
        """Write stored values over the defaults; returns the keys with no descriptor."""
        ignored = []
        for key, value in persisted.items():
            desc = self._props.get(key)
            if desc is None:
                ignored.append(key)
                continue
            if value is None:
                continue
            if isinstance(desc, ListProperty) and not isinstance(value, list):
                ignored.append(key)
                continue
            try:
                desc.assign(copy.deepcopy(value))
            except FormError as exc:
                exc.path = key
                raise
        return ignored

    def to_dict(self) -> dict:
        values = self.values()
        out = {}
        for name, desc in self._props.items():
            item = desc.to_dict()
            item["enabled"] = is_property_enabled(desc, values)
            out[name] = item
        return out

    def copy(self) -> "PropertyBag":
        return PropertyBag({name: copy.deepcopy(desc) for name, desc in self._props.items()})


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def validate_bag(bag: PropertyBag) -> list[Issue]:
    issues: List[Issue] = []
    values = bag.values()
    for name in bag.names():
        desc = bag.get(name)
        if not is_property_enabled(desc, values):
            continue
        value = desc.value
        if isinstance(desc, NumberProperty):
            if not _is_number(value):
                issues.append(_issue("PROPERTY_NOT_NUMBER", "value must be a number", name))
                continue
            if desc.min is not None and value < desc.min:
                issues.append(_issue("PROPERTY_BELOW_MIN", f"value must be >= {desc.min}", name))
            if desc.max is not None and value > desc.max:
                issues.append(_issue("PROPERTY_ABOVE_MAX", f"value must be <= {desc.max}", name))
        elif isinstance(desc, CheckboxProperty):
            if not isinstance(value, bool):
                issues.append(_issue("PROPERTY_NOT_BOOLEAN", "value must be true or false", name))
        elif isinstance(desc, DropdownProperty):
            allowed = [item.get("value") for item in desc.items]
            if allowed and value not in allowed:
                issues.append(_issue("PROPERTY_NOT_IN_ITEMS", "value is not one of the dropdown items", name))
        elif isinstance(desc, ListProperty):
            for idx, entry in enumerate(desc.value):
                if not str(entry.get("label") or "").strip():
                    issues.append(_issue("LIST_ITEM_LABEL_REQUIRED", "item label required", f"{name}[{idx}].label"))
                item_value = entry.get("value")
                if not isinstance(item_value, str) or not item_value or not _LIST_VALUE_PATTERN.match(item_value):
                    issues.append(_issue("LIST_ITEM_VALUE_INVALID", "item value must be non-empty without spaces", f"{name}[{idx}].value"))
        elif desc.required and isinstance(desc, (TextProperty, TextareaProperty)):
            if not isinstance(value, str) or not value.strip():
                issues.append(_issue("PROPERTY_REQUIRED", "value required", name))
    return issues
