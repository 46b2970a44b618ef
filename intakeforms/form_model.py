from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable

import jsonschema


IDENTIFIER_FIELD_ID = "banId"
CONTACT_FIELD_ID = "email"
SYSTEM_FIELD_IDS = (IDENTIFIER_FIELD_ID, CONTACT_FIELD_ID)

_NULLABLE_STRING = {"type": ["string", "null"]}
_STRING_MAP = {"type": ["object", "null"], "additionalProperties": {"type": "string"}}

FORM_DEFINITION_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["fields"],
    "properties": {
        "fields": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["id", "type"],
                "properties": {
                    "id": {"type": "string", "minLength": 1},
                    "type": {"type": "string", "minLength": 1},
                    "label": {"type": "string"},
                    "description": _NULLABLE_STRING,
                    "required": {"type": "boolean"},
                    "options": {"type": ["array", "null"], "items": {"type": "string"}},
                    "order": {"type": "integer"},
                    "sectionId": _NULLABLE_STRING,
                    "optionSectionMap": _STRING_MAP,
                    "optionSectionMapping": _STRING_MAP,
                },
            },
        },
        "sections": {
            "type": ["array", "null"],
            "items": {
                "type": "object",
                "required": ["id"],
                "properties": {
                    "id": {"type": "string", "minLength": 1},
                    "title": {"type": "string"},
                    "description": _NULLABLE_STRING,
                    "order": {"type": "integer"},
                    "hideByDefault": {"type": "boolean"},
                    "showIfFieldId": _NULLABLE_STRING,
                    "showIfValue": _NULLABLE_STRING,
                    "showIfValues": {"type": ["array", "null"], "items": {"type": "string"}},
                },
            },
        },
    },
}


class FormDefinitionError(ValueError):
    pass


class FieldType(str, Enum):
    SHORT_TEXT = "text"
    LONG_TEXT = "textarea"
    SINGLE_CHOICE_DROPDOWN = "dropdown"
    SINGLE_CHOICE_VISIBLE = "multiple_choice"
    BOOLEAN_TOGGLE = "checkbox"
    MULTI_CHOICE = "checkboxes"
    FILE_LIST = "file_upload"

    @classmethod
    def parse(cls, raw: Any) -> FieldType | None:
        """Map a wire type name (or enum name such as ``long_text``) to a member.

        Returns None for anything unrecognised; callers skip such fields.
        """
        if isinstance(raw, cls):
            return raw
        if not isinstance(raw, str):
            return None
        token = raw.strip()
        try:
            return cls(token)
        except ValueError:
            pass
        return cls.__members__.get(token.upper())


CHOICE_TYPES = frozenset(
    {
        FieldType.SINGLE_CHOICE_DROPDOWN,
        FieldType.SINGLE_CHOICE_VISIBLE,
        FieldType.MULTI_CHOICE,
    }
)


@dataclass(frozen=True)
class FormField:
    id: str
    type: str
    label: str = ""
    description: str | None = None
    required: bool = False
    options: tuple[str, ...] = ()
    order: int = 0
    section_id: str | None = None
    option_section_map: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        parsed = FieldType.parse(self.type)
        object.__setattr__(self, "type", parsed.value if parsed else str(self.type))
        object.__setattr__(self, "options", tuple(self.options or ()))
        object.__setattr__(self, "option_section_map", dict(self.option_section_map or {}))

    @property
    def field_type(self) -> FieldType | None:
        return FieldType.parse(self.type)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "type": self.type,
            "label": self.label,
            "required": self.required,
            "order": self.order,
        }
        if self.description is not None:
            payload["description"] = self.description
        if self.field_type in CHOICE_TYPES:
            payload["options"] = list(self.options)
        if self.section_id is not None:
            payload["sectionId"] = self.section_id
        if self.option_section_map:
            payload["optionSectionMap"] = dict(self.option_section_map)
        return payload

    @classmethod
    def from_dict(cls, payload: dict[str, Any], *, default_order: int = 0) -> FormField:
        field_type = FieldType.parse(payload.get("type"))
        options = payload.get("options") or []
        option_map = payload.get("optionSectionMap") or payload.get("optionSectionMapping") or {}
        order = payload.get("order")
        return cls(
            id=str(payload["id"]),
            type=field_type.value if field_type else str(payload.get("type", "")),
            label=str(payload.get("label") or ""),
            description=_clean_optional_str(payload.get("description")),
            required=bool(payload.get("required", False)),
            options=tuple(str(option) for option in options) if field_type in CHOICE_TYPES else (),
            order=order if isinstance(order, int) and not isinstance(order, bool) else default_order,
            section_id=_clean_optional_str(payload.get("sectionId")),
            option_section_map={str(key): str(value) for key, value in option_map.items()},
        )


@dataclass(frozen=True)
class FormSection:
    id: str
    title: str = ""
    description: str | None = None
    order: int = 0
    hide_by_default: bool = False
    show_if_field_id: str | None = None
    show_if_value: str | None = None
    show_if_values: tuple[str, ...] | None = None

    def __post_init__(self) -> None:
        if self.show_if_values is not None:
            object.__setattr__(self, "show_if_values", tuple(self.show_if_values))

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "order": self.order,
            "hideByDefault": self.hide_by_default,
        }
        if self.description is not None:
            payload["description"] = self.description
        if self.show_if_field_id is not None:
            payload["showIfFieldId"] = self.show_if_field_id
        if self.show_if_value is not None:
            payload["showIfValue"] = self.show_if_value
        if self.show_if_values is not None:
            payload["showIfValues"] = list(self.show_if_values)
        return payload

    @classmethod
    def from_dict(cls, payload: dict[str, Any], *, default_order: int = 0) -> FormSection:
        order = payload.get("order")
        show_if_values = payload.get("showIfValues")
        return cls(
            id=str(payload["id"]),
            title=str(payload.get("title") or ""),
            description=_clean_optional_str(payload.get("description")),
            order=order if isinstance(order, int) and not isinstance(order, bool) else default_order,
            hide_by_default=bool(payload.get("hideByDefault", False)),
            show_if_field_id=_clean_optional_str(payload.get("showIfFieldId")),
            show_if_value=payload.get("showIfValue") if isinstance(payload.get("showIfValue"), str) else None,
            show_if_values=tuple(str(value) for value in show_if_values)
            if isinstance(show_if_values, list)
            else None,
        )


@dataclass(frozen=True)
class FormDefinition:
    fields: tuple[FormField, ...] = ()
    sections: tuple[FormSection, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "fields", tuple(self.fields))
        object.__setattr__(self, "sections", tuple(self.sections))

    def field_by_id(self, field_id: str) -> FormField | None:
        for item in self.fields:
            if item.id == field_id:
                return item
        return None

    def section_by_id(self, section_id: str) -> FormSection | None:
        for section in self.sections:
            if section.id == section_id:
                return section
        return None

    def ordered_sections(self) -> list[FormSection]:
        return sorted(self.sections, key=lambda section: section.order)

    def fields_in_scope(self, section_id: str | None) -> list[FormField]:
        """Fields sharing ``section_id`` (None = unassigned), sorted by order."""
        return sorted(
            (item for item in self.fields if item.section_id == section_id),
            key=lambda item: item.order,
        )

    def fields_in_reading_order(self) -> list[FormField]:
        ordered = self.fields_in_scope(None)
        for section in self.ordered_sections():
            ordered.extend(self.fields_in_scope(section.id))
        return ordered

    def to_dict(self) -> dict[str, Any]:
        return {
            "fields": [item.to_dict() for item in self.fields],
            "sections": [section.to_dict() for section in self.sections],
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> FormDefinition:
        return cls(
            fields=tuple(
                FormField.from_dict(item, default_order=index)
                for index, item in enumerate(payload.get("fields") or [])
            ),
            sections=tuple(
                FormSection.from_dict(item, default_order=index)
                for index, item in enumerate(payload.get("sections") or [])
            ),
        )


def parse_form_definition(payload: Any) -> FormDefinition:
    """Shape-check a payload against the definition JSON schema and parse it."""
    if isinstance(payload, FormDefinition):
        return payload
    try:
        jsonschema.validate(payload, FORM_DEFINITION_SCHEMA)
    except jsonschema.ValidationError as exc:
        location = "/".join(str(part) for part in exc.absolute_path) or "<root>"
        raise FormDefinitionError(f"Invalid form definition at '{location}': {exc.message}") from exc
    return FormDefinition.from_dict(payload)


def load_form_definition(payload: Any) -> FormDefinition:
    """Strictly parse a form definition payload.

    Raises FormDefinitionError when the payload does not match the definition
    JSON schema, ids collide, or a field references a missing section.
    """
    definition = parse_form_definition(payload)
    errors = check_form_definition(definition)
    if errors:
        raise FormDefinitionError("; ".join(errors))
    return definition


def check_form_definition(definition: FormDefinition) -> list[str]:
    errors: list[str] = []
    errors.extend(_duplicate_ids("field", (item.id for item in definition.fields)))
    errors.extend(_duplicate_ids("section", (section.id for section in definition.sections)))

    section_ids = {section.id for section in definition.sections}
    for item in definition.fields:
        if item.section_id is not None and item.section_id not in section_ids:
            errors.append(f"Field '{item.id}' references unknown section '{item.section_id}'.")
    return errors


def _duplicate_ids(kind: str, ids: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    errors: list[str] = []
    for item_id in ids:
        if item_id in seen:
            errors.append(f"Duplicate {kind} id '{item_id}'.")
        seen.add(item_id)
    return errors


def _clean_optional_str(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    cleaned = value.strip()
    return cleaned or None
