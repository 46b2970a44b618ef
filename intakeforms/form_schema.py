from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable

from jsonschema import Draft7Validator, FormatChecker
from jsonschema.exceptions import ValidationError

from .form_model import (
    CONTACT_FIELD_ID,
    IDENTIFIER_FIELD_ID,
    SYSTEM_FIELD_IDS,
    FieldType,
    FormDefinitionError,
    FormField,
    parse_form_definition,
)

logger = logging.getLogger(__name__)

IDENTIFIER_MIN_LENGTH = 6
FALLBACK_REASON_FIELD_ID = "reason"
FALLBACK_REASON_MIN_LENGTH = 20

_REQUIRED_MIN_LENGTHS = {
    FieldType.SHORT_TEXT: 1,
    FieldType.LONG_TEXT: 10,
}
_NON_BLANK = r"\S"
_FORMAT_CHECKER = FormatChecker()


class IssueKind(str, Enum):
    REQUIRED = "required"
    MIN_LENGTH = "min_length"
    INVALID_CHOICE = "invalid_choice"
    INVALID_FORMAT = "invalid_format"


class RuleKind(str, Enum):
    TEXT = "text"
    CHOICE = "choice"
    MULTI_CHOICE = "multi_choice"
    BOOLEAN = "boolean"
    FILES = "files"
    EMAIL = "email"


_RULE_KINDS = {
    FieldType.SHORT_TEXT: RuleKind.TEXT,
    FieldType.LONG_TEXT: RuleKind.TEXT,
    FieldType.SINGLE_CHOICE_DROPDOWN: RuleKind.CHOICE,
    FieldType.SINGLE_CHOICE_VISIBLE: RuleKind.CHOICE,
    FieldType.BOOLEAN_TOGGLE: RuleKind.BOOLEAN,
    FieldType.MULTI_CHOICE: RuleKind.MULTI_CHOICE,
    FieldType.FILE_LIST: RuleKind.FILES,
}

# Value checked when an answer is missing from the map.
_EMPTY_VALUES = {
    RuleKind.TEXT: "",
    RuleKind.CHOICE: "",
    RuleKind.MULTI_CHOICE: (),
    RuleKind.BOOLEAN: False,
    RuleKind.FILES: "",
    RuleKind.EMAIL: "",
}

# Lower rank wins when one value breaks several keywords.
_ISSUE_RANK = {
    IssueKind.REQUIRED: 0,
    IssueKind.INVALID_FORMAT: 1,
    IssueKind.MIN_LENGTH: 2,
    IssueKind.INVALID_CHOICE: 3,
}


@dataclass(frozen=True)
class ValidationIssue:
    field_id: str
    kind: IssueKind
    message: str
    minimum: int | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "fieldId": self.field_id,
            "kind": self.kind.value,
            "message": self.message,
        }
        if self.minimum is not None:
            payload["minimum"] = self.minimum
        return payload


@dataclass(frozen=True)
class FieldRule:
    field_id: str
    kind: RuleKind
    label: str
    required: bool = False
    min_length: int = 0
    choices: tuple[str, ...] = ()

    def json_schema(self) -> dict[str, Any]:
        """JSON Schema (draft 7) for this field's answer value."""
        if self.kind is RuleKind.TEXT:
            schema: dict[str, Any] = {"type": "string"}
            if self.min_length:
                schema["minLength"] = self.min_length
            return schema
        if self.kind is RuleKind.EMAIL:
            schema = {"type": "string", "format": "email"}
            if self.required:
                schema["minLength"] = 1
            return schema
        if self.kind is RuleKind.CHOICE:
            schema = {"type": "string"}
            if self.required:
                schema["minLength"] = 1
            if self.choices:
                schema["enum"] = list(self.choices) if self.required else ["", *self.choices]
            return schema
        if self.kind is RuleKind.MULTI_CHOICE:
            items: dict[str, Any] = {"type": "string"}
            if self.choices:
                items["enum"] = list(self.choices)
            schema = {"type": "array", "items": items}
            if self.required:
                schema["minItems"] = 1
            return schema
        if self.kind is RuleKind.BOOLEAN:
            schema = {"type": "boolean"}
            if self.required:
                schema["const"] = True
            return schema
        return _files_schema(self.required)

    def check(self, value: Any) -> ValidationIssue | None:
        if value is None:
            value = _EMPTY_VALUES[self.kind]
        if isinstance(value, tuple):
            value = list(value)
        validator = Draft7Validator(self.json_schema(), format_checker=_FORMAT_CHECKER)
        issues = [self._issue_from_error(error) for error in validator.iter_errors(value)]
        if not issues:
            return None
        return min(issues, key=lambda issue: _ISSUE_RANK[issue.kind])

    def issue(self, kind: IssueKind, message: str, minimum: int | None = None) -> ValidationIssue:
        return ValidationIssue(field_id=self.field_id, kind=kind, message=message, minimum=minimum)

    def to_dict(self) -> dict[str, Any]:
        return {
            "fieldId": self.field_id,
            "kind": self.kind.value,
            "label": self.label,
            "required": self.required,
            "minLength": self.min_length,
            "choices": list(self.choices),
            "schema": self.json_schema(),
        }

    def _issue_from_error(self, error: ValidationError) -> ValidationIssue:
        keyword = error.validator
        if keyword == "minLength":
            if error.instance == "":
                return self.issue(IssueKind.REQUIRED, f"{self.label} is required")
            return self.issue(
                IssueKind.MIN_LENGTH,
                f"{self.label} must be at least {error.validator_value} characters",
                minimum=error.validator_value,
            )
        if keyword == "minItems":
            if self.kind is RuleKind.MULTI_CHOICE:
                return self.issue(IssueKind.REQUIRED, f"At least one {self.label} must be selected")
            return self.issue(IssueKind.REQUIRED, f"{self.label} is required")
        if keyword == "const":
            return self.issue(IssueKind.REQUIRED, f"{self.label} must be checked")
        if keyword == "enum":
            return self.issue(IssueKind.INVALID_CHOICE, f"'{error.instance}' is not an option for {self.label}")
        if self.kind is RuleKind.EMAIL:
            return self.issue(IssueKind.INVALID_FORMAT, "Please enter a valid email address")
        return self.issue(IssueKind.INVALID_FORMAT, f"{self.label} has an invalid value: {error.message}")


@dataclass(frozen=True)
class FormSchema:
    rules: dict[str, FieldRule] = field(default_factory=dict)
    fallback: bool = False

    def __contains__(self, field_id: object) -> bool:
        return field_id in self.rules

    def __getitem__(self, field_id: str) -> FieldRule:
        return self.rules[field_id]

    def __len__(self) -> int:
        return len(self.rules)

    def validate(
        self,
        answers: dict[str, Any],
        *,
        only: Iterable[str] | None = None,
    ) -> list[ValidationIssue]:
        """Check every rule against ``answers``.

        ``only`` limits the check to the given field ids (usually the visible
        fields); the identifier and contact fields are always checked.
        """
        selected = None if only is None else set(only) | set(SYSTEM_FIELD_IDS)
        issues: list[ValidationIssue] = []
        for field_id, rule in self.rules.items():
            if selected is not None and field_id not in selected:
                continue
            issue = rule.check(answers.get(field_id))
            if issue is not None:
                issues.append(issue)
        return issues

    def accepts(self, answers: dict[str, Any], *, only: Iterable[str] | None = None) -> bool:
        return not self.validate(answers, only=only)

    def to_dict(self) -> dict[str, Any]:
        return {
            "fallback": self.fallback,
            "rules": {field_id: rule.to_dict() for field_id, rule in self.rules.items()},
        }


def derive_schema(definition: Any, *, include_system_fields: bool = False) -> FormSchema:
    """Derive per-field validation rules from a form definition.

    ``definition`` may be a FormDefinition, a raw definition payload, or a
    sequence of fields (FormField instances or their JSON objects). Input
    that is not a valid definition degrades to the built-in fallback schema
    instead of raising.
    """
    try:
        fields = _fields_from(definition)
    except FormDefinitionError as exc:
        logger.warning("Malformed form definition, using fallback schema: %s", exc)
        return fallback_schema()

    rules: dict[str, FieldRule] = {}
    if include_system_fields:
        rules.update(_system_rules())
    for form_field in fields:
        rule = _rule_for_field(form_field)
        if rule is not None:
            rules[form_field.id] = rule
    return FormSchema(rules=rules)


def fallback_schema() -> FormSchema:
    rules = _system_rules()
    rules[FALLBACK_REASON_FIELD_ID] = FieldRule(
        field_id=FALLBACK_REASON_FIELD_ID,
        kind=RuleKind.TEXT,
        label="Reason",
        required=True,
        min_length=FALLBACK_REASON_MIN_LENGTH,
    )
    return FormSchema(rules=rules, fallback=True)


def _fields_from(definition: Any) -> list[FormField]:
    if isinstance(definition, (list, tuple)):
        if all(isinstance(item, FormField) for item in definition):
            return list(definition)
        return list(parse_form_definition({"fields": list(definition)}).fields)
    return list(parse_form_definition(definition).fields)


def _system_rules() -> dict[str, FieldRule]:
    return {
        IDENTIFIER_FIELD_ID: FieldRule(
            field_id=IDENTIFIER_FIELD_ID,
            kind=RuleKind.TEXT,
            label="Ban ID",
            required=True,
            min_length=IDENTIFIER_MIN_LENGTH,
        ),
        CONTACT_FIELD_ID: FieldRule(
            field_id=CONTACT_FIELD_ID,
            kind=RuleKind.EMAIL,
            label="Email",
            required=True,
        ),
    }


def _rule_for_field(form_field: FormField) -> FieldRule | None:
    field_type = form_field.field_type
    if field_type is None:
        logger.debug("Skipping field '%s' with unsupported type '%s'", form_field.id, form_field.type)
        return None
    min_length = _REQUIRED_MIN_LENGTHS.get(field_type, 0) if form_field.required else 0
    return FieldRule(
        field_id=form_field.id,
        kind=_RULE_KINDS[field_type],
        label=form_field.label or form_field.id,
        required=form_field.required,
        min_length=min_length,
        choices=form_field.options,
    )


def _files_schema(required: bool) -> dict[str, Any]:
    # A bare string is the legacy single-upload form; otherwise a list of
    # URL strings or {url, fileName?, fileType?, fileSize?} descriptors.
    entry = {
        "anyOf": [
            {"type": "string", "pattern": _NON_BLANK},
            {
                "type": "object",
                "required": ["url"],
                "properties": {"url": {"type": "string", "pattern": _NON_BLANK}},
            },
        ]
    }
    as_string: dict[str, Any] = {"minLength": 1} if required else {}
    as_list: dict[str, Any] = {"type": "array", "items": entry}
    if required:
        as_list["minItems"] = 1
    return {"if": {"type": "string"}, "then": as_string, "else": as_list}
