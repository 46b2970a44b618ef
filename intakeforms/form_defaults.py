from __future__ import annotations

from typing import Any, Iterable

from .form_model import SYSTEM_FIELD_IDS, FieldType, FormField


_DEFAULT_FACTORIES = {
    FieldType.SHORT_TEXT: str,
    FieldType.LONG_TEXT: str,
    FieldType.SINGLE_CHOICE_DROPDOWN: str,
    FieldType.SINGLE_CHOICE_VISIBLE: str,
    FieldType.BOOLEAN_TOGGLE: bool,
    FieldType.MULTI_CHOICE: list,
    FieldType.FILE_LIST: str,
}


def default_value(form_field: FormField) -> Any:
    factory = _DEFAULT_FACTORIES.get(form_field.field_type, str)
    return factory()


def default_answers(fields: Iterable[FormField]) -> dict[str, Any]:
    return {form_field.id: default_value(form_field) for form_field in fields}


def reseed_answers(
    fields: Iterable[FormField],
    answers: dict[str, Any],
    *,
    preserved_ids: Iterable[str] = SYSTEM_FIELD_IDS,
) -> dict[str, Any]:
    """Re-seed an answer map after the form definition changed.

    Fields that are still present keep their answers, new fields get their
    default, and answers for removed fields are dropped. ``preserved_ids``
    (the identifier and contact fields by default) always survive.
    """
    seeded: dict[str, Any] = {
        key: answers[key] for key in preserved_ids if key in answers
    }
    for form_field in fields:
        if form_field.id in answers:
            seeded[form_field.id] = answers[form_field.id]
        else:
            seeded[form_field.id] = default_value(form_field)
    return seeded
