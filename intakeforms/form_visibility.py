from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .form_model import FieldType, FormDefinition, FormField, FormSection


@dataclass(frozen=True)
class VisibilityResult:
    visible_section_ids: tuple[str, ...]
    visible_field_ids: tuple[str, ...]

    def is_section_visible(self, section_id: str) -> bool:
        return section_id in self.visible_section_ids

    def is_field_visible(self, field_id: str) -> bool:
        return field_id in self.visible_field_ids

    def to_dict(self) -> dict[str, Any]:
        return {
            "visibleSectionIds": list(self.visible_section_ids),
            "visibleFieldIds": list(self.visible_field_ids),
        }


def resolve_visibility(definition: FormDefinition, answers: dict[str, Any]) -> VisibilityResult:
    """Compute the sections and fields shown for the current answers.

    A section starts from its declarative rule (``hideByDefault`` then any
    ``showIf`` condition). Afterwards every field with an option-to-section
    map forces the mapped section visible when its current answer selects
    it (every selected option of a multi-choice field counts); nothing can
    force a section hidden. Unassigned fields are always visible, other
    fields follow their section.
    """
    visible = {
        section.id: _declared_visibility(section, answers)
        for section in definition.sections
    }

    for form_field in definition.fields:
        if not form_field.option_section_map:
            continue
        for selected in _selected_options(form_field, answers.get(form_field.id)):
            target = form_field.option_section_map.get(selected)
            if target in visible:
                visible[target] = True

    section_ids = tuple(section.id for section in definition.ordered_sections() if visible[section.id])
    field_ids = tuple(
        form_field.id
        for form_field in definition.fields_in_reading_order()
        if form_field.section_id is None or visible.get(form_field.section_id, False)
    )
    return VisibilityResult(visible_section_ids=section_ids, visible_field_ids=field_ids)


def _declared_visibility(section: FormSection, answers: dict[str, Any]) -> bool:
    if section.show_if_field_id:
        answer = answers.get(section.show_if_field_id)
        if section.show_if_value:
            return answer == section.show_if_value
        if section.show_if_values is not None:
            return answer in section.show_if_values
    return not section.hide_by_default


def _selected_options(form_field: FormField, answer: Any) -> list[str]:
    if isinstance(answer, (list, tuple)):
        return [item for item in answer if isinstance(item, str)]
    if not isinstance(answer, str):
        return []
    if form_field.field_type is FieldType.MULTI_CHOICE:
        # Multi-choice selections may arrive joined as "a, b".
        return [part.strip() for part in answer.split(",") if part.strip()]
    return [answer]
