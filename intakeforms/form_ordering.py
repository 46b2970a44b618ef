from __future__ import annotations

from dataclasses import replace
from typing import Iterable, Sequence, TypeVar

from .form_model import FormDefinition, FormField, FormSection


OrderedItem = TypeVar("OrderedItem", FormField, FormSection)


class OrderingError(ValueError):
    pass


def renumber(items: Iterable[OrderedItem]) -> list[OrderedItem]:
    """Assign ``order`` 0..n-1 following the given sequence."""
    return [item if item.order == index else replace(item, order=index) for index, item in enumerate(items)]


def move_within_scope(items: Sequence[OrderedItem], from_index: int, to_index: int) -> list[OrderedItem]:
    """Move one item inside a scope and renumber the whole scope.

    Indices address the scope sorted by ``order``. The result is the scope in
    its new order with contiguous ``order`` values.
    """
    ordered = sorted(items, key=lambda item: item.order)
    _check_index(from_index, len(ordered), "from_index")
    _check_index(to_index, len(ordered), "to_index")
    moved = ordered.pop(from_index)
    ordered.insert(to_index, moved)
    return renumber(ordered)


def move_section(definition: FormDefinition, from_index: int, to_index: int) -> FormDefinition:
    updated = move_within_scope(definition.sections, from_index, to_index)
    return _with_sections(definition, updated)


def move_field(
    definition: FormDefinition,
    section_id: str | None,
    from_index: int,
    to_index: int,
) -> FormDefinition:
    _require_scope(definition, section_id)
    updated = move_within_scope(definition.fields_in_scope(section_id), from_index, to_index)
    return _with_fields(definition, updated)


def move_field_across_sections(
    definition: FormDefinition,
    field_id: str,
    from_section_id: str | None,
    to_section_id: str | None,
    target_index: int | None = None,
) -> FormDefinition:
    """Reassign a field to another scope.

    With ``target_index`` the field lands at that position and later fields
    of the target scope shift down by one; without it the field is appended.
    The vacated source scope is renumbered.
    """
    form_field = _require_field(definition, field_id)
    if form_field.section_id != from_section_id:
        raise OrderingError(
            f"Field '{field_id}' is in section '{form_field.section_id}', not '{from_section_id}'."
        )
    _require_scope(definition, to_section_id)

    if from_section_id == to_section_id:
        scope = definition.fields_in_scope(from_section_id)
        current = [item.id for item in scope].index(field_id)
        destination = len(scope) - 1 if target_index is None else target_index
        return move_field(definition, from_section_id, current, destination)

    target = definition.fields_in_scope(to_section_id)
    if target_index is None:
        new_order = max(item.order for item in target) + 1 if target else 0
        shifted = list(target)
    else:
        _check_index(target_index, len(target) + 1, "target_index")
        new_order = target_index
        shifted = [
            replace(item, order=item.order + 1) if item.order >= target_index else item
            for item in target
        ]
    moved = replace(form_field, section_id=to_section_id, order=new_order)
    target_scope = renumber(sorted([*shifted, moved], key=lambda item: item.order))

    source_scope = renumber(
        item for item in definition.fields_in_scope(from_section_id) if item.id != field_id
    )
    return _with_fields(definition, [*source_scope, *target_scope])


def delete_field(definition: FormDefinition, field_id: str) -> FormDefinition:
    form_field = _require_field(definition, field_id)
    remaining = renumber(
        item for item in definition.fields_in_scope(form_field.section_id) if item.id != field_id
    )
    return _with_fields(definition, remaining, removed_ids={field_id})


def delete_section(definition: FormDefinition, section_id: str) -> FormDefinition:
    """Delete a section together with every field it holds."""
    if definition.section_by_id(section_id) is None:
        raise OrderingError(f"Unknown section '{section_id}'.")
    cascaded = {item.id for item in definition.fields if item.section_id == section_id}
    pruned = _with_fields(definition, [], removed_ids=cascaded)
    remaining = renumber(section for section in pruned.ordered_sections() if section.id != section_id)
    return _with_sections(pruned, remaining, removed_ids={section_id})


def add_section(definition: FormDefinition, section: FormSection, index: int | None = None) -> FormDefinition:
    if definition.section_by_id(section.id) is not None:
        raise OrderingError(f"Section '{section.id}' already exists.")
    ordered = definition.ordered_sections()
    position = _insert_position(index, len(ordered))
    ordered.insert(position, section)
    return _with_sections(definition, renumber(ordered))


def add_field(definition: FormDefinition, form_field: FormField, index: int | None = None) -> FormDefinition:
    if definition.field_by_id(form_field.id) is not None:
        raise OrderingError(f"Field '{form_field.id}' already exists.")
    _require_scope(definition, form_field.section_id)
    scope = definition.fields_in_scope(form_field.section_id)
    position = _insert_position(index, len(scope))
    scope.insert(position, form_field)
    return _with_fields(definition, renumber(scope))


def normalize_order(definition: FormDefinition) -> FormDefinition:
    """Renumber every scope from its current ``order`` values (stable on ties)."""
    fields: list[FormField] = []
    for scope_id in _scope_ids(definition):
        fields.extend(renumber(definition.fields_in_scope(scope_id)))
    normalized = _with_fields(definition, fields)
    return _with_sections(normalized, renumber(definition.ordered_sections()))


def order_problems(definition: FormDefinition) -> list[str]:
    problems: list[str] = []
    section_orders = sorted(section.order for section in definition.sections)
    if section_orders != list(range(len(section_orders))):
        problems.append(f"sections: order {section_orders} is not contiguous from 0")
    for scope_id in _scope_ids(definition):
        orders = [item.order for item in definition.fields_in_scope(scope_id)]
        if orders != list(range(len(orders))):
            label = scope_id if scope_id is not None else "<unassigned>"
            problems.append(f"fields in {label}: order {orders} is not contiguous from 0")
    return problems


def _scope_ids(definition: FormDefinition) -> list[str | None]:
    scope_ids: list[str | None] = []
    for item in definition.fields:
        if item.section_id not in scope_ids:
            scope_ids.append(item.section_id)
    return scope_ids


def _with_fields(
    definition: FormDefinition,
    updated: Iterable[FormField],
    *,
    removed_ids: set[str] | frozenset[str] = frozenset(),
) -> FormDefinition:
    # Existing fields keep their position in the definition; new ones are appended.
    by_id = {item.id: item for item in updated}
    fields = [by_id.pop(item.id, item) for item in definition.fields if item.id not in removed_ids]
    fields.extend(by_id.values())
    return replace(definition, fields=tuple(fields))


def _with_sections(
    definition: FormDefinition,
    updated: Iterable[FormSection],
    *,
    removed_ids: set[str] | frozenset[str] = frozenset(),
) -> FormDefinition:
    by_id = {section.id: section for section in updated}
    sections = [
        by_id.pop(section.id, section) for section in definition.sections if section.id not in removed_ids
    ]
    sections.extend(by_id.values())
    return replace(definition, sections=tuple(sections))


def _require_field(definition: FormDefinition, field_id: str) -> FormField:
    form_field = definition.field_by_id(field_id)
    if form_field is None:
        raise OrderingError(f"Unknown field '{field_id}'.")
    return form_field


def _require_scope(definition: FormDefinition, section_id: str | None) -> None:
    if section_id is not None and definition.section_by_id(section_id) is None:
        raise OrderingError(f"Unknown section '{section_id}'.")


def _check_index(index: int, size: int, name: str) -> None:
    if isinstance(index, bool) or not isinstance(index, int):
        raise OrderingError(f"{name} must be an integer.")
    if not 0 <= index < size:
        raise OrderingError(f"{name} {index} is out of range for a scope of {size} item(s).")


def _insert_position(index: int | None, size: int) -> int:
    if index is None:
        return size
    _check_index(index, size + 1, "index")
    return index
