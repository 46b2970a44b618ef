from __future__ import annotations

import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[2]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from intakeforms.form_model import FieldType, FormDefinition, FormField, FormSection  # noqa: E402
from intakeforms.form_visibility import resolve_visibility  # noqa: E402


def _definition() -> FormDefinition:
    return FormDefinition(
        fields=[
            FormField(
                id="choice",
                type=FieldType.SINGLE_CHOICE_VISIBLE,
                options=("A", "B"),
                order=0,
            ),
            FormField(
                id="opt",
                type=FieldType.SINGLE_CHOICE_DROPDOWN,
                options=("X", "Y"),
                order=1,
                option_section_map={"X": "S3", "Y": "missing"},
            ),
            FormField(id="always", type=FieldType.SHORT_TEXT, order=0, section_id="S1"),
            FormField(id="b_details", type=FieldType.LONG_TEXT, order=0, section_id="S2"),
            FormField(id="x_details", type=FieldType.LONG_TEXT, order=0, section_id="S3"),
        ],
        sections=[
            FormSection(id="S1", title="General", order=0),
            FormSection(id="S2", title="B only", order=1, show_if_field_id="choice", show_if_value="B"),
            FormSection(id="S3", title="X only", order=2, hide_by_default=True),
        ],
    )


def test_show_if_value_controls_section():
    definition = _definition()

    hidden = resolve_visibility(definition, {"choice": "A"})
    assert not hidden.is_section_visible("S2")
    assert not hidden.is_field_visible("b_details")

    shown = resolve_visibility(definition, {"choice": "B"})
    assert shown.is_section_visible("S2")
    assert shown.is_field_visible("b_details")


def test_option_section_map_forces_hidden_section_visible():
    definition = _definition()

    assert not resolve_visibility(definition, {"opt": ""}).is_section_visible("S3")
    forced = resolve_visibility(definition, {"opt": "X"})
    assert forced.visible_section_ids == ("S1", "S3")
    assert forced.visible_field_ids == ("choice", "opt", "always", "x_details")


def test_forced_visibility_lasts_only_while_answer_selects_section():
    definition = _definition()

    assert resolve_visibility(definition, {"opt": "X"}).is_section_visible("S3")
    assert not resolve_visibility(definition, {"opt": "Y"}).is_section_visible("S3")


def test_show_if_values_membership_and_hide_by_default():
    definition = FormDefinition(
        fields=[FormField(id="kind", type=FieldType.SINGLE_CHOICE_DROPDOWN, options=("a", "b", "c"))],
        sections=[
            FormSection(id="ab", order=0, hide_by_default=True, show_if_field_id="kind", show_if_values=("a", "b")),
            FormSection(id="never", order=1, hide_by_default=True),
        ],
    )

    assert resolve_visibility(definition, {"kind": "b"}).visible_section_ids == ("ab",)
    assert resolve_visibility(definition, {"kind": "c"}).visible_section_ids == ()
    assert resolve_visibility(definition, {}).visible_section_ids == ()


def test_unassigned_fields_are_always_visible():
    definition = _definition()
    result = resolve_visibility(definition, {})

    assert result.is_field_visible("choice")
    assert result.is_field_visible("opt")
    assert result.to_dict() == {
        "visibleSectionIds": ["S1"],
        "visibleFieldIds": ["choice", "opt", "always"],
    }


def test_resolution_is_deterministic():
    definition = _definition()
    answers = {"choice": "B", "opt": "X"}

    assert resolve_visibility(definition, answers) == resolve_visibility(definition, dict(answers))


def test_multi_choice_selections_force_every_mapped_section():
    definition = FormDefinition(
        fields=[
            FormField(
                id="topics",
                type=FieldType.MULTI_CHOICE,
                options=("bug", "billing", "other"),
                option_section_map={"bug": "S_bug", "billing": "S_billing"},
            ),
        ],
        sections=[
            FormSection(id="S_bug", order=0, hide_by_default=True),
            FormSection(id="S_billing", order=1, hide_by_default=True),
        ],
    )

    assert resolve_visibility(definition, {"topics": ["bug"]}).visible_section_ids == ("S_bug",)
    assert resolve_visibility(definition, {"topics": ["billing", "bug"]}).visible_section_ids == (
        "S_bug",
        "S_billing",
    )
    assert resolve_visibility(definition, {"topics": "billing, other"}).visible_section_ids == ("S_billing",)
    assert resolve_visibility(definition, {"topics": []}).visible_section_ids == ()
