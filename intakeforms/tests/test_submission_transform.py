from __future__ import annotations

import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[2]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from intakeforms.form_model import FieldType, FormDefinition, FormField, FormSection  # noqa: E402
from intakeforms.submission_transform import (  # noqa: E402
    build_appeal_payload,
    build_ticket_submission,
    transform_submission,
)


def _appeal_definition() -> FormDefinition:
    return FormDefinition(
        fields=[
            FormField(id="reason", type=FieldType.LONG_TEXT, label="Why should we unban you?", order=0, section_id="main"),
            FormField(id="proof_links", type=FieldType.SHORT_TEXT, label="Proof", order=1, section_id="main"),
            FormField(id="agree", type=FieldType.BOOLEAN_TOGGLE, label="I agree to the rules", order=0),
            FormField(id="servers", type=FieldType.MULTI_CHOICE, label="Servers", options=("Lobby", "Survival"), order=1),
            FormField(id="stars", type="star_rating", label="Rating", order=2),
        ],
        sections=[FormSection(id="main", title="Appeal", order=0)],
    )


def test_attachments_follow_field_order_and_fill_defaults():
    definition = FormDefinition(
        fields=[
            FormField(id="first", type=FieldType.FILE_LIST, label="Screenshots", order=0),
            FormField(id="second", type=FieldType.FILE_LIST, label="Documents", order=1),
        ]
    )
    record = transform_submission(
        definition,
        {
            "first": [{"url": "a.png"}],
            "second": [{"url": "b.pdf", "fileName": "report.pdf", "fileType": "application/pdf", "fileSize": 42}],
        },
    )

    assert [attachment.to_dict() for attachment in record.attachments] == [
        {"url": "a.png", "fileName": "a.png", "fileType": "application/octet-stream"},
        {"url": "b.pdf", "fileName": "report.pdf", "fileType": "application/pdf", "fileSize": 42},
    ]
    assert record.narrative == "**Screenshots:**\n• a.png\n\n**Documents:**\n• report.pdf\n\n"


def test_bare_url_strings_become_attachments():
    definition = FormDefinition(fields=[FormField(id="upload", type=FieldType.FILE_LIST, label="Upload")])
    record = transform_submission(definition, {"upload": "https://cdn.example.com/files/clip.mp4"})

    assert record.attachments[0].file_name == "clip.mp4"
    assert record.attachments[0].url == "https://cdn.example.com/files/clip.mp4"


def test_narrative_reading_order_and_value_rendering():
    record = transform_submission(
        _appeal_definition(),
        {
            "reason": "I was not cheating, my client lagged.",
            "proof_links": "",
            "agree": False,
            "servers": ["Lobby", "Survival"],
            "stars": 5,
        },
    )

    assert record.narrative == (
        "**I agree to the rules:**\nNo\n\n"
        "**Servers:**\n• Lobby\n• Survival\n\n"
        "**Why should we unban you?:**\nI was not cheating, my client lagged.\n\n"
    )


def test_reason_and_evidence_are_classified_out_of_additional_data():
    answers = {
        "banId": "ABC123",
        "email": "player@example.com",
        "reason": "I was not cheating, my client lagged.",
        "proof_links": "https://clips.example.com/1",
        "servers": ["Lobby"],
        "stars": 4,
    }
    record = transform_submission(_appeal_definition(), answers)

    assert record.reason == "I was not cheating, my client lagged."
    assert record.evidence == "https://clips.example.com/1"
    assert record.additional_data == {"agree": False, "servers": ["Lobby"], "stars": 4}
    assert record.field_labels["stars"] == "Rating"


def test_transform_is_idempotent_and_does_not_alias_answers():
    answers = {"servers": ["Lobby"], "reason": "Long enough reason here."}
    definition = _appeal_definition()

    first = transform_submission(definition, answers)
    second = transform_submission(definition, answers)
    assert first.to_json() == second.to_json()

    answers["servers"].append("Survival")
    assert first.additional_data["servers"] == ["Lobby"]


def test_build_appeal_payload_shape():
    record = transform_submission(_appeal_definition(), {"reason": "Please review my ban again."})
    payload = build_appeal_payload(record, identifier="ABC123", contact="player@example.com", player_uuid="uuid-1")

    assert payload["punishmentId"] == "ABC123"
    assert payload["playerUuid"] == "uuid-1"
    assert payload["email"] == "player@example.com"
    assert payload["reason"] == "Please review my ban again."
    assert payload["evidence"] == ""
    assert payload["content"] == record.narrative
    assert payload["attachments"] == []


def test_build_ticket_submission_keeps_raw_form_data():
    definition = FormDefinition(
        fields=[FormField(id="steps", type=FieldType.LONG_TEXT, label="Steps to reproduce")]
    )
    answers = {"steps": "Open the menu and click play."}
    record = transform_submission(definition, answers)
    submission = build_ticket_submission(record, answers, subject="Game crashes")

    assert submission == {
        "subject": "Game crashes",
        "formData": {"steps": "Open the menu and click play."},
        "content": "**Steps to reproduce:**\nOpen the menu and click play.\n\n",
        "attachments": [],
        "fieldLabels": {"steps": "Steps to reproduce"},
    }


def test_attachments_keep_definition_order_across_sections():
    definition = FormDefinition(
        fields=[
            FormField(id="clip", type=FieldType.FILE_LIST, label="Clip", order=0, section_id="later"),
            FormField(id="shot", type=FieldType.FILE_LIST, label="Screenshot", order=0, section_id="first"),
        ],
        sections=[
            FormSection(id="first", title="First", order=0),
            FormSection(id="later", title="Later", order=1),
        ],
    )
    record = transform_submission(definition, {"clip": ["https://cdn/clip.mp4"], "shot": ["https://cdn/shot.png"]})

    assert [attachment.file_name for attachment in record.attachments] == ["clip.mp4", "shot.png"]
    assert record.narrative == "**Screenshot:**\n• shot.png\n\n**Clip:**\n• clip.mp4\n\n"


def test_system_fields_are_left_out_of_narrative():
    definition = FormDefinition(
        fields=[
            FormField(id="email", type=FieldType.SHORT_TEXT, label="Email", order=0),
            FormField(id="details", type=FieldType.LONG_TEXT, label="Details", order=1),
        ]
    )
    record = transform_submission(
        definition,
        {"email": "player@example.com", "details": "The shop menu is empty."},
    )

    assert record.narrative == "**Details:**\nThe shop menu is empty.\n\n"
    assert "email" not in record.additional_data
