from __future__ import annotations

import copy
import json
from dataclasses import dataclass, field
from typing import Any

from .form_defaults import default_value
from .form_model import SYSTEM_FIELD_IDS, FieldType, FormDefinition, FormField


DEFAULT_FILE_TYPE = "application/octet-stream"

REASON_FIELD_IDS = ("reason", "appeal_reason", "why_appeal", "explanation")
REASON_LABEL_KEYWORDS = ("reason", "why")
EVIDENCE_FIELD_IDS = ("evidence", "proof", "screenshots", "links")
EVIDENCE_LABEL_KEYWORDS = ("evidence", "proof")


@dataclass(frozen=True)
class Attachment:
    url: str
    file_name: str
    file_type: str = DEFAULT_FILE_TYPE
    file_size: int | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "url": self.url,
            "fileName": self.file_name,
            "fileType": self.file_type,
        }
        if self.file_size is not None:
            payload["fileSize"] = self.file_size
        return payload

    @classmethod
    def from_value(cls, value: Any) -> Attachment | None:
        """Build an attachment from a rich descriptor or a bare URL/path string."""
        if isinstance(value, str):
            if not value.strip():
                return None
            return cls(url=value, file_name=_last_path_segment(value))
        if not isinstance(value, dict):
            return None
        url = value.get("url")
        if not isinstance(url, str) or not url.strip():
            return None
        file_name = value.get("fileName")
        file_type = value.get("fileType")
        file_size = value.get("fileSize")
        return cls(
            url=url,
            file_name=file_name if isinstance(file_name, str) and file_name else _last_path_segment(url),
            file_type=file_type if isinstance(file_type, str) and file_type else DEFAULT_FILE_TYPE,
            file_size=file_size if isinstance(file_size, int) and not isinstance(file_size, bool) else None,
        )


@dataclass(frozen=True)
class SubmissionRecord:
    narrative: str
    reason: Any
    evidence: Any
    additional_data: dict[str, Any] = field(default_factory=dict)
    field_labels: dict[str, str] = field(default_factory=dict)
    attachments: tuple[Attachment, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "narrative": self.narrative,
            "reason": copy.deepcopy(self.reason),
            "evidence": copy.deepcopy(self.evidence),
            "additionalData": copy.deepcopy(self.additional_data),
            "fieldLabels": dict(self.field_labels),
            "attachments": [attachment.to_dict() for attachment in self.attachments],
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)


def transform_submission(definition: FormDefinition, answers: dict[str, Any]) -> SubmissionRecord:
    """Turn a flat answer map into the structured submission record.

    Performs no I/O: attachment URLs are passed through untouched.
    """
    field_labels = {form_field.id: form_field.label for form_field in definition.fields}

    attachments = [
        attachment
        for form_field in definition.fields
        if form_field.field_type is FieldType.FILE_LIST
        for attachment in _attachments_from(answers.get(form_field.id))
    ]

    narrative_parts: list[str] = []
    for form_field in definition.fields_in_reading_order():
        field_type = form_field.field_type
        if field_type is None or form_field.id in SYSTEM_FIELD_IDS:
            continue
        value = answers.get(form_field.id)
        label = form_field.label or _humanize(form_field.id)
        if field_type is FieldType.FILE_LIST:
            field_attachments = _attachments_from(value)
            if field_attachments:
                names = "\n".join(f"• {attachment.file_name}" for attachment in field_attachments)
                narrative_parts.append(f"**{label}:**\n{names}\n\n")
        elif _has_value(value):
            narrative_parts.append(f"**{label}:**\n{_display_value(value)}\n\n")

    reason_field = _classify(definition.fields, REASON_FIELD_IDS, REASON_LABEL_KEYWORDS)
    excluded = {reason_field.id} if reason_field else set()
    evidence_field = _classify(
        [form_field for form_field in definition.fields if form_field.id not in excluded],
        EVIDENCE_FIELD_IDS,
        EVIDENCE_LABEL_KEYWORDS,
    )
    classified = {item.id for item in (reason_field, evidence_field) if item is not None}

    additional_data = {
        form_field.id: copy.deepcopy(_answer_or_default(form_field, answers))
        for form_field in definition.fields
        if form_field.id not in classified and form_field.id not in SYSTEM_FIELD_IDS
    }

    return SubmissionRecord(
        narrative="".join(narrative_parts),
        reason=copy.deepcopy(_answer_or_default(reason_field, answers)) if reason_field else "",
        evidence=copy.deepcopy(_answer_or_default(evidence_field, answers)) if evidence_field else "",
        additional_data=additional_data,
        field_labels=field_labels,
        attachments=tuple(attachments),
    )


def build_appeal_payload(
    record: SubmissionRecord,
    *,
    identifier: str,
    contact: str,
    player_uuid: str | None = None,
) -> dict[str, Any]:
    payload = record.to_dict()
    return {
        "punishmentId": identifier,
        "playerUuid": player_uuid,
        "email": contact,
        "reason": payload["reason"],
        "evidence": payload["evidence"],
        "additionalData": payload["additionalData"],
        "attachments": payload["attachments"],
        "fieldLabels": payload["fieldLabels"],
        "content": payload["narrative"],
    }


def build_ticket_submission(
    record: SubmissionRecord,
    answers: dict[str, Any],
    *,
    subject: str,
) -> dict[str, Any]:
    payload = record.to_dict()
    return {
        "subject": subject,
        "formData": copy.deepcopy(answers),
        "content": payload["narrative"],
        "attachments": payload["attachments"],
        "fieldLabels": payload["fieldLabels"],
    }


def _classify(
    fields: list[FormField] | tuple[FormField, ...],
    field_ids: tuple[str, ...],
    label_keywords: tuple[str, ...],
) -> FormField | None:
    for form_field in fields:
        if form_field.id.lower() in field_ids:
            return form_field
    for form_field in fields:
        label = form_field.label.lower()
        if any(keyword in label for keyword in label_keywords):
            return form_field
    return None


def _answer_or_default(form_field: FormField, answers: dict[str, Any]) -> Any:
    if form_field.id in answers:
        return answers[form_field.id]
    return default_value(form_field)


def _attachments_from(value: Any) -> list[Attachment]:
    if isinstance(value, (list, tuple)):
        entries = list(value)
    elif isinstance(value, str) and value.strip():
        entries = [value]
    else:
        entries = []
    attachments = []
    for entry in entries:
        attachment = Attachment.from_value(entry)
        if attachment is not None:
            attachments.append(attachment)
    return attachments


def _has_value(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return True
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple)):
        return any(str(item).strip() for item in value)
    return bool(str(value).strip())


def _display_value(value: Any) -> str:
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, (list, tuple)):
        return "\n".join(f"• {item}" for item in value if str(item).strip())
    return str(value)


def _last_path_segment(url: str) -> str:
    return url.split("/")[-1] or url


def _humanize(field_id: str) -> str:
    if not field_id:
        return field_id
    spaced = "".join(f" {char}" if char.isupper() else char for char in field_id[1:])
    return field_id[0].upper() + spaced
