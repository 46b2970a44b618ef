from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .form_model import (
    FieldType,
    FormDefinition,
    FormDefinitionError,
    FormField,
    FormSection,
    load_form_definition,
)
from .form_ordering import normalize_order

logger = logging.getLogger(__name__)

APPEAL_KIND = "appeal"
TICKET_KIND = "ticket"
FORM_KINDS = (APPEAL_KIND, TICKET_KIND)

LEGACY_TICKET_KEYS = {
    "bug_report": "bug",
    "support_request": "support",
    "staff_application": "application",
}
TICKET_TYPE_FALLBACKS = {"staff": "application"}


class FormStoreError(ValueError):
    pass


class FormNotFoundError(FormStoreError):
    pass


def default_appeal_form() -> FormDefinition:
    return FormDefinition(
        fields=(
            FormField(
                id="why",
                type=FieldType.LONG_TEXT,
                label="Why should this punishment be amended?",
                description="Please provide context and any relevant information to support your appeal",
                required=True,
                order=0,
                section_id="appeal_reason_section",
            ),
        ),
        sections=(
            FormSection(
                id="appeal_reason_section",
                title="Appeal Information",
                description="Explain why you believe this punishment should be amended",
                order=0,
            ),
        ),
    )


class FormStore:
    """
    Persists appeal and ticket form definitions in a single JSON file.
    """

    def __init__(self, *, root: Path, filename: str = "forms.json") -> None:
        self.root = root
        self.filename = filename
        self.root.mkdir(parents=True, exist_ok=True)

    def list_forms(self, kind: str | None = None) -> dict[str, Any]:
        kinds = FORM_KINDS if kind is None else (self._normalize_kind(kind),)
        payload = self._read_store()
        forms = []
        for form_kind in kinds:
            for key, entry in sorted(payload[self._bucket(form_kind)].items()):
                definition = entry.get("definition")
                if not isinstance(definition, dict):
                    definition = {}
                forms.append(
                    {
                        "kind": form_kind,
                        "key": key,
                        "field_count": len(definition.get("fields", [])),
                        "section_count": len(definition.get("sections", [])),
                        "updated_at": entry.get("updated_at"),
                    }
                )
        return {"forms": forms, "count": len(forms)}

    def get_form(self, kind: str, key: str) -> FormDefinition:
        return self.get_form_record(kind, key)["definition"]

    def get_form_record(self, kind: str, key: str) -> dict[str, Any]:
        form_kind = self._normalize_kind(kind)
        form_key = self._normalize_key(form_kind, key)
        bucket = self._read_store()[self._bucket(form_kind)]

        lookup_keys = [form_key]
        if form_kind == TICKET_KIND and form_key in TICKET_TYPE_FALLBACKS:
            lookup_keys.append(TICKET_TYPE_FALLBACKS[form_key])
        for lookup_key in lookup_keys:
            entry = bucket.get(lookup_key)
            if entry is None:
                continue
            try:
                definition = load_form_definition(entry.get("definition"))
            except FormDefinitionError as exc:
                raise FormStoreError(f"Stored {form_kind} form '{lookup_key}' is invalid: {exc}") from exc
            return {
                "kind": form_kind,
                "key": lookup_key,
                "source": "stored",
                "definition": definition,
                "updated_at": entry.get("updated_at"),
            }

        if form_kind == APPEAL_KIND:
            return {
                "kind": form_kind,
                "key": form_key,
                "source": "default",
                "definition": default_appeal_form(),
                "updated_at": None,
            }
        raise FormNotFoundError(f"No {form_kind} form stored for '{form_key}'.")

    def save_form(self, kind: str, key: str, definition: FormDefinition | dict[str, Any]) -> dict[str, Any]:
        form_kind = self._normalize_kind(kind)
        form_key = self._normalize_key(form_kind, key)
        try:
            normalized = normalize_order(load_form_definition(definition))
        except FormDefinitionError as exc:
            raise FormStoreError(str(exc)) from exc

        payload = self._read_store()
        timestamp = self._now_iso()
        payload[self._bucket(form_kind)][form_key] = {
            "definition": normalized.to_dict(),
            "updated_at": timestamp,
        }
        self._write_store(payload)
        logger.info(
            "Saved %s form '%s' with %s field(s) and %s section(s)",
            form_kind,
            form_key,
            len(normalized.fields),
            len(normalized.sections),
        )
        return {
            "kind": form_kind,
            "key": form_key,
            "source": "stored",
            "definition": normalized,
            "updated_at": timestamp,
        }

    def delete_form(self, kind: str, key: str) -> None:
        form_kind = self._normalize_kind(kind)
        form_key = self._normalize_key(form_kind, key)
        payload = self._read_store()
        bucket = payload[self._bucket(form_kind)]
        if form_key not in bucket:
            raise FormNotFoundError(f"No {form_kind} form stored for '{form_key}'.")
        del bucket[form_key]
        self._write_store(payload)
        logger.info("Deleted %s form '%s'", form_kind, form_key)

    def _store_path(self) -> Path:
        return self.root / self.filename

    def _default_payload(self) -> dict[str, Any]:
        return {"appeal_forms": {}, "ticket_forms": {}}

    def _bucket(self, kind: str) -> str:
        return f"{kind}_forms"

    def _read_store(self) -> dict[str, Any]:
        store_path = self._store_path()
        if not store_path.exists():
            return self._default_payload()
        try:
            payload = json.loads(store_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise FormStoreError(f"Failed to read form store: {exc}") from exc
        if not isinstance(payload, dict):
            raise FormStoreError("Invalid form store: expected object.")

        for kind in FORM_KINDS:
            bucket = payload.get(self._bucket(kind))
            if not isinstance(bucket, dict):
                bucket = {}
            payload[self._bucket(kind)] = {
                str(key): self._wrap_entry(entry) for key, entry in bucket.items() if isinstance(entry, dict)
            }
        payload["ticket_forms"] = self._migrate_ticket_keys(payload["ticket_forms"])
        return payload

    def _write_store(self, payload: dict[str, Any]) -> None:
        store_path = self._store_path()
        tmp_path = store_path.with_name(f"{store_path.name}.tmp")
        try:
            tmp_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            tmp_path.replace(store_path)
        except OSError as exc:
            raise FormStoreError(f"Failed to persist form store: {exc}") from exc

    def _wrap_entry(self, entry: dict[str, Any]) -> dict[str, Any]:
        # Older stores kept the bare {fields, sections} object per key.
        if "definition" in entry:
            return entry
        return {"definition": entry, "updated_at": None}

    def _migrate_ticket_keys(self, bucket: dict[str, Any]) -> dict[str, Any]:
        migrated = dict(bucket)
        for legacy_key, key in LEGACY_TICKET_KEYS.items():
            if legacy_key not in migrated:
                continue
            entry = migrated.pop(legacy_key)
            if key not in migrated:
                migrated[key] = entry
                logger.info("Migrated legacy ticket form key '%s' to '%s'", legacy_key, key)
        return migrated

    def _normalize_kind(self, kind: str) -> str:
        normalized = str(kind or "").strip().lower()
        if normalized not in FORM_KINDS:
            raise FormStoreError(f"Unknown form kind '{kind}'.")
        return normalized

    def _normalize_key(self, kind: str, key: str) -> str:
        normalized = str(key or "").strip()
        if not normalized:
            raise FormStoreError("Form key is required.")
        if kind == TICKET_KIND:
            normalized = normalized.lower()
            normalized = LEGACY_TICKET_KEYS.get(normalized, normalized)
        return normalized

    def _now_iso(self) -> str:
        return (
            datetime.now(timezone.utc)
            .replace(microsecond=0)
            .isoformat()
            .replace("+00:00", "Z")
        )
