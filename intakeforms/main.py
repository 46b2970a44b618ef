from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Callable

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from .form_defaults import default_answers, reseed_answers
from .form_model import (
    CONTACT_FIELD_ID,
    IDENTIFIER_FIELD_ID,
    FormDefinition,
    FormDefinitionError,
    FormField,
    FormSection,
    parse_form_definition,
)
from .form_ordering import (
    OrderingError,
    add_field,
    add_section,
    delete_field,
    delete_section,
    move_field,
    move_field_across_sections,
    move_section,
)
from .form_schema import derive_schema
from .form_store import APPEAL_KIND, TICKET_KIND, FormNotFoundError, FormStore, FormStoreError
from .form_visibility import resolve_visibility
from .submission_transform import build_appeal_payload, build_ticket_submission, transform_submission
from .ticket_client import TicketBackendClient, TicketBackendError

BASE_DIR = Path(__file__).resolve().parent
DATA_DIR = Path(os.getenv("INTAKEFORMS_DATA_DIR", "").strip() or BASE_DIR / "data")
TICKET_BACKEND_URL = os.getenv("TICKET_BACKEND_URL", "").strip()
TICKET_BACKEND_API_KEY = os.getenv("TICKET_BACKEND_API_KEY", "").strip()
TICKET_BACKEND_TIMEOUT_SECONDS = float(os.getenv("TICKET_BACKEND_TIMEOUT_SECONDS", "10"))
TICKET_FORWARDING_ENABLED = os.getenv("TICKET_FORWARDING_ENABLED", "true").strip().lower() not in {
    "0",
    "false",
    "off",
    "no",
}

form_store = FormStore(root=DATA_DIR)
ticket_client = TicketBackendClient(
    base_url=TICKET_BACKEND_URL,
    api_key=TICKET_BACKEND_API_KEY,
    timeout_seconds=TICKET_BACKEND_TIMEOUT_SECONDS,
)

app = FastAPI(title="Intake Forms Service", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


class FormDefinitionBody(BaseModel):
    fields: list[dict[str, Any]]
    sections: list[dict[str, Any]] = Field(default_factory=list)


class AddSectionBody(BaseModel):
    section: dict[str, Any]
    index: int | None = None


class AddFieldBody(BaseModel):
    field: dict[str, Any]
    index: int | None = None


class MoveSectionBody(BaseModel):
    from_index: int
    to_index: int


class MoveFieldBody(BaseModel):
    section_id: str | None = None
    from_index: int
    to_index: int


class TransferFieldBody(BaseModel):
    field_id: str
    from_section_id: str | None = None
    to_section_id: str | None = None
    target_index: int | None = None


class AnswersBody(BaseModel):
    answers: dict[str, Any] = Field(default_factory=dict)


class AppealSubmitBody(BaseModel):
    punishment_type: str
    player_uuid: str | None = None
    answers: dict[str, Any] = Field(default_factory=dict)


class TicketSubmitBody(BaseModel):
    ticket_type: str
    subject: str = ""
    answers: dict[str, Any] = Field(default_factory=dict)


def _form_response(record: dict[str, Any]) -> dict[str, Any]:
    return {
        "kind": record["kind"],
        "key": record["key"],
        "source": record["source"],
        "updated_at": record["updated_at"],
        "definition": record["definition"].to_dict(),
    }


def _load_record(kind: str, key: str) -> dict[str, Any]:
    try:
        return form_store.get_form_record(kind, key)
    except FormNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except FormStoreError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


def _load_definition(kind: str, key: str) -> FormDefinition:
    return _load_record(kind, key)["definition"]


def _save(kind: str, key: str, definition: FormDefinition | dict[str, Any]) -> dict[str, Any]:
    try:
        return _form_response(form_store.save_form(kind, key, definition))
    except FormStoreError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


def _apply_builder(kind: str, key: str, operation: Callable[[FormDefinition], FormDefinition]) -> dict[str, Any]:
    definition = _load_definition(kind, key)
    try:
        updated = operation(definition)
    except (OrderingError, FormDefinitionError) as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return _save(kind, key, updated)


def _parse_section(payload: dict[str, Any]) -> FormSection:
    try:
        return parse_form_definition({"fields": [], "sections": [payload]}).sections[0]
    except FormDefinitionError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


def _parse_field(payload: dict[str, Any]) -> FormField:
    try:
        return parse_form_definition({"fields": [payload]}).fields[0]
    except FormDefinitionError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


def _validation_issues(
    definition: FormDefinition,
    answers: dict[str, Any],
    *,
    include_system_fields: bool,
) -> list[dict[str, Any]]:
    visibility = resolve_visibility(definition, answers)
    schema = derive_schema(definition, include_system_fields=include_system_fields)
    return [issue.to_dict() for issue in schema.validate(answers, only=visibility.visible_field_ids)]


def _forward(send: Callable[[], dict[str, Any]]) -> dict[str, Any] | None:
    if not (TICKET_FORWARDING_ENABLED and ticket_client.configured):
        return None
    try:
        return send()
    except TicketBackendError as exc:
        raise HTTPException(status_code=502, detail=str(exc))


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/api/forms")
async def list_forms(kind: str | None = None):
    try:
        return form_store.list_forms(kind)
    except FormStoreError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@app.get("/api/forms/{kind}/{key}")
async def get_form(kind: str, key: str):
    return _form_response(_load_record(kind, key))


@app.put("/api/forms/{kind}/{key}")
async def put_form(kind: str, key: str, body: FormDefinitionBody):
    return _save(kind, key, body.model_dump())


@app.delete("/api/forms/{kind}/{key}")
async def remove_form(kind: str, key: str):
    try:
        form_store.delete_form(kind, key)
    except FormNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except FormStoreError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return {"status": "deleted"}


@app.post("/api/forms/{kind}/{key}/sections")
async def create_section(kind: str, key: str, body: AddSectionBody):
    section = _parse_section(body.section)
    return _apply_builder(kind, key, lambda definition: add_section(definition, section, body.index))


@app.post("/api/forms/{kind}/{key}/sections/move")
async def reorder_section(kind: str, key: str, body: MoveSectionBody):
    return _apply_builder(
        kind,
        key,
        lambda definition: move_section(definition, body.from_index, body.to_index),
    )


@app.delete("/api/forms/{kind}/{key}/sections/{section_id}")
async def remove_section(kind: str, key: str, section_id: str):
    return _apply_builder(kind, key, lambda definition: delete_section(definition, section_id))


@app.post("/api/forms/{kind}/{key}/fields")
async def create_field(kind: str, key: str, body: AddFieldBody):
    form_field = _parse_field(body.field)
    return _apply_builder(kind, key, lambda definition: add_field(definition, form_field, body.index))


@app.post("/api/forms/{kind}/{key}/fields/move")
async def reorder_field(kind: str, key: str, body: MoveFieldBody):
    return _apply_builder(
        kind,
        key,
        lambda definition: move_field(definition, body.section_id, body.from_index, body.to_index),
    )


@app.post("/api/forms/{kind}/{key}/fields/transfer")
async def transfer_field(kind: str, key: str, body: TransferFieldBody):
    return _apply_builder(
        kind,
        key,
        lambda definition: move_field_across_sections(
            definition,
            body.field_id,
            body.from_section_id,
            body.to_section_id,
            body.target_index,
        ),
    )


@app.delete("/api/forms/{kind}/{key}/fields/{field_id}")
async def remove_field(kind: str, key: str, field_id: str):
    return _apply_builder(kind, key, lambda definition: delete_field(definition, field_id))


@app.post("/api/forms/{kind}/{key}/defaults")
async def form_defaults(kind: str, key: str, body: AnswersBody):
    definition = _load_definition(kind, key)
    if body.answers:
        return {"answers": reseed_answers(definition.fields, body.answers)}
    return {"answers": default_answers(definition.fields)}


@app.post("/api/forms/{kind}/{key}/validate")
async def validate_form_answers(kind: str, key: str, body: AnswersBody):
    definition = _load_definition(kind, key)
    issues = _validation_issues(definition, body.answers, include_system_fields=kind.strip().lower() == APPEAL_KIND)
    return {"valid": not issues, "issues": issues}


@app.post("/api/forms/{kind}/{key}/visibility")
async def form_visibility(kind: str, key: str, body: AnswersBody):
    definition = _load_definition(kind, key)
    return resolve_visibility(definition, body.answers).to_dict()


@app.post("/api/forms/{kind}/{key}/transform")
async def form_transform(kind: str, key: str, body: AnswersBody):
    definition = _load_definition(kind, key)
    return transform_submission(definition, body.answers).to_dict()


@app.post("/api/appeals")
def submit_appeal(body: AppealSubmitBody):
    definition = _load_definition(APPEAL_KIND, body.punishment_type)
    issues = _validation_issues(definition, body.answers, include_system_fields=True)
    if issues:
        raise HTTPException(status_code=422, detail={"issues": issues})

    record = transform_submission(definition, body.answers)
    payload = build_appeal_payload(
        record,
        identifier=str(body.answers.get(IDENTIFIER_FIELD_ID, "")),
        contact=str(body.answers.get(CONTACT_FIELD_ID, "")),
        player_uuid=body.player_uuid,
    )
    backend = _forward(lambda: ticket_client.create_appeal(payload))
    return {"forwarded": backend is not None, "payload": payload, "backend": backend}


@app.post("/api/tickets/{ticket_id}/submit")
def submit_ticket(ticket_id: str, body: TicketSubmitBody):
    definition = _load_definition(TICKET_KIND, body.ticket_type)
    issues = _validation_issues(definition, body.answers, include_system_fields=False)
    if issues:
        raise HTTPException(status_code=422, detail={"issues": issues})

    record = transform_submission(definition, body.answers)
    submission = build_ticket_submission(record, body.answers, subject=body.subject)
    backend = _forward(lambda: ticket_client.submit_ticket(ticket_id, submission))
    return {"forwarded": backend is not None, "payload": submission, "backend": backend}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("intakeforms.main:app", host="0.0.0.0", port=8000, reload=True)
