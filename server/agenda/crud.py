import logging
import secrets
import string
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from agenda.audit import append_audit
from agenda.errors import MissingId, NotFound, PermissionDenied, ValidationError
from agenda.identity import Identity
from agenda.schemas import Appointment, AppointmentCreateIn, clean_text
from agenda.storage import DocumentStore, WriteResult
from agenda.visibility import filter_for_identity

logger = logging.getLogger(__name__)

PATCHABLE_FIELDS = ("stato", "feedback", "start_at")
ELEVATED_PATCHABLE_FIELDS = ("note",)
TRACKED_FIELDS = PATCHABLE_FIELDS + ELEVATED_PATCHABLE_FIELDS
REQUIRED_FIELDS = ("cliente", "start_at", "agente_id")

SERVICE_CREATOR = "agenda-master"
FALLBACK_CREATOR = "system"

_ID_ALPHABET = string.digits + string.ascii_lowercase


@dataclass
class Listing:
    total: int
    items: list[dict]
    read_mode: str


@dataclass
class Mutation:
    item: dict | None = None
    previous: dict | None = None
    modes: dict[str, str] = field(default_factory=lambda: {"read": "none", "write": "none"})
    confirmed: bool = False

    def as_debug(self) -> dict[str, object]:
        return {"modes": dict(self.modes), "confirmed": self.confirmed}


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_ID_ALPHABET[rem])
    return "".join(reversed(digits))


def generate_appointment_id(existing: set[str] | None = None) -> str:
    """Time-based prefix plus random suffix, regenerated on the rare collision."""
    taken = existing or set()
    while True:
        candidate = f"{_base36(time.time_ns() // 1_000_000)}-{''.join(secrets.choice(_ID_ALPHABET) for _ in range(6))}"
        if candidate not in taken:
            return candidate


def list_appointments(store: DocumentStore, identity: Identity, show_all: bool = False) -> Listing:
    result = store.read()
    if show_all and not identity.elevated:
        logger.warning("Richiesta all=1 da utente non elevato %s", identity.email or "-")
    items = filter_for_identity(result.records, identity, show_all=show_all)
    return Listing(total=len(result.records), items=items, read_mode=result.mode)


def create_appointment(
    store: DocumentStore,
    identity: Identity,
    payload: AppointmentCreateIn,
    default_stato: str = "Nuovo",
) -> Mutation:
    logger.info("POST auth check elevated=%s", identity.elevated)
    if not identity.elevated:
        append_audit("agenda:create", "KO", identity, dettagli={"reason": "not_elevated"})
        raise PermissionDenied()

    if any(not getattr(payload, name) for name in REQUIRED_FIELDS):
        raise ValidationError()

    result = store.read()
    records = list(result.records)
    now = utcnow_iso()
    if identity.service:
        creato_da = SERVICE_CREATOR
    else:
        creato_da = identity.email or identity.agente or FALLBACK_CREATOR

    record = Appointment(
        id=generate_appointment_id({str(r.get("id")) for r in records if r.get("id")}),
        cliente=payload.cliente,
        start_at=payload.start_at,
        agente_id=payload.agente_id.lower(),
        agente_name=payload.agente_name,
        luogo=payload.luogo,
        stato=payload.stato or default_stato,
        feedback=payload.feedback,
        note=payload.note,
        creato_da=creato_da,
        created_at=now,
        updated_at=now,
    ).model_dump()

    records.append(record)
    written = store.write(records)
    append_audit("agenda:create", "OK", identity, entita_id=record["id"], dettagli={"agente_id": record["agente_id"]})
    return Mutation(item=record, modes={"read": result.mode, "write": written.mode}, confirmed=written.confirmed)


def patch_appointment(store: DocumentStore, identity: Identity, appointment_id: str, patch: dict[str, Any]) -> Mutation:
    appointment_id = clean_text(appointment_id)
    if not appointment_id:
        raise MissingId()

    result = store.read()
    records = list(result.records)
    index = next((i for i, r in enumerate(records) if r.get("id") == appointment_id), None)
    if index is None:
        raise NotFound()

    record = dict(records[index])
    previous = dict(record)
    is_owner = identity.owns(record)
    logger.info("PATCH auth check elevated=%s is_owner=%s", identity.elevated, is_owner)
    if not (identity.elevated or is_owner):
        append_audit("agenda:patch", "KO", identity, entita_id=appointment_id, dettagli={"reason": "not_owner"})
        raise PermissionDenied()

    allowed = PATCHABLE_FIELDS + (ELEVATED_PATCHABLE_FIELDS if identity.elevated else ())
    for name in allowed:
        if name in patch:
            record[name] = clean_text(patch[name])
    ignored = sorted(set(patch) - set(allowed))
    if ignored:
        logger.info("Campi non modificabili ignorati per %s: %s", appointment_id, ", ".join(ignored))
    record["updated_at"] = utcnow_iso()

    records[index] = record
    written = store.write(records)
    changed = [name for name in TRACKED_FIELDS if previous.get(name) != record.get(name)]
    append_audit("agenda:patch", "OK", identity, entita_id=appointment_id, dettagli={"changed": changed})
    return Mutation(
        item=record,
        previous=previous,
        modes={"read": result.mode, "write": written.mode},
        confirmed=written.confirmed,
    )


def delete_appointment(store: DocumentStore, identity: Identity, appointment_id: str) -> Mutation:
    appointment_id = clean_text(appointment_id)
    if not appointment_id:
        raise MissingId()

    logger.info("DELETE auth check elevated=%s", identity.elevated)
    if not identity.elevated:
        append_audit("agenda:delete", "KO", identity, entita_id=appointment_id, dettagli={"reason": "not_elevated"})
        raise PermissionDenied()

    result = store.read()
    remaining = [r for r in result.records if r.get("id") != appointment_id]
    written = store.write(remaining)
    removed = len(result.records) - len(remaining)
    append_audit("agenda:delete", "OK", identity, entita_id=appointment_id, dettagli={"removed": removed})
    return Mutation(modes={"read": result.mode, "write": written.mode}, confirmed=written.confirmed)


def seed_appointments(store: DocumentStore, identity: Identity) -> WriteResult:
    written = store.write([])
    append_audit("agenda:seed", "OK", identity)
    return written
