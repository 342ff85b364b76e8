from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator


def clean_text(value: Any) -> str:
    if value is None or value is False:
        return ""
    return str(value).strip()


class AppointmentCreateIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    cliente: str = ""
    start_at: str = ""
    agente_id: str = ""
    agente_name: str = ""
    luogo: str = ""
    stato: str = ""
    feedback: str = ""
    note: str = ""

    @field_validator("*", mode="before")
    @classmethod
    def _as_clean_text(cls, value: Any) -> str:
        return clean_text(value)


class Appointment(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    cliente: str
    start_at: str
    agente_id: str
    agente_name: str = ""
    luogo: str = ""
    stato: str = ""
    feedback: str = ""
    note: str = ""
    creato_da: str = ""
    created_at: str
    updated_at: str


class ItemOut(BaseModel):
    ok: bool = True
    item: dict[str, Any]
    debug: dict[str, Any] = {}


class ListOut(BaseModel):
    ok: bool = True
    items: list[dict[str, Any]]
    debug: dict[str, Any]


class DiagOut(BaseModel):
    ok: bool = True
    debug: dict[str, Any]
    key: str
    store: str
    preview: str


class SeedOut(BaseModel):
    ok: bool = True
    seeded: bool = True
    modes: dict[str, str]


class OkOut(BaseModel):
    ok: bool = True
    debug: dict[str, Any] = {}


class ErrorOut(BaseModel):
    ok: bool = False
    error: str


class HealthOut(BaseModel):
    status: str
    server_time_utc: datetime
    server_tz: str = "UTC"
