"""Whole-document store for the appointment collection.

The collection is read entirely and rewritten entirely on every operation.
Backends are tried in configuration order: the SQL blob store first, then the
Gist fallback. A write goes to the backend reads are served from (the first
one that reads successfully), so a write is always visible to the next read.
Diagnostic modes are returned to the caller with each result instead of being
kept in module state.
"""
import json
import logging
from dataclasses import dataclass, field

import httpx
from sqlalchemy.orm import Session, sessionmaker

from agenda.config import Settings
from agenda.errors import NoStorageAvailable, StorageError
from agenda.storage.backends import BackendError, GistBackend, SqlBlobBackend, StorageBackend
from agenda.storage.coerce import coerce_records

logger = logging.getLogger(__name__)

PREVIEW_CHARS = 400


@dataclass
class ReadResult:
    records: list[dict] = field(default_factory=list)
    mode: str = "none"


@dataclass
class WriteResult:
    mode: str = "none"
    confirmed: bool = False


class DocumentStore:
    def __init__(self, backends: list[StorageBackend], store_name: str = "agenda", key: str = "appointments.json") -> None:
        self.backends = list(backends)
        self.store_name = store_name
        self.key = key

    def describe(self) -> dict[str, bool]:
        names = {backend.name for backend in self.backends}
        return {"blob": "blob" in names, "gist": "gist" in names}

    def read(self) -> ReadResult:
        mode = "none"
        for backend in self.backends:
            try:
                raw = backend.read()
            except BackendError as exc:
                logger.warning("Lettura da %s fallita, provo il backend successivo: %s", backend.name, exc)
                mode = f"{backend.name}-error"
                continue
            return ReadResult(records=coerce_records(raw), mode=backend.name)
        return ReadResult(records=[], mode=mode)

    def read_raw(self) -> str:
        for backend in self.backends:
            try:
                raw = backend.read()
            except BackendError:
                continue
            if raw is None:
                return ""
            text = raw if isinstance(raw, str) else json.dumps(raw, ensure_ascii=False)
            return text[:PREVIEW_CHARS]
        return ""

    def active_backend(self) -> StorageBackend | None:
        """First backend whose read succeeds; reads and writes both go there."""
        for backend in self.backends:
            try:
                backend.read()
            except BackendError:
                continue
            return backend
        return self.backends[0] if self.backends else None

    def write(self, records: list[dict]) -> WriteResult:
        backend = self.active_backend()
        if backend is None:
            raise NoStorageAvailable()
        body = json.dumps(list(records or []), ensure_ascii=False)
        try:
            backend.write(body)
        except BackendError as exc:
            logger.warning("Scrittura su %s fallita: %s", backend.name, exc)
            raise StorageError(str(exc)) from exc
        return WriteResult(mode=backend.name, confirmed=self._confirm(backend))

    def _confirm(self, backend: StorageBackend) -> bool:
        # Best effort: an unconfirmed write is still reported as written.
        try:
            after = backend.read()
        except BackendError as exc:
            logger.warning("Rilettura di conferma da %s non riuscita: %s", backend.name, exc)
            return False
        logger.debug("Rilettura di conferma da %s: %d record", backend.name, len(coerce_records(after)))
        return True


def build_backends(
    settings: Settings,
    session_factory: sessionmaker[Session] | None,
    http_client: httpx.Client | None = None,
) -> list[StorageBackend]:
    backends: list[StorageBackend] = []
    if settings.database_url and session_factory is not None:
        backends.append(SqlBlobBackend(session_factory, settings.blob_store_name, settings.blob_key))
    if settings.gist_configured:
        client = http_client or httpx.Client(timeout=settings.http_timeout_seconds)
        backends.append(
            GistBackend(
                client,
                gist_id=settings.gist_id.strip(),
                token=settings.gist_token.strip(),
                key=settings.blob_key,
                api_url=settings.github_api_url,
            )
        )
    return backends


def build_document_store(
    settings: Settings,
    session_factory: sessionmaker[Session] | None,
    http_client: httpx.Client | None = None,
) -> DocumentStore:
    return DocumentStore(
        build_backends(settings, session_factory, http_client),
        store_name=settings.blob_store_name,
        key=settings.blob_key,
    )
