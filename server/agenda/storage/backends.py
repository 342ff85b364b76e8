import json
from typing import Any, Protocol
from urllib.parse import quote

import httpx
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from agenda.models import Blob

JSON_CONTENT_TYPE = "application/json"


class BackendError(Exception):
    pass


class StorageBackend(Protocol):
    name: str

    def read(self) -> Any: ...

    def write(self, body: str) -> None: ...


class SqlBlobBackend:
    """Key-value blob store kept in a single SQLAlchemy table, one row per key."""

    name = "blob"

    def __init__(self, session_factory: sessionmaker[Session], store_name: str, key: str) -> None:
        self._session_factory = session_factory
        self.store_name = store_name
        self.key = key

    def get(self, key: str, type: str = "text") -> Any:
        try:
            with self._session_factory() as db:
                row = db.scalar(select(Blob).where(Blob.store == self.store_name, Blob.key == key))
                value = row.value if row else None
        except SQLAlchemyError as exc:
            raise BackendError(f"lettura blob fallita: {exc}") from exc
        if value is None or type == "text":
            return value
        if type == "json":
            try:
                return json.loads(value)
            except ValueError as exc:
                raise BackendError(f"blob {key} non e JSON valido") from exc
        raise ValueError(f"tipo blob non supportato: {type}")

    def set(self, key: str, value: str, content_type: str = "text/plain") -> None:
        try:
            with self._session_factory() as db:
                row = db.scalar(select(Blob).where(Blob.store == self.store_name, Blob.key == key))
                if row is None:
                    row = Blob(store=self.store_name, key=key)
                    db.add(row)
                row.value = value
                row.content_type = content_type
                db.commit()
        except SQLAlchemyError as exc:
            raise BackendError(f"scrittura blob fallita: {exc}") from exc

    def read(self) -> Any:
        return self.get(self.key, type="text")

    def write(self, body: str) -> None:
        self.set(self.key, body, content_type=JSON_CONTENT_TYPE)


class GistBackend:
    """Remote document fallback: the collection is one file of a GitHub Gist."""

    name = "gist"

    def __init__(self, client: httpx.Client, gist_id: str, token: str, key: str, api_url: str = "https://api.github.com") -> None:
        self._client = client
        self.gist_id = gist_id
        self.token = token
        self.key = key
        self.api_url = api_url.rstrip("/")

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/vnd.github+json",
        }

    def _gist_url(self) -> str:
        return f"{self.api_url}/gists/{quote(self.gist_id, safe='')}"

    def read(self) -> Any:
        try:
            response = self._client.get(self._gist_url(), headers=self._headers())
            response.raise_for_status()
            files = (response.json() or {}).get("files") or {}
            entry = files.get(self.key) or {}
            raw_url = entry.get("raw_url")
            if not raw_url:
                return ""
            raw = self._client.get(raw_url)
            raw.raise_for_status()
            return raw.text or ""
        except (httpx.HTTPError, ValueError) as exc:
            raise BackendError(f"lettura gist fallita: {exc}") from exc

    def write(self, body: str) -> None:
        payload = {"files": {self.key: {"content": body}}}
        try:
            response = self._client.patch(self._gist_url(), headers=self._headers(), json=payload)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise BackendError(f"scrittura gist fallita: {exc}") from exc
