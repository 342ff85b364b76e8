import csv
import html
import io
import logging
import time
from collections.abc import Callable, Mapping

import httpx

from agenda.config import Settings

logger = logging.getLogger(__name__)


def parse_chat_csv(text: str) -> list[dict[str, str]]:
    lines = [line for line in (text or "").splitlines() if line.strip()]
    if not lines:
        return []
    header = lines[0]
    delimiter = ";" if ";" in header and "," not in header else ","
    reader = csv.reader(io.StringIO("\n".join(lines)), delimiter=delimiter)
    rows = list(reader)
    columns = [name.strip().lower() for name in rows[0]]
    out: list[dict[str, str]] = []
    for values in rows[1:]:
        out.append({name: (values[i].strip() if i < len(values) else "") for i, name in enumerate(columns)})
    return out


class ChatDirectory:
    """Email to chat_id mapping loaded from a remote CSV and cached for ``ttl_seconds``."""

    def __init__(
        self,
        url: str,
        client: httpx.Client,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.url = url
        self._client = client
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._loaded_at: float | None = None
        self._map: dict[str, str] = {}

    def _fresh(self, now: float) -> bool:
        return self._loaded_at is not None and now - self._loaded_at < self.ttl_seconds

    def load(self) -> dict[str, str]:
        now = self._clock()
        if self._fresh(now):
            return self._map
        mapping: dict[str, str] = {}
        if self.url:
            try:
                response = self._client.get(self.url)
                response.raise_for_status()
                for row in parse_chat_csv(response.text):
                    email = row.get("email", "").strip().lower()
                    chat_id = row.get("chat_id", "").strip()
                    if email and chat_id:
                        mapping[email] = chat_id
            except httpx.HTTPError as exc:
                logger.warning("Caricamento mappa chat Telegram fallito: %s", exc)
        self._map = mapping
        self._loaded_at = now
        return mapping

    def resolve(self, email: str) -> str:
        return self.load().get((email or "").strip().lower(), "")


def _esc(value: object) -> str:
    return html.escape(str(value or ""))


def format_record(record: Mapping) -> str:
    lines = [
        f"<b>Cliente:</b> {_esc(record.get('cliente'))}",
        f"<b>Data/Ora:</b> {_esc(record.get('start_at'))}",
    ]
    if record.get("luogo"):
        lines.append(f"<b>Luogo:</b> {_esc(record.get('luogo'))}")
    if record.get("note"):
        lines.append(f"<b>Note:</b> {_esc(record.get('note'))}")
    return "\n".join(lines)


class TelegramNotifier:
    def __init__(self, settings: Settings, client: httpx.Client, directory: ChatDirectory) -> None:
        self.settings = settings
        self._client = client
        self.directory = directory

    @property
    def enabled(self) -> bool:
        return self.settings.telegram_active

    @property
    def admin_chat_id(self) -> str:
        return self.settings.telegram_admin_chat_id.strip()

    def send(self, chat_id: str, text: str) -> bool:
        token = self.settings.telegram_bot_token.strip()
        if not (token and chat_id and text):
            return False
        url = f"{self.settings.telegram_api_url.rstrip('/')}/bot{token}/sendMessage"
        try:
            response = self._client.post(
                url,
                json={
                    "chat_id": chat_id,
                    "text": text,
                    "parse_mode": "HTML",
                    "disable_web_page_preview": True,
                },
            )
        except httpx.HTTPError as exc:
            logger.warning("Invio Telegram a %s fallito: %s", chat_id, exc)
            return False
        if response.is_error:
            logger.warning("Invio Telegram a %s rifiutato: HTTP %s", chat_id, response.status_code)
            return False
        return True

    def notify_created(self, record: Mapping) -> bool:
        if not self.enabled:
            return False
        message = (
            "📅 <b>Nuovo appuntamento</b>\n"
            f"<b>CRM:</b> {html.escape(self.settings.site_label)}\n"
            f"{format_record(record)}"
        )
        agente_id = str(record.get("agente_id") or "")
        chat_id = self.directory.resolve(agente_id)
        if chat_id:
            return self.send(chat_id, message)
        if self.admin_chat_id:
            return self.send(self.admin_chat_id, f"⚠️ Nessun chat_id per {html.escape(agente_id)}\n{message}")
        return False

    def notify_updated(self, previous: Mapping, record: Mapping) -> bool:
        if not (self.enabled and self.admin_chat_id):
            return False
        lines = [
            f"✏️ <b>Appuntamento aggiornato</b> (ID {_esc(record.get('id'))})",
            f"<b>Agente:</b> {_esc(record.get('agente_name') or record.get('agente_id'))}",
            f"<b>Cliente:</b> {_esc(record.get('cliente'))}",
        ]
        for name in ("stato", "feedback", "start_at", "note"):
            if previous.get(name) != record.get(name):
                lines.append(f"<b>{name}</b>: {_esc(previous.get(name))} → {_esc(record.get(name))}")
        return self.send(self.admin_chat_id, "\n".join(lines))


def build_notifier(settings: Settings, client: httpx.Client | None = None) -> TelegramNotifier:
    client = client or httpx.Client(timeout=settings.http_timeout_seconds)
    directory = ChatDirectory(
        settings.telegram_users_csv_url.strip(),
        client,
        ttl_seconds=settings.identity_cache_ttl_seconds,
    )
    return TelegramNotifier(settings, client, directory)
