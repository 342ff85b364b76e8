import json
import logging
from typing import Any

from agenda.identity import Identity
from agenda.logging_setup import AUDIT_LOGGER

audit_logger = logging.getLogger(AUDIT_LOGGER)


def append_audit(
    azione: str,
    esito: str,
    identity: Identity,
    entita_id: str | None = None,
    dettagli: dict[str, Any] | None = None,
) -> None:
    audit_logger.info(
        "azione=%s esito=%s entita=appuntamenti entita_id=%s utente=%s ruolo=%s service=%s dettagli=%s",
        azione,
        esito,
        entita_id or "-",
        identity.email or identity.agente or "-",
        identity.role or "-",
        identity.service,
        json.dumps(dettagli or {}, ensure_ascii=False, sort_keys=True),
    )
