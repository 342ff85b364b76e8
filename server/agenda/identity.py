import re
from collections.abc import Mapping
from dataclasses import dataclass

ELEVATED_ROLES = frozenset({"azienda", "direzione commerciale", "area manager", "areamanager"})

HEADER_ROLE = "x-simac-role"
HEADER_EMAIL = "x-simac-email"
HEADER_AGENTE = "x-simac-agente"
HEADER_AREA_MANAGER = "x-simac-areamanager"
HEADER_AUTHORIZATION = "authorization"

SERVICE_ROLE = "service"
SERVICE_EMAIL = "master@service"

_BEARER_RE = re.compile(r"^Bearer\s+(.+)$", re.IGNORECASE)


@dataclass
class Identity:
    role: str = ""
    email: str = ""
    agente: str = ""
    area_manager: str = ""
    elevated: bool = False
    service: bool = False

    def owns(self, record: Mapping) -> bool:
        return bool(self.email) and str(record.get("agente_id") or "").lower() == self.email.lower()

    def as_debug(self) -> dict[str, object]:
        return {"role": self.role, "email": self.email, "elevated": self.elevated}


def _header(headers: Mapping[str, str], name: str) -> str:
    lowered = {str(k).lower(): v for k, v in headers.items()}
    return str(lowered.get(name.lower()) or "").strip()


def is_service_request(headers: Mapping[str, str], service_token: str = "", token_pattern: str = "") -> bool:
    """Recognise service-to-service calls by their bearer token.

    The token is trusted as asserted by the upstream gateway: it matches either
    the configured shared secret or the pre-provisioned token pattern.
    """
    match = _BEARER_RE.match(_header(headers, HEADER_AUTHORIZATION))
    if not match:
        return False
    token = match.group(1).strip()
    expected = service_token.strip()
    if expected and token == expected:
        return True
    if token_pattern and re.fullmatch(token_pattern, token):
        return True
    return False


def resolve_identity(headers: Mapping[str, str], service_token: str = "", token_pattern: str = "") -> Identity:
    role = _header(headers, HEADER_ROLE)
    identity = Identity(
        role=role,
        email=_header(headers, HEADER_EMAIL).lower(),
        agente=_header(headers, HEADER_AGENTE),
        area_manager=_header(headers, HEADER_AREA_MANAGER),
        elevated=role.lower() in ELEVATED_ROLES,
    )
    if is_service_request(headers, service_token, token_pattern):
        identity.service = True
        identity.elevated = True
        identity.role = SERVICE_ROLE
        if not identity.email:
            identity.email = SERVICE_EMAIL
    return identity
