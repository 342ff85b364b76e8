ELEVATED = {"x-simac-role": "Azienda", "x-simac-email": "boss@x.com", "x-simac-agente": "Boss"}
AGENT_A = {"x-simac-role": "Agente", "x-simac-email": "a@x.com", "x-simac-agente": "Agente A"}
AGENT_B = {"x-simac-role": "Agente", "x-simac-email": "b@x.com", "x-simac-agente": "Agente B"}

CSV_URL = "https://sheets.example/users.csv"
ADMIN_CHAT = "999"


def record(record_id: str, agente_id: str, **extra) -> dict:
    base = {
        "id": record_id,
        "cliente": f"Cliente {record_id}",
        "start_at": "2024-01-01T10:00",
        "agente_id": agente_id,
        "agente_name": "",
        "luogo": "",
        "stato": "Nuovo",
        "feedback": "",
        "note": "",
        "creato_da": "boss@x.com",
        "created_at": "2024-01-01T09:00:00.000Z",
        "updated_at": "2024-01-01T09:00:00.000Z",
    }
    base.update(extra)
    return base
