from agenda.identity import Identity


def filter_for_identity(records: list[dict], identity: Identity, show_all: bool = False) -> list[dict]:
    """Elevated callers (or an explicit ``all`` request) see everything; agents see their own records."""
    if show_all or identity.elevated:
        return list(records)
    me = identity.email.lower()
    if not me:
        return []
    return [record for record in records if str(record.get("agente_id") or "").lower() == me]
