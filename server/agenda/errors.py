class AgendaError(Exception):
    """Base error rendered to callers as ``{ok: false, error: <message>}``."""

    status_code = 500
    default_message = "Errore interno"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AgendaError):
    status_code = 400
    default_message = "Dati mancanti"


class InvalidBody(AgendaError):
    status_code = 400
    default_message = "Dati non validi"


class MissingId(AgendaError):
    status_code = 400
    default_message = "ID mancante"


class NotFound(AgendaError):
    status_code = 404
    default_message = "Non trovato"


class PermissionDenied(AgendaError):
    status_code = 403
    default_message = "Permesso negato"


class UnsupportedMethod(AgendaError):
    status_code = 405
    default_message = "Metodo non supportato"


class StorageError(AgendaError):
    status_code = 500
    default_message = "Scrittura storage fallita"


class NoStorageAvailable(StorageError):
    default_message = "No storage available"


class InternalError(AgendaError):
    status_code = 500
