from __future__ import annotations


class QronosError(Exception):
    """Base for every domain error raised by the attendance protocol."""


class SigningUnavailable(QronosError):
    """The session owner's key is not loaded, or the signer refused."""


class NotAuthorized(QronosError):
    pass


# ---- scan input ----

class DecodeError(QronosError):
    pass


class MalformedStructure(DecodeError):
    def __init__(self, reason: str = "not a JSON object"):
        super().__init__(f"malformed QR payload: {reason}")
        self.reason = reason


class MissingField(DecodeError):
    def __init__(self, field: str):
        super().__init__(f"missing field: {field}")
        self.field = field


# ---- verifier ----

class VerifierError(QronosError):
    kind: str = "verifier_error"
    default_message: str = "error al marcar asistencia"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)


class UnknownEvent(VerifierError):
    kind = "unknown_event"
    default_message = "el evento no existe"


class NotStarted(VerifierError):
    kind = "not_started"
    default_message = "la clase aún no ha comenzado"


class Expired(VerifierError):
    kind = "expired"
    default_message = "la clase ya terminó"


class InvalidSignature(VerifierError):
    kind = "invalid_signature"
    default_message = "firma inválida"


class DuplicateAttendance(VerifierError):
    kind = "duplicate_attendance"
    default_message = "ya registraste tu asistencia"


class Full(VerifierError):
    kind = "full"
    default_message = "el evento alcanzó el máximo de asistentes"
