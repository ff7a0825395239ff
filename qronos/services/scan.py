from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol

from ..core.codec import AttendanceToken, decode
from ..errors import (
    DecodeError,
    DuplicateAttendance,
    Expired,
    Full,
    InvalidSignature,
    MissingField,
    NotStarted,
    UnknownEvent,
    VerifierError,
)

logger = logging.getLogger(__name__)


class AttendanceVerifier(Protocol):
    async def mark_attendance(self, event_id: int, timestamp: int, signature: str, claimant: str): ...


_MESSAGES: dict[type[VerifierError], tuple[str, str]] = {
    UnknownEvent: ("error", "El evento no existe. Verifica el QR."),
    NotStarted: ("error", "La clase aún no ha comenzado."),
    Expired: ("error", "La clase ya terminó. No puedes marcar asistencia."),
    InvalidSignature: ("error", "QR inválido o fraudulento."),
    DuplicateAttendance: ("warning", "Ya registraste tu asistencia para este evento."),
    Full: ("error", "El evento ya alcanzó el máximo de asistentes."),
}


def message_for(error: VerifierError) -> tuple[str, str]:
    """(level, user-facing message) for a verifier rejection."""
    for cls in type(error).__mro__:
        if cls in _MESSAGES:
            return _MESSAGES[cls]
    return "error", "Error al marcar asistencia."


@dataclass
class ScanOutcome:
    ok: bool
    level: str
    message: str
    kind: Optional[str] = None
    token: Optional[AttendanceToken] = None
    record: Any = None


class ScanIngestor:
    """Student side: scan -> pending token -> explicit confirm -> ledger."""

    def __init__(self, verifier: AttendanceVerifier, claimant: str):
        self._verifier = verifier
        self.claimant = claimant
        self.pending: Optional[AttendanceToken] = None

    def scan(self, raw: str) -> ScanOutcome:
        if not raw or not raw.strip():
            self.pending = None
            return ScanOutcome(False, "error", "Ingresa los datos del QR", kind="empty")
        try:
            token = decode(raw)
        except MissingField as exc:
            self.pending = None
            return ScanOutcome(False, "error", f"QR inválido - falta {exc.field}", kind="missing_field")
        except DecodeError:
            self.pending = None
            return ScanOutcome(False, "error", "Error al leer QR. Verifica el formato JSON.", kind="malformed")
        self.pending = token
        return ScanOutcome(True, "success", f"QR válido! Evento: {token.event_id}", token=token)

    async def confirm(self) -> ScanOutcome:
        token = self.pending
        if token is None:
            return ScanOutcome(False, "error", "Primero escanea un QR válido", kind="no_pending")
        # one submission per scan, whatever the result
        self.pending = None
        try:
            record = await self._verifier.mark_attendance(token.event_id, token.timestamp, token.signature, self.claimant)
        except VerifierError as exc:
            level, message = message_for(exc)
            logger.info("attendance rejected for event %s: %s", token.event_id, exc.kind)
            return ScanOutcome(False, level, message, kind=exc.kind, token=token)
        return ScanOutcome(True, "success", "¡Asistencia registrada exitosamente!", token=token, record=record)
