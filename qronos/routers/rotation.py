from __future__ import annotations
from io import BytesIO
from fastapi import APIRouter, Depends, HTTPException, Response, status

from ..core.rotation import RotationScheduler
from ..core.signing import normalize_identity
from ..deps import get_claims, get_ledger, get_rotation, verifier_http_error
from ..errors import UnknownEvent
from ..schemas import RotationRead
from ..services.ledger import Ledger

router = APIRouter(tags=["rotation"])

def _read(rotation: RotationScheduler) -> RotationRead:
    return RotationRead(
        state=rotation.state.value,
        event_id=rotation.active_event_id,
        payload=rotation.current_payload,
        timestamp=rotation.last_issued_at,
        remaining=rotation.remaining,
    )

# --- Professor activates the rotating QR for one of their events
@router.post("/events/{event_id}/rotation", response_model=RotationRead, status_code=202)
async def start_rotation(
    event_id: int,
    claims: dict = Depends(get_claims),
    ledger: Ledger = Depends(get_ledger),
    rotation: RotationScheduler = Depends(get_rotation),
):
    try:
        ev = await ledger.get_event(event_id)
    except UnknownEvent as exc:
        raise verifier_http_error(exc)
    if normalize_identity(claims["sub"]) != ev.professor:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the event's professor can display its QR")
    if rotation.signer_identity is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="No signing key loaded")
    if rotation.signer_identity != ev.professor:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Loaded signing key does not own this event")
    rotation.start(event_id)
    return _read(rotation)

@router.delete("/events/{event_id}/rotation", response_model=RotationRead)
async def stop_rotation(
    event_id: int,
    claims: dict = Depends(get_claims),
    rotation: RotationScheduler = Depends(get_rotation),
):
    if rotation.active_event_id != event_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Rotation not active for this event")
    if normalize_identity(claims["sub"]) != rotation.signer_identity:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the event's professor can stop its QR")
    rotation.stop()
    return _read(rotation)

# --- What the display shows right now
@router.get("/rotation", response_model=RotationRead)
async def current_rotation(rotation: RotationScheduler = Depends(get_rotation)):
    return _read(rotation)

@router.get("/rotation/qr.png")
async def current_qr_png(rotation: RotationScheduler = Depends(get_rotation)):
    import qrcode
    if not rotation.current_payload:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No QR issued yet")
    img = qrcode.make(rotation.current_payload)
    b = BytesIO(); img.save(b, format="PNG")
    return Response(content=b.getvalue(), media_type="image/png", headers={"Cache-Control": "no-store"})
