import asyncio
import pytest

from qronos.core.signing import SignatureIssuer, generate_private_key
from qronos.db import async_session_maker
from qronos.errors import (
    DuplicateAttendance,
    Expired,
    Full,
    InvalidSignature,
    NotAuthorized,
    NotStarted,
    UnknownEvent,
)
from qronos.services.ledger import EventDetails, Ledger

T0 = 1000


async def create_events(ledger, professor, n=1, **kw):
    opts = dict(max_attendees=30, duration_minutes=90)
    opts.update(kw)
    ids = []
    for i in range(n):
        ids.append(await ledger.create_class_event(
            professor, f"Clase {i}", f"PROG-WEB-{i:02d}", opts["max_attendees"], "", opts["duration_minutes"], now=T0,
        ))
    return ids


@pytest.fixture
async def prof(ledger, professor):
    await ledger.add_professor(professor)
    return professor


async def test_event_ids_are_sequential_from_zero(ledger, prof):
    assert await create_events(ledger, prof, n=3) == [0, 1, 2]


async def test_scenario_record_then_duplicate_then_tampered(ledger, prof, professor_issuer, student, other_student):
    ids = await create_events(ledger, prof, n=4)
    assert ids[-1] == 3
    sig = professor_issuer.sign(3, 1040)

    rec = await ledger.mark_attendance(3, 1040, sig, student, now=1050)
    assert (rec.event_id, rec.student, rec.timestamp) == (3, student, 1050)

    with pytest.raises(DuplicateAttendance):
        await ledger.mark_attendance(3, 1040, sig, student, now=1060)

    raw = bytearray.fromhex(sig[2:])
    raw[-1] ^= 0xFF
    with pytest.raises(InvalidSignature):
        await ledger.mark_attendance(3, 1040, "0x" + raw.hex(), other_student, now=1060)

    details = await ledger.get_event_details(3)
    assert details == EventDetails("Clase 3", "PROG-WEB-03", T0, 1, 30)


async def test_duplicate_even_with_fresh_token(ledger, prof, professor_issuer, student):
    await create_events(ledger, prof)
    await ledger.mark_attendance(0, 1040, professor_issuer.sign(0, 1040), student, now=1050)
    with pytest.raises(DuplicateAttendance):
        await ledger.mark_attendance(0, 1055, professor_issuer.sign(0, 1055), student, now=1056)


async def test_token_for_one_event_rejected_on_another(ledger, prof, professor_issuer, student):
    await create_events(ledger, prof, n=7)
    sig = professor_issuer.sign(5, 1040)
    with pytest.raises(InvalidSignature):
        await ledger.mark_attendance(6, 1040, sig, student, now=1050)
    assert (await ledger.mark_attendance(5, 1040, sig, student, now=1050)).event_id == 5


async def test_signature_from_non_owner_rejected(ledger, prof, student):
    await create_events(ledger, prof)
    other_prof = SignatureIssuer(generate_private_key())
    await ledger.add_professor(other_prof.identity)
    with pytest.raises(InvalidSignature):
        await ledger.mark_attendance(0, 1040, other_prof.sign(0, 1040), student, now=1050)


async def test_time_window(ledger, prof, professor_issuer, student):
    await create_events(ledger, prof, duration_minutes=90)
    sig = professor_issuer.sign(0, 1040)
    with pytest.raises(NotStarted):
        await ledger.mark_attendance(0, 1040, sig, student, now=T0 - 1)
    with pytest.raises(Expired):
        await ledger.mark_attendance(0, 1040, sig, student, now=T0 + 90 * 60 + 1)
    # last second of the window still counts
    assert await ledger.mark_attendance(0, 1040, sig, student, now=T0 + 90 * 60)


async def test_window_checked_before_signature(ledger, prof, student):
    await create_events(ledger, prof)
    with pytest.raises(Expired):
        await ledger.mark_attendance(0, 1040, "0xnot-a-signature", student, now=T0 + 10_000)


async def test_unknown_event(ledger, prof, professor_issuer, student):
    with pytest.raises(UnknownEvent):
        await ledger.mark_attendance(42, 1040, professor_issuer.sign(42, 1040), student, now=1050)
    with pytest.raises(UnknownEvent):
        await ledger.get_event_details(42)


async def test_event_id_past_column_range_is_unknown(ledger, prof, professor_issuer, student):
    await create_events(ledger, prof)
    with pytest.raises(UnknownEvent):
        await ledger.mark_attendance(2**64, 1040, professor_issuer.sign(0, 1040), student, now=T0 + 5)
    with pytest.raises(UnknownEvent):
        await ledger.get_event(2**31)
    assert await ledger.list_attendance(-1) == []


async def test_full_event(ledger, prof, professor_issuer, student, other_student):
    await create_events(ledger, prof, max_attendees=1)
    sig = professor_issuer.sign(0, 1040)
    await ledger.mark_attendance(0, 1040, sig, student, now=1050)
    with pytest.raises(Full):
        await ledger.mark_attendance(0, 1040, sig, other_student, now=1050)
    # the duplicate check runs before the capacity check
    with pytest.raises(DuplicateAttendance):
        await ledger.mark_attendance(0, 1040, sig, student, now=1050)


async def test_stale_token_accepted_inside_window(ledger, prof, professor_issuer, student):
    await create_events(ledger, prof)
    sig = professor_issuer.sign(0, T0 + 60)
    assert await ledger.mark_attendance(0, T0 + 60, sig, student, now=T0 + 80 * 60)


async def test_token_age_limit_when_enabled(prof, professor_issuer, student, other_student):
    strict = Ledger(async_session_maker, max_token_age_seconds=30)
    await create_events(strict, prof)
    with pytest.raises(Expired):
        await strict.mark_attendance(0, T0 + 60, professor_issuer.sign(0, T0 + 60), student, now=T0 + 120)
    assert await strict.mark_attendance(0, T0 + 100, professor_issuer.sign(0, T0 + 100), other_student, now=T0 + 120)


async def test_concurrent_double_submit_records_once(ledger, prof, professor_issuer, student):
    await create_events(ledger, prof)
    sig = professor_issuer.sign(0, 1040)
    results = await asyncio.gather(
        ledger.mark_attendance(0, 1040, sig, student, now=1050),
        ledger.mark_attendance(0, 1040, sig, student, now=1050),
        return_exceptions=True,
    )
    assert sum(1 for r in results if isinstance(r, DuplicateAttendance)) == 1
    assert (await ledger.get_event_details(0)).attendee_count == 1


async def test_claimant_identity_is_case_insensitive(ledger, prof, professor_issuer, student):
    await create_events(ledger, prof)
    sig = professor_issuer.sign(0, 1040)
    await ledger.mark_attendance(0, 1040, sig, student, now=1050)
    with pytest.raises(DuplicateAttendance):
        await ledger.mark_attendance(0, 1040, sig, student.upper().replace("0X", "0x"), now=1051)


async def test_only_professors_create_events(ledger, student):
    with pytest.raises(NotAuthorized):
        await ledger.create_class_event(student, "Clase", "X", 30, "", 90, now=T0)


async def test_create_event_rejects_non_positive_limits(ledger, prof):
    with pytest.raises(ValueError):
        await ledger.create_class_event(prof, "Clase", "X", 0, "", 90, now=T0)
    with pytest.raises(ValueError):
        await ledger.create_class_event(prof, "Clase", "X", 30, "", 0, now=T0)


async def test_add_professor_is_idempotent(ledger, professor):
    assert not await ledger.is_professor(professor)
    assert await ledger.add_professor(professor) is True
    assert await ledger.add_professor(professor) is False
    assert await ledger.is_professor(professor)


async def test_student_events_and_audit_log(ledger, prof, professor_issuer, student, other_student):
    await create_events(ledger, prof, n=3)
    for eid in (2, 0):
        await ledger.mark_attendance(eid, 1040, professor_issuer.sign(eid, 1040), student, now=1050)
    await ledger.mark_attendance(0, 1041, professor_issuer.sign(0, 1041), other_student, now=1052)

    assert await ledger.get_student_events(student) == [2, 0]
    assert await ledger.get_student_events(other_student) == [0]
    log = await ledger.list_attendance(0)
    assert [(r.student, r.timestamp, r.token_timestamp) for r in log] == [(student, 1050, 1040), (other_student, 1052, 1041)]


async def test_attendance_marked_published(prof, professor_issuer, student):
    published = []

    async def publisher(evt):
        published.append(evt)

    ledger = Ledger(async_session_maker, publisher=publisher)
    await create_events(ledger, prof)
    await ledger.mark_attendance(0, 1040, professor_issuer.sign(0, 1040), student, now=1050)
    assert published == [{
        "event_id": 0, "student": student, "timestamp": 1050, "idempotency_key": f"0:{student}",
    }]


async def test_publish_failure_does_not_undo_record(prof, professor_issuer, student):
    async def broken(evt):
        raise ConnectionError("nats down")

    ledger = Ledger(async_session_maker, publisher=broken)
    await create_events(ledger, prof)
    rec = await ledger.mark_attendance(0, 1040, professor_issuer.sign(0, 1040), student, now=1050)
    assert rec.event_id == 0
    assert await ledger.get_student_events(student) == [0]
