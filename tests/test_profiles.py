import json
import pytest

from qronos.core.catalog import courses_for, is_valid_combination
from qronos.services.profiles import (
    ApprovalStatus,
    ProfessorProfileV2,
    ProfileStore,
    Role,
    StudentProfile,
    course_index_key,
    course_students_key,
    professor_events_key,
    professor_key,
    resolve_role,
)

ADDR = "0x02" + "ab" * 32


async def test_v1_profile_migrated_once(kv):
    kv.data[professor_key(ADDR)] = json.dumps({
        "address": ADDR, "fullName": "Ana Pérez", "specialty": "Informática",
        "course": "Base de Datos", "registeredAt": "2024-03-01T10:00:00Z",
    })
    store = ProfileStore(kv)

    profile = await store.load_professor_profile(ADDR)
    assert isinstance(profile, ProfessorProfileV2)
    assert profile.courses == ["Base de Datos"]
    assert profile.registeredAt == "2024-03-01T10:00:00Z"

    stored = json.loads(kv.data[professor_key(ADDR)])
    assert "course" not in stored
    assert stored["courses"] == ["Base de Datos"]
    assert kv.data[course_index_key("Base de Datos")] == ADDR

    writes = len(kv.writes)
    assert await store.load_professor_profile(ADDR) == profile
    assert len(kv.writes) == writes


async def test_unknown_professor_profile(kv):
    assert await ProfileStore(kv).load_professor_profile(ADDR) is None


async def test_register_professor_indexes_courses(kv):
    store = ProfileStore(kv)
    await store.register_professor(ProfessorProfileV2(
        address=ADDR.upper().replace("0X", "0x"), fullName="Ana", specialty="Electricidad",
        courses=["Electrónica Digital", "Control Automático"],
    ))
    assert await store.professor_for_course("Control Automático") == ADDR
    assert (await store.load_professor_profile(ADDR)).address == ADDR


async def test_register_professor_rejects_foreign_course(kv):
    with pytest.raises(ValueError):
        await ProfileStore(kv).register_professor(ProfessorProfileV2(
            address=ADDR, fullName="Ana", specialty="Electricidad", courses=["Base de Datos"],
        ))


async def test_professor_status(kv):
    store = ProfileStore(kv)
    assert await store.get_professor_status(ADDR) is ApprovalStatus.PENDING
    await store.set_professor_status(ADDR, ApprovalStatus.APPROVED)
    assert await store.get_professor_status(ADDR) is ApprovalStatus.APPROVED


async def test_student_profile_round_trip(kv):
    store = ProfileStore(kv)
    saved = await store.register_student(StudentProfile(
        address=ADDR, fullName="Luis", idCard="0912345678", specialty="Informática", courses=["Programación Web"],
    ))
    assert await store.load_student_profile(ADDR) == saved


def test_resolve_role():
    assert resolve_role({"sub": ADDR, "role": "professor"}, admin_identity=ADDR) is Role.ADMIN
    assert resolve_role({"sub": ADDR, "role": "professor"}) is Role.PROFESSOR
    assert resolve_role({"sub": ADDR}) is Role.STUDENT
    assert resolve_role({"sub": ADDR, "role": "superuser"}) is Role.STUDENT


def test_admin_role_claim_is_not_admin():
    other = "0x03" + "cd" * 32
    assert resolve_role({"sub": other, "role": "admin"}, admin_identity=ADDR) is Role.STUDENT
    assert resolve_role({"sub": other, "role": "admin"}) is Role.STUDENT


def test_catalog():
    assert "Programación Web" in courses_for("Informática")
    assert courses_for("Medicina") == ()
    assert is_valid_combination("Administración", "Emprendimiento")
    assert not is_valid_combination("Administración", "Base de Datos")


STUDENT = "0x03" + "11" * 32


async def test_professor_events_listed_with_profile_details(kv):
    store = ProfileStore(kv)
    assert await store.list_professor_events(ADDR) == []
    await store.register_professor(ProfessorProfileV2(
        address=ADDR, fullName="Ana", specialty="Informática", courses=["Base de Datos"],
    ))
    await store.record_professor_event(ADDR, 0, "Clase 1", "BD-01", "Base de Datos")
    await store.record_professor_event(ADDR.upper().replace("0X", "0x"), 1, "Clase 2", "BD-02")

    events = await store.list_professor_events(ADDR)
    assert [e.eventId for e in events] == [0, 1]
    assert events[0].professorName == "Ana"
    assert events[0].course == "Base de Datos"
    assert len(json.loads(kv.data[professor_events_key(ADDR)])) == 2


async def test_student_indexed_under_each_course(kv):
    store = ProfileStore(kv)
    await store.register_professor(ProfessorProfileV2(
        address=ADDR, fullName="Ana", specialty="Informática", courses=["Base de Datos", "Programación Web"],
    ))
    await store.register_student(StudentProfile(
        address=STUDENT, fullName="Luis", idCard="0912345678", specialty="Informática",
        courses=["Base de Datos", "Programación Web"], registeredAt="2024-03-01T10:00:00Z",
    ))

    rosters = await store.students_by_course(ADDR)
    assert [r.course for r in rosters] == ["Base de Datos", "Programación Web"]
    assert [s.fullName for s in rosters[0].students] == ["Luis"]
    assert rosters[0].students[0].enrolledAt == "2024-03-01T10:00:00Z"

    # re-registering moves the student out of dropped courses without duplicating
    await store.register_student(StudentProfile(
        address=STUDENT, fullName="Luis A.", idCard="0912345678", specialty="Informática",
        courses=["Base de Datos"],
    ))
    assert json.loads(kv.data[course_students_key("Programación Web")]) == []
    students = json.loads(kv.data[course_students_key("Base de Datos")])
    assert [s["fullName"] for s in students] == ["Luis A."]
    assert students[0]["enrolledAt"] == "2024-03-01T10:00:00Z"


async def test_professors_for_student(kv):
    store = ProfileStore(kv)
    assert await store.professors_for_student(STUDENT) == []
    await store.register_professor(ProfessorProfileV2(
        address=ADDR, fullName="Ana", specialty="Informática", courses=["Base de Datos"],
    ))
    kv.data[course_index_key("Redes")] = "0x02" + "ef" * 32
    await store.register_student(StudentProfile(
        address=STUDENT, fullName="Luis", idCard="0912345678", specialty="Informática",
        courses=["Base de Datos", "Redes", "Programación Web"],
    ))

    found = await store.professors_for_student(STUDENT)
    assert [(p.course, p.professorName) for p in found] == [("Base de Datos", "Ana"), ("Redes", "No registrado")]
    assert found[0].professorAddress == ADDR


async def test_students_by_course_without_profile(kv):
    assert await ProfileStore(kv).students_by_course(ADDR) == []
