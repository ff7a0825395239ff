from __future__ import annotations
from fastapi import APIRouter, Depends, HTTPException, status

from ..core.signing import normalize_identity
from ..deps import get_claims, get_ledger, get_profiles, require_admin
from ..schemas import ProfessorAdd, ProfessorRead, ProfessorRegister, StudentRegister
from ..services.ledger import Ledger
from ..services.profiles import (
    ApprovalStatus,
    CourseProfessor,
    CourseStudents,
    ProfessorEvent,
    ProfessorProfileV2,
    ProfileStore,
    StudentProfile,
)

router = APIRouter(tags=["professors"])

async def _professor_read(identity: str, ledger: Ledger, profiles: ProfileStore) -> ProfessorRead:
    return ProfessorRead(
        identity=normalize_identity(identity),
        is_professor=await ledger.is_professor(identity),
        status=(await profiles.get_professor_status(identity)).value,
    )

# --- Admin approves a professor (addProfessor on the ledger)
@router.post("/professors", response_model=ProfessorRead, status_code=201)
async def add_professor(
    payload: ProfessorAdd,
    claims: dict = Depends(get_claims),
    _admin=Depends(require_admin),
    ledger: Ledger = Depends(get_ledger),
    profiles: ProfileStore = Depends(get_profiles),
):
    await ledger.add_professor(payload.identity, added_by=claims["sub"])
    await profiles.set_professor_status(payload.identity, ApprovalStatus.APPROVED)
    return await _professor_read(payload.identity, ledger, profiles)

@router.post("/professors/{identity}/reject", response_model=ProfessorRead)
async def reject_professor(
    identity: str,
    _admin=Depends(require_admin),
    ledger: Ledger = Depends(get_ledger),
    profiles: ProfileStore = Depends(get_profiles),
):
    await profiles.set_professor_status(identity, ApprovalStatus.REJECTED)
    return await _professor_read(identity, ledger, profiles)

# isProfessor
@router.get("/professors/{identity}", response_model=ProfessorRead)
async def professor_status(identity: str, ledger: Ledger = Depends(get_ledger), profiles: ProfileStore = Depends(get_profiles)):
    return await _professor_read(identity, ledger, profiles)

# --- Self-registration profiles
@router.put("/profiles/professor", response_model=ProfessorProfileV2)
async def register_professor_profile(
    payload: ProfessorRegister,
    claims: dict = Depends(get_claims),
    profiles: ProfileStore = Depends(get_profiles),
):
    try:
        return await profiles.register_professor(ProfessorProfileV2(address=claims["sub"], **payload.model_dump()))
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))

@router.get("/profiles/professor/{identity}", response_model=ProfessorProfileV2)
async def get_professor_profile(identity: str, profiles: ProfileStore = Depends(get_profiles)):
    p = await profiles.load_professor_profile(identity)
    if p is None:
        raise HTTPException(status_code=404, detail="Profile not found")
    return p

@router.put("/profiles/student", response_model=StudentProfile)
async def register_student_profile(
    payload: StudentRegister,
    claims: dict = Depends(get_claims),
    profiles: ProfileStore = Depends(get_profiles),
):
    return await profiles.register_student(StudentProfile(address=claims["sub"], **payload.model_dump()))

@router.get("/profiles/student/{identity}", response_model=StudentProfile)
async def get_student_profile(identity: str, profiles: ProfileStore = Depends(get_profiles)):
    p = await profiles.load_student_profile(identity)
    if p is None:
        raise HTTPException(status_code=404, detail="Profile not found")
    return p

# --- Directory reads built from the course indexes
@router.get("/profiles/professor/{identity}/events", response_model=list[ProfessorEvent])
async def professor_events(identity: str, profiles: ProfileStore = Depends(get_profiles)):
    return await profiles.list_professor_events(identity)

@router.get("/profiles/professor/{identity}/students", response_model=list[CourseStudents])
async def my_students(identity: str, profiles: ProfileStore = Depends(get_profiles)):
    return await profiles.students_by_course(identity)

@router.get("/profiles/student/{identity}/professors", response_model=list[CourseProfessor])
async def my_professors(identity: str, profiles: ProfileStore = Depends(get_profiles)):
    return await profiles.professors_for_student(identity)
