# =======================================================================================
# library_kiosk/api/routes/students.py - Student Registration Endpoints
# =======================================================================================
from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from ...models.schemas import Student, StudentCreateRequest, StudentListResponse
from ...services.student_service import StudentService
from ..dependencies import get_student_service

router = APIRouter()


@router.post("/students", response_model=Student, status_code=status.HTTP_201_CREATED)
def register_student(
    request: StudentCreateRequest, students: StudentService = Depends(get_student_service)
):
    """Register a student; card UID is optional and normalized to upper-case."""
    return students.register(request)


# ---- search endpoint used by the students table ----

@router.get("/students", response_model=StudentListResponse)
def search_students(
    query: Optional[str] = Query(None, description="Matches index, name, program, level, phone or card"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    students: StudentService = Depends(get_student_service),
):
    return StudentListResponse(success=True, data=students.search(query, limit, offset))


@router.get("/students/by-card/{card_uid}", response_model=Student)
def get_student_by_card(card_uid: str, students: StudentService = Depends(get_student_service)):
    return students.get(card_uid=card_uid)


@router.get("/students/{index_number}", response_model=Student)
def get_student(index_number: str, students: StudentService = Depends(get_student_service)):
    return students.get(student_index=index_number)


@router.delete("/students/{index_number}", status_code=status.HTTP_204_NO_CONTENT)
def delete_student(index_number: str, students: StudentService = Depends(get_student_service)):
    students.delete(index_number)
