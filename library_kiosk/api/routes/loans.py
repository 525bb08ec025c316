# =======================================================================================
# library_kiosk/api/routes/loans.py - Borrow / Return Endpoints
# =======================================================================================
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status
from ...models.schemas import BorrowRequest, BorrowResponse, Loan, ReturnResponse
from ...services.loan_service import LoanService
from ...utils.exceptions import InvalidStateError
from ..dependencies import get_loan_service

router = APIRouter()


@router.post("/loans/borrow", response_model=BorrowResponse, status_code=status.HTTP_201_CREATED)
def borrow(request: BorrowRequest, loans: LoanService = Depends(get_loan_service)):
    """Lend an item to the student identified by card UID or index number."""
    loan, tx = loans.borrow(
        item_tag=request.item_tag,
        card_uid=request.card_uid,
        student_index=request.student_index,
        item_title=request.item_title,
        days=request.days,
    )
    return BorrowResponse(
        success=True,
        message=f"{loan.item_tag} lent to {loan.student_index}, due {loan.due_at.date().isoformat()}",
        loan=loan,
        transaction=tx,
    )


@router.post("/loans/{loan_id}/return", response_model=ReturnResponse)
def return_loan(loan_id: str, loans: LoanService = Depends(get_loan_service)):
    """Mark a loan returned. Returning an already-returned loan is a no-op."""
    try:
        loan, tx = loans.return_loan(loan_id)
    except InvalidStateError as e:
        return ReturnResponse(
            success=True, changed=False, message=str(e), loan=loans.get_loan(loan_id)
        )
    return ReturnResponse(
        success=True, changed=True, message=f"{loan.item_tag} returned", loan=loan, transaction=tx
    )


@router.get("/loans/active", response_model=List[Loan])
def active_loans(
    student_index: Optional[str] = Query(None),
    card_uid: Optional[str] = Query(None),
    loans: LoanService = Depends(get_loan_service),
):
    return loans.active_loans_for(student_index=student_index, card_uid=card_uid)


@router.get("/loans/alerts", response_model=List[Loan])
def due_soon_or_overdue(
    horizon_days: Optional[int] = Query(None, ge=0, le=365),
    loans: LoanService = Depends(get_loan_service),
):
    """Active loans due within the horizon (default from config) or already overdue."""
    return loans.due_soon_or_overdue(horizon_days)


@router.get("/loans/{loan_id}", response_model=Loan)
def get_loan(loan_id: str, loans: LoanService = Depends(get_loan_service)):
    return loans.get_loan(loan_id)
