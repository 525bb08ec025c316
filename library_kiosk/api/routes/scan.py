# =======================================================================================
# library_kiosk/api/routes/scan.py - Scan Session Endpoints
# =======================================================================================
from fastapi import APIRouter, Depends, status
from ...models.schemas import ScanLinesRequest, ScanLinesResponse, ScanSessionResponse
from ...services.serial_service import LineFramer, ScanSession
from ..dependencies import get_bridge_framer, get_scan_session

router = APIRouter()


@router.get("/scan/session", response_model=ScanSessionResponse)
def get_scan_session_state(session: ScanSession = Depends(get_scan_session)):
    return session.snapshot()


@router.delete("/scan/session", status_code=status.HTTP_204_NO_CONTENT)
def clear_scan_session(session: ScanSession = Depends(get_scan_session)):
    session.clear()


@router.post("/scan/lines", response_model=ScanLinesResponse)
def ingest_scan_lines(
    request: ScanLinesRequest,
    session: ScanSession = Depends(get_scan_session),
    framer: LineFramer = Depends(get_bridge_framer),
):
    """Reader output relayed by an external bridge; partial lines wait for the next call."""
    events = framer.feed(request.data.encode())
    for event in events:
        session.record(event)
    return ScanLinesResponse(events=events, session=session.snapshot())
