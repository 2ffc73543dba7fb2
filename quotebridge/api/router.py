from fastapi import APIRouter, Depends, Request
from uuid import UUID
from .schemas import RequestSnapshot, ResultSnapshot, SubmitQuoteRequest, SubmitQuoteResponse
from ..errors import NotFoundError
from ..quote_models import Quote, QuoteRequest
from ..services.submitter import QuoteSubmitter
from ..services.tracker import ResultTracker

router = APIRouter(prefix="/quotes", tags=["quotes"])


def get_submitter(request: Request) -> QuoteSubmitter:
    return request.app.state.components.submitter


def get_tracker(request: Request) -> ResultTracker:
    return request.app.state.components.tracker


def _parse_id(raw: str, what: str) -> UUID:
    # A malformed id cannot name a stored entry
    try:
        return UUID(raw)
    except ValueError:
        raise NotFoundError(f"{what} not found: {raw}") from None


@router.post("/request", response_model=SubmitQuoteResponse, status_code=201)
async def request_quote(req: SubmitQuoteRequest, submitter: QuoteSubmitter = Depends(get_submitter)):
    request_id = await submitter.submit(req.product)
    return SubmitQuoteResponse(request_id=request_id)


@router.get("/request/{request_id}", response_model=QuoteRequest)
async def get_request(request_id: str, submitter: QuoteSubmitter = Depends(get_submitter)):
    found = submitter.get_request(_parse_id(request_id, "Quote request"))
    if found is None:
        raise NotFoundError(f"Quote request not found: {request_id}")
    return found


@router.get("/result/{request_id}", response_model=Quote)
async def get_result(request_id: str, tracker: ResultTracker = Depends(get_tracker)):
    found = tracker.get_result(_parse_id(request_id, "Quote result"))
    if found is None:
        raise NotFoundError(f"Quote result not found: {request_id}")
    return found


@router.get("/requests", response_model=RequestSnapshot)
async def list_requests(submitter: QuoteSubmitter = Depends(get_submitter)):
    return submitter.list_requests()


@router.get("/results", response_model=ResultSnapshot)
async def list_results(tracker: ResultTracker = Depends(get_tracker)):
    return tracker.list_all()
