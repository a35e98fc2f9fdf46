import logging
from collections.abc import Iterator
from dataclasses import asdict

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.db.session import get_session
from app.db.store import SqlAlchemyStore
from pharmacare import (
    ConsentRequiredError,
    InvalidTransitionError,
    PharmaCareError,
    PharmaCareFlow,
    RecordNotFoundError,
)
from services.messaging.outbound import TwilioMessenger
from shared.config import configure_logging, get_settings
from shared.contracts.models import (
    AdherenceCheckResponse,
    DashboardDTO,
    DispatchResultItem,
    ErrorResponse,
    FollowUpCompleteRequest,
    FollowUpRecord,
    MedicationRecord,
    PatientRegistrationRequest,
    PatientRegistrationResponse,
    ScheduleRemindersRequest,
    ScheduleRemindersResponse,
    SendRemindersResponse,
)

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
}

# The reminder routines answer every failure, malformed bodies included, with 500.
ROUTINE_PATHS = frozenset({"/schedule-reminders", "/check-adherence", "/send-reminders"})

configure_logging()
app = FastAPI(title="reminders")


def get_store(session: Session = Depends(get_session)) -> SqlAlchemyStore:
    return SqlAlchemyStore(session)


def get_messenger() -> Iterator[TwilioMessenger]:
    messenger = TwilioMessenger.from_settings(get_settings())
    try:
        yield messenger
    finally:
        messenger.close()


def get_flow(store=Depends(get_store), messenger=Depends(get_messenger)) -> PharmaCareFlow:
    return PharmaCareFlow(store=store, messenger=messenger)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())


@app.middleware("http")
async def cors_headers(request: Request, call_next):
    if request.method == "OPTIONS":
        return Response(status_code=204, headers=CORS_HEADERS)
    response = await call_next(request)
    response.headers.update(CORS_HEADERS)
    return response


@app.exception_handler(PharmaCareError)
async def domain_error_handler(request: Request, exc: PharmaCareError) -> JSONResponse:
    logger.error("Error handling %s %s: %s", request.method, request.url.path, exc)
    return _error(500, str(exc))


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("Store failure on %s %s: %s", request.method, request.url.path, exc)
    return _error(500, str(exc))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = "; ".join(
        f"{'.'.join(str(part) for part in err['loc'] if part != 'body')}: {err['msg']}" for err in exc.errors()
    )
    status_code = 500 if request.url.path in ROUTINE_PATHS else 400
    return _error(status_code, details or "invalid request body")


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _error(exc.status_code, str(exc.detail))


# Runs outside the middleware stack, so CORS headers are set here directly.
@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    response = _error(500, str(exc) or exc.__class__.__name__)
    response.headers.update(CORS_HEADERS)
    return response


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok", "service": "reminders"}


@app.post("/schedule-reminders", response_model=ScheduleRemindersResponse)
def schedule_reminders(
    payload: ScheduleRemindersRequest,
    flow: PharmaCareFlow = Depends(get_flow),
) -> ScheduleRemindersResponse:
    outcome = flow.schedule_reminders(payload.patient_medication_id)
    return ScheduleRemindersResponse(reminders_scheduled=outcome.reminders_scheduled)


@app.post("/check-adherence", response_model=AdherenceCheckResponse)
def check_adherence(flow: PharmaCareFlow = Depends(get_flow)) -> AdherenceCheckResponse:
    alerts = flow.check_adherence()
    return AdherenceCheckResponse(adherence_reminders_created=len(alerts))


@app.post("/send-reminders", response_model=SendRemindersResponse, response_model_exclude_none=True)
def send_reminders(flow: PharmaCareFlow = Depends(get_flow)) -> SendRemindersResponse:
    outcomes = flow.send_reminders()
    return SendRemindersResponse(
        processed=len(outcomes),
        results=[
            DispatchResultItem(id=o.reminder_id, status=o.status, result=o.result, error=o.error)
            for o in outcomes
        ],
    )


@app.get("/medications", response_model=list[MedicationRecord])
def list_medications(flow: PharmaCareFlow = Depends(get_flow)) -> list[MedicationRecord]:
    return flow.list_medications()


@app.post("/patients", response_model=PatientRegistrationResponse, status_code=201)
def register_patient(
    payload: PatientRegistrationRequest,
    flow: PharmaCareFlow = Depends(get_flow),
) -> PatientRegistrationResponse:
    try:
        registration = flow.register_patient(**payload.model_dump())
    except ConsentRequiredError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except RecordNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    return PatientRegistrationResponse(
        patient_id=registration.patient.id,
        patient_medication_id=registration.prescription.id,
        reminders_scheduled=registration.schedule.reminders_scheduled,
        follow_up_date=registration.schedule.follow_up.scheduled_date,
    )


@app.post("/follow-ups/{follow_up_id}/complete", response_model=FollowUpRecord)
def complete_follow_up(
    follow_up_id: str,
    payload: FollowUpCompleteRequest,
    flow: PharmaCareFlow = Depends(get_flow),
) -> FollowUpRecord:
    try:
        return flow.complete_follow_up(follow_up_id, outcome=payload.outcome, notes=payload.notes)
    except RecordNotFoundError as exc:
        raise HTTPException(status_code=404, detail="follow-up not found") from exc
    except InvalidTransitionError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc


@app.get("/dashboard/{pharmacist_id}", response_model=DashboardDTO)
def dashboard(pharmacist_id: str, flow: PharmaCareFlow = Depends(get_flow)) -> DashboardDTO:
    return DashboardDTO(**asdict(flow.build_dashboard(pharmacist_id)))
