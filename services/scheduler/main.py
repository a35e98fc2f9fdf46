from datetime import datetime, timezone

from fastapi import Depends, FastAPI
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError

from pharmacare import PharmaCareError, PharmaCareFlow
from services.reminders.main import (
    domain_error_handler,
    get_flow,
    store_error_handler,
    unexpected_error_handler,
)

app = FastAPI(title="scheduler")
app.add_exception_handler(PharmaCareError, domain_error_handler)
app.add_exception_handler(SQLAlchemyError, store_error_handler)
app.add_exception_handler(Exception, unexpected_error_handler)


class JobRunResult(BaseModel):
    job: str
    started_at: datetime
    adherence_reminders_created: int = Field(default=0, ge=0)
    reminders_processed: int = Field(default=0, ge=0)
    reminders_failed: int = Field(default=0, ge=0)


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok", "service": "scheduler"}


@app.post("/jobs/check-adherence", response_model=JobRunResult)
def run_adherence_check(flow: PharmaCareFlow = Depends(get_flow)) -> JobRunResult:
    now = datetime.now(timezone.utc)
    alerts = flow.check_adherence(now)
    return JobRunResult(job="check-adherence", started_at=now, adherence_reminders_created=len(alerts))


@app.post("/jobs/send-reminders", response_model=JobRunResult)
def run_dispatch(flow: PharmaCareFlow = Depends(get_flow)) -> JobRunResult:
    now = datetime.now(timezone.utc)
    outcomes = flow.send_reminders(now)
    return JobRunResult(
        job="send-reminders",
        started_at=now,
        reminders_processed=len(outcomes),
        reminders_failed=sum(1 for o in outcomes if o.error is not None),
    )


@app.post("/jobs/tick", response_model=JobRunResult)
def tick(flow: PharmaCareFlow = Depends(get_flow)) -> JobRunResult:
    # Adherence alerts are created first so the same tick can deliver them.
    now = datetime.now(timezone.utc)
    alerts = flow.check_adherence(now)
    outcomes = flow.send_reminders(now)
    return JobRunResult(
        job="tick",
        started_at=now,
        adherence_reminders_created=len(alerts),
        reminders_processed=len(outcomes),
        reminders_failed=sum(1 for o in outcomes if o.error is not None),
    )
