from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from procurement.api.v1.router import api_router
from procurement.core.config import settings
from procurement.core.errors import WorkflowError
from procurement.core.logging_config import configure_logging
from procurement.services.reminder_scheduler import ResponseReminderScheduler


configure_logging()

app = FastAPI(title="Construction Procurement")
app.include_router(api_router, prefix="/api/v1")


@app.exception_handler(WorkflowError)
def _workflow_error_handler(request: Request, exc: WorkflowError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.on_event("startup")
def _startup_event() -> None:
    scheduler = ResponseReminderScheduler(interval_minutes=settings.reminder_interval_minutes)
    scheduler.start()
    app.state.reminder_scheduler = scheduler


@app.on_event("shutdown")
def _shutdown_event() -> None:
    scheduler = getattr(app.state, "reminder_scheduler", None)
    if scheduler is not None:
        scheduler.shutdown()


@app.get("/")
def root():
    return {"status": "ok", "message": "Procurement backend running"}
