from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.exceptions import HTTPException as StarletteHTTPException

from .api import router as reminders_router
from .config import settings
from .dispatcher import PushDispatcher
from .errors import NoTargetFound, ReminderError, ValidationError


async def _http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)


async def _reminder_error_handler(request: Request, exc: ReminderError) -> JSONResponse:
    # dispatch failures and anything unexpected surface as 500
    status_code = 400 if isinstance(exc, (ValidationError, NoTargetFound)) else 500
    return JSONResponse(status_code=status_code, content={"error": str(exc)})


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(p) for p in first.get("loc", ())[1:]) or "body"
        message = f"{field}: {first.get('msg', 'invalid value')}"
    else:
        message = "Invalid request"
    return JSONResponse(status_code=400, content={"error": message})


def create_app(dispatcher: PushDispatcher | None = None, **fastapi_kwargs) -> FastAPI:
    app = FastAPI(title="Reminder Service", **fastapi_kwargs)
    app.state.dispatcher = dispatcher or PushDispatcher()
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(ReminderError, _reminder_error_handler)
    app.include_router(reminders_router, tags=["reminders"])
    if settings.METRICS_ENABLED:
        Instrumentator().instrument(app).expose(app, endpoint="/metrics")
    return app
