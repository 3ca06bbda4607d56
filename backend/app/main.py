from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from backend.app.api.v1.router import router as v1_router
from backend.app.core.config import settings
from backend.app.core.logging_config import configure_logging
from backend.services.errors import (
    InvalidJustificationError,
    InvalidTransitionError,
    NotFoundError,
    StorageFailure,
    SupplyError,
    ValidationError,
)

configure_logging(settings.LOG_LEVEL)

app = FastAPI(title=settings.APP_TITLE, version="0.1.0")
app.include_router(v1_router, prefix="/v1")

# l'ordre compte : sous-classes avant SupplyError
_STATUS_BY_ERROR = (
    (InvalidJustificationError, 400),
    (ValidationError, 400),
    (NotFoundError, 404),
    (InvalidTransitionError, 409),
    (StorageFailure, 503),
)


@app.exception_handler(SupplyError)
async def supply_error_handler(request: Request, exc: SupplyError):
    status = next((code for cls, code in _STATUS_BY_ERROR if isinstance(exc, cls)), 500)
    return JSONResponse(status_code=status, content={"error": exc.code, "detail": exc.message})
