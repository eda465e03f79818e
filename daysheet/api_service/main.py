import logging
from fastapi import FastAPI, APIRouter, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

from daysheet.api_service.core.settings import settings
from daysheet.api_service.api_v1.endpoints import activities, auth, suggestions
from daysheet.processing_service.logic.settings import settings as service_settings
from daysheet.shared.errors import (
    ActionNotAllowed,
    AuthError,
    DaysheetError,
    LockViolation,
    ModelTransportError,
    ParseError,
    ValidationError,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - [%(name)s] - %(message)s"
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting up Daysheet API Service...")
    logger.info(f"Suggestion provider: {service_settings.AI_PROVIDER}, PM provider: {service_settings.PM_PROVIDER}")
    yield
    # Shutdown
    logger.info("Shutting down Daysheet API Service...")

app = FastAPI(
    title="Daysheet API Service",
    description="Aggregates a day's activity and drafts time-log suggestions for review.",
    version=settings.VERSION,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    docs_url=f"{settings.API_V1_STR}/docs",
    redoc_url=f"{settings.API_V1_STR}/redoc",
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Error mapping ---
def _error(status_code: int, detail: str, headers: dict = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail}, headers=headers)

@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return _error(status.HTTP_400_BAD_REQUEST, str(exc))

@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    errors = "; ".join(e.get("msg", "") for e in exc.errors())
    return _error(status.HTTP_400_BAD_REQUEST, errors or "Invalid request")

@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError):
    return _error(status.HTTP_401_UNAUTHORIZED, str(exc), headers={"WWW-Authenticate": "Bearer"})

@app.exception_handler(LockViolation)
async def lock_violation_handler(request: Request, exc: LockViolation):
    return _error(status.HTTP_403_FORBIDDEN, str(exc))

@app.exception_handler(ActionNotAllowed)
async def action_not_allowed_handler(request: Request, exc: ActionNotAllowed):
    return _error(status.HTTP_409_CONFLICT, str(exc))

@app.exception_handler(ModelTransportError)
async def model_transport_error_handler(request: Request, exc: ModelTransportError):
    logger.error(f"Suggestion model unavailable: {exc}")
    return _error(status.HTTP_502_BAD_GATEWAY, f"Suggestion model unavailable: {exc}")

@app.exception_handler(ParseError)
async def parse_error_handler(request: Request, exc: ParseError):
    logger.error(f"Unusable model output: {exc}")
    return _error(status.HTTP_502_BAD_GATEWAY, f"Could not read suggestions from model output: {exc}")

@app.exception_handler(DaysheetError)
async def daysheet_error_handler(request: Request, exc: DaysheetError):
    logger.error(f"Unhandled {type(exc).__name__}: {exc}")
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))

# Create API v1 router
api_v1_router = APIRouter(prefix=settings.API_V1_STR)

api_v1_router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
api_v1_router.include_router(activities.router, prefix="/activities", tags=["Activities"])
api_v1_router.include_router(suggestions.router, prefix="/ai", tags=["Suggestions"])

app.include_router(api_v1_router)

# Root endpoint
@app.get("/", tags=["Root"])
async def root():
    return {
        "message": "Welcome to the Daysheet API Service",
        "version": settings.VERSION,
        "docs": f"{settings.API_V1_STR}/docs"
    }

# Health check endpoint
@app.get("/health", tags=["Health"])
async def health_check():
    return {"status": "healthy", "service": "daysheet-api"}

if __name__ == "__main__":
    import uvicorn
    logger.info("Starting Uvicorn server for development...")
    uvicorn.run(app, host="0.0.0.0", port=8000, log_level="info")
