from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from clinic_booking.core.config import settings
from clinic_booking.core.errors import BookingValidationError, CommitError, PersistenceError, SubscriptionError
from clinic_booking.api import viewers, bookings
from clinic_booking.core.logger import setup_logging, logger
from clinic_booking.models.api_models import ErrorResponse
from clinic_booking.services.viewer_service import ViewerRegistry
from contextlib import asynccontextmanager
from datetime import datetime

setup_logging()

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("🚀 Starting Clinic Booking Engine")
    yield
    # Shutdown
    logger.info(f"🛑 Shutting down, closing {len(app.state.viewers)} viewers")
    await app.state.viewers.close_all()

app = FastAPI(
    title=settings.PROJECT_NAME,
    version="0.1.0",
    lifespan=lifespan
)
app.state.viewers = ViewerRegistry()

@app.exception_handler(BookingValidationError)
async def validation_exception_handler(request: Request, exc: BookingValidationError):
    return JSONResponse(status_code=409, content=ErrorResponse(reason=exc.reason.value, message=exc.message).model_dump())

@app.exception_handler(CommitError)
async def commit_exception_handler(request: Request, exc: CommitError):
    logger.error(f"💥 Commit failed: {exc.cause}")
    return JSONResponse(status_code=502, content=ErrorResponse(reason="commit_failed", message=str(exc.cause)).model_dump())

@app.exception_handler(PersistenceError)
async def persistence_exception_handler(request: Request, exc: PersistenceError):
    logger.error(f"💥 Persistence error: {exc}")
    return JSONResponse(status_code=502, content=ErrorResponse(reason="persistence_error", message=str(exc)).model_dump())

@app.exception_handler(SubscriptionError)
async def subscription_exception_handler(request: Request, exc: SubscriptionError):
    return JSONResponse(status_code=503, content=ErrorResponse(reason="subscription_lost", message=str(exc)).model_dump())

# Global Exception Handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"🔥 UNHANDLED ERROR: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"message": "Internal Server Error", "detail": "An unexpected error occurred. Please contact support."}
    )

# Include routers
error_responses = {
    404: {"description": "Unknown viewer"},
    409: {"model": ErrorResponse, "description": "Booking rejected; `reason` says why"},
    502: {"model": ErrorResponse, "description": "Database read or write failed"},
    503: {"model": ErrorResponse, "description": "Live sync lost its subscription"},
}
app.include_router(viewers.router, tags=["Viewers"], responses=error_responses)
app.include_router(bookings.router, tags=["Bookings"], responses=error_responses)

@app.get("/")
async def health_check():
    return {'status': 'active', 'time': datetime.now().isoformat()}

@app.get("/health")
async def health_check_std():
    return {"status": "ok", "environment": settings.ENVIRONMENT, "viewers": len(app.state.viewers), "timestamp": datetime.now().isoformat()}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("clinic_booking.main:app", host="0.0.0.0", port=settings.PORT, reload=True)
