import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Import all models to ensure they're registered with SQLAlchemy Base
from . import (
    models,  # noqa: F401
    models_payment,  # noqa: F401
)
from .config import FRONTEND_URL
from .database import Base, engine
from .domain.payments.mpesa_service import MpesaClient, MpesaConfig
from .domain.payments.router import router as payments_router
from .domain.scheduling.router import router as appointments_router
from .routes.notifications import router as notifications_router
from .routes.pets import router as pets_router
from .routes.veterinarians import router as veterinarians_router
from .shared.exceptions import PetCareError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("Database tables created successfully")
    except Exception as e:
        # Ignore "already exists" errors from race conditions between workers
        error_msg = str(e)
        if "already exists" in error_msg or "duplicate key" in error_msg:
            logger.info("Database tables already exist (created by another worker)")
        else:
            logger.error(f"Failed to create database tables: {e}")

    app.state.mpesa_client = MpesaClient(MpesaConfig.from_env())
    logger.info(f"M-Pesa client configured (env={app.state.mpesa_client.config.environment})")

    yield
    logger.info("Application shutting down...")


app = FastAPI(title="PetCare API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(PetCareError)
async def petcare_error_handler(request: Request, exc: PetCareError):
    """Render application errors as {"error": message} with their status code"""
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Convert request validation errors to 400 responses, or to 401 when the
    issue is with the Authorization header
    """
    for error in exc.errors():
        if error.get("loc") and "authorization" in str(error.get("loc")).lower():
            logger.warning(
                f"Authentication failed for {request.url.path}: Missing or invalid Authorization header"
            )
            return JSONResponse(
                status_code=401,
                content={
                    "error": "Not authenticated. Please provide a valid Bearer token in the Authorization header."
                },
            )

    logger.warning(f"Validation error for {request.url.path}: {exc.errors()}")
    fields = sorted({".".join(str(p) for p in e.get("loc", ())[1:]) for e in exc.errors()} - {""})
    message = f"Invalid or missing fields: {', '.join(fields)}" if fields else "Invalid request"
    return JSONResponse(status_code=400, content={"error": message})


app.add_middleware(
    CORSMiddleware,
    allow_origins=[FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(appointments_router)
app.include_router(payments_router)
app.include_router(notifications_router)
app.include_router(pets_router)
app.include_router(veterinarians_router)


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
