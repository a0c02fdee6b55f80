from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
import uuid
from contextlib import asynccontextmanager
from database import database
from routes import onboarding, webhooks, files
from utils.env_config import check_required_env

import os
import logging
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


# Lifespan context manager for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: refuse to serve with incomplete configuration
    logger.info("Starting AIChatFlows Onboarding API")
    check_required_env()
    await database.connect()

    stripe_key = (os.environ.get("STRIPE_SECRET_KEY") or "").strip()
    stripe_mode = "test" if stripe_key.startswith("sk_test_") else "live"
    logger.info("STRIPE_MODE = %s (from Stripe key prefix)", stripe_mode)
    logger.info("Email duplicate store = %s", os.getenv("EMAIL_DEDUPE_STORE", "mongo"))

    yield

    # Shutdown
    logger.info("Shutting down AIChatFlows Onboarding API")
    await database.close()


app = FastAPI(
    title="AIChatFlows Onboarding API",
    description="Onboarding submissions, uploads and payment reconciliation for AIChatFlows",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=os.environ.get('CORS_ORIGINS', '*').split(','),
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(onboarding.router)
app.include_router(webhooks.router)
app.include_router(files.router)


@app.get("/api/health")
async def health_check():
    return {
        "status": "healthy",
        "environment": os.getenv("ENVIRONMENT", "development")
    }


# Validation error handler: log request_id + full errors (loc path)
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    request_id = str(uuid.uuid4())
    errors = exc.errors()
    path = getattr(request, "url", None) and getattr(request.url, "path", "") or ""
    logger.warning(
        "Request validation failed request_id=%s path=%s errors=%s",
        request_id,
        path,
        [(e.get("loc"), e.get("msg"), e.get("type")) for e in errors],
    )
    return JSONResponse(
        status_code=422,
        content={"detail": [{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in errors], "request_id": request_id},
    )


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "server:app",
        host="0.0.0.0",
        port=8001,
        reload=os.getenv("ENVIRONMENT") == "development"
    )
