import os
import time
import logging

import uvicorn
from contextlib import asynccontextmanager
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

load_dotenv()

from . import kie
from . import metrics
from . import openai_client
from .account_routes import auth_router, settings_router
from .auth_middleware import AccountAuthMiddleware, get_account_service
from .errors import UGCError
from .routes import api_router

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("UGC video service starting up...")
    metrics.set_gauge("start_time", time.time())
    accounts = get_account_service(app)
    logger.info(f"Account store: {accounts.store.path}")
    yield
    logger.info("UGC video service shutting down...")


app = FastAPI(lifespan=lifespan)
app.add_middleware(AccountAuthMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(UGCError)
async def handle_ugc_error(request: Request, exc: UGCError):
    logger.warning(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
    metrics.inc_counter(f"responses.{exc.status_code}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.message},
    )


app.include_router(auth_router)
app.include_router(settings_router)
app.include_router(api_router)


@app.get("/health")
def health_check():
    """Verify the service is running and whether default keys are configured."""
    return {
        "status": "ok",
        "openai_api_key_set": bool(openai_client.OPENAI_API_KEY),
        "kie_api_key_set": bool(kie.KIE_API_KEY),
    }


@app.get("/metrics")
def metrics_endpoint():
    """Return a snapshot of all service metrics."""
    return metrics.get_snapshot()


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 8080))
    uvicorn.run("ugcgen.main:app", host="0.0.0.0", port=port)
