# services/storage_service/app/main.py
from fastapi import FastAPI, Request
from contextlib import asynccontextmanager
import httpx
import logging

from cas_core.config import get_settings, setup_logging, log_settings_summary
from cas_core.models import ServiceResponse
from cas_core.storage import StorageClient

# Use logger configured in cas_core.config
logger = logging.getLogger("CAS_Core").getChild("StorageService")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: build the client from explicit settings and store it in app.state
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL)
    log_settings_summary(settings)
    logger.info("Storage Service lifespan startup: Initializing HTTPX Client and StorageClient.")
    app.state.http_client = httpx.AsyncClient()
    app.state.storage_client = StorageClient(settings, http_client=app.state.http_client)

    yield # Application runs here

    # Shutdown: the HTTP client is shared, so close it once here
    logger.info("Storage Service lifespan shutdown: Closing HTTPX Client.")
    await app.state.http_client.aclose()
    app.state.http_client = None
    app.state.storage_client = None


app = FastAPI(
    title="CAS Storage Service",
    description="Publishes payloads to content-addressed storage and retrieves them by CID",
    version="1.0.0",
    lifespan=lifespan
)


@app.get("/health", response_model=ServiceResponse, tags=["Meta"])
async def health_check(request: Request):
    client = getattr(request.app.state, 'storage_client', None)
    if client is None:
        return ServiceResponse(status="error", message="Storage client NOT initialized")
    mode = "offline" if client.is_offline else "online"
    return ServiceResponse(status="success", data={"mode": mode}, message=f"Storage Service is running ({mode} mode)")


# Import routers AFTER app is defined
from .routers import content

app.include_router(content.router, tags=["Content"])
