# services/storage_service/app/routers/content.py
from fastapi import APIRouter, HTTPException, Body, Request, Depends
import logging

from cas_core.cid import is_valid_cid
from cas_core.errors import CIDValidationError, EncodingError
from cas_core.models import BatchItem, BatchUploadRequest, CidInfo, ServiceResponse
from cas_core.storage import StorageClient

logger = logging.getLogger("CAS_Core").getChild("StorageService").getChild("ContentRouter")

router = APIRouter()


def get_storage_client(request: Request) -> StorageClient:
    """Dependency function to get the StorageClient from app state."""
    client = getattr(request.app.state, 'storage_client', None)
    if not client:
        logger.error("Storage client dependency not met: Client not available in application state.")
        raise HTTPException(status_code=503, detail="Storage client not ready")
    return client


@router.post("/content", response_model=ServiceResponse)
async def upload_content(
    client: StorageClient = Depends(get_storage_client),
    payload: BatchItem = Body(...)
):
    """Envelope and store a single payload."""
    logger.info(f"Upload request: kind='{payload.kind}', filename={payload.filename}")
    try:
        result = await client.upload(payload.payload, payload.kind, payload.metadata, filename=payload.filename)
    except EncodingError as e:
        logger.warning(f"Rejected upload of kind '{payload.kind}': {e}")
        raise HTTPException(status_code=422, detail=str(e))
    return ServiceResponse(status="success", data=result.model_dump(mode="json"), message=f"Stored via {result.used_backend.value} backend.")


@router.post("/content/batch", response_model=ServiceResponse)
async def upload_content_batch(
    client: StorageClient = Depends(get_storage_client),
    payload: BatchUploadRequest = Body(...)
):
    """Store several payloads; each position reports its own result or error."""
    logger.info(f"Batch upload request with {len(payload.items)} item(s).")
    outcomes = await client.upload_many(payload.items)
    data = [o.model_dump(mode="json") for o in outcomes]
    failed = sum(1 for item in data if "error_type" in item)
    return ServiceResponse(status="success", data=data, message=f"{len(data) - failed} stored, {failed} failed.")


@router.get("/content/{cid}", response_model=ServiceResponse)
async def download_content(cid: str, client: StorageClient = Depends(get_storage_client)):
    logger.info(f"Download request for CID: {cid}")
    try:
        result = await client.download(cid)
    except CIDValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not result.found:
        return ServiceResponse(status="error", data=result.model_dump(mode="json", by_alias=True), message="Content not found.")
    return ServiceResponse(status="success", data=result.model_dump(mode="json", by_alias=True))


@router.get("/cid/{cid}", response_model=ServiceResponse)
async def describe_cid(cid: str, client: StorageClient = Depends(get_storage_client)):
    valid = is_valid_cid(cid)
    info = CidInfo(cid=cid, valid=valid, gateway_url=client.gateway_url(cid) if valid else None)
    return ServiceResponse(status="success", data=info.model_dump())
