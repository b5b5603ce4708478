# cas_core/batch.py
"""
Batch Coordinator.

Partial-success semantics: every input position gets either an UploadResult
or an ErrorDetail, in input order, so callers can retry just the failures.
Uploads run concurrently with no concurrency cap; wrap the client in your own
limiter if you need one.
"""
import asyncio
import logging
from typing import TYPE_CHECKING, Any, List, Mapping, Sequence, Union

from cas_core.errors import StorageError
from cas_core.models import BatchItem, BatchOutcome, ErrorDetail, UploadResult
from cas_core.utils import now_ms

if TYPE_CHECKING:
    from cas_core.storage import StorageClient

logger = logging.getLogger("CAS_Core").getChild("Batch")


class BatchCoordinator:
    def __init__(self, client: "StorageClient"):
        self._client = client

    async def _upload_one(self, index: int, item: Union[BatchItem, Mapping[str, Any]], stamp: int) -> UploadResult:
        if not isinstance(item, BatchItem):
            item = BatchItem.model_validate(item)
        filename = item.filename or f"batch-{index}-{stamp}.json"
        return await self._client.upload(item.payload, item.kind, item.metadata, filename=filename)

    async def upload_many(self, items: Sequence[Union[BatchItem, Mapping[str, Any]]]) -> List[BatchOutcome]:
        """Uploads all `items` concurrently; result i corresponds to items[i]."""
        if not items:
            return []
        stamp = now_ms()
        logger.info(f"Starting batch upload of {len(items)} item(s).")
        results = await asyncio.gather(
            *(self._upload_one(index, item, stamp) for index, item in enumerate(items)),
            return_exceptions=True,
        )

        outcomes: List[BatchOutcome] = []
        for index, result in enumerate(results):
            # Cancellation and other BaseExceptions are not per-item errors.
            if isinstance(result, BaseException) and not isinstance(result, Exception):
                raise result
            if isinstance(result, Exception):
                error_type = result.kind if isinstance(result, StorageError) else type(result).__name__
                logger.error(f"Batch item {index} failed ({error_type}): {result}")
                outcomes.append(ErrorDetail(index=index, error_type=error_type, message=str(result)))
            else:
                outcomes.append(result)

        failed = sum(1 for o in outcomes if isinstance(o, ErrorDetail))
        logger.info(f"Batch upload finished: {len(outcomes) - failed} succeeded, {failed} failed.")
        return outcomes
