"""分析批次路由"""

from fastapi import APIRouter, Depends, Query

from storage.interface import ChunkStore
from web_api.dependencies import get_store
from web_api.models.schemas import BatchListResponse, BatchResponse

router = APIRouter(prefix="/batches", tags=["batches"])


@router.get("", response_model=BatchListResponse)
def list_batches(
    limit: int = Query(50, ge=1, le=500),
    store: ChunkStore = Depends(get_store)
):
    """获取最近的分析批次"""
    batches = store.fetch_recent_batches(limit)
    return BatchListResponse(
        batches=[
            BatchResponse(
                batch_id=b.batch_id,
                start_ts=b.start_ts,
                end_ts=b.end_ts,
                status=b.status.value,
                reason=b.reason,
                chunk_count=len(b.chunk_ids)
            )
            for b in batches
        ]
    )
