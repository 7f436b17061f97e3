"""时间线路由"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from storage.interface import ChunkStore
from utils.time_utils import logical_day
from web_api.dependencies import get_store
from web_api.models.schemas import DistractionResponse, TimelineCardResponse, TimelineResponse

router = APIRouter(prefix="/timeline", tags=["timeline"])


@router.get("", response_model=TimelineResponse)
def get_timeline(
    day: Optional[str] = Query(None, description="逻辑日 YYYY-MM-DD，默认今天"),
    store: ChunkStore = Depends(get_store)
):
    """获取某个逻辑日的时间线卡片"""
    if day is None:
        day = logical_day()
    else:
        try:
            datetime.strptime(day, "%Y-%m-%d")
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="日期格式应为 YYYY-MM-DD"
            )

    cards = store.fetch_timeline_cards(day)
    return TimelineResponse(
        day=day,
        cards=[
            TimelineCardResponse(
                card_id=card.card_id,
                batch_id=card.batch_id,
                start_ts=card.start_ts,
                end_ts=card.end_ts,
                day=card.day,
                title=card.title,
                category=card.category,
                subcategory=card.subcategory,
                summary=card.summary,
                detailed_summary=card.detailed_summary,
                distractions=[
                    DistractionResponse(
                        start_ts=d.start_ts,
                        end_ts=d.end_ts,
                        title=d.title,
                        summary=d.summary,
                        video_summary_path=d.video_summary_path
                    )
                    for d in card.distractions
                ],
                video_summary_path=card.video_summary_path
            )
            for card in cards
        ]
    )
