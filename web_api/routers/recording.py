"""录制控制路由"""

from fastapi import APIRouter, Depends, HTTPException, status

from capture.interface import SystemEvent
from capture.recorder import ScreenRecorder
from capture.toggle import RecordingToggle
from web_api.dependencies import get_recorder, get_toggle
from web_api.models.schemas import RecordingStatusResponse, RecordingUpdate, SystemEventResponse

router = APIRouter(prefix="/recording", tags=["recording"])


def _status(recorder: ScreenRecorder, toggle: RecordingToggle) -> RecordingStatusResponse:
    chunk_path = recorder.current_chunk_path
    return RecordingStatusResponse(
        enabled=toggle.value,
        state=recorder.state.value,
        last_stop_reason=recorder.last_stop_reason.value if recorder.last_stop_reason else None,
        current_chunk=str(chunk_path) if chunk_path else None
    )


@router.get("", response_model=RecordingStatusResponse)
def get_recording_status(
    recorder: ScreenRecorder = Depends(get_recorder),
    toggle: RecordingToggle = Depends(get_toggle)
):
    """获取录制状态"""
    return _status(recorder, toggle)


@router.put("", response_model=RecordingStatusResponse)
def update_recording(
    update: RecordingUpdate,
    recorder: ScreenRecorder = Depends(get_recorder),
    toggle: RecordingToggle = Depends(get_toggle)
):
    """打开或关闭录制"""
    if toggle.set(update.enabled):
        print(f"[API] 录制开关: {'开' if update.enabled else '关'}")
    return _status(recorder, toggle)


@router.post("/events/{event}", response_model=SystemEventResponse)
async def post_system_event(
    event: str,
    recorder: ScreenRecorder = Depends(get_recorder)
):
    """转发系统睡眠/锁屏/屏保事件"""
    try:
        system_event = SystemEvent(event)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"未知的系统事件: {event}"
        )
    # 录制引擎的状态只能在事件循环上修改
    recorder.handle_system_event(system_event)
    return SystemEventResponse(event=system_event.value, state=recorder.state.value)
