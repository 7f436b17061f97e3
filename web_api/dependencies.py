"""FastAPI 依赖注入"""

from fastapi import HTTPException, Request, status

from backend.runtime import Runtime
from capture.recorder import ScreenRecorder
from capture.toggle import RecordingToggle
from storage.interface import ChunkStore


def get_runtime(request: Request) -> Runtime:
    """获取后端运行时（由 backend.server 在启动时挂载）"""
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="后端尚未启动"
        )
    return runtime


def get_store(request: Request) -> ChunkStore:
    """获取分块存储"""
    return get_runtime(request).store


def get_recorder(request: Request) -> ScreenRecorder:
    """获取录制引擎"""
    return get_runtime(request).recorder


def get_toggle(request: Request) -> RecordingToggle:
    """获取录制开关"""
    return get_runtime(request).toggle
