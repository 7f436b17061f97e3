"""屏幕录制配置"""

from pathlib import Path

from dotenv import load_dotenv

from config.env import get_config

load_dotenv()


class CaptureConfig:
    """录制引擎配置"""
    
    # 每个分块文件的时长（秒）
    CHUNK_SECONDS: float = get_config("CAPTURE_CHUNK_SECONDS", 15.0, float)
    # 采集帧率，刻意保持很低
    FPS: int = get_config("CAPTURE_FPS", 1, int)
    # 输出高度（宽度按屏幕比例计算，并保证为偶数）
    TARGET_HEIGHT: int = get_config("CAPTURE_TARGET_HEIGHT", 1080, int)
    # 输出码率（bit/s）
    BITRATE: int = get_config("CAPTURE_BITRATE", 2_500_000, int)
    
    # 打开采集会话失败时的最大尝试次数，退避为 attempt * RETRY_BASE_DELAY 秒
    MAX_START_ATTEMPTS: int = get_config("CAPTURE_MAX_START_ATTEMPTS", 4, int)
    RETRY_BASE_DELAY: float = get_config("CAPTURE_RETRY_BASE_DELAY", 1.0, float)
    
    # 唤醒 / 解锁后的恢复延迟，给采集源重新枚举显示器的时间
    WAKE_RESUME_DELAY: float = get_config("CAPTURE_WAKE_RESUME_DELAY", 5.0, float)
    UNLOCK_RESUME_DELAY: float = get_config("CAPTURE_UNLOCK_RESUME_DELAY", 0.5, float)
    
    RECORDINGS_ROOT: Path = Path(get_config("RECORDINGS_ROOT", "recordings"))
    
    # 启动时是否默认开启录制
    RECORD_ON_START: bool = get_config("RECORD_ON_START", True, bool)
