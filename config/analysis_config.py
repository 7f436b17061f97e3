"""批处理与分析配置"""

import tempfile
from pathlib import Path

from dotenv import load_dotenv

from config.env import get_config

load_dotenv()


class AnalysisConfig:
    """批次调度、分析调度与视频变换配置"""
    
    # 调度周期（秒）
    CHECK_INTERVAL: float = get_config("ANALYSIS_CHECK_INTERVAL", 60.0, float)
    # 目标批次时长（秒），约 15 分钟
    TARGET_BATCH_DURATION: float = get_config("ANALYSIS_TARGET_BATCH_DURATION", 900.0, float)
    # 相邻分块之间允许的最大间隔（秒）
    MAX_GAP: float = get_config("ANALYSIS_MAX_GAP", 120.0, float)
    # 只回看最近 24 小时的分块
    MAX_LOOKBACK: float = get_config("ANALYSIS_MAX_LOOKBACK", 24 * 60 * 60.0, float)
    # 低于该内容时长的批次不值得调用一次分析（秒）
    MIN_BATCH_DURATION: float = get_config("ANALYSIS_MIN_BATCH_DURATION", 300.0, float)
    
    # 逻辑日的分界小时（凌晨 4 点之前算前一天）
    DAY_BOUNDARY_HOUR: int = get_config("DAY_BOUNDARY_HOUR", 4, int)
    
    # 摘要视频：每 N 帧保留一帧
    MAIN_SUMMARY_PICK_INTERVAL: int = get_config("MAIN_SUMMARY_PICK_INTERVAL", 30, int)
    DISTRACTION_SUMMARY_PICK_INTERVAL: int = get_config("DISTRACTION_SUMMARY_PICK_INTERVAL", 15, int)
    SUMMARY_OUTPUT_FPS: int = get_config("SUMMARY_OUTPUT_FPS", 2, int)
    
    SUMMARIES_ROOT: Path = Path(get_config("SUMMARIES_ROOT", "summaries"))
    TEMP_DIR: Path = Path(get_config("TRANSFORM_TEMP_DIR", str(Path(tempfile.gettempdir()) / "screen_journal")))
    
    FFMPEG_BIN: str = get_config("FFMPEG_BIN", "ffmpeg")
    FFPROBE_BIN: str = get_config("FFPROBE_BIN", "ffprobe")


class OpenRouterConfig:
    """OpenRouter 视频理解配置"""
    
    API_KEY: str = get_config("OPENROUTER_API_KEY", "")
    BASE_URL: str = get_config("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1/responses")
    MODEL: str = get_config("VIDEO_UNDERSTANDING_MODEL", "google/gemini-2.5-flash")
    TEMPERATURE: float = get_config("VL_TEMPERATURE", 0.1, float)
    TOP_P: float = get_config("VL_TOP_P", 0.7, float)
    TIMEOUT: float = get_config("OPENROUTER_TIMEOUT", 300.0, float)
