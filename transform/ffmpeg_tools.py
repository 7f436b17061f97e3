"""ffmpeg / ffprobe 封装（阻塞调用）"""

import os
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import List, Optional

from config.analysis_config import AnalysisConfig


class TransformError(RuntimeError):
    """视频变换失败"""


def run_ffmpeg(cmd: List[str], description: str) -> subprocess.CompletedProcess:
    """
    执行 ffmpeg 命令

    Args:
        cmd: 完整命令
        description: 用于错误信息的操作描述

    Raises:
        TransformError: 进程无法启动或返回非零
    """
    try:
        return subprocess.run(cmd, capture_output=True, text=True, check=True)
    except FileNotFoundError as e:
        raise TransformError(f"{description}失败，找不到可执行文件: {e}")
    except subprocess.CalledProcessError as e:
        stderr = (e.stderr or '').strip()
        raise TransformError(f"{description}失败（返回码 {e.returncode}）: {stderr[-2000:]}")


def probe_duration(video_path: Path, ffprobe_bin: Optional[str] = None) -> float:
    """
    获取视频时长（秒）

    Raises:
        TransformError: 无法读取时长
    """
    cmd = [
        ffprobe_bin or AnalysisConfig.FFPROBE_BIN,
        '-v', 'error',
        '-show_entries', 'format=duration',
        '-of', 'default=noprint_wrappers=1:nokey=1',
        str(video_path)
    ]
    result = run_ffmpeg(cmd, "读取视频时长")
    try:
        return float(result.stdout.strip())
    except ValueError:
        raise TransformError(f"无法解析视频时长: {result.stdout.strip()!r}")


def concat_files(video_files: List[Path], output_path: Path, ffmpeg_bin: Optional[str] = None) -> Path:
    """
    按顺序拼接视频文件（concat demuxer，流复制）

    只有一个文件时直接复制。
    """
    if not video_files:
        raise TransformError("没有可拼接的视频文件")

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    if len(video_files) == 1:
        shutil.copyfile(video_files[0], output_path)
        return output_path

    # concat demuxer 需要一个文件列表
    fd, list_path = tempfile.mkstemp(suffix='.txt', prefix='concat_', dir=str(output_path.parent))
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            for video_file in video_files:
                escaped = str(Path(video_file).resolve()).replace("'", "'\\''")
                f.write(f"file '{escaped}'\n")

        cmd = [
            ffmpeg_bin or AnalysisConfig.FFMPEG_BIN,
            '-hide_banner',
            '-f', 'concat',
            '-safe', '0',
            '-i', list_path,
            '-c', 'copy',
            '-movflags', '+faststart',
            '-y',
            str(output_path)
        ]
        run_ffmpeg(cmd, "拼接视频")
    finally:
        os.unlink(list_path)
    return output_path


def extract_segment(
    video_path: Path,
    start: float,
    duration: float,
    output_path: Path,
    ffmpeg_bin: Optional[str] = None
) -> Path:
    """
    提取 [start, start + duration) 区间（流复制，不重新编码）
    """
    if duration <= 0:
        raise TransformError(f"无效的片段时长: {duration}")
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    cmd = [
        ffmpeg_bin or AnalysisConfig.FFMPEG_BIN,
        '-hide_banner',
        '-ss', f"{max(0.0, start):.3f}",
        '-i', str(video_path),
        '-t', f"{duration:.3f}",
        '-c', 'copy',
        '-avoid_negative_ts', 'make_zero',
        '-y',
        str(output_path)
    ]
    run_ffmpeg(cmd, "提取视频片段")
    return output_path


def sample_frames(
    video_path: Path,
    pick_interval: int,
    output_fps: int,
    output_path: Path,
    ffmpeg_bin: Optional[str] = None
) -> Path:
    """
    每 pick_interval 帧保留一帧，按 output_fps 重新计时并编码
    """
    if pick_interval < 1:
        raise TransformError(f"无效的抽帧间隔: {pick_interval}")
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    video_filter = f"select='not(mod(n\\,{pick_interval}))',setpts=N/({output_fps}*TB)"
    cmd = [
        ffmpeg_bin or AnalysisConfig.FFMPEG_BIN,
        '-hide_banner',
        '-i', str(video_path),
        '-vf', video_filter,
        '-r', str(output_fps),
        '-c:v', 'libx264',
        '-pix_fmt', 'yuv420p',
        '-movflags', '+faststart',
        '-an',
        '-y',
        str(output_path)
    ]
    run_ffmpeg(cmd, "生成摘要视频")
    return output_path
