"""录制分块编码器（ffmpeg 标准输入管道）"""

import subprocess
import uuid
from datetime import datetime
from pathlib import Path
from typing import Optional

from config.analysis_config import AnalysisConfig
from config.capture_config import CaptureConfig


class ChunkWriterError(RuntimeError):
    """分块编码失败"""


def new_chunk_path(root: Path, timestamp: float) -> Path:
    """
    为新分块分配唯一文件路径

    格式：<root>/YYYYMMDD_HHMMSS_<8位十六进制>.mp4
    """
    root = Path(root)
    root.mkdir(parents=True, exist_ok=True)
    stamp = datetime.fromtimestamp(timestamp).strftime("%Y%m%d_%H%M%S")
    return root / f"{stamp}_{uuid.uuid4().hex[:8]}.mp4"


class ChunkWriter:
    """
    把原始 BGRA 帧写入一个 MP4 分块

    ffmpeg 从 stdin 读取 rawvideo，缩放到输出尺寸后以 H.264 baseline / yuv420p 编码，
    并把 moov 放到文件头（faststart）。
    """

    def __init__(
        self,
        file_path: Path,
        source_width: int,
        source_height: int,
        output_width: int,
        output_height: int,
        fps: int,
        bitrate: Optional[int] = None,
        ffmpeg_bin: Optional[str] = None
    ):
        self.file_path = Path(file_path)
        self.source_width = source_width
        self.source_height = source_height
        self.output_width = output_width
        self.output_height = output_height
        self.fps = fps
        self.bitrate = bitrate or CaptureConfig.BITRATE
        self.ffmpeg_bin = ffmpeg_bin or AnalysisConfig.FFMPEG_BIN
        self.frames_written = 0
        self._process: Optional[subprocess.Popen] = None

    @property
    def frame_size(self) -> int:
        return self.source_width * self.source_height * 4

    def build_command(self) -> list:
        return [
            self.ffmpeg_bin,
            '-hide_banner',
            '-loglevel', 'error',
            '-f', 'rawvideo',
            '-pix_fmt', 'bgra',
            '-s', f'{self.source_width}x{self.source_height}',
            '-r', str(self.fps),
            '-i', '-',
            '-vf', f'scale={self.output_width}:{self.output_height}',
            '-c:v', 'libx264',
            '-profile:v', 'baseline',
            '-pix_fmt', 'yuv420p',
            '-b:v', str(self.bitrate),
            # 每秒一个关键帧，后续切片可以直接流复制
            '-g', str(max(1, self.fps)),
            '-r', str(self.fps),
            '-movflags', '+faststart',
            '-an',
            '-y',
            str(self.file_path)
        ]

    def start(self):
        """启动编码进程"""
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._process = subprocess.Popen(
                self.build_command(),
                stdin=subprocess.PIPE,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE
            )
        except OSError as e:
            raise ChunkWriterError(f"无法启动 ffmpeg: {e}")

    def write_frame(self, data: bytes):
        """写入一帧（阻塞）"""
        if self._process is None or self._process.stdin is None:
            raise ChunkWriterError("编码进程未启动")
        if len(data) != self.frame_size:
            raise ChunkWriterError(f"帧大小不匹配: {len(data)} != {self.frame_size}")
        try:
            self._process.stdin.write(data)
            self._process.stdin.flush()
        except (BrokenPipeError, ValueError, OSError) as e:
            raise ChunkWriterError(f"写入帧失败: {e}")
        self.frames_written += 1

    def finish(self, timeout: float = 30.0) -> bool:
        """
        结束编码并等待文件落盘

        Returns:
            文件是否有效（进程正常退出且文件非空）；无效时文件会被删除
        """
        if self._process is None:
            return False
        process, self._process = self._process, None

        try:
            _, stderr = process.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            process.kill()
            process.communicate()
            print(f"[Recorder] ffmpeg 结束超时: {self.file_path.name}")
            self._remove_file()
            return False

        if process.returncode != 0:
            message = stderr.decode('utf-8', errors='replace').strip() if stderr else ''
            print(f"[Recorder] ffmpeg 返回码 {process.returncode}: {message}")
            self._remove_file()
            return False

        if not self.file_path.exists() or self.file_path.stat().st_size == 0:
            self._remove_file()
            return False
        return True

    def abort(self):
        """终止编码并删除不完整的文件"""
        if self._process is not None:
            process, self._process = self._process, None
            process.kill()
            process.communicate()
        self._remove_file()

    def _remove_file(self):
        if self.file_path.exists():
            self.file_path.unlink()
