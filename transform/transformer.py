"""视频变换阶段：拼接、切片、摘要"""

import asyncio
import uuid
from pathlib import Path
from typing import Iterable, List, Optional, Union

from config.analysis_config import AnalysisConfig
from transform import ffmpeg_tools
from transform.ffmpeg_tools import TransformError

PathLike = Union[str, Path]


class VideoTransformer:
    """
    视频变换

    每个操作只读写自己的文件，可以被多个批次并发调用。阻塞的 ffmpeg 进程
    在线程池中运行。操作失败时会删除未完成的输出文件并抛出 TransformError。
    """

    def __init__(
        self,
        temp_dir: Optional[PathLike] = None,
        summaries_root: Optional[PathLike] = None,
        output_fps: Optional[int] = None,
        ffmpeg_bin: Optional[str] = None,
        ffprobe_bin: Optional[str] = None
    ):
        self.temp_dir = Path(temp_dir or AnalysisConfig.TEMP_DIR)
        self.summaries_root = Path(summaries_root or AnalysisConfig.SUMMARIES_ROOT)
        self.output_fps = output_fps or AnalysisConfig.SUMMARY_OUTPUT_FPS
        self.ffmpeg_bin = ffmpeg_bin or AnalysisConfig.FFMPEG_BIN
        self.ffprobe_bin = ffprobe_bin or AnalysisConfig.FFPROBE_BIN

    def temp_path(self, prefix: str, suffix: str = ".mp4") -> Path:
        """分配一个临时文件路径"""
        self._ensure_dir(self.temp_dir)
        return self.temp_dir / f"{prefix}_{uuid.uuid4().hex[:8]}{suffix}"

    def summary_output_path(
        self,
        day: str,
        batch_id: int,
        card_index: int,
        distraction_index: Optional[int] = None
    ) -> Path:
        """
        摘要视频的存放路径

        格式：<summaries_root>/<day>/batch_<id>_card_<n>[_dist_<m>]_<8位十六进制>_summary.mp4
        """
        name = f"batch_{batch_id}_card_{card_index}"
        if distraction_index is not None:
            name += f"_dist_{distraction_index}"
        directory = self.summaries_root / day
        self._ensure_dir(directory)
        return directory / f"{name}_{uuid.uuid4().hex[:8]}_summary.mp4"

    async def stitch(self, video_files: List[PathLike], output_path: Optional[PathLike] = None) -> Path:
        """
        按顺序拼接分块文件

        不存在的文件会被跳过；全部缺失时抛出 TransformError。
        """
        existing = [Path(f) for f in video_files if Path(f).exists()]
        missing = len(video_files) - len(existing)
        if missing:
            print(f"[Transform] 跳过 {missing} 个缺失的分块文件")
        if not existing:
            raise TransformError("批次中没有可用的视频文件")

        output = Path(output_path) if output_path else self.temp_path("stitched")
        await self._run(output, ffmpeg_tools.concat_files, existing, output, self.ffmpeg_bin)
        return output

    async def extract_segment(
        self,
        source: PathLike,
        start: float,
        duration: float,
        output_path: Optional[PathLike] = None
    ) -> Path:
        """提取 [start, start + duration) 区间，不重新编码"""
        output = Path(output_path) if output_path else self.temp_path("segment")
        await self._run(output, ffmpeg_tools.extract_segment, Path(source), start, duration, output, self.ffmpeg_bin)
        return output

    async def generate_summary(self, source: PathLike, pick_interval: int, output_path: PathLike) -> Path:
        """每 pick_interval 帧保留一帧，生成更短的摘要视频"""
        output = Path(output_path)
        await self._run(
            output,
            ffmpeg_tools.sample_frames,
            Path(source),
            pick_interval,
            self.output_fps,
            output,
            self.ffmpeg_bin
        )
        return output

    async def probe_duration(self, video_path: PathLike) -> float:
        return await asyncio.to_thread(ffmpeg_tools.probe_duration, Path(video_path), self.ffprobe_bin)

    async def _run(self, output: Path, func, *args):
        try:
            await asyncio.to_thread(func, *args)
        except TransformError:
            self.cleanup([output])
            raise
        except OSError as e:
            self.cleanup([output])
            raise TransformError(f"读写视频文件失败: {e}")
        except Exception:
            self.cleanup([output])
            raise
        if not output.exists() or output.stat().st_size == 0:
            self.cleanup([output])
            raise TransformError(f"输出文件为空: {output.name}")

    @staticmethod
    def _ensure_dir(directory: Path):
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise TransformError(f"无法创建目录 {directory}: {e}")

    @staticmethod
    def cleanup(paths: Iterable[Optional[PathLike]]):
        """删除文件（忽略不存在的文件）"""
        for path in paths:
            if not path:
                continue
            path = Path(path)
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                print(f"[Transform] 删除文件失败 {path}: {e}")
