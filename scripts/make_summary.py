#!/usr/bin/env python3
"""离线生成摘要视频：拼接分块 → （可选）截取区间 → 抽帧重编码"""

import sys
import argparse
import asyncio
from pathlib import Path
from typing import List

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from config.analysis_config import AnalysisConfig
from transform.ffmpeg_tools import TransformError
from transform.transformer import VideoTransformer
from utils.time_utils import format_video_timestamp, parse_video_timestamp


def collect_inputs(inputs: List[str]) -> List[Path]:
    """展开输入：目录中的 .mp4 按文件名排序（文件名包含时间戳，排序后就是时间顺序）"""
    files = []
    for item in inputs:
        path = Path(item)
        if path.is_dir():
            files.extend(sorted(path.glob("*.mp4")))
        else:
            files.append(path)
    return files


async def make_summary(
    video_files: List[Path],
    output_path: Path,
    pick_interval: int,
    start: float = None,
    end: float = None
) -> Path:
    transformer = VideoTransformer()
    temp_files = []
    try:
        stitched = await transformer.stitch(video_files)
        temp_files.append(stitched)
        duration = await transformer.probe_duration(stitched)
        print(f"拼接完成: {len(video_files)} 个文件，时长 {format_video_timestamp(duration)}")
        
        source = stitched
        if start is not None or end is not None:
            range_start = start or 0.0
            range_end = min(end if end is not None else duration, duration)
            source = await transformer.extract_segment(stitched, range_start, range_end - range_start)
            temp_files.append(source)
            print(f"截取区间: {format_video_timestamp(range_start)} - {format_video_timestamp(range_end)}")
        
        await transformer.generate_summary(source, pick_interval, output_path)
        return output_path
    finally:
        transformer.cleanup(temp_files)


def main():
    parser = argparse.ArgumentParser(
        description="拼接录制分块并生成抽帧摘要视频",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
示例:
  python scripts/make_summary.py recordings/ -o summary.mp4
  python scripts/make_summary.py a.mp4 b.mp4 --start 01:30 --end 05:00 --pick 15 -o dist.mp4
        """
    )
    parser.add_argument('inputs', nargs='+', help='分块文件或包含分块的目录')
    parser.add_argument('-o', '--output', required=True, help='输出文件路径')
    parser.add_argument('--pick', type=int, default=AnalysisConfig.MAIN_SUMMARY_PICK_INTERVAL,
                        help='每 N 帧保留一帧（默认: %(default)s）')
    parser.add_argument('--start', default=None, help='区间开始（MM:SS 或 HH:MM:SS）')
    parser.add_argument('--end', default=None, help='区间结束（MM:SS 或 HH:MM:SS）')
    args = parser.parse_args()
    
    video_files = collect_inputs(args.inputs)
    if not video_files:
        print("错误: 没有找到视频文件")
        sys.exit(1)
    
    start = parse_video_timestamp(args.start) if args.start else None
    end = parse_video_timestamp(args.end) if args.end else None
    if (args.start and start is None) or (args.end and end is None):
        print("错误: 时间格式应为 MM:SS 或 HH:MM:SS")
        sys.exit(1)
    if start is not None and end is not None and end <= start:
        print("错误: 结束时间必须晚于开始时间")
        sys.exit(1)
    
    try:
        output = asyncio.run(make_summary(video_files, Path(args.output), args.pick, start, end))
    except TransformError as e:
        print(f"✗ 失败: {e}")
        sys.exit(1)
    
    size_mb = output.stat().st_size / (1024 * 1024)
    print(f"✓ 成功！输出文件: {output} ({size_mb:.2f} MB)")


if __name__ == '__main__':
    main()
