"""批次分析提示词构建器"""

from typing import List

from storage.models import RecordingChunk
from utils.time_utils import format_clock_time, format_video_timestamp


class PromptBuilder:
    """提示词构建器"""

    def build_system_instruction(self) -> str:
        """构建系统指令"""
        return (
            "You are a careful assistant that turns screen recordings into a concise activity timeline. "
            "You only describe what is visible on screen and always answer with valid JSON."
        )

    def build_batch_prompt(self, chunks: List[RecordingChunk], video_duration: float) -> str:
        """
        构建批次分析提示词

        Args:
            chunks: 批次中的分块（按时间排序）
            video_duration: 拼接后视频的时长（秒）

        Returns:
            提示词文本
        """
        start_clock = format_clock_time(chunks[0].start_ts) if chunks else "unknown"
        end_clock = format_clock_time(chunks[-1].end_ts) if chunks else "unknown"
        length = format_video_timestamp(video_duration)

        return f"""Analyze this screen recording. It was captured at one frame per second between {start_clock} and {end_clock} and is {length} long.

Split the recording into activities. Each activity is a continuous span where the user works toward one goal.
Short detours inside an activity (checking a chat, browsing an unrelated page) are "distractions" of that activity.

## Timestamps
- All times are positions inside this video, formatted as "MM:SS" (use "HH:MM:SS" only past one hour).
- Activities must not overlap and must stay within 00:00 and {length}.

## Output
Return a single JSON object with this shape and nothing else:

```json
{{
  "cards": [
    {{
      "startTime": "MM:SS",
      "endTime": "MM:SS",
      "category": "Work | Personal | Distraction | Idle",
      "subcategory": "short label, e.g. Coding",
      "title": "short title",
      "summary": "one or two sentences",
      "detailedSummary": "a more detailed description of what happened",
      "distractions": [
        {{
          "startTime": "MM:SS",
          "endTime": "MM:SS",
          "title": "short title",
          "summary": "one sentence"
        }}
      ]
    }}
  ]
}}
```

The "distractions" array may be empty. Keep the fields in this order."""
