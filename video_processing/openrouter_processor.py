"""OpenRouter 批次分析服务（支持 Gemini 2.5 Flash，使用 /v1/responses 接口）"""

import asyncio
import base64
import json
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import requests

from config.analysis_config import OpenRouterConfig
from log_writer.llm_logger import LLMCallLogger
from storage.models import ActivityCard, Distraction, RecordingChunk
from transform.transformer import VideoTransformer
from video_processing.interface import AnalysisError, AnalysisService
from video_processing.prompt_builder import PromptBuilder

PROVIDER = "openrouter"


class OpenRouterAnalysisService(AnalysisService):
    """OpenRouter 批次分析服务"""

    def __init__(
        self,
        transformer: VideoTransformer,
        call_logger: Optional[LLMCallLogger] = None,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        temperature: Optional[float] = None,
        top_p: Optional[float] = None,
        timeout: Optional[float] = None,
        prompt_builder: Optional[PromptBuilder] = None
    ):
        """
        初始化分析服务

        Args:
            transformer: 视频变换器，用于拼接批次分块
            call_logger: 调用审计记录器
            api_key: OpenRouter API Key，如果为 None 则从环境变量 OPENROUTER_API_KEY 读取
            model: 模型名称，如果为 None 则从环境变量 VIDEO_UNDERSTANDING_MODEL 读取
        """
        self.transformer = transformer
        self.call_logger = call_logger or LLMCallLogger()
        self.api_key = api_key if api_key is not None else OpenRouterConfig.API_KEY
        self.model = model or OpenRouterConfig.MODEL
        self.base_url = base_url or OpenRouterConfig.BASE_URL
        self.temperature = temperature if temperature is not None else OpenRouterConfig.TEMPERATURE
        self.top_p = top_p if top_p is not None else OpenRouterConfig.TOP_P
        self.timeout = timeout or OpenRouterConfig.TIMEOUT
        self.prompt_builder = prompt_builder or PromptBuilder()

    async def analyze(self, batch_id: int, chunks: List[RecordingChunk]) -> List[ActivityCard]:
        if not self.api_key:
            raise AnalysisError("未提供 OPENROUTER_API_KEY，请在环境变量或参数中设置")
        if not chunks:
            raise AnalysisError("批次中没有分块")

        stitched = await self.transformer.stitch([chunk.file_path for chunk in chunks])
        try:
            try:
                duration = await self.transformer.probe_duration(stitched)
            except RuntimeError as e:
                print(f"[LLM] 无法读取拼接视频时长，使用分块时长之和: {e}")
                duration = sum(chunk.duration for chunk in chunks)

            video_base64 = await asyncio.to_thread(self._encode_video_to_base64, stitched)
            prompt = self.prompt_builder.build_batch_prompt(chunks, duration)
            system_instruction = self.prompt_builder.build_system_instruction()

            print(f"[LLM] 批次 {batch_id}: 发送 {duration:.0f} 秒视频到 {self.model}")
            result_text = await asyncio.to_thread(
                self._call_api, batch_id, video_base64, prompt, system_instruction
            )
        finally:
            self.transformer.cleanup([stitched])

        cards = self.parse_cards(result_text)
        print(f"[LLM] 批次 {batch_id}: 识别到 {len(cards)} 个活动")
        return cards

    @staticmethod
    def _encode_video_to_base64(video_path: Path) -> str:
        """将视频文件编码为 base64"""
        with open(video_path, "rb") as video_file:
            return base64.b64encode(video_file.read()).decode('utf-8')

    def _build_payload(self, video_base64: str, prompt: str, system_instruction: Optional[str]) -> Dict[str, Any]:
        input_items = []
        if system_instruction:
            input_items.append({
                "type": "message",
                "role": "system",
                "content": system_instruction
            })

        input_items.append({
            "type": "message",
            "role": "user",
            "content": [
                {
                    "type": "input_text",
                    "text": prompt
                },
                {
                    "type": "input_video",
                    "video_url": f"data:video/mp4;base64,{video_base64}"
                }
            ]
        })

        return {
            "model": self.model,
            "input": input_items,
            "temperature": self.temperature,
            "top_p": self.top_p,
            "provider": {
                "order": ["Google (Vertex)", "Google"]
            }
        }

    def _call_api(self, batch_id: int, video_base64: str, prompt: str, system_instruction: Optional[str] = None) -> str:
        """封装 OpenRouter API 调用 (使用 /v1/responses)，每次调用都写入审计记录"""
        payload = self._build_payload(video_base64, prompt, system_instruction)
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }
        body = json.dumps(payload, ensure_ascii=False)

        call_group_id = self.call_logger.new_call_group_id()
        started = self.call_logger.start_timer()
        response = None
        try:
            response = requests.post(self.base_url, data=body.encode('utf-8'), headers=headers, timeout=self.timeout)
            response.raise_for_status()
            _, result_text = self._extract_output(response.json())
        except (requests.RequestException, ValueError) as e:
            self.call_logger.log_call(
                provider=PROVIDER,
                operation="analyze_batch",
                started_at=started,
                batch_id=batch_id,
                call_group_id=call_group_id,
                model=self.model,
                request_method="POST",
                request_url=self.base_url,
                request_headers=headers,
                request_body=body,
                http_status=response.status_code if response is not None else None,
                response_headers=dict(response.headers) if response is not None else None,
                response_body=response.text if response is not None else None,
                error=e
            )
            raise AnalysisError(f"OpenRouter API 调用失败: {e}")

        self.call_logger.log_call(
            provider=PROVIDER,
            operation="analyze_batch",
            started_at=started,
            batch_id=batch_id,
            call_group_id=call_group_id,
            model=self.model,
            request_method="POST",
            request_url=self.base_url,
            request_headers=headers,
            request_body=body,
            http_status=response.status_code,
            response_headers=dict(response.headers),
            response_body=response.text
        )
        return result_text

    @staticmethod
    def _extract_output(data: Dict[str, Any]) -> Tuple[Optional[str], str]:
        """从 /v1/responses 的输出数组中提取思考内容和最终文本"""
        thinking = None
        result_text = ""

        for item in data.get("output", []):
            item_type = item.get("type")
            if item_type == "reasoning":
                content_list = item.get("content", [])
                thinking_parts = [c.get("text", "") for c in content_list if c.get("type") == "reasoning_text"]
                thinking = "\n".join(thinking_parts)
            elif item_type == "message":
                content_list = item.get("content", [])
                text_parts = [c.get("text", "") for c in content_list if c.get("type") == "output_text"]
                result_text = "\n".join(text_parts)

        return thinking, result_text

    @staticmethod
    def _extract_json(text: str) -> Optional[str]:
        """从文本中提取 JSON"""
        code_block_match = re.search(r'```(?:json)?\s*([\[{][\s\S]*?[\]}])\s*```', text)
        if code_block_match:
            return code_block_match.group(1)

        # 以最先出现的括号为准：顶层可能是对象，也可能是数组
        starts = [i for i in (text.find('{'), text.find('[')) if i != -1]
        if not starts:
            return None
        json_start = min(starts)
        close_char = '}' if text[json_start] == '{' else ']'
        json_end = text.rfind(close_char) + 1
        if json_end > json_start:
            return text[json_start:json_end]
        return None

    @classmethod
    def parse_cards(cls, response_text: str) -> List[ActivityCard]:
        """
        解析模型输出

        接受 {"cards": [...]} 或直接的数组；字段名支持 camelCase 和 snake_case。
        缺少时间或标题的卡片会被跳过。

        Raises:
            AnalysisError: 输出中没有可解析的 JSON
        """
        json_str = cls._extract_json(response_text or "")
        if not json_str:
            raise AnalysisError("模型输出中没有 JSON")
        try:
            data = json.loads(json_str)
        except json.JSONDecodeError as e:
            raise AnalysisError(f"无法解析模型输出的 JSON: {e}")

        if isinstance(data, dict):
            items = data.get("cards", [])
        elif isinstance(data, list):
            items = data
        else:
            raise AnalysisError("模型输出的 JSON 结构不正确")

        cards = []
        for item in items:
            if not isinstance(item, dict):
                continue
            card = cls._parse_card(item)
            if card is None:
                print(f"[LLM] 跳过不完整的卡片: {item.get('title', '')}")
                continue
            cards.append(card)
        return cards

    @staticmethod
    def _field(data: Dict[str, Any], camel: str, snake: str, default: Any = "") -> Any:
        value = data.get(camel)
        if value is None:
            value = data.get(snake, default)
        return default if value is None else value

    @classmethod
    def _parse_card(cls, data: Dict[str, Any]) -> Optional[ActivityCard]:
        start_time = cls._field(data, "startTime", "start_time")
        end_time = cls._field(data, "endTime", "end_time")
        title = cls._field(data, "title", "title")
        if not start_time or not end_time or not title:
            return None

        distractions = []
        for dist in data.get("distractions") or []:
            if not isinstance(dist, dict):
                continue
            distractions.append(Distraction(
                start_time=str(cls._field(dist, "startTime", "start_time")),
                end_time=str(cls._field(dist, "endTime", "end_time")),
                title=str(cls._field(dist, "title", "title")),
                summary=str(cls._field(dist, "summary", "summary"))
            ))

        return ActivityCard(
            start_time=str(start_time),
            end_time=str(end_time),
            category=str(cls._field(data, "category", "category")),
            subcategory=str(cls._field(data, "subcategory", "subcategory")),
            title=str(title),
            summary=str(cls._field(data, "summary", "summary")),
            detailed_summary=str(cls._field(data, "detailedSummary", "detailed_summary")),
            distractions=distractions
        )
