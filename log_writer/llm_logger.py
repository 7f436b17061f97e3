"""LLM 调用审计日志"""

import json
import re
import time
import traceback
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Mapping, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from storage.interface import ChunkStore
from storage.models import LLMCallRecord

# 不落库的请求头
DROPPED_HEADERS = {"authorization", "proxy-authorization", "x-api-key", "x-goog-api-key"}
# 需要脱敏的查询参数
REDACTED_QUERY_KEYS = {"key", "api_key", "apikey", "access_token", "token", "authorization", "x-goog-api-key", "x-api-key"}

_DATA_URL_PATTERN = re.compile(r'data:([\w.+-]+/[\w.+-]+);base64,([A-Za-z0-9+/=]+)')


def redact_url(url: Optional[str]) -> Optional[str]:
    """将 URL 查询参数中的密钥替换为 <redacted>"""
    if not url:
        return url
    parts = urlsplit(url)
    if not parts.query:
        return url
    query = [
        (name, "<redacted>" if name.lower() in REDACTED_QUERY_KEYS else value)
        for name, value in parse_qsl(parts.query, keep_blank_values=True)
    ]
    return urlunsplit(parts._replace(query=urlencode(query, safe="<>")))


def filter_headers(headers: Optional[Mapping[str, Any]]) -> Optional[Dict[str, str]]:
    """去掉包含凭据的请求头"""
    if headers is None:
        return None
    return {str(k): str(v) for k, v in headers.items() if str(k).lower() not in DROPPED_HEADERS}


def strip_inline_media(body: Optional[str]) -> Optional[str]:
    """把请求体中的 base64 数据替换为长度标记"""
    if not body:
        return body
    return _DATA_URL_PATTERN.sub(
        lambda m: f"data:{m.group(1)};base64,<{len(m.group(2))} bytes omitted>",
        body
    )


class LLMCallLogger:
    """
    LLM 调用审计记录器

    每次调用写入一条记录到数据库，并镜像一行到 JSONL 调试日志。
    审计失败只打印告警，不影响分析流程。
    """

    def __init__(self, store: Optional[ChunkStore] = None, log_file: Optional[Path] = None):
        self.store = store
        if log_file is None:
            log_file = Path("logs_debug") / "llm_calls.jsonl"
        self.log_file = Path(log_file)
        self.log_file.parent.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def new_call_group_id() -> str:
        return uuid.uuid4().hex

    @staticmethod
    def start_timer() -> float:
        return time.monotonic()

    def log_call(
        self,
        *,
        provider: str,
        operation: str,
        started_at: float,
        batch_id: Optional[int] = None,
        call_group_id: Optional[str] = None,
        attempt: int = 1,
        model: Optional[str] = None,
        request_method: Optional[str] = None,
        request_url: Optional[str] = None,
        request_headers: Optional[Mapping[str, Any]] = None,
        request_body: Optional[str] = None,
        http_status: Optional[int] = None,
        response_headers: Optional[Mapping[str, Any]] = None,
        response_body: Optional[str] = None,
        error: Optional[BaseException] = None
    ) -> LLMCallRecord:
        """
        记录一次调用

        Args:
            started_at: start_timer() 的返回值，用于计算耗时
            error: 调用失败时的异常；为 None 表示成功

        Returns:
            写入的审计记录
        """
        record = LLMCallRecord(
            provider=provider,
            operation=operation,
            status="failure" if error is not None else "success",
            batch_id=batch_id,
            call_group_id=call_group_id,
            attempt=attempt,
            model=model,
            latency_ms=int((time.monotonic() - started_at) * 1000),
            http_status=http_status,
            request_method=request_method,
            request_url=redact_url(request_url),
            request_headers=filter_headers(request_headers),
            request_body=strip_inline_media(request_body),
            response_headers=filter_headers(response_headers),
            response_body=response_body,
            error_domain=type(error).__name__ if error is not None else None,
            error_code=http_status if error is not None else None,
            error_message=str(error) if error is not None else None,
            created_at=datetime.now()
        )

        if self.store is not None:
            try:
                self.store.insert_llm_call(record)
            except Exception as e:
                print(f"[LLM] 写入调用审计失败: {e}")
                traceback.print_exc()

        self._write_jsonl(record)
        return record

    def _write_jsonl(self, record: LLMCallRecord):
        entry = {
            "timestamp": record.created_at.isoformat() if record.created_at else datetime.now().isoformat(),
            "batch_id": record.batch_id,
            "call_group_id": record.call_group_id,
            "attempt": record.attempt,
            "provider": record.provider,
            "model": record.model,
            "operation": record.operation,
            "status": record.status,
            "latency_ms": record.latency_ms,
            "http_status": record.http_status,
            "request_url": record.request_url,
            "error_message": record.error_message,
        }
        try:
            with self.log_file.open("a", encoding="utf-8") as f:
                f.write(json.dumps(entry, ensure_ascii=False) + "\n")
        except OSError as e:
            print(f"[Warning]: 写入 LLM 调试日志失败: {e}")
