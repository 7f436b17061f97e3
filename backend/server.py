"""后端入口：录制引擎、批次调度与 API 运行在同一个事件循环上"""

import argparse
import asyncio

import uvicorn

from backend.runtime import build_runtime
from web_api.main import app


async def main(host: str = "127.0.0.1", port: int = 8000, record: bool = None):
    runtime = build_runtime(record_on_start=record)
    app.state.runtime = runtime

    runtime.start()
    print(f"[Info]: 录制开关: {'开' if runtime.toggle.value else '关'}")
    print(f"[Info]: 批次调度周期 {runtime.scheduler.check_interval:.0f} 秒，目标批次时长 {runtime.scheduler.target_duration:.0f} 秒")

    config = uvicorn.Config(app, host=host, port=port, log_level="info")
    server = uvicorn.Server(config)
    print(f"[API] 服务启动于 http://{host}:{port}")
    try:
        await server.serve()
    finally:
        print("[Info]: 正在停止录制和调度...")
        await runtime.shutdown()


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--record", dest="record", action="store_true", default=None, help="启动时开启录制")
    parser.add_argument("--no-record", dest="record", action="store_false", help="启动时不录制")
    args = parser.parse_args()

    try:
        asyncio.run(main(args.host, args.port, args.record))
    except KeyboardInterrupt:
        print("\nServer shutting down.")
