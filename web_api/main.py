"""FastAPI 应用入口"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from web_api.routers import batches, recording, timeline

app = FastAPI(
    title="Screen Journal API",
    description="屏幕录制时间线 API",
    version="1.0.0"
)

# 配置 CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000"],  # Vite 默认端口
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 注册路由
app.include_router(recording.router)
app.include_router(timeline.router)
app.include_router(batches.router)


@app.get("/")
def root():
    """根路径"""
    return {"message": "Screen Journal API", "version": "1.0.0"}


@app.get("/health")
def health():
    """健康检查"""
    return {"status": "ok"}
