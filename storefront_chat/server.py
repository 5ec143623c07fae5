"""
Chat HTTP Server

使用 FastAPI 提供 HTTP 接口：
- /health - 健康检查
- /api/chat - 店铺小部件的聊天入口
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, UTC

import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field
from starlette.datastructures import Headers

from .config import Settings, get_settings
from .errors import ValidationError
from .pipeline import USER_INPUT_REQUIRED, ChatPipeline, build_pipeline

# 配置日志
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()

VERSION = "0.1.0"

# 客户端断开连接（nginx 约定的 499）
CLIENT_CLOSED_REQUEST = 499


# ========================================
# 请求/响应模型
# ========================================

class ChatRequest(BaseModel):
    """聊天请求（字段名与前端小部件保持一致）"""
    userInput: str | None = Field(None, description="用户消息")
    threadId: str | None = Field(None, description="Thread ID（可选，不提供则创建新 thread）")


class ChatReply(BaseModel):
    """聊天响应"""
    reply: str
    threadId: str


class HealthResponse(BaseModel):
    """健康检查响应"""
    status: str
    timestamp: str
    version: str
    uptime_seconds: float


class ClientDisconnected(Exception):
    """The caller went away while its turn was still running."""


# ========================================
# CORS
# ========================================

class OriginGuardMiddleware:
    """
    Reject requests whose Origin is not allow-listed before routing.

    Requests without an Origin header (server-to-server, curl) pass through.
    """

    def __init__(self, app, allowed_origins: list[str]):
        self.app = app
        self.allowed_origins = set(allowed_origins)

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        origin = Headers(scope=scope).get("origin")
        if origin and origin not in self.allowed_origins:
            logger.warning("cors.rejected", origin=origin, path=scope.get("path"))
            response = JSONResponse(
                {"error": f"Não permitido pelo CORS: {origin}"},
                status_code=403,
            )
            await response(scope, receive, send)
            return

        await self.app(scope, receive, send)


# ========================================
# App
# ========================================

def create_app(
    settings: Settings | None = None,
    pipeline: ChatPipeline | None = None,
) -> FastAPI:
    """
    Build the FastAPI app.

    A ready-made `pipeline` skips building the production one in the
    lifespan (tests inject one over a fake remote service).
    """
    settings = settings or get_settings()
    start_time = datetime.now(UTC)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """应用生命周期管理"""
        logger.info("server.starting", port=settings.server_port)

        http_client = None
        if getattr(app.state, "pipeline", None) is None:
            app.state.pipeline, http_client = build_pipeline(settings)

        logger.info("server.started")

        yield

        logger.info("server.stopping")
        if http_client is not None:
            await http_client.aclose()

    app = FastAPI(
        title="Storefront Chat",
        description="Chat proxy between the storefront widget and the hosted assistant",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.pipeline = pipeline

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )
    # 最后添加 = 最外层，先于 CORSMiddleware 执行
    app.add_middleware(OriginGuardMiddleware, allowed_origins=settings.allowed_origins)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        logger.info("chat.validation_error", path=request.url.path, errors=len(exc.errors()))
        return JSONResponse({"error": USER_INPUT_REQUIRED}, status_code=400)

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        """健康检查端点"""
        return HealthResponse(
            status="ok",
            timestamp=datetime.now(UTC).isoformat(),
            version=VERSION,
            uptime_seconds=(datetime.now(UTC) - start_time).total_seconds(),
        )

    @app.get("/")
    async def root():
        """根路径"""
        return {
            "name": "Storefront Chat",
            "version": VERSION,
            "chat": "/api/chat",
            "health": "/health",
        }

    @app.post("/api/chat", response_model=ChatReply)
    async def chat(payload: ChatRequest, request: Request):
        """
        处理一轮对话

        流程：
        1. 校验 userInput
        2. 确保 thread 存在并追加消息
        3. 创建 run 并轮询（必要时调用 policy 工具）
        4. 返回最新的 assistant 回复
        """
        pipeline: ChatPipeline | None = request.app.state.pipeline
        if pipeline is None:
            return JSONResponse({"error": "Server not ready"}, status_code=503)

        logger.info(
            "chat.request",
            message=(payload.userInput or "")[:50],
            thread_id=payload.threadId,
        )

        try:
            result = await run_until_disconnected(
                request,
                pipeline.handle_turn(payload.userInput, payload.threadId),
                settings.disconnect_check_interval_seconds,
            )
        except ValidationError as e:
            logger.info("chat.validation_error", error=str(e))
            return JSONResponse({"error": str(e)}, status_code=400)
        except ClientDisconnected:
            logger.info("chat.client_disconnected", thread_id=payload.threadId)
            return Response(status_code=CLIENT_CLOSED_REQUEST)
        except Exception as e:
            logger.error("chat.error", error=str(e), error_type=type(e).__name__)
            return JSONResponse({"error": str(e)}, status_code=500)

        logger.info("chat.complete", thread_id=result.thread_id, reply_chars=len(result.reply))
        return ChatReply(reply=result.reply, threadId=result.thread_id)

    return app


async def run_until_disconnected(request: Request, coro, check_interval: float):
    """
    Await `coro`, cancelling it if the client disconnects first.

    The cancellation unwinds the run polling loop through asyncio.sleep.
    """
    task = asyncio.ensure_future(coro)
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=check_interval)
            if done:
                return task.result()
            if await request.is_disconnected():
                task.cancel()
                raise ClientDisconnected()
    finally:
        if not task.done():
            task.cancel()


app = create_app()


def main():
    """启动服务器"""
    settings = get_settings()
    logger.info("server.main", host="0.0.0.0", port=settings.server_port)

    uvicorn.run(
        "storefront_chat.server:app",
        host="0.0.0.0",
        port=settings.server_port,
        reload=settings.debug,
        log_level="info",
    )


if __name__ == "__main__":
    main()
