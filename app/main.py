# 【入口】整个程序的启动点
from fastapi import FastAPI
from loguru import logger
import sys

from app.api.deps import get_assigner
from app.api.v1.router import api_router
from app.core.config import settings
from app.core.redis_client import redis_client


# ========================================
# Loguru 日志配置
# ========================================
def setup_logger():
    """配置 loguru 日志系统"""
    # 移除默认的 handler
    logger.remove()

    # 添加控制台输出（彩色）
    logger.add(
        sys.stdout,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        level=settings.LOG_LEVEL,
        colorize=True,
    )

    # 如果配置了日志文件，添加文件输出
    if settings.LOG_FILE:
        logger.add(
            settings.LOG_FILE,
            rotation="100 MB",  # 日志文件达到 100MB 时轮转
            retention="10 days",  # 保留最近 10 天的日志
            compression="zip",  # 压缩旧日志
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
            level=settings.LOG_LEVEL,
        )

    logger.info("Loguru 日志系统初始化完成")


# 初始化日志
setup_logger()


# ========================================
# FastAPI 应用配置
# ========================================
app = FastAPI(
    title="Ranking & Personalization Engine",
    description="搜索相关性、标签质量、个性化加权与实验分桶的排序服务",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

# 注册所有路由，统一加前缀 /api/v1
app.include_router(api_router, prefix="/api/v1")


@app.on_event("startup")
async def startup_event():
    """应用启动事件"""
    logger.info("=" * 60)
    logger.info("排序引擎正在启动...")
    logger.info(f"调试模式: {settings.DEBUG}")
    logger.info(f"日志级别: {settings.LOG_LEVEL}")
    logger.info("=" * 60)
    # Redis 只做质量分缓存，连不上也照常启动
    await redis_client.connect()


@app.on_event("shutdown")
async def shutdown_event():
    """应用关闭事件"""
    logger.info("排序引擎正在关闭，等待未完成的实验记录...")
    await get_assigner().drain()
    await redis_client.close()


@app.get("/")
def health_check():
    """存活检查端点"""
    return {
        "status": "ok",
        "message": "Ranking engine is running!",
        "version": "1.0.0",
    }
