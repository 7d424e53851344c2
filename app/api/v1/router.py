# 路由汇总
from fastapi import APIRouter
from app.api.v1.endpoints import abtest, health, ranking, tags

api_router = APIRouter()

# 挂载搜索排序模块 (访问地址: /api/v1/ranking/...)
api_router.include_router(ranking.router, prefix="/ranking", tags=["搜索排序模块"])

# 挂载实验分桶模块 (访问地址: /api/v1/abtest/...)
api_router.include_router(abtest.router, prefix="/abtest", tags=["实验分桶模块"])

# 挂载商品健康分模块 (访问地址: /api/v1/health/...)
api_router.include_router(health.router, prefix="/health", tags=["商品健康分模块"])

# 挂载标签分析模块 (访问地址: /api/v1/tags/...)
api_router.include_router(tags.router, prefix="/tags", tags=["标签分析模块"])
