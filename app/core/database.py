# 数据库连接池生成器
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from dotenv import load_dotenv

from app.core.config import settings

# 1. 加载环境变量 (.env)
load_dotenv()

# 2. 创建数据库引擎 (Engine)
# pool_recycle=3600: MySQL 默认会断开空闲 8 小时的连接，这里每 1 小时回收重连
# pool_pre_ping=True: 每次从池子里拿连接前先 ping 一下，确保连接是活的
engine = create_engine(
    settings.database_url,
    pool_recycle=3600,
    pool_pre_ping=True,
)

# 3. Session 工厂：每个请求 / 每次信号读取都从这里拿一个短生命周期的会话
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# 4. 所有 Model 都继承这个 Base
Base = declarative_base()
