from redis import ConnectionPool, Redis
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, declarative_base
from .config import settings

# Execution option a session sets to open its next SQLite transaction with BEGIN IMMEDIATE
SQLITE_BEGIN_IMMEDIATE = "sqlite_begin_immediate"


def create_db_engine(url: str):
    if not url.startswith("sqlite"):
        return create_engine(url, pool_pre_ping=True)

    engine = create_engine(url, connect_args={"check_same_thread": False}, pool_pre_ping=True)

    # pysqlite only sends BEGIN before a write; take over so reads run inside the transaction
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        if conn.get_execution_options().get(SQLITE_BEGIN_IMMEDIATE):
            # Takes the write lock up front; a second writer waits here
            conn.exec_driver_sql("BEGIN IMMEDIATE")
        else:
            conn.exec_driver_sql("BEGIN")

    return engine


engine = create_db_engine(settings.DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Shared pool for the property cache
redis_pool = ConnectionPool.from_url(settings.REDIS_URL, decode_responses=True)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_redis_client():
    client = Redis(connection_pool=redis_pool)
    try:
        yield client
    finally:
        client.close()


Base = declarative_base()
