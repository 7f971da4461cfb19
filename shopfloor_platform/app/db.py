import os
from dataclasses import dataclass

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

DEFAULT_DATABASE_URL = "sqlite:///./shopfloor.sqlite"


@dataclass
class DBConfig:
    url: str
    echo: bool = False
    pool_size: int = 5

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")


def load_db_config() -> DBConfig:
    return DBConfig(
        url=os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL),
        echo=os.environ.get("SQL_ECHO", "false").lower() in {"1", "true", "yes"},
        pool_size=int(os.environ.get("DB_POOL_SIZE", "5")),
    )


def build_engine(config: DBConfig):
    if config.is_sqlite:
        # connections are handed between threads by the request threadpool
        return create_engine(config.url, echo=config.echo, connect_args={"check_same_thread": False})
    return create_engine(
        config.url, echo=config.echo, pool_size=config.pool_size, pool_pre_ping=True
    )


def build_session_factory(engine) -> sessionmaker:
    # expire_on_commit off: handlers serialize rows after the service has committed
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def dialect_name(session: Session) -> str:
    bind = session.get_bind()
    return getattr(getattr(bind, "dialect", None), "name", "")
