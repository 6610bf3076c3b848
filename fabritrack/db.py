import os
from dataclasses import dataclass

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool


@dataclass
class DBConfig:
    url: str


def load_db_config() -> DBConfig:
    url = os.environ.get("DATABASE_URL", "sqlite:///./fabritrack.sqlite")
    return DBConfig(url=url)


def build_engine(config: DBConfig):
    kwargs = {}
    if config.url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        # an in-memory database lives only as long as its single connection
        if ":memory:" in config.url:
            kwargs["poolclass"] = StaticPool
    return create_engine(config.url, **kwargs)


def build_session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)
