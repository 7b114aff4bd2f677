from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base
from starlette.requests import HTTPConnection

Base = declarative_base()


def make_engine(url: str, **engine_kwargs) -> Engine:
    connect_args = engine_kwargs.pop("connect_args", {})
    if url.startswith("sqlite"):
        connect_args.setdefault("check_same_thread", False)
    return create_engine(url, connect_args=connect_args, **engine_kwargs)


def get_store(connection: HTTPConnection):
    return connection.app.state.store
