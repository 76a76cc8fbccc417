from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from repoaudit.core.config import settings
from repoaudit.models.base import Base

# Model modules register their tables on Base.metadata
from repoaudit.models import job as _job  # noqa: F401
from repoaudit.models import report as _report  # noqa: F401


def make_engine(url: str):
    connect_args = {}
    if url.startswith("sqlite"):
        # Reducer and coordinator may run on different threads of one worker
        connect_args["check_same_thread"] = False
    return create_engine(url, connect_args=connect_args, future=True)


engine = make_engine(settings.DATABASE_URL)
SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)


def init_db(bind=None) -> None:
    Base.metadata.create_all(bind=bind or engine)
