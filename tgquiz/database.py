from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine, Session
from tgquiz.config import get_settings
from tgquiz.log import get_logger

log = get_logger(__name__)
settings = get_settings()


def _engine_options(database_url: str) -> dict:
    if database_url.startswith("sqlite"):
        options = {"connect_args": {"check_same_thread": False}}
        # In-memory databases live as long as their single connection
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            options["poolclass"] = StaticPool
        return options
    return {"pool_pre_ping": True, "pool_recycle": 1800}


engine = create_engine(
    settings.database_url,
    echo=False,
    **_engine_options(settings.database_url),
)


def init_db():
    # Import registers the table models on SQLModel.metadata
    from tgquiz import models  # noqa: F401

    SQLModel.metadata.create_all(engine)


def get_session():
    with Session(engine) as session:
        yield session


def dialect_insert(session: Session):
    """Return the INSERT construct supporting ON CONFLICT for the bound dialect."""
    if session.get_bind().dialect.name == "sqlite":
        return sqlite.insert
    return postgresql.insert


if __name__ == "__main__":
    init_db()
    log.info("Migrations applied.")
