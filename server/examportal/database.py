from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()


def make_engine(database_url: str):
    """Create an engine; SQLite needs cross-thread access under uvicorn."""
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    return create_engine(database_url, connect_args=connect_args)


def make_session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind) -> None:
    """Create all tables registered on Base."""
    # Import models so they are registered before create_all
    import examportal.models  # noqa: F401

    Base.metadata.create_all(bind=bind)
