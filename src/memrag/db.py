from sqlmodel import SQLModel, create_engine, Session
from pathlib import Path
from memrag.config import settings
from memrag.logging import logger

DB_FILE = Path(settings.DB_PATH)
DATA_DIR = DB_FILE.parent
DB_URL = f"sqlite:///{DB_FILE}"

engine = create_engine(DB_URL, echo=False)

def init_db(target_engine=None):
    target_engine = target_engine or engine
    if target_engine is engine and not DATA_DIR.exists():
        DATA_DIR.mkdir(parents=True, exist_ok=True)

    # Import all models here so SQLModel knows about them
    # This is critical for create_all to work
    from memrag.models import memory, vector, backlink  # noqa: F401

    logger.info(f"Initializing database at {target_engine.url}")
    SQLModel.metadata.create_all(target_engine)

def get_session():
    with Session(engine) as session:
        yield session
