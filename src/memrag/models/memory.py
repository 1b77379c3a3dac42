from datetime import datetime
from typing import Optional
from sqlmodel import Field, SQLModel
from memrag.models.base import UTCDateTime, to_utc, utc_now


class MemoryRecord(SQLModel, table=True):
    __tablename__ = "memories"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True, unique=True)
    title: str = ""
    description: str = ""
    content: str = "" # raw document, front matter included
    body: str = "" # content with metadata stripped; this is what gets chunked
    created: datetime = Field(default_factory=utc_now, sa_type=UTCDateTime, nullable=False)
    modified: datetime = Field(default_factory=utc_now, sa_type=UTCDateTime, nullable=False)
    last_processed: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
    content_hash: str = "" # sha256 of content

    @property
    def is_stale(self) -> bool:
        return self.last_processed is None or to_utc(self.modified) > to_utc(self.last_processed)


class MemoryTag(SQLModel, table=True):
    __tablename__ = "tags"

    id: Optional[int] = Field(default=None, primary_key=True)
    memory_id: int = Field(foreign_key="memories.id", index=True)
    tag_name: str = Field(index=True)
    tag_value: str = ""
