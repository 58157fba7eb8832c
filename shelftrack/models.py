from sqlalchemy import JSON, Column, DateTime, Integer, String
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class MediaRecord(Base):
    __tablename__ = "media_items"

    id = Column(String(64), primary_key=True, index=True)
    owner_id = Column(String(128), nullable=False, index=True)
    name = Column(String(255), nullable=True)
    media_kind = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, default="InProgress")
    cover_art_url = Column(String(1024), nullable=True)
    progress_current = Column(Integer, nullable=False, default=0)
    progress_total = Column(Integer, nullable=True)
    # NULL for rows written before progress was stored as an absolute count.
    progress_model = Column(String(20), nullable=True)
    season_info = Column(JSON, nullable=True)
    additional_progress = Column(JSON, nullable=True)
    external = Column(JSON, nullable=True)
    date_added = Column(DateTime(timezone=True), nullable=False)
    date_paused = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
