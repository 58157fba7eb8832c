import logging
from typing import Callable, List, Optional

from fastapi.concurrency import run_in_threadpool
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from shelftrack.documents import PROGRESS_MODEL_ABSOLUTE, load_media_item, normalize_season_progress
from shelftrack.errors import ItemNotFoundError, NotAuthenticatedError, RemoteStoreError
from shelftrack.models import MediaRecord
from shelftrack.schemas import MediaItem

logger = logging.getLogger(__name__)


def record_to_item(record: MediaRecord) -> MediaItem:
    return load_media_item(
        {
            "id": record.id,
            "owner_id": record.owner_id,
            "name": record.name,
            "media_kind": record.media_kind,
            "status": record.status,
            "cover_art_url": record.cover_art_url,
            "progress": {"current": record.progress_current, "total": record.progress_total},
            "progress_model": record.progress_model,
            "season_info": record.season_info,
            "additional_progress": record.additional_progress,
            "external": record.external,
            "date_added": record.date_added,
            "date_paused": record.date_paused,
        }
    )


def item_fields(item: MediaItem) -> dict:
    data = item.model_dump(mode="json", include={"season_info", "additional_progress", "external"})
    return {
        "name": item.name,
        "media_kind": item.media_kind.value,
        "status": item.status.value,
        "cover_art_url": item.cover_art_url,
        "progress_current": item.progress.current,
        "progress_total": item.progress.total,
        "progress_model": PROGRESS_MODEL_ABSOLUTE,
        "season_info": data["season_info"],
        "additional_progress": data["additional_progress"] or None,
        "external": data["external"],
        "date_paused": item.date_paused,
    }


def list_media(session: Session, owner_id: str) -> List[MediaItem]:
    records = (
        session.execute(
            select(MediaRecord)
            .where(MediaRecord.owner_id == owner_id)
            .order_by(MediaRecord.date_added, MediaRecord.id)
        )
        .scalars()
        .all()
    )
    return [record_to_item(record) for record in records]


def _owned_record(session: Session, item_id: str, owner_id: Optional[str]) -> MediaRecord:
    record = session.get(MediaRecord, item_id)
    if record is None or (owner_id is not None and record.owner_id != owner_id):
        raise ItemNotFoundError(item_id)
    return record


def get_media(session: Session, item_id: str, owner_id: Optional[str] = None) -> MediaItem:
    return record_to_item(_owned_record(session, item_id, owner_id))


def create_media(session: Session, item: MediaItem) -> str:
    if not item.owner_id:
        raise NotAuthenticatedError("Media item has no owner")
    record = MediaRecord(
        id=item.id,
        owner_id=item.owner_id,
        date_added=item.date_added,
        **item_fields(item),
    )
    session.add(record)
    session.commit()
    return record.id


def replace_media(session: Session, item_id: str, item: MediaItem) -> MediaItem:
    record = _owned_record(session, item_id, item.owner_id)
    for key, value in item_fields(item).items():
        setattr(record, key, value)
    session.add(record)
    session.commit()
    session.refresh(record)
    return record_to_item(record)


def delete_media(session: Session, item_id: str, owner_id: Optional[str] = None) -> None:
    record = _owned_record(session, item_id, owner_id)
    session.delete(record)
    session.commit()


def normalize_legacy_rows(
    session: Session, owner_id: Optional[str] = None, dry_run: bool = False
) -> tuple[int, int]:
    """Rewrite rows still holding season-relative progress. Returns (scanned, converted)."""
    query = select(MediaRecord).where(MediaRecord.progress_model.is_(None))
    if owner_id is not None:
        query = query.where(MediaRecord.owner_id == owner_id)
    records = session.execute(query.order_by(MediaRecord.id)).scalars().all()
    converted = 0
    for record in records:
        item = load_media_item(
            {
                "id": record.id,
                "media_kind": record.media_kind,
                "progress": {"current": record.progress_current, "total": record.progress_total},
                "progress_model": PROGRESS_MODEL_ABSOLUTE,
                "season_info": record.season_info,
                "date_added": record.date_added,
            }
        )
        item, changed = normalize_season_progress(item)
        if changed:
            converted += 1
        if dry_run:
            continue
        record.progress_current = item.progress.current
        record.progress_total = item.progress.total
        record.progress_model = PROGRESS_MODEL_ABSOLUTE
    if dry_run:
        session.rollback()
    else:
        session.commit()
    return len(records), converted


class SqlMediaRepository:
    """MediaRepository backed by SQLAlchemy, one session per call."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self.session_factory = session_factory

    def _run(self, operation, *args):
        session = self.session_factory()
        try:
            return operation(session, *args)
        except SQLAlchemyError as exc:
            session.rollback()
            logger.exception("Media store operation %s failed.", operation.__name__)
            raise RemoteStoreError(str(exc)) from exc
        finally:
            session.close()

    async def list(self, owner_id: str) -> List[MediaItem]:
        return await run_in_threadpool(self._run, list_media, owner_id)

    async def create(self, item: MediaItem) -> str:
        return await run_in_threadpool(self._run, create_media, item)

    async def replace(self, item_id: str, item: MediaItem) -> MediaItem:
        return await run_in_threadpool(self._run, replace_media, item_id, item)

    async def delete(self, item_id: str) -> None:
        await run_in_threadpool(self._run, delete_media, item_id)
