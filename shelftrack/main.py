from contextlib import asynccontextmanager
import logging
import os
from typing import List, Optional
import uuid

from apscheduler.schedulers.background import BackgroundScheduler
from fastapi import Depends, FastAPI, Header, HTTPException
from sqlalchemy.orm import Session

from shelftrack import navigator
from shelftrack.db import SessionLocal, engine
from shelftrack.errors import ItemNotFoundError, SeasonNavigationError
from shelftrack.models import Base, MediaRecord
from shelftrack.mutator import apply_patch, utcnow, with_status
from shelftrack.presenter import progress_view
from shelftrack.repository import (
    create_media,
    delete_media,
    get_media,
    list_media,
    normalize_legacy_rows,
    replace_media,
)
from shelftrack.schemas import MediaItem, MediaItemUpdate, ProgressView, StatusUpdate

logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler()
LEGACY_SWEEP_HOURS = float(os.getenv("LEGACY_SWEEP_HOURS", "24"))
LEGACY_SWEEP_ENABLED = os.getenv("LEGACY_SWEEP_ENABLED", "true").lower() == "true"


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_owner_id(x_owner_id: Optional[str] = Header(None)) -> str:
    if not x_owner_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    return x_owner_id


def run_legacy_sweep() -> None:
    db = SessionLocal()
    try:
        scanned, converted = normalize_legacy_rows(db)
        logger.info("Legacy sweep done. Scanned %s, converted %s.", scanned, converted)
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    if LEGACY_SWEEP_ENABLED:
        scheduler.add_job(
            run_legacy_sweep,
            "interval",
            hours=LEGACY_SWEEP_HOURS,
            id="legacy_sweep",
            replace_existing=True,
        )
        scheduler.start()
    yield
    if scheduler.running:
        scheduler.shutdown()


app = FastAPI(title="shelftrack", lifespan=lifespan)


def owned_item(db: Session, item_id: str, owner_id: str) -> MediaItem:
    try:
        return get_media(db, item_id, owner_id)
    except ItemNotFoundError:
        raise HTTPException(status_code=404, detail="Media item not found")


def save(db: Session, item: MediaItem) -> MediaItem:
    try:
        return replace_media(db, item.id, item)
    except ItemNotFoundError:
        raise HTTPException(status_code=404, detail="Media item not found")


@app.get("/api/media", response_model=List[MediaItem])
def list_media_items(owner_id: str = Depends(get_owner_id), db: Session = Depends(get_db)):
    return list_media(db, owner_id)


@app.post("/api/media")
def create_media_item(
    payload: MediaItem, owner_id: str = Depends(get_owner_id), db: Session = Depends(get_db)
):
    item_id = payload.id
    if not item_id or db.get(MediaRecord, item_id) is not None:
        item_id = uuid.uuid4().hex
    item = payload.model_copy(update={"id": item_id, "owner_id": owner_id})
    return {"id": create_media(db, item)}


@app.get("/api/media/{item_id}", response_model=MediaItem)
def get_media_item(
    item_id: str, owner_id: str = Depends(get_owner_id), db: Session = Depends(get_db)
):
    return owned_item(db, item_id, owner_id)


@app.put("/api/media/{item_id}", response_model=MediaItem)
def replace_media_item(
    item_id: str,
    payload: MediaItem,
    owner_id: str = Depends(get_owner_id),
    db: Session = Depends(get_db),
):
    return save(db, payload.model_copy(update={"id": item_id, "owner_id": owner_id}))


@app.patch("/api/media/{item_id}", response_model=MediaItem)
def update_media_item(
    item_id: str,
    payload: MediaItemUpdate,
    owner_id: str = Depends(get_owner_id),
    db: Session = Depends(get_db),
):
    item = owned_item(db, item_id, owner_id)
    return save(db, apply_patch(item, payload, utcnow()))


@app.patch("/api/media/{item_id}/status", response_model=MediaItem)
def update_media_status(
    item_id: str,
    payload: StatusUpdate,
    owner_id: str = Depends(get_owner_id),
    db: Session = Depends(get_db),
):
    item = owned_item(db, item_id, owner_id)
    return save(db, with_status(item, payload.status, utcnow()))


@app.post("/api/media/{item_id}/season/{direction}", response_model=MediaItem)
def navigate_season(
    item_id: str,
    direction: str,
    owner_id: str = Depends(get_owner_id),
    db: Session = Depends(get_db),
):
    moves = {"advance": navigator.advance, "retreat": navigator.retreat}
    if direction not in moves:
        raise HTTPException(status_code=404, detail="Unknown season direction")
    item = owned_item(db, item_id, owner_id)
    try:
        moved = moves[direction](item)
    except SeasonNavigationError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return save(db, moved)


@app.get("/api/media/{item_id}/progress", response_model=ProgressView)
def get_media_progress(
    item_id: str, owner_id: str = Depends(get_owner_id), db: Session = Depends(get_db)
):
    return progress_view(owned_item(db, item_id, owner_id))


@app.delete("/api/media/{item_id}")
def delete_media_item(
    item_id: str, owner_id: str = Depends(get_owner_id), db: Session = Depends(get_db)
):
    try:
        delete_media(db, item_id, owner_id)
    except ItemNotFoundError:
        raise HTTPException(status_code=404, detail="Media item not found")
    return {"deleted": item_id}
