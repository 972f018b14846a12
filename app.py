from __future__ import annotations

import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from dotenv import load_dotenv

# .env は lib.media_config を読み込む前に反映させる
load_dotenv()

from fastapi import (  # noqa: E402
    Body,
    FastAPI,
    HTTPException,
    Query,
    Request,
)
from fastapi.responses import FileResponse, JSONResponse  # noqa: E402
from fastapi.middleware.cors import CORSMiddleware  # noqa: E402
from starlette.middleware.gzip import GZipMiddleware  # noqa: E402
from pydantic import BaseModel  # noqa: E402

import core  # noqa: E402
from lib.catalog import CatalogValidationError, get_smart_playlist, smart_playlist_summary, scan_media_root  # noqa: E402
from lib.catalog.scanner import files_to_dicts  # noqa: E402
from lib.media_config import DATA_DIR, MEDIA_ROOT, OVERRIDES_PATH  # noqa: E402
from lib.store import (  # noqa: E402
    DuplicateItemError,
    InvalidCollectionError,
    ItemNotFoundError,
    JsonDatabase,
    OverrideStore,
    OverrideValidationError,
    prepare_new_record,
    prepare_updates,
    validate_collection,
    validate_override_kind,
)
import logging  # noqa: E402

# Basic logging configuration to ensure logger outputs appear in the terminal
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("uvicorn.error")
logger.setLevel(logging.INFO)


# =========================
# Pydantic models
# =========================

class LocalFileModel(BaseModel):
    name: str
    path: str
    type: str
    category: str
    thumbnail: Optional[str] = None


class MergedTrackModel(BaseModel):
    id: str
    title: str
    album: str
    year: Union[int, str]  # 不明なら "unset"
    writer: str
    composer: str
    category: str
    file: LocalFileModel
    cover: Optional[str] = None
    lyrics: str = ""
    memo: Optional[str] = None
    links: Dict[str, str] = {}


class SongListMetaModel(BaseModel):
    model_config = {"extra": "allow"}

    scan_ms: Optional[float] = None
    db_ms: Optional[float] = None
    merge_ms: Optional[float] = None
    sort_ms: Optional[float] = None


class SongListResponse(BaseModel):
    tracks: List[MergedTrackModel]
    total_files: int
    categories: List[str]
    meta: Optional[SongListMetaModel] = None


class QueueEntryModel(BaseModel):
    name: str
    path: str
    type: str
    category: str
    thumbnail: Optional[str] = None
    album: Optional[str] = None


class QueueResponse(BaseModel):
    start_index: int
    tracks: List[QueueEntryModel]


class OverrideBody(BaseModel):
    value: Any


# =========================
# FastAPI app & CORS
# =========================

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"fan-library: startup media_root={app.state.media_root} data_dir={app.state.db.data_dir}")
    yield


app = FastAPI(
    title="Local Fan Library",
    version="1.0.0",
    lifespan=lifespan,
)

# Add GZip middleware for response compression (reduces payload size for large JSON)
app.add_middleware(GZipMiddleware, minimum_size=1000)

# Add request body size limit middleware (protect against extremely large payloads)
from starlette.middleware.base import BaseHTTPMiddleware  # noqa: E402

MAX_BODY_SIZE = int(os.getenv("MAX_BODY_SIZE", 25 * 1024 * 1024))


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        if request.method in ("POST", "PUT", "PATCH"):
            content_length = request.headers.get("content-length")
            try:
                size = int(content_length) if content_length else 0
            except ValueError:
                return JSONResponse(status_code=400, content={"detail": "Invalid Content-Length header"})
            if size > MAX_BODY_SIZE:
                logger.warning(f"[RequestSizeLimit] Rejected oversized request: {content_length} bytes from {request.client}")
                return JSONResponse(
                    status_code=413,
                    content={"detail": f"Request body too large (max {MAX_BODY_SIZE} bytes)"}
                )
        return await call_next(request)


app.add_middleware(RequestSizeLimitMiddleware)

# デフォルトの許可オリジン（ローカルのフロントエンド）
default_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

# 環境変数 ALLOWED_ORIGINS があればそれを優先（カンマ区切り）
env_origins = os.getenv("ALLOWED_ORIGINS")
if env_origins:
    origins = [o.strip() for o in env_origins.split(",") if o.strip()]
else:
    origins = default_origins

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# テストでは app.state の各値を差し替える
app.state.db = JsonDatabase(DATA_DIR)
app.state.overrides = OverrideStore(OVERRIDES_PATH)
app.state.media_root = MEDIA_ROOT


# =========================
# Health check
# =========================

@app.get("/health", tags=["system"])
def health() -> Dict[str, Any]:
    return {
        "ok": True,
        "status": "ok",
        "build_commit": os.getenv("GIT_COMMIT", "local")[:7],
    }


@app.get("/", tags=["system"])
def root() -> Dict[str, Any]:
    return {"ok": True, "status": "ok"}


# =========================
# Core helpers
# =========================

def _db(request: Request) -> JsonDatabase:
    return request.app.state.db


def _overrides(request: Request) -> OverrideStore:
    return request.app.state.overrides


def _media_root(request: Request):
    return request.app.state.media_root


def _collection_or_400(collection: str) -> str:
    try:
        return validate_collection(collection)
    except InvalidCollectionError as e:
        raise HTTPException(status_code=400, detail=str(e))


def _catalog_error(where: str, e: CatalogValidationError) -> HTTPException:
    logger.error(f"[{where}] invalid catalog input: {e}")
    return HTTPException(status_code=422, detail={"error": str(e), "collection": e.collection})


# =========================
# Files & media
# =========================

@app.get("/api/files", tags=["media"])
def list_files(request: Request) -> Dict[str, Any]:
    try:
        files = scan_media_root(_media_root(request))
    except OSError as e:
        logger.error(f"[api/files] error reading media directory: {e}")
        raise HTTPException(status_code=500, detail="Failed to read media files")
    return {"files": files_to_dicts(files)}


@app.get("/api/media", tags=["media"])
def get_media(request: Request, file: Optional[str] = Query(None, description="Path relative to the media root")):
    """メディアファイルを返す。Range リクエストは FileResponse が処理する。"""
    if not file:
        raise HTTPException(status_code=400, detail="File parameter is required")
    path = core.resolve_media_path(_media_root(request), file)
    if path is None:
        raise HTTPException(status_code=403, detail="Invalid file path")
    if not path.is_file():
        raise HTTPException(status_code=404, detail="File not found")
    return FileResponse(path)


# =========================
# Curated metadata store
# =========================

@app.get("/api/db/{collection}", tags=["db"])
def db_get(request: Request, collection: str, id: Optional[str] = Query(None)):
    collection = _collection_or_400(collection)
    db = _db(request)
    if id:
        item = db.get_by_id(collection, id)
        if item is None:
            raise HTTPException(status_code=404, detail=f"Item not found: {id}")
        return item
    return db.load_data(collection)


@app.post("/api/db/{collection}", tags=["db"], status_code=201)
def db_create(request: Request, collection: str, body: Dict[str, Any] = Body(...)):
    collection = _collection_or_400(collection)
    record = prepare_new_record(collection, body)
    try:
        created = _db(request).create(collection, record)
    except DuplicateItemError as e:
        raise HTTPException(status_code=409, detail=str(e))
    logger.info(f"[api/db] created {collection} id={created['id']}")
    return created


@app.put("/api/db/{collection}", tags=["db"])
def db_update(request: Request, collection: str, body: Dict[str, Any] = Body(...)):
    collection = _collection_or_400(collection)
    item_id = body.get("id")
    if not item_id:
        raise HTTPException(status_code=400, detail="id is required")
    db = _db(request)
    existing = db.get_by_id(collection, item_id)
    if existing is None:
        raise HTTPException(status_code=404, detail=f'Item with id "{item_id}" not found')
    try:
        return db.update(collection, item_id, prepare_updates(collection, existing, body))
    except ItemNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@app.delete("/api/db/{collection}", tags=["db"])
def db_delete(
    request: Request,
    collection: str,
    id: Optional[str] = Query(None),
    soft: bool = Query(False, description="Set deletedAt instead of removing"),
):
    collection = _collection_or_400(collection)
    if not id:
        raise HTTPException(status_code=400, detail="id is required")
    db = _db(request)
    if soft:
        try:
            return db.soft_delete(collection, id)
        except ItemNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
    if not db.remove(collection, id):
        raise HTTPException(status_code=404, detail=f"Item not found: {id}")
    return {"success": True}


# =========================
# Songs (catalog merge)
# =========================

@app.get("/api/songs", response_model=SongListResponse, tags=["songs"])
def get_songs(
    request: Request,
    q: str = Query("", description="Search title / album / lyrics"),
    sort: str = Query("year_desc", description="Sort option"),
    category: str = Query("all", description="Category or 'all'"),
):
    try:
        return core.list_songs(_db(request), _overrides(request), _media_root(request), q, sort, category)
    except CatalogValidationError as e:
        raise _catalog_error("api/songs", e)


@app.get("/api/songs/categories", tags=["songs"])
def get_song_categories(request: Request) -> Dict[str, Any]:
    return {"categories": core.file_categories(_media_root(request))}


@app.get("/api/songs/queue", response_model=QueueResponse, tags=["songs"])
def get_song_queue(
    request: Request,
    q: str = Query(""),
    sort: str = Query("year_desc"),
    category: str = Query("all"),
    start: int = Query(0, description="Index of the first track to play"),
):
    try:
        return core.song_queue(_db(request), _overrides(request), _media_root(request), q, sort, category, start)
    except CatalogValidationError as e:
        raise _catalog_error("api/songs/queue", e)


# =========================
# Videos / playlists / history
# =========================

@app.get("/api/videos", tags=["media"])
def get_videos(request: Request) -> Dict[str, Any]:
    return {"groups": core.video_groups(_media_root(request))}


@app.get("/api/playlists/smart", tags=["playlists"])
def list_smart_playlists(request: Request) -> Dict[str, Any]:
    return {"playlists": smart_playlist_summary(scan_media_root(_media_root(request)))}


@app.get("/api/playlists/smart/{playlist_id}", tags=["playlists"])
def get_smart_playlist_queue(request: Request, playlist_id: str, shuffle: bool = Query(False)):
    playlist = get_smart_playlist(playlist_id)
    if playlist is None:
        raise HTTPException(status_code=404, detail=f"Unknown playlist: {playlist_id}")
    return core.smart_queue(playlist, _media_root(request), shuffle=shuffle)


@app.get("/api/history", tags=["history"])
def get_history(
    request: Request,
    include_private: bool = Query(False),
    newest_first: bool = Query(False),
):
    try:
        return {"events": core.history_timeline(_db(request), include_private, newest_first)}
    except CatalogValidationError as e:
        raise _catalog_error("api/history", e)


# =========================
# Per-track overrides
# =========================

def _override_kind_or_400(kind: str) -> str:
    try:
        return validate_override_kind(kind)
    except OverrideValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/api/overrides/{kind}", tags=["overrides"])
def list_overrides(request: Request, kind: str) -> Dict[str, Any]:
    kind = _override_kind_or_400(kind)
    return _overrides(request).all(kind)


@app.get("/api/overrides/{kind}/{track_id:path}", tags=["overrides"])
def get_override(request: Request, kind: str, track_id: str):
    kind = _override_kind_or_400(kind)
    value = _overrides(request).get(kind, track_id)
    if value is None:
        raise HTTPException(status_code=404, detail=f"No {kind} override for {track_id}")
    return {"id": track_id, "value": value}


@app.put("/api/overrides/{kind}/{track_id:path}", tags=["overrides"])
def put_override(request: Request, kind: str, track_id: str, body: OverrideBody):
    kind = _override_kind_or_400(kind)
    try:
        value = _overrides(request).set(kind, track_id, body.value)
    except OverrideValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return {"id": track_id, "value": value}


@app.delete("/api/overrides/{kind}/{track_id:path}", tags=["overrides"])
def delete_override(request: Request, kind: str, track_id: str):
    kind = _override_kind_or_400(kind)
    if not _overrides(request).clear(kind, track_id):
        raise HTTPException(status_code=404, detail=f"No {kind} override for {track_id}")
    return {"success": True}


# =========================
# Backup
# =========================

@app.get("/api/backup", tags=["backup"])
def export_backup(request: Request):
    data = _db(request).export_all()
    filename = f"fan-library-db-backup-{datetime.now(timezone.utc).strftime('%Y-%m-%d')}.json"
    return JSONResponse(
        content=data,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.post("/api/backup", tags=["backup"])
def restore_backup(request: Request, body: Any = Body(...)):
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Invalid format")
    restored = _db(request).import_all(body)
    logger.info(f"[api/backup] restored collections={restored}")
    return {"success": True, "restored": restored}


@app.post("/api/backup/snapshot", tags=["backup"])
def create_backup_snapshot(request: Request) -> Dict[str, Any]:
    path = _db(request).create_backup()
    return {"success": True, "path": str(path)}


# =========================
# Local dev entrypoint
# =========================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app:app",
        host="127.0.0.1",
        port=int(os.getenv("PORT", "8000")),
        reload=True,
    )
