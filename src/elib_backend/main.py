from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional

from fastapi import Depends, FastAPI, File, Form, Header, HTTPException, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from .asset_store import AssetStore
from .authorization import is_admin_key, resolve_identity
from .configuration import get_settings
from .coordinator import BookAssetCoordinator
from .database import BookDatabase
from .errors import CatalogError
from .key_manager import KeyManager
from .models import (
    APIKeyCreate,
    APIKeyCreated,
    APIKeyInfo,
    Book,
    BookChanges,
    BookCreated,
    BookDeleted,
)
from .staging import StagingArea

logger = logging.getLogger(__name__)

app = FastAPI(title="elib API", version="0.1.0")

allowed_origins = ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@lru_cache(maxsize=1)
def get_coordinator() -> BookAssetCoordinator:
    settings = get_settings()
    return BookAssetCoordinator(
        store=AssetStore.from_settings(settings.storage),
        database=BookDatabase(Path(settings.database.path)),
        document_format=settings.storage.document_format,
    )


@lru_cache(maxsize=1)
def get_key_manager() -> KeyManager:
    return KeyManager(get_settings().auth.keys_db_path)


def get_staging_area() -> StagingArea:
    settings = get_settings()
    return StagingArea(Path(settings.uploads.dir), max_bytes=settings.uploads.max_bytes)


def get_admin_key() -> str:
    return get_settings().auth.admin_key


def require_identity(
    x_api_key: Optional[str] = Header(None),
    keys: KeyManager = Depends(get_key_manager),
) -> str:
    owner_id = resolve_identity(x_api_key, keys)
    if owner_id is None:
        raise HTTPException(status_code=401, detail="Invalid or missing API key")
    return owner_id


def require_admin(
    x_api_key: Optional[str] = Header(None),
    admin_key: str = Depends(get_admin_key),
) -> None:
    if not is_admin_key(x_api_key, admin_key):
        raise HTTPException(status_code=401, detail="Invalid or missing admin key")


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"status": status_code, "message": message})


@app.exception_handler(CatalogError)
async def catalog_error_handler(request: Request, exc: CatalogError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return _error_response(exc.status_code, exc.response_message())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(part) for part in first.get("loc", ())[1:])
    message = first.get("msg", "Invalid request")
    return _error_response(400, f"{field}: {message}" if field else message)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _error_response(exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"{request.method} {request.url.path} failed unexpectedly")
    return _error_response(500, "Internal server error.")


@app.get("/healthz")
def healthcheck() -> Dict[str, str]:
    return {"status": "ok"}


@app.post("/api/books", response_model=BookCreated, status_code=201)
async def create_book(
    title: str = Form(...),
    genre: str = Form(...),
    description: Optional[str] = Form(None),
    cover_image: Optional[List[UploadFile]] = File(None, alias="coverImage"),
    file: Optional[List[UploadFile]] = File(None),
    owner_id: str = Depends(require_identity),
    staging: StagingArea = Depends(get_staging_area),
    coordinator: BookAssetCoordinator = Depends(get_coordinator),
) -> BookCreated:
    staged = await staging.stage_book_files(cover_image, file)
    book_id = await run_in_threadpool(
        coordinator.create_book,
        title=title,
        genre=genre,
        description=description,
        owner_id=owner_id,
        staged=staged,
    )
    return BookCreated(id=book_id)


@app.patch("/api/books/{book_id}", response_model=Book)
async def update_book(
    book_id: str,
    title: Optional[str] = Form(None),
    genre: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    cover_image: Optional[List[UploadFile]] = File(None, alias="coverImage"),
    file: Optional[List[UploadFile]] = File(None),
    requester_id: str = Depends(require_identity),
    staging: StagingArea = Depends(get_staging_area),
    coordinator: BookAssetCoordinator = Depends(get_coordinator),
) -> Book:
    staged = await staging.stage_book_files(cover_image, file)
    changes = BookChanges(title=title, genre=genre, description=description)
    return await run_in_threadpool(coordinator.update_book, book_id, requester_id, changes, staged)


@app.delete("/api/books/{book_id}", response_model=BookDeleted)
async def delete_book(
    book_id: str,
    requester_id: str = Depends(require_identity),
    coordinator: BookAssetCoordinator = Depends(get_coordinator),
) -> BookDeleted:
    return await run_in_threadpool(coordinator.delete_book, book_id, requester_id)


@app.get("/api/books", response_model=list[Book])
def list_books(coordinator: BookAssetCoordinator = Depends(get_coordinator)) -> list[Book]:
    return coordinator.list_books()


@app.get("/api/books/{book_id}", response_model=Book)
def get_book(book_id: str, coordinator: BookAssetCoordinator = Depends(get_coordinator)) -> Book:
    return coordinator.get_book(book_id)


@app.post("/admin/keys", response_model=APIKeyCreated, status_code=201, dependencies=[Depends(require_admin)])
def create_api_key(payload: APIKeyCreate, keys: KeyManager = Depends(get_key_manager)) -> APIKeyCreated:
    raw_key, record = keys.create_key(payload.owner)
    return APIKeyCreated(api_key=raw_key, record=APIKeyInfo(**record))


@app.get("/admin/keys", response_model=list[APIKeyInfo], dependencies=[Depends(require_admin)])
def list_api_keys(keys: KeyManager = Depends(get_key_manager)) -> list[APIKeyInfo]:
    return [APIKeyInfo(**record) for record in keys.list_keys()]


@app.delete("/admin/keys/{key_id}", dependencies=[Depends(require_admin)])
def revoke_api_key(key_id: str, keys: KeyManager = Depends(get_key_manager)) -> Dict[str, str]:
    if not keys.revoke_key(key_id):
        raise HTTPException(status_code=404, detail="API key not found")
    return {"status": "revoked"}
