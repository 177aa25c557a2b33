"""FastAPI application exposing the media store engine to the local UI."""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from fastapi import Depends, FastAPI, HTTPException, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from backup.errors import ArchiveCorrupt, ArchiveWriteFailed
from core.errors import LibraryBusy, MediaStoreError, StorageUnavailable, describe_error
from duplicates import CancellationToken, ScanFailed
from engine import MediaStoreFacade
from library.formats import MediaKind

from .auth import APIKeyAuth
from .events import OperationStream, Publish
from .models import (
    BackupRequest,
    DeleteRequest,
    DeleteResponse,
    DuplicateScanRequest,
    HealthResponse,
    IngestRequest,
    IngestResponse,
    LibraryItemsResponse,
    LibraryRootRequest,
    LibraryRootResponse,
    LibraryUsageResponse,
    MediaItemModel,
    RestoreRequest,
    RestoreResponse,
    ThumbnailRequest,
    ThumbnailResponse,
    VerifyRequest,
    VerifyResponse,
)

LOGGER = logging.getLogger("arcstore.api")

NDJSON = "application/x-ndjson"


@dataclass(slots=True)
class APIServerConfig:
    """Runtime configuration for the FastAPI application."""

    facade: MediaStoreFacade
    api_key: Optional[str]
    cors_origins: Sequence[str]
    app_version: str = "dev"
    lan_only: bool = True


_LOCAL_CLIENT_SENTINELS = {
    "127.0.0.1",
    "::1",
    "localhost",
    "testclient",
}

_STATUS_BY_ERROR = (
    (ArchiveCorrupt, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (ArchiveWriteFailed, status.HTTP_500_INTERNAL_SERVER_ERROR),
    (StorageUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE),
    (LibraryBusy, status.HTTP_409_CONFLICT),
    (ScanFailed, status.HTTP_500_INTERNAL_SERVER_ERROR),
)


def _normalise_remote_host(host: Optional[str]) -> Optional[str]:
    if host is None:
        return None
    value = host.strip().lower()
    if not value:
        return None
    if value.startswith("::ffff:"):
        value = value.rsplit(":", 1)[-1]
    if value.startswith("[") and value.endswith("]"):
        value = value[1:-1]
    if "%" in value:  # strip IPv6 scope id
        value = value.split("%", 1)[0]
    return value


def _is_loopback_host(host: Optional[str]) -> bool:
    value = _normalise_remote_host(host)
    if value is None:
        return True
    if value in _LOCAL_CLIENT_SENTINELS:
        return True
    return value.startswith("127.")


def status_for_error(exc: MediaStoreError) -> int:
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _error_body(exc: BaseException) -> Dict[str, Any]:
    details = describe_error(exc)
    return {"error": details["message"], "code": details["code"], "hint": details["hint"]}


def create_app(config: APIServerConfig) -> FastAPI:
    """Create a FastAPI application bound to the given configuration."""

    app = FastAPI(
        title="ArcStore Local API",
        version=config.app_version,
        docs_url="/docs",
        openapi_url="/openapi.json",
    )

    allowed_origins: List[str] = [origin for origin in config.cors_origins if origin]
    if allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=allowed_origins,
            allow_methods=["GET", "POST", "PUT"],
            allow_headers=["*"],
        )

    auth = Depends(APIKeyAuth(config.api_key))
    facade = config.facade
    lan_only = bool(config.lan_only)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):  # type: ignore[override]
        start = time.perf_counter()
        response: Optional[Response] = None
        client_host = request.client.host if request.client else None
        try:
            if lan_only and not _is_loopback_host(client_host):
                LOGGER.warning("Rejected non-local HTTP request from %s", client_host or "<unknown>")
                response = JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content={"error": "LAN access disabled"})
            else:
                response = await call_next(request)
            return response
        finally:
            duration_ms = (time.perf_counter() - start) * 1000
            status_code = response.status_code if response is not None else 500
            LOGGER.info(
                "%s %s -> %s (%.1f ms) ip=%s",
                request.method,
                request.url.path,
                status_code,
                duration_ms,
                client_host or "-",
            )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(_request: Request, exc: HTTPException):
        detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
        return JSONResponse(status_code=exc.status_code, content={"error": detail})

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "invalid parameters", "details": jsonable_errors(exc)},
        )

    @app.exception_handler(MediaStoreError)
    async def media_store_exception_handler(_request: Request, exc: MediaStoreError):
        return JSONResponse(status_code=status_for_error(exc), content=_error_body(exc))

    @app.exception_handler(FileNotFoundError)
    async def not_found_handler(_request: Request, exc: FileNotFoundError):
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content=_error_body(exc))

    @app.exception_handler(ValueError)
    async def value_error_handler(_request: Request, exc: ValueError):
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=_error_body(exc))

    def require_root() -> Path:
        return facade.library_root

    def current_root() -> Optional[str]:
        try:
            return str(facade.library_root)
        except StorageUnavailable:
            return None

    @app.get("/v1/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(
            ok=True,
            version=config.app_version,
            time_utc=datetime.now(timezone.utc).isoformat(),
            library_root=await asyncio.to_thread(current_root),
        )

    @app.put("/v1/library/root", response_model=LibraryRootResponse, dependencies=[auth])
    async def select_root(payload: LibraryRootRequest) -> LibraryRootResponse:
        root = await asyncio.to_thread(facade.select_library_root, Path(payload.path))
        return LibraryRootResponse(library_root=str(root))

    @app.get("/v1/library/items", response_model=LibraryItemsResponse, dependencies=[auth])
    async def library_items() -> LibraryItemsResponse:
        items = await asyncio.to_thread(facade.scan_library)
        models = [MediaItemModel(**item.to_dict()) for item in items]
        return LibraryItemsResponse(items=models, total=len(models))

    @app.get("/v1/library/usage", response_model=LibraryUsageResponse, dependencies=[auth])
    async def library_usage() -> LibraryUsageResponse:
        usage = await asyncio.to_thread(facade.library_usage)
        return LibraryUsageResponse(**usage.to_dict())

    @app.post("/v1/library/ingest", response_model=IngestResponse, dependencies=[auth])
    async def ingest(payload: IngestRequest) -> IngestResponse:
        placed = await asyncio.to_thread(facade.ingest, Path(payload.source_path), move=payload.move)
        thumbnail: Optional[ThumbnailResponse] = None
        if payload.derive_thumbnail:
            result = await asyncio.to_thread(facade.derive_thumbnail, placed)
            thumbnail = ThumbnailResponse(**result.to_dict())
        return IngestResponse(path=str(placed), thumbnail=thumbnail)

    @app.post("/v1/library/delete", response_model=DeleteResponse, dependencies=[auth])
    async def delete_item(payload: DeleteRequest) -> DeleteResponse:
        deleted = await asyncio.to_thread(facade.delete_item, Path(payload.path))
        return DeleteResponse(deleted=deleted)

    @app.post("/v1/thumbnails", response_model=ThumbnailResponse, dependencies=[auth])
    async def thumbnail(payload: ThumbnailRequest) -> ThumbnailResponse:
        result = await asyncio.to_thread(facade.derive_thumbnail, Path(payload.source_path))
        return ThumbnailResponse(**result.to_dict())

    @app.post("/v1/backup", dependencies=[auth])
    async def backup(payload: BackupRequest) -> StreamingResponse:
        # a missing library is reported as a plain HTTP error before streaming starts
        root = await asyncio.to_thread(require_root)
        LOGGER.info("backup requested for %s -> %s", root, payload.destination)

        def run(publish: Publish) -> Dict[str, Any]:
            manifest = facade.backup(
                Path(payload.destination),
                part_count=payload.part_count,
                metadata_blob=payload.metadata_blob,
                on_progress=lambda event: publish({"type": "progress", **event.to_dict()}),
            )
            return {"type": "manifest", "manifest": manifest.to_dict()}

        stream = OperationStream(run)
        return StreamingResponse(stream.events(), media_type=NDJSON, headers={"Cache-Control": "no-cache"})

    @app.post("/v1/backup/verify", response_model=VerifyResponse, dependencies=[auth])
    async def verify(payload: VerifyRequest) -> VerifyResponse:
        report = await asyncio.to_thread(facade.verify_backup, Path(payload.archive_path))
        return VerifyResponse(**report)

    @app.post("/v1/restore", response_model=RestoreResponse, dependencies=[auth])
    async def restore(payload: RestoreRequest) -> RestoreResponse:
        if payload.part_paths:
            source: Any = [Path(part) for part in payload.part_paths]
        elif payload.archive_path:
            source = Path(payload.archive_path)
        else:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="archive_path or part_paths required")
        target = Path(payload.target_dir) if payload.target_dir else None
        result = await asyncio.to_thread(facade.restore, source, target_dir=target)
        return RestoreResponse(**result.to_dict())

    @app.post("/v1/duplicates", dependencies=[auth])
    async def duplicates(payload: DuplicateScanRequest) -> StreamingResponse:
        if payload.paths is None:
            items = await asyncio.to_thread(facade.scan_library)
            sources: List[Any] = [item for item in items if item.kind is MediaKind.IMAGE]
        else:
            sources = [Path(path) for path in payload.paths]
        token = CancellationToken()

        def run(publish: Publish) -> Dict[str, Any]:
            pairs = facade.find_duplicates(
                sources,
                threshold=payload.threshold,
                on_progress=lambda percent: publish({"type": "progress", "percent": percent}),
                cancel_token=token,
            )
            if pairs is None:
                return {"type": "cancelled"}
            return {"type": "result", "pairs": [pair.to_dict() for pair in pairs]}

        stream = OperationStream(run, on_disconnect=token.set)
        return StreamingResponse(stream.events(), media_type=NDJSON, headers={"Cache-Control": "no-cache"})

    return app


def jsonable_errors(exc: RequestValidationError) -> List[Dict[str, Any]]:
    errors = []
    for error in exc.errors():
        errors.append({"loc": [str(part) for part in error.get("loc", ())], "msg": str(error.get("msg", ""))})
    return errors


__all__ = ["APIServerConfig", "create_app", "status_for_error"]
