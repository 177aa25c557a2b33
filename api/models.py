"""Pydantic schemas for the ArcStore local API."""
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Health response summarising server readiness."""

    ok: bool = Field(True, description="Indicates the API server is reachable.")
    version: str = Field(..., description="Application version string.")
    time_utc: str = Field(..., description="Current UTC timestamp in ISO8601 format.")
    library_root: Optional[str] = Field(None, description="Selected library folder, when one is available.")


class ErrorResponse(BaseModel):
    error: str = Field(..., description="Human readable failure message.")
    code: str = Field(..., description="Stable error code such as storage_unavailable or archive_corrupt.")
    hint: Optional[str] = Field(None, description="Suggested user action.")


class LibraryRootRequest(BaseModel):
    path: str = Field(..., min_length=1, description="Folder to use as the library root.")


class LibraryRootResponse(BaseModel):
    library_root: str = Field(..., description="Absolute path of the selected library root.")


class MediaItemModel(BaseModel):
    id: str = Field(..., description="Opaque identifier, the absolute path unless the caller assigned one.")
    path: str
    name: str
    size_bytes: int = Field(..., ge=0)
    created_utc: str
    modified_utc: str
    kind: Optional[str] = Field(None, description="image or video.")


class LibraryItemsResponse(BaseModel):
    items: List[MediaItemModel]
    total: int = Field(..., ge=0)


class LibraryUsageResponse(BaseModel):
    total_bytes: int
    image_bytes: int
    video_bytes: int
    cache_bytes: int
    other_bytes: int
    image_count: int
    video_count: int


class ThumbnailRequest(BaseModel):
    source_path: str = Field(..., min_length=1, description="Library file to preview.")


class ThumbnailResponse(BaseModel):
    path: str = Field(..., description="Thumbnail location; may not exist when derived is false.")
    derived: bool = Field(..., description="True when a preview was written.")
    reason: Optional[str] = Field(None, description="Why the preview was skipped.")


class IngestRequest(BaseModel):
    source_path: str = Field(..., min_length=1, description="File to bring into the library.")
    move: bool = Field(False, description="Move instead of copy.")
    derive_thumbnail: bool = Field(True, description="Derive the preview right after placing the file.")


class IngestResponse(BaseModel):
    path: str = Field(..., description="Final location inside the date-sharded tree.")
    thumbnail: Optional[ThumbnailResponse] = None


class DeleteRequest(BaseModel):
    path: str = Field(..., min_length=1)


class DeleteResponse(BaseModel):
    deleted: bool


class BackupRequest(BaseModel):
    destination: str = Field(..., min_length=1, description="Archive file to create.")
    part_count: int = Field(1, ge=1, le=99, description="Number of parts to split the archive into.")
    metadata_blob: str = Field("{}", description="Database JSON stored as _database/arc_database.json.")


class VerifyRequest(BaseModel):
    archive_path: str = Field(..., min_length=1, description="Archive, any part, or manifest JSON.")


class VerifyResponse(BaseModel):
    parts: List[str]
    entries: int
    bytes: int
    has_database: bool


class RestoreRequest(BaseModel):
    archive_path: Optional[str] = Field(None, description="Archive, any part, or manifest JSON.")
    part_paths: Optional[List[str]] = Field(None, description="Explicit parts in the order to concatenate.")
    target_dir: Optional[str] = Field(None, description="Folder to extract into; defaults to the library root.")


class RestoreResponse(BaseModel):
    metadata_blob: Optional[str]
    target_dir: str
    restored_files: int
    restored_bytes: int
    parts_used: List[str]


class DuplicateScanRequest(BaseModel):
    paths: Optional[List[str]] = Field(None, description="Images to compare; defaults to every library image.")
    threshold: Optional[int] = Field(None, ge=1, le=100, description="Minimum similarity percentage.")
