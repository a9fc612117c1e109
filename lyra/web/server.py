"""
FastAPI web server for Lyra.

Provides the REST API the UI uses for the library, clipboard import and sync settings.
"""

import logging
from dataclasses import asdict
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..clipboard import ClipboardManager, PasteResult
from ..config_manager import SYNC_ENABLED_KEY, ConfigManager
from ..errors import ClipboardError, NotFoundError
from ..library import LibraryManager
from ..models import AnnotationType, ImportRecord, Song
from ..network import NetworkMonitor, NetworkType, OperationType
from ..sync import CloudSyncManager, SyncScope

logger = logging.getLogger(__name__)


# Request models
class ImportTextRequest(BaseModel):
    text: str
    source: str = "Clipboard"


class CreateBookRequest(BaseModel):
    name: str
    description: Optional[str] = None
    color: Optional[str] = None
    icon: Optional[str] = None
    song_ids: List[int] = []


class CreateSetRequest(BaseModel):
    name: str
    scheduled_date: Optional[datetime] = None
    venue: Optional[str] = None
    notes: Optional[str] = None


class AddSetEntryRequest(BaseModel):
    song_id: int
    notes: Optional[str] = None
    key_override: Optional[str] = None


class UpdateSetEntryRequest(BaseModel):
    """Request model for updating a set entry; omitted fields are left unchanged."""

    new_position: Optional[int] = None
    notes: Optional[str] = None
    key_override: Optional[str] = None


class CreateAnnotationRequest(BaseModel):
    x: float
    y: float
    text: str = ""
    annotation_type: AnnotationType = AnnotationType.STICKY_NOTE


class SyncSettingsRequest(BaseModel):
    scope: Optional[SyncScope] = None
    allow_cellular: Optional[bool] = None


class SyncToggleRequest(BaseModel):
    enabled: bool


class NetworkStatusRequest(BaseModel):
    is_online: bool
    network_type: NetworkType


class QueueOperationRequest(BaseModel):
    operation_type: OperationType
    data: Optional[Dict[str, Any]] = None


class ConfigUpdateRequest(BaseModel):
    key: str
    value: str


def song_to_dict(song: Song) -> dict:
    """Serialize a song for JSON responses."""
    song_dict = asdict(song)
    song_dict["tags"] = sorted(song.tags)
    return song_dict


def import_record_to_dict(record: ImportRecord) -> dict:
    """Serialize an import record with its derived display fields."""
    record_dict = asdict(record)
    record_dict["summary"] = record.summary
    record_dict["success_rate"] = record.success_rate
    record_dict["status_icon"] = record.status_icon
    record_dict["status_color"] = record.status_color
    return record_dict


def network_to_dict(network: NetworkMonitor) -> dict:
    return {
        "is_online": network.is_online,
        "network_type": network.network_type.value,
        "status_message": network.status_message,
        "should_sync": network.should_sync,
        "queued_operations": [op.to_dict() for op in network.queued_operations],
    }


def paste_result_to_dict(result: PasteResult) -> dict:
    return {
        "song": song_to_dict(result.song),
        "had_parsing_warnings": result.had_parsing_warnings,
        "was_untitled": result.was_untitled,
    }


# Dependency to get components
def get_library(request: Request) -> LibraryManager:
    """Get LibraryManager from app state."""
    return request.app.state.library


def get_clipboard_manager(request: Request) -> ClipboardManager:
    """Get ClipboardManager from app state."""
    return request.app.state.clipboard_manager


def get_sync_manager(request: Request) -> CloudSyncManager:
    """Get CloudSyncManager from app state."""
    return request.app.state.sync_manager


def get_config_manager(request: Request) -> ConfigManager:
    """Get ConfigManager from app state."""
    return request.app.state.config_manager


def create_app(
    library: LibraryManager,
    clipboard_manager: ClipboardManager,
    sync_manager: CloudSyncManager,
    config_manager: ConfigManager,
) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        library: LibraryManager instance
        clipboard_manager: ClipboardManager instance
        sync_manager: CloudSyncManager instance
        config_manager: ConfigManager instance

    Returns:
        Configured FastAPI app
    """
    app = FastAPI(title="lyra", version="1.0.0")

    # Store components in app state
    app.state.library = library
    app.state.clipboard_manager = clipboard_manager
    app.state.sync_manager = sync_manager
    app.state.config_manager = config_manager

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(ClipboardError)
    async def clipboard_error_handler(request: Request, exc: ClipboardError):
        return JSONResponse(status_code=400, content={"detail": exc.to_dict()})

    # Song endpoints
    @app.get("/api/songs")
    async def list_songs(q: Optional[str] = None, lib: LibraryManager = Depends(get_library)):
        """List songs, optionally filtered by title/artist."""
        return {"songs": [song_to_dict(song) for song in lib.list_songs(q)]}

    @app.get("/api/songs/{song_id}")
    async def get_song(song_id: int, lib: LibraryManager = Depends(get_library)):
        return song_to_dict(lib.get_song(song_id))

    @app.delete("/api/songs/{song_id}")
    async def delete_song(song_id: int, lib: LibraryManager = Depends(get_library)):
        if not lib.delete_song(song_id):
            raise HTTPException(status_code=404, detail="Song not found")
        return {"status": "deleted"}

    @app.post("/api/songs/import")
    async def import_song_text(
        request_data: ImportTextRequest,
        clipboard: ClipboardManager = Depends(get_clipboard_manager),
    ):
        """Import a song from pasted ChordPro text."""
        result = clipboard.import_text(request_data.text, source=request_data.source)
        return paste_result_to_dict(result)

    # Clipboard endpoints
    @app.get("/api/clipboard")
    async def clipboard_status(clipboard: ClipboardManager = Depends(get_clipboard_manager)):
        """Whether the clipboard currently holds text."""
        return {"has_content": clipboard.has_clipboard_content()}

    @app.post("/api/clipboard/paste")
    async def paste_from_clipboard(clipboard: ClipboardManager = Depends(get_clipboard_manager)):
        """Create a song from the system clipboard."""
        return paste_result_to_dict(clipboard.paste_song_from_clipboard())

    # Book endpoints
    @app.get("/api/books")
    async def list_books(lib: LibraryManager = Depends(get_library)):
        return {"books": [asdict(book) for book in lib.list_books()]}

    @app.post("/api/books")
    async def create_book(request_data: CreateBookRequest, lib: LibraryManager = Depends(get_library)):
        book = lib.create_book(
            name=request_data.name,
            description=request_data.description,
            color=request_data.color,
            icon=request_data.icon,
            song_ids=request_data.song_ids,
        )
        return asdict(book)

    @app.get("/api/books/{book_id}/songs")
    async def get_book_songs(book_id: int, lib: LibraryManager = Depends(get_library)):
        return {"songs": [song_to_dict(song) for song in lib.book_songs(book_id)]}

    @app.post("/api/books/{book_id}/songs/{song_id}")
    async def add_song_to_book(
        book_id: int, song_id: int, lib: LibraryManager = Depends(get_library)
    ):
        added = lib.add_song_to_book(book_id, song_id)
        return {"status": "added" if added else "already_present"}

    @app.delete("/api/books/{book_id}/songs/{song_id}")
    async def remove_song_from_book(
        book_id: int, song_id: int, lib: LibraryManager = Depends(get_library)
    ):
        if not lib.remove_song_from_book(book_id, song_id):
            raise HTTPException(status_code=404, detail="Song is not in this book")
        return {"status": "removed"}

    # Performance set endpoints
    @app.get("/api/sets")
    async def list_sets(lib: LibraryManager = Depends(get_library)):
        return {"sets": [asdict(performance_set) for performance_set in lib.list_sets()]}

    @app.post("/api/sets")
    async def create_set(request_data: CreateSetRequest, lib: LibraryManager = Depends(get_library)):
        performance_set = lib.create_set(
            name=request_data.name,
            scheduled_date=request_data.scheduled_date,
            venue=request_data.venue,
            notes=request_data.notes,
        )
        return asdict(performance_set)

    @app.get("/api/sets/{set_id}")
    async def get_set(set_id: int, lib: LibraryManager = Depends(get_library)):
        return asdict(lib.get_set(set_id))

    @app.post("/api/sets/{set_id}/entries")
    async def add_set_entry(
        set_id: int,
        request_data: AddSetEntryRequest,
        lib: LibraryManager = Depends(get_library),
    ):
        entry = lib.add_set_entry(
            set_id,
            request_data.song_id,
            notes=request_data.notes,
            key_override=request_data.key_override,
        )
        return asdict(entry)

    @app.patch("/api/sets/{set_id}/entries/{entry_id}")
    async def update_set_entry(
        set_id: int,
        entry_id: int,
        request_data: UpdateSetEntryRequest,
        lib: LibraryManager = Depends(get_library),
    ):
        """
        Update a set entry.

        Currently supported fields:
        - new_position: Move the entry within the set
        - notes / key_override: Per-entry performance notes and key
        """
        fields = request_data.model_dump(exclude_unset=True)
        if "notes" in fields or "key_override" in fields:
            current = lib.get_set_entry(set_id, entry_id)
            lib.update_set_entry(
                set_id,
                entry_id,
                notes=fields.get("notes", current.notes),
                key_override=fields.get("key_override", current.key_override),
            )
        if request_data.new_position is not None:
            lib.move_set_entry(set_id, entry_id, request_data.new_position)
        return asdict(lib.get_set(set_id))

    @app.delete("/api/sets/{set_id}/entries/{entry_id}")
    async def remove_set_entry(
        set_id: int, entry_id: int, lib: LibraryManager = Depends(get_library)
    ):
        return asdict(lib.remove_set_entry(set_id, entry_id))

    # Annotation endpoints
    @app.get("/api/songs/{song_id}/annotations")
    async def list_annotations(song_id: int, lib: LibraryManager = Depends(get_library)):
        lib.get_song(song_id)
        return {"annotations": [asdict(a) for a in lib.list_annotations(song_id)]}

    @app.post("/api/songs/{song_id}/annotations")
    async def create_annotation(
        song_id: int,
        request_data: CreateAnnotationRequest,
        lib: LibraryManager = Depends(get_library),
    ):
        annotation = lib.create_annotation(
            song_id,
            request_data.x,
            request_data.y,
            text=request_data.text,
            annotation_type=request_data.annotation_type,
        )
        return asdict(annotation)

    # Import history
    @app.get("/api/imports")
    async def list_imports(lib: LibraryManager = Depends(get_library)):
        return {"imports": [import_record_to_dict(r) for r in lib.list_import_records()]}

    @app.get("/api/imports/{record_id}")
    async def get_import(record_id: int, lib: LibraryManager = Depends(get_library)):
        return import_record_to_dict(lib.get_import_record(record_id))

    # Sync endpoints
    @app.get("/api/sync")
    async def get_sync_status(sync: CloudSyncManager = Depends(get_sync_manager)):
        return sync.to_dict()

    @app.patch("/api/sync/settings")
    async def update_sync_settings(
        request_data: SyncSettingsRequest,
        sync: CloudSyncManager = Depends(get_sync_manager),
    ):
        if request_data.scope is not None:
            sync.sync_scope = request_data.scope
        if request_data.allow_cellular is not None:
            sync.allow_cellular_sync = request_data.allow_cellular
        return sync.to_dict()

    @app.post("/api/sync/toggle")
    async def toggle_sync(
        request_data: SyncToggleRequest,
        sync: CloudSyncManager = Depends(get_sync_manager),
    ):
        sync.toggle_sync(request_data.enabled)
        return sync.to_dict()

    @app.post("/api/sync/now")
    async def sync_now(sync: CloudSyncManager = Depends(get_sync_manager)):
        """Start a sync on user request."""
        started = sync.force_sync_now()
        result = sync.to_dict()
        result["started"] = started
        return result

    # Network endpoints
    @app.get("/api/network")
    async def get_network_status(sync: CloudSyncManager = Depends(get_sync_manager)):
        return network_to_dict(sync.network)

    @app.put("/api/network")
    async def update_network_status(
        request_data: NetworkStatusRequest,
        sync: CloudSyncManager = Depends(get_sync_manager),
    ):
        """Record a connectivity change; going online flushes queued operations."""
        sync.network.update_status(request_data.is_online, request_data.network_type)
        return network_to_dict(sync.network)

    @app.post("/api/network/queue")
    async def queue_operation(
        request_data: QueueOperationRequest,
        sync: CloudSyncManager = Depends(get_sync_manager),
    ):
        operation = sync.network.queue_operation(request_data.operation_type, request_data.data)
        return operation.to_dict()

    # Configuration endpoints
    @app.get("/api/config")
    async def get_config(config: ConfigManager = Depends(get_config_manager)):
        """Get configuration values with schema and groups for the settings UI."""
        return config.get_full_config()

    @app.patch("/api/config")
    async def update_config(
        request_data: ConfigUpdateRequest,
        config: ConfigManager = Depends(get_config_manager),
        sync: CloudSyncManager = Depends(get_sync_manager),
    ):
        """Update a single configuration value."""
        problem = config.validate(request_data.key, request_data.value)
        if problem is not None:
            raise HTTPException(status_code=400, detail=problem)

        if request_data.key == SYNC_ENABLED_KEY:
            # Enabling through the settings UI starts the initial sync
            sync.toggle_sync(request_data.value.lower() == "true")
        else:
            config.set(request_data.key, request_data.value)
            if request_data.key.startswith("sync."):
                sync.load_settings()
        logger.info("Config updated: %s", request_data.key)
        return {"status": "updated", "key": request_data.key}

    return app
