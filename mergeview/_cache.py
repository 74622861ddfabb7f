"""Disk cache for downloaded dataset files.

Remote dataset files are immutable per uuid in practice, but servers may
regenerate them, so entries are validated against ETag/Content-Length.

Cache structure:
    ~/.cache/mergeview/datasets/{url_hash}/
        ├── .meta.json
        └── data.bin
"""

import hashlib
import json
import os
import shutil
from datetime import datetime, timezone
from pathlib import Path

from platformdirs import user_cache_path

from mergeview._constants import (
    CACHE_DATA_FILENAME,
    CACHE_DATASETS_SUBDIR,
    CACHE_DIR_NAME,
    CACHE_ENV_VAR,
    CACHE_HASH_LENGTH,
    CACHE_META_FILENAME,
)
from mergeview._logging import get_logger

logger = get_logger(__name__)


def get_cache_dir() -> Path:
    """Get mergeview cache directory.

    Resolution:
        1. MERGEVIEW_CACHE_DIR env var (if set)
        2. Platform-specific via platformdirs (~/.cache/mergeview on Linux)
    """
    env_override = os.environ.get(CACHE_ENV_VAR)
    if env_override:
        return Path(env_override)
    return user_cache_path(CACHE_DIR_NAME)


def get_datasets_cache_dir() -> Path:
    return get_cache_dir() / CACHE_DATASETS_SUBDIR


def url_to_cache_key(url: str) -> str:
    """Convert URL to cache directory name (16-char hash)."""
    normalized = url.rstrip("/")
    return hashlib.sha256(normalized.encode()).hexdigest()[:CACHE_HASH_LENGTH]


def get_cached_path(url: str) -> Path:
    return get_datasets_cache_dir() / url_to_cache_key(url)


def read_cache_meta(url: str) -> dict | None:
    """Read .meta.json for cached URL. Returns None if missing or unreadable."""
    meta_path = get_cached_path(url) / CACHE_META_FILENAME
    if not meta_path.exists():
        return None
    try:
        return json.loads(meta_path.read_text())
    except (json.JSONDecodeError, OSError):
        return None


def is_cache_valid(url: str, remote_etag: str | None, remote_size: int | None) -> bool:
    """Check cached entry against remote ETag (preferred) or size."""
    meta = read_cache_meta(url)
    if meta is None:
        return False

    if remote_etag and meta.get("etag"):
        return remote_etag == meta["etag"]

    if remote_size and meta.get("size"):
        return remote_size == meta["size"]

    # Nothing to compare against, trust the local copy
    if remote_etag is None and remote_size is None:
        logger.debug("No remote metadata, trusting local cache")
        return True

    return False


def load_from_cache(url: str) -> bytes | None:
    """Cached file content, or None on miss."""
    if read_cache_meta(url) is None:
        return None
    data_path = get_cached_path(url) / CACHE_DATA_FILENAME
    if not data_path.exists():
        logger.debug(f"Cache incomplete, missing data for: {url}")
        return None
    logger.debug(f"Loaded from cache: {url}")
    return data_path.read_bytes()


def save_to_cache(url: str, data: bytes, etag: str | None, size: int | None) -> None:
    cache_dir = get_cached_path(url)
    cache_dir.mkdir(parents=True, exist_ok=True)

    (cache_dir / CACHE_DATA_FILENAME).write_bytes(data)
    meta = {
        "url": url,
        "etag": etag,
        "size": size,
        "cached_at": datetime.now(timezone.utc).isoformat(),
    }
    (cache_dir / CACHE_META_FILENAME).write_text(json.dumps(meta, indent=2))
    logger.debug(f"Cached {url} ({len(data)} bytes)")


def invalidate_cache(url: str) -> None:
    cache_dir = get_cached_path(url)
    if cache_dir.exists():
        shutil.rmtree(cache_dir)
        logger.debug(f"Invalidated cache: {cache_dir}")


def clear_dataset_cache() -> None:
    """Delete every cached dataset file."""
    cache_dir = get_datasets_cache_dir()
    if cache_dir.exists():
        shutil.rmtree(cache_dir)
        logger.info(f"Cleared dataset cache: {cache_dir}")


def get_cache_stats() -> dict:
    cache_dir = get_datasets_cache_dir()
    if not cache_dir.exists():
        return {"entries": 0, "size_mb": 0.0}

    total_size = 0
    entries = 0
    for entry in cache_dir.iterdir():
        if entry.is_dir():
            entries += 1
            for f in entry.rglob("*"):
                if f.is_file():
                    total_size += f.stat().st_size

    return {
        "entries": entries,
        "size_mb": round(total_size / (1024 * 1024), 2),
        "path": str(cache_dir),
    }
