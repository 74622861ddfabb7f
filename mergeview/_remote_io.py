"""
Remote file fetching for dataset files.

Uses obstore for HTTP, S3, GCS and Azure. Local paths are read from disk.
Every failure surfaces as LoadError so callers handle one error type.
"""

import asyncio
from pathlib import Path

import obstore as obs

from mergeview._constants import PROTOCOL_MAPPINGS, REMOTE_PROTOCOLS
from mergeview._exceptions import LoadError


def is_remote(location: str) -> bool:
    return location.startswith(REMOTE_PROTOCOLS)


def _create_store(url: str):
    """
    Create obstore ObjectStore from a directory URL.

    - s3:// -> S3Store
    - gs:// -> GCSStore
    - az://, azure:// -> AzureStore
    - http://, https:// -> HTTPStore
    """
    protocol_handlers = {
        PROTOCOL_MAPPINGS["s3"]["standard"]: obs.store.S3Store,
        PROTOCOL_MAPPINGS["gcs"]["standard"]: obs.store.GCSStore,
        PROTOCOL_MAPPINGS["azure"]["standard"]: obs.store.AzureStore,
        PROTOCOL_MAPPINGS["azure"]["alt"]: obs.store.AzureStore,
        PROTOCOL_MAPPINGS["http"]["standard"]: obs.store.HTTPStore,
        PROTOCOL_MAPPINGS["https"]["standard"]: obs.store.HTTPStore,
    }

    for protocol, store_class in protocol_handlers.items():
        if url.startswith(protocol):
            return store_class.from_url(url)  # type: ignore[attr-defined]

    supported = sorted({p["standard"] for p in PROTOCOL_MAPPINGS.values()})
    raise LoadError(f"Unsupported URL scheme: {url}\nSupported: {', '.join(supported)}")


async def download_bytes(directory: str, filename: str) -> bytes:
    """
    Download a complete file.

    Args:
        directory: Directory URL or local directory path
        filename: File name inside directory

    Returns:
        File content
    """
    if not is_remote(directory):
        path = Path(directory) / filename
        try:
            return await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise LoadError(f"Failed to read {path}: {e}") from e

    try:
        store = _create_store(directory)
        result = await obs.get_async(store, filename)
        return bytes(await result.bytes_async())
    except LoadError:
        raise
    except Exception as e:
        raise LoadError(f"Failed to download {directory}{filename}: {e}") from e


async def get_remote_metadata(directory: str, filename: str) -> dict | None:
    """
    HEAD request for ETag and size. Returns None if unavailable.

    Returns:
        {"etag": str | None, "size": int | None} or None if failed
    """
    try:
        store = _create_store(directory)
        head = await obs.head_async(store, filename)
    except Exception:
        return None
    return {"etag": head.get("e_tag"), "size": head.get("size")}
