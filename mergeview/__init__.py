import importlib.metadata as _metadata
import logging

from mergeview._exceptions import (
    ExportCancelled,
    LoadError,
    MergeViewError,
    StatementError,
    UnificationError,
    UnloadError,
)
from mergeview._logging import disable_logging, setup_basic_logging
from mergeview.compose import WorkingTable, compose, resolve_type, unify
from mergeview.config import WorkspaceConfig
from mergeview.schema import (
    Field,
    History,
    JoinDeclaration,
    ResourceSchema,
    ResourceStats,
    SortConfig,
)
from mergeview.workspace import Workspace

__version__ = _metadata.version("mergeview")


def verbose(level=True):
    """
    Enable/disable verbose logging for mergeview operations.

    Args:
        level: Logging level to enable:
            - True or "info": Show INFO and above (default)
            - "debug": Show DEBUG and above, including every generated statement
            - False: Disable all logging

    Example:
        >>> import mergeview
        >>>
        >>> # Enable standard logging
        >>> mergeview.verbose()
        >>>
        >>> # See the SQL sent to DuckDB
        >>> mergeview.verbose("debug")
        >>>
        >>> # Disable logging
        >>> mergeview.verbose(False)
    """
    if level is False:
        disable_logging()
    elif level is True or level == "info":
        setup_basic_logging(level=logging.INFO)
    elif level == "debug":
        setup_basic_logging(level=logging.DEBUG)
    else:
        raise ValueError(
            f"Invalid verbose level: {level}. " "Use True, 'info', 'debug', or False."
        )


def clear_cache():
    """
    Delete dataset files kept by the disk cache.

    Only used when a workspace runs with WorkspaceConfig(cache=True).
    Tables already loaded in a running workspace are not affected.

    Examples:
        >>> import mergeview
        >>> mergeview.clear_cache()  # next load re-downloads
    """
    from mergeview._cache import clear_dataset_cache

    clear_dataset_cache()


__all__ = [
    "ExportCancelled",
    "Field",
    "History",
    "JoinDeclaration",
    "LoadError",
    "MergeViewError",
    "ResourceSchema",
    "ResourceStats",
    "SortConfig",
    "StatementError",
    "UnificationError",
    "UnloadError",
    "WorkingTable",
    "Workspace",
    "WorkspaceConfig",
    "clear_cache",
    "compose",
    "resolve_type",
    "unify",
    "verbose",
]
