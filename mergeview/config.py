"""
Workspace configuration.

Values come from keyword arguments or, via WorkspaceConfig.from_env(),
from MERGEVIEW_* environment variables.
"""

import os

from pydantic import BaseModel, ConfigDict, PositiveInt

from mergeview._constants import (
    DEFAULT_AGGREGATE_DELIMITER,
    DEFAULT_BASE_URL,
    DEFAULT_DATABASE,
    DEFAULT_DATASET_ROOT,
    DEFAULT_EXPORT_CHUNK_SIZE,
    DEFAULT_FILE_EXTENSION,
    ENV_BASE_URL,
    ENV_CACHE,
    ENV_DATABASE,
)

_TRUTHY = frozenset({"1", "true", "yes", "on"})


class WorkspaceConfig(BaseModel):
    """
    Settings for one workspace session.

    Attributes:
        base_url: Origin the dataset path resolves against. Remote URL
            (http, https, s3, gs, az) or a local directory.
        dataset_root: Directory under base_url holding one file per dataset.
        file_extension: Extension of dataset files (without dot).
        database: DuckDB database path, ':memory:' by default.
        export_chunk_size: Rows fetched per page during CSV export.
        aggregate_delimiter: Separator for collapsed one-to-many join values.
        cache: Keep downloaded remote files in the user cache directory.
    """

    model_config = ConfigDict(frozen=True)

    base_url: str = DEFAULT_BASE_URL
    dataset_root: str = DEFAULT_DATASET_ROOT
    file_extension: str = DEFAULT_FILE_EXTENSION
    database: str = DEFAULT_DATABASE
    export_chunk_size: PositiveInt = DEFAULT_EXPORT_CHUNK_SIZE
    aggregate_delimiter: str = DEFAULT_AGGREGATE_DELIMITER
    cache: bool = False

    @classmethod
    def from_env(cls, **overrides) -> "WorkspaceConfig":
        """Build config from MERGEVIEW_* variables; keyword overrides win."""
        values: dict = {}
        if ENV_BASE_URL in os.environ:
            values["base_url"] = os.environ[ENV_BASE_URL]
        if ENV_DATABASE in os.environ:
            values["database"] = os.environ[ENV_DATABASE]
        if ENV_CACHE in os.environ:
            values["cache"] = os.environ[ENV_CACHE].strip().lower() in _TRUTHY
        values.update(overrides)
        return cls(**values)
