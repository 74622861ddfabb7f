"""
Global constants for mergeview.

Organized by: Engine objects, Working table, Remote files, Query generation,
Export, Cache.
"""

# Engine Objects
ROW_ID = "__row_id"
"""
Synthetic 1-based row identity appended to every dataset at load time.

Keeps "original order" stable regardless of later filtering or joins.
"""

VIEW_PREFIX = "view_"
"""Prefix for single-dataset filtered/sorted views (view_<uuid>)."""

SINGLE_TABLE_PREFIX = "T1"
"""Alias prefix for projected columns in single-dataset views (T1-<index>)."""

STAGING_PREFIX = "__staging_"
"""Prefix for Arrow tables registered while a dataset is being loaded."""


# Working Table
WORKING_TABLE_NAME = "__work"
"""Union of all composed histories."""

FILTERED_SORTED_WORKING_TABLE_NAME = "__work_filtered_sorted"
"""Keyword-filtered and/or sorted relation derived from the working table."""

ALIAS_PREFIX = "alias_"
"""Prefix for per-dataset sub-relation names inside the working table."""

COLUMN_PREFIX = "column_"
"""Prefix for global column names in the unified namespace."""

DEFAULT_AGGREGATE_DELIMITER = "; "
"""Separator used when collapsing one-to-many join matches into one string."""


# Remote Files
DEFAULT_BASE_URL = "http://localhost/"
DEFAULT_DATASET_ROOT = "api/parquet"
DEFAULT_FILE_EXTENSION = "parquet"
DEFAULT_DATABASE = ":memory:"

ENV_BASE_URL = "MERGEVIEW_BASE_URL"
ENV_DATABASE = "MERGEVIEW_DATABASE"
ENV_CACHE = "MERGEVIEW_CACHE"

PROTOCOL_MAPPINGS = {
    "s3": {"standard": "s3://"},
    "gcs": {"standard": "gs://"},
    "azure": {"standard": "az://", "alt": "azure://"},
    "http": {"standard": "http://"},
    "https": {"standard": "https://"},
}
"""Remote storage protocols understood by the file fetcher."""

_all_standard = [p["standard"] for p in PROTOCOL_MAPPINGS.values()]
_all_alt = [p["alt"] for p in PROTOCOL_MAPPINGS.values() if "alt" in p]
REMOTE_PROTOCOLS = tuple(_all_standard + _all_alt)
"""All URL prefixes treated as remote (everything else is a local path)."""


# Query Generation
NUMERIC_LITERAL_PATTERN = "[+-]?([0-9]*[.])?[0-9]+"
"""
Values matching this pattern get a floating-point sort key.

Everything else sorts as NULL when a numeric sort is requested.
"""

SORT_ASCENDING = "asc"
SORT_DESCENDING = "desc"


# Export
DEFAULT_EXPORT_CHUNK_SIZE = 10_000
"""Rows fetched per page while streaming an export."""


# Cache
CACHE_DIR_NAME = "mergeview"
CACHE_ENV_VAR = "MERGEVIEW_CACHE_DIR"
CACHE_DATASETS_SUBDIR = "datasets"
CACHE_META_FILENAME = ".meta.json"
CACHE_DATA_FILENAME = "data.bin"
CACHE_HASH_LENGTH = 16
