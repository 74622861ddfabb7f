"""
Exception hierarchy for mergeview.

All mergeview-specific exceptions inherit from MergeViewError.

Usage:
    from mergeview._exceptions import LoadError, MergeViewError

    try:
        await ws.load_dataset(uuid)
    except LoadError:
        # Remote file missing or corrupted, safe to retry later
        logger.warning("Dataset unavailable")
    except MergeViewError:
        raise
"""


class MergeViewError(Exception):
    """Base exception for all mergeview errors."""

    pass


class LoadError(MergeViewError):
    """
    Dataset could not be loaded into the engine.

    Raised when:
    - Remote file is unreachable (HTTP 404/500, network error)
    - Local file does not exist
    - File is not valid Parquet

    The failed load is never cached; calling load again retries it.
    """

    pass


class UnloadError(MergeViewError):
    """
    Dataset could not be dropped from the engine.

    Raised internally when the table is still referenced or already gone.
    Always swallowed and logged by unload() and collect_garbage().
    """

    pass


class StatementError(MergeViewError):
    """
    The engine rejected a generated statement.

    Indicates a programming error (e.g. a column that unification failed
    to map). Always propagates to the caller.
    """

    pass


class UnificationError(StatementError):
    """
    Histories cannot be unified into one column space.

    Raised when:
    - A join key field is not present in its schema
    - A join key received no global column (duplicate field names)
    """

    pass


class ExportCancelled(MergeViewError):
    """
    Export destination could not be acquired.

    Raised by destination openers when the user cancels the save dialog.
    The export streamer treats it as a silent no-op.
    """

    pass
