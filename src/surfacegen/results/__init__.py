"""Archive of finished generation results."""

from .result_archive import ArchivedResult, ResultArchive

__all__ = ["ArchivedResult", "ResultArchive"]
