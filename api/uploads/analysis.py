"""
Hand-off point between the ingest pipeline and FRA analysis.

No analysis is performed here. Whoever implements real frequency-response
analysis provides an AnalysisService; until then stored files are only
announced in the log.
"""
from typing import Protocol

from api.uploads.models import StoredFile
from core.logger import logger


class AnalysisService(Protocol):
    def submit(self, stored_file: StoredFile) -> None:
        """Accept a reference to a committed upload for analysis"""


class LoggingAnalysisService:
    def submit(self, stored_file: StoredFile) -> None:
        logger.info(
            "Stored file %s (%s) ready for analysis at %s",
            stored_file.id, stored_file.original_name, stored_file.location
        )
