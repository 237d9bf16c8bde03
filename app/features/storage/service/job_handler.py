import logging
from . import api

logger = logging.getLogger(__name__)

class PurgeJobHandler:
    """
    Worker class responsible for executing STORAGE_PURGE jobs.
    Runs the orphan sweep outside of any request.
    """

    def handle(self, params: dict) -> dict:
        min_age = params.get("min_age_seconds")
        logger.info(f"Processing Storage Purge (min age: {min_age if min_age is not None else 'default'})")

        result = api.storage.sweep_orphans(min_age_seconds=min_age)

        return {
            "count": result.count,
            "size_bytes": result.size_bytes,
        }
