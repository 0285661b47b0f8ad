"""arq worker runner for the solicitation pipeline.

Run with: python -m services.queue.worker
Or: arq services.queue.tasks.WorkerSettings

Registers the ingest, classify and rank stages with settings taken from
APP_* environment variables.
"""

import logging

from arq import run_worker

from services.queue.tasks import WorkerSettings
from services.shared.config import get_settings

logger = logging.getLogger(__name__)


def main() -> None:
    """Run the arq worker."""
    settings = get_settings()

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    logger.info(f"Starting pipeline worker with Redis: {settings.redis_url}")
    logger.info(
        f"Catalog backend: {settings.catalog_backend}, event channel: {settings.event_channel}"
    )
    logger.info(f"Max jobs: {settings.queue_max_jobs}, job timeout: {settings.queue_job_timeout}s")

    WorkerSettings.redis_settings = WorkerSettings.get_redis_settings()
    WorkerSettings.max_jobs = settings.queue_max_jobs
    WorkerSettings.job_timeout = settings.queue_job_timeout

    run_worker(WorkerSettings)  # type: ignore[arg-type]


if __name__ == "__main__":
    main()
