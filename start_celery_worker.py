#!/usr/bin/env python3
"""Start the import worker with suppressed superuser warnings for containerized environments."""

import sys
import warnings

warnings.filterwarnings("ignore", category=UserWarning, message=".*superuser privileges.*")
warnings.filterwarnings("ignore", category=RuntimeWarning, message=".*superuser privileges.*")

from bulk_importer.workers.celery_app import celery_app  # noqa: E402


if __name__ == "__main__":
    celery_app.worker_main(
        [
            "worker",
            "--loglevel=info",
            "--queues=imports",
            "--without-mingle",
            "--without-gossip",
        ]
        + sys.argv[1:]
    )
