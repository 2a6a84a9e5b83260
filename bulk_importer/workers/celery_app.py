"""Celery application factory for async processing."""

import ssl

from celery import Celery
from celery.signals import setup_logging

from bulk_importer.core.config import Settings, configure_logging, get_settings
from bulk_importer.services.event_bus import IMPORTS_QUEUE, RUN_IMPORT_TASK


def _with_tls(url: str) -> tuple[str, bool]:
    """Upgrade Upstash URLs to rediss:// and add ssl_cert_reqs for Celery's Redis backend."""
    if ".upstash.io" in url and url.startswith("redis://"):
        url = url.replace("redis://", "rediss://", 1)
    if not url.startswith("rediss://"):
        return url, False
    if "ssl_cert_reqs" not in url:
        separator = "&" if "?" in url else "?"
        url = f"{url}{separator}ssl_cert_reqs=none"
    return url, True


def create_celery_app(settings: Settings) -> Celery:
    broker_url, broker_tls = _with_tls(settings.broker_url)
    backend_url, backend_tls = _with_tls(settings.result_backend_url)

    app = Celery("bulk_importer", broker=broker_url, backend=backend_url)

    config = {
        "task_serializer": "json",
        "accept_content": ["json"],
        "result_serializer": "json",
        "timezone": "UTC",
        "enable_utc": True,
        "task_acks_late": True,  # Acknowledge after task completion
        "task_reject_on_worker_lost": True,  # Re-queue if worker dies
        "worker_prefetch_multiplier": 1,  # Fair task distribution
        "task_time_limit": 3600,  # 1 hour hard limit
        "task_soft_time_limit": 3300,  # 55 min soft limit
        "result_expires": 3600,
        "broker_connection_retry_on_startup": True,
        "worker_hijack_root_logger": False,
        "result_backend_always_retry": True,
        "result_backend_max_retries": 3,
        "task_routes": {RUN_IMPORT_TASK: {"queue": IMPORTS_QUEUE}},
        "task_default_queue": IMPORTS_QUEUE,
    }
    if broker_tls or backend_tls:
        ssl_dict = {"ssl_cert_reqs": ssl.CERT_NONE}
        config.update(
            {
                "broker_use_ssl": ssl_dict,
                "redis_backend_use_ssl": ssl_dict,
                "broker_transport_options": ssl_dict.copy(),
                "result_backend_transport_options": ssl_dict.copy(),
            }
        )
    app.conf.update(config)
    return app


@setup_logging.connect
def _configure_worker_logging(**kwargs):
    configure_logging(get_settings().log_level)


celery_app = create_celery_app(get_settings())

# Register tasks with celery_app; they use the @celery_app.task decorator
from bulk_importer.workers.tasks import import_jobs  # noqa: E402,F401
