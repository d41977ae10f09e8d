"""Gunicorn production configuration for the Scriptor gateway.

Run with:
    gunicorn -c gunicorn.conf.py scriptor.gateway.app:app

Environment variables:
    GATEWAY_WORKERS: Number of worker processes (default: min(cpu_count * 2 + 1, 9))
    GUNICORN_BIND: Bind address (default: 0.0.0.0:8001)
    GUNICORN_TIMEOUT: Worker timeout in seconds (default: 60)
    GUNICORN_LOG_LEVEL: Log level (default: info)
"""

import multiprocessing
import os

bind = os.environ.get("GUNICORN_BIND", "0.0.0.0:8001")

# Default: 2 * CPU cores + 1, capped at 9
workers = int(os.environ.get(
    "GATEWAY_WORKERS",
    min(multiprocessing.cpu_count() * 2 + 1, 9),
))

# ASGI worker for FastAPI
worker_class = "uvicorn.workers.UvicornWorker"

# Requests only wait on Supabase round-trips
timeout = int(os.environ.get("GUNICORN_TIMEOUT", 60))
graceful_timeout = 30
keepalive = 5

accesslog = "-"
errorlog = "-"
loglevel = os.environ.get("GUNICORN_LOG_LEVEL", "info")

proc_name = "scriptor-gateway"

# Not preloaded: the Supabase clients are created per worker in the lifespan hook
preload_app = False

worker_tmp_dir = "/dev/shm"


# When PROMETHEUS_MULTIPROC_DIR is set, each worker writes its own metrics
# file; remove it when the worker exits so stale series don't persist.
def child_exit(server, worker):  # noqa: ARG001
    if not os.environ.get("PROMETHEUS_MULTIPROC_DIR"):
        return

    from prometheus_client import multiprocess

    multiprocess.mark_process_dead(worker.pid)
