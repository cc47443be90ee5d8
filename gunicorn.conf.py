"""
Gunicorn configuration for the HMS API.

Usage:
    gunicorn -c gunicorn.conf.py hms.api_server:app
"""

import multiprocessing
import os

bind = os.getenv("GUNICORN_BIND", f"{os.getenv('HOST', '0.0.0.0')}:{os.getenv('PORT', '5000')}")

# Sync workers: every request holds one pooled SQLite connection for its
# lifetime. Each worker builds its own app and pool after fork.
workers = int(os.getenv("GUNICORN_WORKERS", min(multiprocessing.cpu_count() * 2 + 1, 8)))
worker_class = "sync"
preload_app = False
timeout = int(os.getenv("GUNICORN_TIMEOUT", "30"))
graceful_timeout = 30
keepalive = 5

# Recycle workers to bound memory growth
max_requests = 2000
max_requests_jitter = 100

accesslog = "-"
errorlog = "-"
loglevel = os.getenv("GUNICORN_LOG_LEVEL", "info")
# %(D)s is request time in microseconds; X-Request-ID ties access lines to app logs
access_log_format = '%(h)s "%(r)s" %(s)s %(b)s %(D)sus rid=%({x-request-id}o)s'

proc_name = "hms-api"

limit_request_line = 4094
limit_request_fields = 100
limit_request_field_size = 8190


def post_fork(server, worker):
    server.log.info(f"HMS API worker spawned (pid: {worker.pid})")
