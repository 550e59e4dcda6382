"""Gunicorn configuration for production deployment.

Usage:
    gunicorn main:app -c gunicorn.conf.py

Each worker process keeps its own in-flight registry, so concurrent misses
for one URL are only collapsed within a worker.
"""
import os

bind = f"{os.getenv('HOST', '127.0.0.1')}:{os.getenv('PORT', '8080')}"
workers = int(os.getenv("WORKERS", "1"))
worker_class = "uvicorn.workers.UvicornWorker"

# The proxy never times out an origin fetch itself; this is the outer bound
timeout = int(os.getenv("GUNICORN_TIMEOUT", "120"))

accesslog = "-"
errorlog = "-"
loglevel = os.getenv("LOG_LEVEL", "INFO").lower()

proc_name = "caching-http-proxy"
