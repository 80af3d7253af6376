"""
Gunicorn configuration for the ERP timetable service.
Run with: gunicorn -c gunicorn_config.py app:app
"""
import multiprocessing
import os

bind = os.getenv('GUNICORN_BIND', '0.0.0.0:5000')
backlog = 2048

# Schedule generation is CPU-light; requests mostly wait on MongoDB and Redis
workers = int(os.getenv('GUNICORN_WORKERS', (multiprocessing.cpu_count() * 2) + 1))
worker_class = os.getenv('GUNICORN_WORKER_CLASS', 'gthread')
threads = int(os.getenv('GUNICORN_THREADS', 4))

max_requests = 1000
max_requests_jitter = 50
timeout = 60
graceful_timeout = 30
keepalive = 5

proc_name = 'erp_timetable'

accesslog = os.getenv('GUNICORN_ACCESS_LOG', '-')
errorlog = os.getenv('GUNICORN_ERROR_LOG', '-')
loglevel = os.getenv('GUNICORN_LOG_LEVEL', 'info')
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'

limit_request_line = 4096
limit_request_fields = 100
limit_request_field_size = 8190


def when_ready(server):
    server.log.info(f"ERP timetable ready on {bind} ({workers} workers x {threads} threads)")


def post_fork(server, worker):
    server.log.info(f"Worker spawned (pid: {worker.pid})")


def worker_abort(worker):
    worker.log.warning(f"Worker received SIGABRT signal (pid: {worker.pid})")


def on_exit(server):
    server.log.info("Shutting down ERP timetable service")
