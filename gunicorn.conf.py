import multiprocessing
import os
from pathlib import Path

_BASE_DIR = Path(__file__).resolve().parent
_LOG_DIR = _BASE_DIR / 'logs'
_LOG_DIR.mkdir(exist_ok=True)

# Server socket
bind = os.getenv('GUNICORN_BIND', '0.0.0.0:8000')
backlog = 2048

# Worker processes
workers = int(os.getenv('GUNICORN_WORKERS', multiprocessing.cpu_count() * 2 + 1))
worker_class = "sync"
timeout = 60
keepalive = 2

# Recycle workers periodically
max_requests = 1000
max_requests_jitter = 50

# Logging
errorlog = str(_LOG_DIR / 'gunicorn_error.log')
loglevel = os.getenv('GUNICORN_LOG_LEVEL', 'info')
accesslog = str(_LOG_DIR / 'gunicorn_access.log')
# X-Forwarded-For first, so the access log matches the IPs recorded in the audit trail
access_log_format = '%({x-forwarded-for}i)s %(h)s %(t)s "%(r)s" %(s)s %(b)s %(L)ss "%(a)s"'

# Process naming
proc_name = "chequedesk"

daemon = False
pidfile = str(_BASE_DIR / 'gunicorn.pid')

# SSL terminates at the reverse proxy
keyfile = None
certfile = None
