import os

# Gunicorn config for production: gunicorn -c gunicorn.conf.py app:app

bind = os.getenv("GUNICORN_BIND", "0.0.0.0:5000")

# Edits spend most of their time waiting on the text and image APIs, so
# threads are useful. The thumbnail cache lives in each worker process;
# fewer workers means more cache hits.
workers = int(os.getenv("GUNICORN_WORKERS", "2"))
threads = int(os.getenv("GUNICORN_THREADS", "8"))
worker_class = os.getenv("GUNICORN_WORKER_CLASS", "gthread")

# 一次页面编辑包含文本模型调用和多次带重试的图片生成
timeout = int(os.getenv("GUNICORN_TIMEOUT", "300"))
graceful_timeout = int(os.getenv("GUNICORN_GRACEFUL_TIMEOUT", "30"))
keepalive = int(os.getenv("GUNICORN_KEEPALIVE", "5"))

accesslog = "-"
errorlog = "-"
loglevel = os.getenv("LOG_LEVEL", "info").lower()
