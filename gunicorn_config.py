import multiprocessing

# Gunicorn: gunicorn -c gunicorn_config.py wsgi:app
# The cart lives in the signed session cookie, so workers share no state.
workers = multiprocessing.cpu_count() * 2 + 1
threads = 2
worker_class = 'gthread'
bind = '0.0.0.0:8000'

timeout = 60
max_requests = 1000
max_requests_jitter = 100
keepalive = 5

accesslog = '-'
errorlog = '-'
loglevel = 'info'
capture_output = True
