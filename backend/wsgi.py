# backend/wsgi.py
# Entry point for `flask --app wsgi` and WSGI servers (e.g. gunicorn wsgi:app).
import signal
import sys

from biztracker import create_app

app = create_app()


def _handle_sigterm(signum, frame):
    # Exit normally so atexit hooks dispose the connection pool
    sys.exit(0)


signal.signal(signal.SIGTERM, _handle_sigterm)


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=5001)
