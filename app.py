"""Development entry point: ``python app.py`` (use a WSGI server in production)."""

import os

from qr_attendance.main import create_app

app = create_app()


if __name__ == "__main__":
    # threaded: each request on its own worker thread; the write queues run on their own loop.
    app.run(
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "5000")),
        threaded=True,
        use_reloader=False,
    )
