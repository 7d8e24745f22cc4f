"""Entry point for python -m docs_preview."""

import threading
import webbrowser

import uvicorn

from .api import app
from .config import settings


def main() -> None:
    """Run the docs preview server."""
    if settings.open_browser:
        # Give uvicorn a moment to bind before the browser asks for the page.
        threading.Timer(1.0, webbrowser.open, args=(settings.viewer_url,)).start()
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
