"""
Entry point for running the duetcode server.

Builds the application with `create_app` and serves it with `uvicorn` on the
configured host and port (3000 by default).
"""
import logging

import uvicorn

from .app import create_app
from .config import DuetSettings

LOGGER = logging.getLogger(__name__)


def main() -> None:
    settings = DuetSettings()
    app = create_app(settings)
    LOGGER.info("Server running on http://localhost:%d", settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
