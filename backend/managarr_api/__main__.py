"""CLI entry point for launching the Managarr API with Uvicorn."""
import logging

import uvicorn

from .app import create_app
from .settings import ManagarrSettings


def main() -> None:
    """Start the Managarr API server."""

    settings = ManagarrSettings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
