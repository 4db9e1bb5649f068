"""Development server entry point."""
import sys

import uvicorn

from modelhub.config import get_settings


def main():
    """Run the development server with auto-reload."""
    settings = get_settings()
    uvicorn.run(
        "modelhub.main:app",
        host=settings.host,
        port=settings.port,
        reload=True,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    sys.exit(main())
