"""Entry point for running the hookdispatch API as a module.

Usage:
    python -m hookdispatch
"""

import uvicorn

from hookdispatch.config import Settings


def main() -> None:
    settings = Settings()
    uvicorn.run(
        "hookdispatch.api:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
