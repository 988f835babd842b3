"""FastAPI REST API for hookdispatch.

Example:
    ```python
    import uvicorn
    from hookdispatch.api import create_app

    app = create_app()
    uvicorn.run(app, host="127.0.0.1", port=8787)
    ```

Or run directly:
    ```bash
    uvicorn hookdispatch.api:app
    ```
"""

from .app import app, create_app
from .router import router

__all__ = [
    "app",
    "create_app",
    "router",
]
