"""FastAPI REST API for the webhook engine.

This module exposes webhook registration, test deliveries, delivery
history, stats and event intake over HTTP.

Example:
    ```python
    import uvicorn
    from studentpass_webhooks.api import create_app

    app = create_app()
    uvicorn.run(app, host="0.0.0.0", port=8000)
    ```

Or run directly:
    ```bash
    uvicorn studentpass_webhooks.api:app --reload
    ```
"""

from .app import app, create_app
from .router import router

__all__ = [
    "app",
    "create_app",
    "router",
]
