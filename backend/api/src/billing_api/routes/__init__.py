"""API routes package.

Routers are registered in main.py with the /api prefix:

- webhooks: partner payment events (invoice webhook)
"""

from billing_api.routes.webhooks import router as webhooks_router

__all__ = ["webhooks_router"]
