"""FastAPI routers for provider webhooks."""
