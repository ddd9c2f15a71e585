"""End-to-end scenarios running the engine behind a FastAPI application."""
