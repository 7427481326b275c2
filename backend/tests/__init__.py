"""
pytest suite for the order fulfillment backend.

Test categories:
- Unit tests: models, cache and notification logic without I/O
- Integration tests: services against a file-backed SQLite database
- API tests: the FastAPI app through httpx's ASGI transport
"""
