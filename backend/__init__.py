"""REST backend for carledger: storage, schemas and the FastAPI application."""

__all__ = [
    "database",
    "models",
    "schemas",
    "crud",
    "server",
]
