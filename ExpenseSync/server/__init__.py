"""
Remote expense service: a FastAPI application backed by MongoDB.

- :mod:`ExpenseSync.server.app` – Application factory and error handlers.
- :mod:`ExpenseSync.server.routes` – ``/api/auth`` and ``/api/expenses`` endpoints.
- :mod:`ExpenseSync.server.security` – bcrypt password hashing and JWT tokens.
- :mod:`ExpenseSync.server.database` – MongoDB connection and document helpers.
- :mod:`ExpenseSync.server.config` – Environment configuration.
- :mod:`ExpenseSync.server.main` – uvicorn entry point.
"""
