"""
Core package for ExpenseSync: local persistence, remote access and synchronization.

This package includes:

- :mod:`ExpenseSync.core.model` – Expense, category, session and summary records.
- :mod:`ExpenseSync.core.storage` – SQLite-backed key-value store for the local collections and the session.
- :mod:`ExpenseSync.core.client` – HTTP client for the remote expense service.
- :mod:`ExpenseSync.core.auth` – Sign-in, sign-out and the per-session API client.
- :mod:`ExpenseSync.core.service` – Worker-thread execution of blocking remote calls.
- :mod:`ExpenseSync.core.network` – Network reachability listener.
- :mod:`ExpenseSync.core.sync` – Offline-first sync coordinator.
- :mod:`ExpenseSync.core.signals` – Application-wide Qt signals.
"""
