"""
ExpenseSync data package: filtering, summaries, CSV export and backups.

This package provides:

- :mod:`ExpenseSync.data.data` – Pure filter, grouping and summary functions over expense collections.
- :mod:`ExpenseSync.data.export` – CSV rendering and export (:func:`ExpenseSync.data.export.export_to_csv`).
- :mod:`ExpenseSync.data.backup` – JSON backups of the local collections and restore.
"""
