"""
Settings package: client configuration and localization.

This package provides:

- :mod:`ExpenseSync.settings.lib` – Settings management, application paths and schema validation.
- :mod:`ExpenseSync.settings.locale` – Localization utilities for formatting dates and amounts.
"""
