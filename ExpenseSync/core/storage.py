"""
Local SQLite key-value store for the expense and category collections.

The store keeps whole collections as JSON documents under fixed keys
(:class:`Key`). Every mutation reserializes and rewrites the full collection,
which keeps writes atomic per key at the data volumes a personal ledger sees.
"""

import enum
import json
import logging
import pathlib
import sqlite3
import uuid
from typing import Any, Dict, List, Optional, Union

from PySide6 import QtCore

from .model import AuthSession, Category, DEFAULT_CATEGORIES, Expense, User, is_valid_hex_color
from ..settings import lib
from ..status import status

TABLE: str = 'kv'


class Key(enum.StrEnum):
    """Keys of the persisted documents."""
    Expenses = 'expenses'
    Categories = 'categories'
    User = 'user'
    Token = 'token'


class StorageAPI(QtCore.QObject):
    """Key-value persistence backed by a single SQLite table.

    Args:
        db_path: Optional path of the database file. Defaults to ``lib.settings.db_path``.
    """

    def __init__(self, db_path: Optional[Union[str, pathlib.Path]] = None,
                 parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent=parent)
        self._db_path: Optional[pathlib.Path] = pathlib.Path(db_path) if db_path else None
        self._initialize_schema_if_needed()

    @property
    def db_path(self) -> pathlib.Path:
        return self._db_path or lib.settings.db_path

    def connection(self) -> sqlite3.Connection:
        """Return a new connection to the store database.

        Raises:
            status.StorageException: If the database cannot be opened.
        """
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            return sqlite3.connect(str(self.db_path), timeout=2.0)
        except (OSError, sqlite3.Error) as ex:
            raise status.StorageException(f'Could not open {self.db_path}: {ex}') from ex

    def _initialize_schema_if_needed(self) -> None:
        conn: Optional[sqlite3.Connection] = None
        try:
            conn = self.connection()
            conn.execute(f'CREATE TABLE IF NOT EXISTS {TABLE} (key TEXT PRIMARY KEY, value TEXT)')
            conn.commit()
            logging.debug(f'Local store ready at "{self.db_path}"')
        except sqlite3.Error as ex:
            raise status.StorageException(f'Could not initialize the local store: {ex}') from ex
        finally:
            if conn:
                conn.close()

    def get(self, key: str) -> Any:
        """Return the decoded document stored under key, or None if absent.

        Raises:
            status.StorageException: If the store cannot be read or holds invalid JSON.
        """
        conn: Optional[sqlite3.Connection] = None
        try:
            conn = self.connection()
            row = conn.execute(f'SELECT value FROM {TABLE} WHERE key=?', (str(key),)).fetchone()
        except sqlite3.Error as ex:
            raise status.StorageException(f'Could not read "{key}": {ex}') from ex
        finally:
            if conn:
                conn.close()

        if row is None or row[0] is None:
            return None
        try:
            return json.loads(row[0])
        except json.JSONDecodeError as ex:
            raise status.StorageException(f'Stored value for "{key}" is not valid JSON.') from ex

    def set(self, key: str, value: Any) -> None:
        """Serialize value and replace the document stored under key.

        Raises:
            status.StorageException: If the value cannot be serialized or written.
        """
        try:
            payload = json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError) as ex:
            raise status.StorageException(f'Could not serialize "{key}": {ex}') from ex

        conn: Optional[sqlite3.Connection] = None
        try:
            conn = self.connection()
            conn.execute(
                f'INSERT INTO {TABLE} (key, value) VALUES (?, ?) '
                f'ON CONFLICT(key) DO UPDATE SET value=excluded.value',
                (str(key), payload)
            )
            conn.commit()
        except sqlite3.Error as ex:
            if conn:
                conn.rollback()
            raise status.StorageException(f'Could not write "{key}": {ex}') from ex
        finally:
            if conn:
                conn.close()
        logging.debug(f'Stored "{key}" ({len(payload)} bytes)')

    def remove(self, key: str) -> None:
        conn: Optional[sqlite3.Connection] = None
        try:
            conn = self.connection()
            conn.execute(f'DELETE FROM {TABLE} WHERE key=?', (str(key),))
            conn.commit()
        except sqlite3.Error as ex:
            raise status.StorageException(f'Could not remove "{key}": {ex}') from ex
        finally:
            if conn:
                conn.close()

    def clear_all(self) -> None:
        """Remove every stored document."""
        conn: Optional[sqlite3.Connection] = None
        try:
            conn = self.connection()
            conn.execute(f'DELETE FROM {TABLE}')
            conn.commit()
            logging.info('Local store cleared.')
        except sqlite3.Error as ex:
            raise status.StorageException(f'Could not clear the local store: {ex}') from ex
        finally:
            if conn:
                conn.close()

    def get_expenses(self) -> List[Expense]:
        """Load the persisted expense collection.

        Malformed records are skipped and logged.
        """
        data = self.get(Key.Expenses)
        if data is None:
            return []
        if not isinstance(data, list):
            raise status.StorageException('Stored expenses must be a list.')

        expenses: List[Expense] = []
        for item in data:
            if not isinstance(item, dict):
                logging.warning(f'Skipping malformed expense record: {item!r}')
                continue
            try:
                expenses.append(Expense.from_dict(item))
            except status.ExpenseInvalidException:
                logging.warning(f'Skipping malformed expense record: {item!r}')
        return expenses

    def set_expenses(self, expenses: List[Expense]) -> None:
        self.set(Key.Expenses, [e.to_dict() for e in expenses])

    def get_categories(self) -> List[Category]:
        """Load the category collection, seeding the defaults on first read.

        Records repeating an already seen ``id`` are dropped.
        """
        data = self.get(Key.Categories)
        if data is None:
            logging.info('No categories stored yet, seeding the default set.')
            categories = [Category(**c.to_dict()) for c in DEFAULT_CATEGORIES]
            self.set_categories(categories)
            return categories
        if not isinstance(data, list):
            raise status.StorageException('Stored categories must be a list.')

        seen = set()
        categories: List[Category] = []
        for item in data:
            if not isinstance(item, dict):
                continue
            try:
                category = Category.from_dict(item)
            except status.CategoryInvalidException:
                continue
            if category.id in seen:
                logging.warning(f'Dropping duplicate category id "{category.id}"')
                continue
            seen.add(category.id)
            categories.append(category)
        return categories

    def set_categories(self, categories: List[Category]) -> None:
        self.set(Key.Categories, [c.to_dict() for c in categories])

    def add_category(self, name: str, color: str, icon: str = 'more-horizontal') -> Category:
        """Create and persist a new category.

        Args:
            name: Display name, unique across the set regardless of case.
            color: Hex color in ``#RRGGBB`` form.
            icon: Icon tag.

        Returns:
            Category: The new category.

        Raises:
            status.CategoryInvalidException: If the name is empty or the color is malformed.
            status.CategoryExistsException: If a category with the same name exists.
        """
        if not isinstance(name, str) or not name.strip():
            raise status.CategoryInvalidException('Category name is required.')
        if not is_valid_hex_color(color):
            raise status.CategoryInvalidException(f'Color must be #RRGGBB, got "{color}".')

        name = name.strip()
        categories = self.get_categories()
        if any(c.name.casefold() == name.casefold() for c in categories):
            raise status.CategoryExistsException(f'"{name}"')

        category = Category(id=uuid.uuid4().hex, name=name, color=color, icon=icon or 'more-horizontal')
        categories.append(category)
        self.set_categories(categories)

        from .signals import signals
        signals.categoriesChanged.emit(categories)
        return category

    def get_session(self) -> Optional[AuthSession]:
        """Return the persisted session, or None when signed out."""
        user = self.get(Key.User)
        token = self.get(Key.Token)
        if not user or not token or not isinstance(user, dict):
            return None
        return AuthSession(user=User.from_dict(user), token=str(token))

    def set_session(self, session: AuthSession) -> None:
        self.set(Key.User, session.user.to_dict())
        self.set(Key.Token, session.token)

    def clear_session(self) -> None:
        self.remove(Key.User)
        self.remove(Key.Token)


def to_payload(items: List[Union[Expense, Category]]) -> List[Dict[str, Any]]:
    """Serialize a list of records to plain dicts."""
    return [item.to_dict() for item in items]


storage: StorageAPI = StorageAPI()
