"""Backup and restore of the local collections.

A backup is a JSON document ``{expenses, categories, backupDate, version}``
written to the backup directory as ``expense-tracker-backup-<YYYY-MM-DD>.json``.
There is one file per calendar day; a second backup on the same day replaces it.
Restoring replaces both collections wholesale.
"""
import datetime
import json
import logging
import pathlib
from typing import Any, Dict, List, Optional, Union

from ..core import storage
from ..core.model import Category, Expense
from ..status import status

BACKUP_PREFIX: str = 'expense-tracker-backup-'

PathLike = Union[str, pathlib.Path]


def _backup_dir(directory: Optional[PathLike]) -> pathlib.Path:
    from ..settings import lib
    return pathlib.Path(directory) if directory else lib.settings.backup_dir


def create_backup(directory: Optional[PathLike] = None,
                  now: Optional[datetime.datetime] = None) -> pathlib.Path:
    """Write the current expense and category collections to a backup file.

    Args:
        directory: Target directory. Defaults to the configured backup directory.
        now: Backup time. Defaults to the current UTC time.

    Returns:
        pathlib.Path: Path of the written backup.

    Raises:
        status.BackupInvalidException: If the backup cannot be written.
    """
    from ..settings import lib

    now = now or datetime.datetime.now(datetime.timezone.utc)
    directory = _backup_dir(directory)

    data: Dict[str, Any] = {
        'expenses': storage.to_payload(storage.storage.get_expenses()),
        'categories': storage.to_payload(storage.storage.get_categories()),
        'backupDate': now.isoformat(),
        'version': lib.settings.get_section('backup')['version'],
    }

    path = directory / f'{BACKUP_PREFIX}{now.date().isoformat()}.json'
    try:
        directory.mkdir(parents=True, exist_ok=True)
        with path.open('w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
    except OSError as ex:
        raise status.BackupInvalidException(f'Could not write {path}: {ex}') from ex

    logging.info(f'Backup written to "{path}"')
    return path


def get_backups(directory: Optional[PathLike] = None) -> List[pathlib.Path]:
    """List backup files, newest first."""
    directory = _backup_dir(directory)
    if not directory.exists():
        return []
    return sorted(directory.glob(f'{BACKUP_PREFIX}*.json'), key=lambda p: p.name, reverse=True)


def read_backup(path: PathLike) -> Dict[str, Any]:
    """Read and validate a backup file.

    Returns:
        dict: ``expenses`` and ``categories`` as records, plus the backup's
        ``backupDate`` and ``version``.

    Raises:
        status.BackupInvalidException: If the file is missing, unreadable or malformed.
    """
    path = pathlib.Path(path)
    try:
        with path.open('r', encoding='utf-8') as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as ex:
        raise status.BackupInvalidException(f'Could not read {path}: {ex}') from ex

    if not isinstance(data, dict):
        raise status.BackupInvalidException(f'{path.name} is not a backup document.')
    if not isinstance(data.get('expenses'), list) or not isinstance(data.get('categories'), list):
        raise status.BackupInvalidException(f'{path.name} is missing expenses or categories.')

    try:
        expenses = [Expense.from_dict(item) for item in data['expenses']]
        categories = [Category.from_dict(item) for item in data['categories']]
    except (status.ExpenseInvalidException, status.CategoryInvalidException, AttributeError) as ex:
        raise status.BackupInvalidException(f'{path.name} contains malformed records.') from ex

    return {
        'expenses': expenses,
        'categories': categories,
        'backupDate': data.get('backupDate'),
        'version': data.get('version'),
    }


def restore_from_backup(path: PathLike, coordinator=None) -> Dict[str, Any]:
    """Replace the stored expenses and categories with a backup's contents.

    Args:
        path: The backup file.
        coordinator: The :class:`~ExpenseSync.core.sync.SyncAPI` reloaded after
            the restore. Defaults to the application coordinator.

    Returns:
        dict: The restored backup, see :func:`read_backup`.

    Raises:
        status.BackupInvalidException: If the backup is invalid. Nothing is changed.
        status.StorageException: If the local store cannot be written.
    """
    backup = read_backup(path)

    storage.storage.set_expenses(backup['expenses'])
    storage.storage.set_categories(backup['categories'])
    logging.info(
        f'Restored {len(backup["expenses"])} expense(s) and '
        f'{len(backup["categories"])} categories from "{path}"'
    )

    from ..core.signals import signals
    signals.categoriesChanged.emit(backup['categories'])
    signals.backupRestored.emit(str(path))

    if coordinator is None:
        from ..core import sync
        coordinator = sync.sync
    coordinator.load()
    return backup


def delete_backup(path: PathLike) -> None:
    """Delete a backup file.

    Raises:
        status.BackupInvalidException: If the file cannot be removed.
    """
    path = pathlib.Path(path)
    try:
        path.unlink()
    except OSError as ex:
        raise status.BackupInvalidException(f'Could not delete {path}: {ex}') from ex
    logging.info(f'Deleted backup "{path}"')
