"""CSV export of expense collections.

Rows are written as ``Date,Category,Amount,Description``. The date uses the
locale's medium format (``Mar 1, 2024``) and is written unquoted; only the
description is quoted, with inner quotes doubled.
"""
import datetime
import logging
import pathlib
from typing import List, Optional, Union

from ..core.model import Expense, parse_date
from ..settings import locale as _locale
from ..status import status

CSV_HEADERS: List[str] = ['Date', 'Category', 'Amount', 'Description']


def _quote(value: str) -> str:
    return '"' + value.replace('"', '""') + '"'


def _format_row(expense: Expense, locale: str) -> str:
    try:
        date_str = _locale.format_date(parse_date(expense.date), locale=locale)
    except ValueError:
        logging.warning(f'Expense {expense.id} has an invalid date "{expense.date}", exporting it as-is.')
        date_str = expense.date

    return ','.join([
        date_str,
        expense.category,
        _locale.format_amount(expense.amount),
        _quote(expense.description or ''),
    ])


def convert_to_csv(expenses: List[Expense], locale: str = _locale.DEFAULT_LOCALE) -> str:
    """Render expenses as CSV text with a header row.

    Args:
        expenses: The expense records, written in order.
        locale: Locale used to format dates.

    Returns:
        str: The CSV document, each line terminated by a newline.
    """
    lines = [','.join(CSV_HEADERS)]
    lines.extend(_format_row(e, locale) for e in expenses)
    return '\n'.join(lines) + '\n'


def get_export_filename(today: Optional[datetime.date] = None) -> str:
    """Return ``expenses_<year>_<month>_<day>.csv`` without zero padding."""
    today = today or datetime.date.today()
    return f'expenses_{today.year}_{today.month}_{today.day}.csv'


def export_to_csv(expenses: List[Expense], directory: Optional[Union[str, pathlib.Path]] = None,
                  locale: Optional[str] = None, today: Optional[datetime.date] = None) -> pathlib.Path:
    """Write expenses to a dated CSV file.

    Args:
        expenses: The expense records.
        directory: Target directory. Defaults to the configured export directory.
        locale: Locale used to format dates. Defaults to the configured locale.
        today: Date used in the file name. Defaults to today.

    Returns:
        pathlib.Path: Path of the written file.

    Raises:
        status.StorageException: If the file cannot be written.
    """
    from ..settings import lib

    directory = pathlib.Path(directory) if directory else lib.settings.export_dir
    locale = locale or lib.settings['locale'] or _locale.DEFAULT_LOCALE

    path = directory / get_export_filename(today)
    try:
        directory.mkdir(parents=True, exist_ok=True)
        with path.open('w', encoding='utf-8', newline='') as f:
            f.write(convert_to_csv(expenses, locale=locale))
    except OSError as ex:
        raise status.StorageException(f'Could not write {path}: {ex}') from ex

    logging.info(f'Exported {len(expenses)} expense(s) to "{path}"')
    return path
