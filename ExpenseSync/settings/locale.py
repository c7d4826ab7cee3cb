"""
Module for formatting dates and amounts using Babel.

"""
import datetime
import logging

from babel import Locale, UnknownLocaleError
from babel.dates import format_date as babel_format_date

DEFAULT_LOCALE: str = 'en_US'


def format_amount(value: float) -> str:
    """Format an amount with exactly two decimals and no grouping, e.g. ``12.50``."""
    return f'{float(value):.2f}'


def format_date(value: datetime.date, locale: str = DEFAULT_LOCALE) -> str:
    """
    Format a date in the locale's medium format.

    With the default locale this gives ``Mar 1, 2024``.

    Args:
        value (datetime.date): The date (or datetime) to format.
        locale (str): Locale string, e.g. 'en_US'.

    Returns:
        str: The formatted date string.
    """
    if isinstance(value, datetime.datetime):
        value = value.date()
    try:
        return babel_format_date(value, format='medium', locale=Locale.parse(locale))
    except (UnknownLocaleError, ValueError, TypeError) as e:
        logging.error(f'Error formatting date with locale "{locale}": {e}')
        return babel_format_date(value, format='medium', locale=DEFAULT_LOCALE)
