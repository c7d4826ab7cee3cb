"""Filter and summary engine for expense collections.

Pure functions over lists of :class:`~ExpenseSync.core.model.Expense`. Nothing
here touches the local store or the network, so the same functions back the
client views and the server's summary endpoint.

Collections are conformed into a pandas DataFrame (:func:`to_dataframe`) whose
index is the position of each record in the input list; filters build boolean
masks over that frame and map the surviving positions back to the records, so
results always keep the input order.
"""
import datetime
import logging
from typing import Dict, List, Optional, Tuple

import pandas as pd

from ..core.model import (
    DateLike, DateRange, Expense, ExpenseSummary, FilterOptions, TimeFrame, parse_date
)

EXPENSE_COLUMNS: List[str] = ['id', 'amount', 'category', 'description', 'date', 'is_synced']


def _safe_parse(value: DateLike) -> Optional[datetime.datetime]:
    try:
        return parse_date(value)
    except (TypeError, ValueError):
        return None


def _conform_date_column(df: pd.DataFrame) -> pd.DataFrame:
    """Parse the 'date' column into naive datetimes, leaving NaT for invalid values."""
    parsed = [_safe_parse(v) for v in df['date']]
    df['date'] = pd.to_datetime(pd.Series(parsed, index=df.index, dtype='object'), errors='coerce')

    invalid = int(df['date'].isna().sum())
    if invalid:
        logging.warning(f'{invalid} expense(s) have an unparsable date.')
    return df


def _conform_amount_column(df: pd.DataFrame) -> pd.DataFrame:
    """Convert 'amount' to floats, replacing invalid values with zero."""
    df['amount'] = pd.to_numeric(df['amount'], errors='coerce')

    invalid = int(df['amount'].isna().sum())
    if invalid:
        logging.warning(f'{invalid} expense(s) have an invalid amount.')
    df['amount'] = df['amount'].fillna(0.0).astype(float)
    return df


def _conform_string_columns(df: pd.DataFrame) -> pd.DataFrame:
    for col in 'id', 'category', 'description':
        df[col] = df[col].fillna('').astype(str)
    return df


def to_dataframe(expenses: List[Expense]) -> pd.DataFrame:
    """Conform an expense collection into a DataFrame.

    Args:
        expenses: The expense records.

    Returns:
        pd.DataFrame: Columns ``EXPENSE_COLUMNS`` with parsed dates and float
        amounts, indexed by each record's position in ``expenses``.
    """
    if not expenses:
        df = pd.DataFrame(columns=EXPENSE_COLUMNS)
        df['date'] = pd.to_datetime(df['date'])
        df['amount'] = df['amount'].astype(float)
        return df

    df = pd.DataFrame(
        [[e.id, e.amount, e.category, e.description, e.date, e.is_synced] for e in expenses],
        columns=EXPENSE_COLUMNS,
    )
    return (
        df
        .pipe(_conform_date_column)
        .pipe(_conform_amount_column)
        .pipe(_conform_string_columns)
    )


def _select(expenses: List[Expense], mask: pd.Series) -> List[Expense]:
    return [expenses[i] for i in mask[mask].index]


def _range_mask(df: pd.DataFrame, start: DateLike, end: DateLike) -> pd.Series:
    start_ts = pd.Timestamp(parse_date(start))
    end_ts = pd.Timestamp(parse_date(end))
    return df['date'].notna() & (df['date'] >= start_ts) & (df['date'] <= end_ts)


def is_date_in_range(date: DateLike, start: DateLike, end: DateLike) -> bool:
    """Return True if ``start <= date <= end``, comparing parsed timestamps.

    Raises:
        ValueError: If any of the values cannot be parsed.
    """
    value = parse_date(date)
    return parse_date(start) <= value <= parse_date(end)


def get_expenses_in_date_range(expenses: List[Expense], date_range: DateRange) -> List[Expense]:
    """Return the expenses dated within ``date_range``, both ends inclusive.

    Expenses with an unparsable date are never in range.
    """
    if not expenses:
        return []
    df = to_dataframe(expenses)
    return _select(expenses, _range_mask(df, date_range.start_date, date_range.end_date))


def filter_expenses(expenses: List[Expense], options: Optional[FilterOptions]) -> List[Expense]:
    """Apply every supplied filter of ``options``; unset filters pass.

    Args:
        expenses: The expense records.
        options: Category allow-list, inclusive date range, inclusive amount
            bounds and a case-insensitive search on description or category.

    Returns:
        list[Expense]: The matching records in their original order.
    """
    if not expenses:
        return []
    if options is None:
        return list(expenses)

    df = to_dataframe(expenses)
    mask = pd.Series(True, index=df.index)

    if options.categories:
        mask &= df['category'].isin(list(options.categories))

    if options.date_range is not None:
        mask &= _range_mask(df, options.date_range.start_date, options.date_range.end_date)

    if options.min_amount is not None:
        mask &= df['amount'] >= float(options.min_amount)

    if options.max_amount is not None:
        mask &= df['amount'] <= float(options.max_amount)

    if options.search_query:
        query = options.search_query.lower()
        mask &= (
            df['description'].str.lower().str.contains(query, regex=False) |
            df['category'].str.lower().str.contains(query, regex=False)
        )

    return _select(expenses, mask)


def get_time_frame_range(time_frame: TimeFrame,
                         now: Optional[datetime.datetime] = None) -> Tuple[datetime.datetime, datetime.datetime]:
    """Return the inclusive bounds of a summary time frame.

    ``day`` is today, ``week`` is today and the six days before it, ``month``
    and ``year`` are the calendar month and year containing today.

    Args:
        time_frame: The time frame.
        now: Reference time. Defaults to the current local time.

    Returns:
        tuple: ``(start, end)`` naive datetimes, start at midnight and end at the
        last microsecond of its day.
    """
    time_frame = TimeFrame(time_frame)
    now = parse_date(now) if now is not None else datetime.datetime.now()
    today = now.date()

    if time_frame == TimeFrame.Day:
        first, last = today, today
    elif time_frame == TimeFrame.Week:
        first, last = today - datetime.timedelta(days=6), today
    elif time_frame == TimeFrame.Month:
        first = today.replace(day=1)
        next_month = (first + datetime.timedelta(days=32)).replace(day=1)
        last = next_month - datetime.timedelta(days=1)
    else:
        first, last = datetime.date(today.year, 1, 1), datetime.date(today.year, 12, 31)

    return (
        datetime.datetime.combine(first, datetime.time.min),
        datetime.datetime.combine(last, datetime.time.max),
    )


def get_expense_summary(expenses: List[Expense], time_frame: TimeFrame,
                        now: Optional[datetime.datetime] = None) -> ExpenseSummary:
    """Total and per-category breakdown of the expenses within a time frame.

    Args:
        expenses: The expense records.
        time_frame: ``day``, ``week``, ``month`` or ``year``, see :func:`get_time_frame_range`.
        now: Reference time. Defaults to the current local time.

    Returns:
        ExpenseSummary: The breakdown values sum to the total.
    """
    time_frame = TimeFrame(time_frame)
    start, end = get_time_frame_range(time_frame, now=now)

    df = to_dataframe(expenses)
    df = df[_range_mask(df, start, end)] if not df.empty else df

    if df.empty:
        return ExpenseSummary(total_amount=0.0, category_breakdown={}, time_frame=time_frame)

    breakdown = df.groupby('category', sort=False)['amount'].sum()
    category_breakdown = {str(k): float(v) for k, v in breakdown.items()}
    return ExpenseSummary(
        total_amount=float(sum(category_breakdown.values())),
        category_breakdown=category_breakdown,
        time_frame=time_frame,
    )


def _group(expenses: List[Expense], keys: pd.Series) -> Dict[str, List[Expense]]:
    groups: Dict[str, List[Expense]] = {}
    for i, key in keys.items():
        if key is None or (isinstance(key, float) and pd.isna(key)):
            continue
        groups.setdefault(key, []).append(expenses[i])
    return groups


def group_by_day(expenses: List[Expense]) -> Dict[str, List[Expense]]:
    """Group expenses by ``YYYY-MM-DD``. Records with an unparsable date are left out."""
    if not expenses:
        return {}
    df = to_dataframe(expenses)
    return _group(expenses, df['date'].dt.strftime('%Y-%m-%d'))


def group_by_month(expenses: List[Expense]) -> Dict[str, List[Expense]]:
    """Group expenses by ``YYYY-MM``. Records with an unparsable date are left out."""
    if not expenses:
        return {}
    df = to_dataframe(expenses)
    return _group(expenses, df['date'].dt.strftime('%Y-%m'))


def group_by_category(expenses: List[Expense]) -> Dict[str, List[Expense]]:
    groups: Dict[str, List[Expense]] = {}
    for expense in expenses:
        groups.setdefault(expense.category, []).append(expense)
    return groups


def get_monthly_totals(expenses: List[Expense], year: Optional[int] = None) -> List[float]:
    """Return twelve per-month totals (January first) for one year.

    Args:
        expenses: The expense records.
        year: The year to total. Defaults to the current year.
    """
    year = year or datetime.date.today().year
    totals = [0.0] * 12
    if not expenses:
        return totals

    df = to_dataframe(expenses)
    df = df[df['date'].notna()]
    df = df[df['date'].dt.year == year]
    if df.empty:
        return totals

    for month, total in df.groupby(df['date'].dt.month)['amount'].sum().items():
        totals[int(month) - 1] = float(total)
    return totals


def get_monthly_report(expenses: List[Expense], year: int, month: int) -> Dict[str, object]:
    """Summarize one calendar month.

    Returns:
        dict: ``total``, ``count`` and ``categoryTotals`` (category → amount,
        largest first).
    """
    first = datetime.datetime(year, month, 1)
    last = (first + datetime.timedelta(days=32)).replace(day=1) - datetime.timedelta(days=1)
    in_month = get_expenses_in_date_range(
        expenses, DateRange(first, datetime.datetime.combine(last.date(), datetime.time.max))
    )

    df = to_dataframe(in_month)
    if df.empty:
        return {'total': 0.0, 'count': 0, 'categoryTotals': {}}

    by_category = df.groupby('category')['amount'].sum().sort_values(ascending=False)
    return {
        'total': float(df['amount'].sum()),
        'count': int(len(df)),
        'categoryTotals': {str(k): float(v) for k, v in by_category.items()},
    }
