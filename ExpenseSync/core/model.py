"""Records shared by the local store, the sync coordinator and the remote client.

Expenses and categories are serialized with the camelCase keys used by the
remote service and the persisted JSON collections (``isSynced``, ``userId``).
"""
import datetime
import enum
import math
import re
import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Union

from ..status import status

LOCAL_ID_PREFIX: str = 'local-'

DateLike = Union[str, datetime.date, datetime.datetime]


def new_local_id() -> str:
    """Return a fresh identifier for a record the remote service has not confirmed yet."""
    return f'{LOCAL_ID_PREFIX}{uuid.uuid4().hex}'


def is_local_id(value: str) -> bool:
    return isinstance(value, str) and value.startswith(LOCAL_ID_PREFIX)


def is_valid_hex_color(value: str) -> bool:
    """Check if a string is a valid hexadecimal color in #RRGGBB format.

    Args:
        value (str): Color string to validate.

    Returns:
        bool: True if value matches '#RRGGBB', False otherwise.
    """
    return isinstance(value, str) and bool(re.fullmatch(r'#[0-9A-Fa-f]{6}', value))


def parse_date(value: DateLike) -> datetime.datetime:
    """Parse an ISO-8601 string, date or datetime into a naive datetime.

    Timezone-aware values are converted to UTC before the timezone is dropped so
    that all comparisons happen on one clock.

    Args:
        value: ISO-8601 string (``2024-03-01``, ``2024-03-01T12:00:00.000Z``), date or datetime.

    Returns:
        datetime.datetime: The parsed, naive datetime.

    Raises:
        ValueError: If the value cannot be parsed.
    """
    if isinstance(value, datetime.datetime):
        dt = value
    elif isinstance(value, datetime.date):
        dt = datetime.datetime.combine(value, datetime.time.min)
    elif isinstance(value, str):
        dt = datetime.datetime.fromisoformat(value.strip())
    else:
        raise ValueError(f'Cannot parse date from {type(value)}')

    if dt.tzinfo is not None:
        dt = dt.astimezone(datetime.timezone.utc).replace(tzinfo=None)
    return dt


def to_iso(value: DateLike) -> str:
    """Return the ISO-8601 representation of a date-like value."""
    if isinstance(value, str):
        parse_date(value)
        return value
    return parse_date(value).isoformat()


class TimeFrame(enum.StrEnum):
    """Summary bucket relative to now."""
    Day = 'day'
    Week = 'week'
    Month = 'month'
    Year = 'year'


@dataclass
class Expense:
    """One expense record.

    ``id`` holds a local identifier (see :func:`new_local_id`) until the remote
    service confirms the record and assigns its own id.
    """
    id: str
    amount: float
    category: str
    description: str
    date: str
    is_synced: bool = False
    user_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'id': self.id,
            'amount': self.amount,
            'category': self.category,
            'description': self.description,
            'date': self.date,
            'isSynced': self.is_synced,
        }
        if self.user_id is not None:
            data['userId'] = self.user_id
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Expense':
        """Build an Expense from a persisted or remote document.

        Remote documents may carry ``_id`` instead of ``id``.

        Raises:
            status.ExpenseInvalidException: If a required key is missing.
        """
        _id = data.get('id', data.get('_id'))
        if _id is None:
            raise status.ExpenseInvalidException('Expense record has no id.')
        try:
            return cls(
                id=str(_id),
                amount=float(data['amount']),
                category=str(data['category']),
                description=str(data.get('description', '')),
                date=str(data['date']),
                is_synced=bool(data.get('isSynced', False)),
                user_id=str(data['userId']) if data.get('userId') is not None else None,
            )
        except (KeyError, TypeError, ValueError) as ex:
            raise status.ExpenseInvalidException(f'Malformed expense record: {ex}') from ex

    def payload(self) -> Dict[str, Any]:
        """Fields sent to the remote service when creating or updating the record."""
        return {
            'amount': self.amount,
            'category': self.category,
            'description': self.description,
            'date': self.date,
        }

    def confirmed(self, server_id: str) -> 'Expense':
        """Return a copy adopting the server id and marked synced."""
        return replace(self, id=str(server_id), is_synced=True)


def validate_expense_data(data: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
    """Validate and normalize user input for an expense.

    Args:
        data: Mapping with ``amount``, ``category``, ``description`` and ``date``.
        partial: When True only the supplied keys are checked (used for updates).

    Returns:
        dict: Normalized fields: a float amount, stripped strings and an ISO date.

    Raises:
        status.ExpenseInvalidException: On a missing field, non-numeric or
            non-positive amount, empty category or unparseable date.
    """
    if not isinstance(data, dict):
        raise status.ExpenseInvalidException('Expense data must be a mapping.')

    out: Dict[str, Any] = {}

    if 'amount' in data or not partial:
        if data.get('amount') is None or isinstance(data.get('amount'), bool):
            raise status.ExpenseInvalidException('Amount is required.')
        try:
            amount = float(data['amount'])
        except (TypeError, ValueError):
            raise status.ExpenseInvalidException(f'Amount must be a number, got "{data["amount"]}".')
        if math.isnan(amount) or math.isinf(amount) or amount <= 0:
            raise status.ExpenseInvalidException('Amount must be greater than zero.')
        out['amount'] = amount

    if 'category' in data or not partial:
        category = data.get('category')
        if not isinstance(category, str) or not category.strip():
            raise status.ExpenseInvalidException('Category is required.')
        out['category'] = category.strip()

    if 'description' in data or not partial:
        description = data.get('description') or ''
        if not isinstance(description, str):
            raise status.ExpenseInvalidException('Description must be a string.')
        out['description'] = description.strip()

    if 'date' in data or not partial:
        value = data.get('date')
        if value is None or value == '':
            if partial:
                raise status.ExpenseInvalidException('Date must not be empty.')
            value = datetime.datetime.now().isoformat(timespec='seconds')
        try:
            out['date'] = to_iso(value)
        except ValueError:
            raise status.ExpenseInvalidException(f'Invalid date "{value}".')

    return out


@dataclass
class Category:
    id: str
    name: str
    color: str
    icon: str

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'name': self.name, 'color': self.color, 'icon': self.icon}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Category':
        try:
            return cls(
                id=str(data['id']),
                name=str(data['name']),
                color=str(data.get('color', '#6B7280')),
                icon=str(data.get('icon', 'more-horizontal')),
            )
        except (KeyError, TypeError) as ex:
            raise status.CategoryInvalidException(f'Malformed category record: {ex}') from ex


DEFAULT_CATEGORIES: List[Category] = [
    Category('1', 'Food', '#F97316', 'utensils'),
    Category('2', 'Transportation', '#3B82F6', 'car'),
    Category('3', 'Housing', '#10B981', 'home'),
    Category('4', 'Entertainment', '#8B5CF6', 'tv'),
    Category('5', 'Shopping', '#EC4899', 'shopping-bag'),
    Category('6', 'Health', '#06B6D4', 'heart'),
    Category('7', 'Utilities', '#EAB308', 'zap'),
    Category('8', 'Other', '#6B7280', 'more-horizontal'),
]


@dataclass
class DateRange:
    """Inclusive date range. Bounds may be ISO strings, dates or datetimes."""
    start_date: DateLike
    end_date: DateLike


@dataclass
class FilterOptions:
    """Transient query over an expense collection. Unset fields always pass."""
    search_query: Optional[str] = None
    categories: Optional[List[str]] = None
    date_range: Optional[DateRange] = None
    min_amount: Optional[float] = None
    max_amount: Optional[float] = None


@dataclass
class ExpenseSummary:
    total_amount: float
    category_breakdown: Dict[str, float]
    time_frame: TimeFrame

    def to_dict(self) -> Dict[str, Any]:
        return {
            'totalAmount': self.total_amount,
            'categoryBreakdown': dict(self.category_breakdown),
            'timeFrame': str(self.time_frame),
        }


@dataclass
class User:
    id: str
    name: str
    email: str

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'name': self.name, 'email': self.email}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'User':
        return cls(
            id=str(data.get('id', data.get('_id', ''))),
            name=str(data.get('name', '')),
            email=str(data.get('email', '')),
        )


@dataclass
class AuthSession:
    """An authenticated user and the bearer token attached to remote calls."""
    user: User
    token: str


@dataclass
class Reconciliation:
    """Expense collection split into server-confirmed and not-yet-confirmed records.

    The two halves are only combined when read through :attr:`expenses`.
    """
    confirmed: List[Expense] = field(default_factory=list)
    pending: List[Expense] = field(default_factory=list)

    @property
    def expenses(self) -> List[Expense]:
        return list(self.confirmed) + list(self.pending)

    @classmethod
    def from_expenses(cls, expenses: List[Expense]) -> 'Reconciliation':
        return cls(
            confirmed=[e for e in expenses if e.is_synced],
            pending=[e for e in expenses if not e.is_synced],
        )


@dataclass
class SyncReport:
    """Outcome of one sync pass."""
    pushed: int = 0
    failed: int = 0
    fetched: Optional[int] = None  # None when the remote fetch failed
    skipped: bool = False
