"""Expense endpoints.

Every query is scoped to the user of the bearer token. A record owned by
another user is indistinguishable from a missing one: both answer 404.
"""
import logging
import math
from typing import Any, Dict, List, Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, HTTPException
from pymongo import DESCENDING
from pymongo.database import Database

from ..database import EXPENSES, get_db, parse_object_id, to_str_id, utcnow
from ..schemas import ExpenseCreate, ExpenseUpdate
from ..security import get_current_user_id
from ...core.model import Expense, TimeFrame, parse_date
from ...data import data

router = APIRouter(prefix='/expenses', tags=['expenses'])


def _user_oid(user_id: str) -> ObjectId:
    oid = parse_object_id(user_id)
    if oid is None:
        raise HTTPException(status_code=401, detail='Invalid token')
    return oid


def _parse_date_or_400(value: str, message: str = 'Invalid date'):
    try:
        return parse_date(value)
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail=message)


def _check_amount(amount: float) -> float:
    if math.isnan(amount) or math.isinf(amount) or amount <= 0:
        raise HTTPException(status_code=400, detail='Amount must be greater than zero')
    return amount


def _find_owned(db: Database, expense_id: str, user_oid: ObjectId) -> Dict[str, Any]:
    oid = parse_object_id(expense_id)
    doc = db[EXPENSES].find_one({'_id': oid, 'userId': user_oid}) if oid else None
    if not doc:
        raise HTTPException(status_code=404, detail='Expense not found')
    return doc


def _list(db: Database, query: Dict[str, Any]) -> List[Dict[str, Any]]:
    return [to_str_id(doc) for doc in db[EXPENSES].find(query).sort('date', DESCENDING)]


@router.get('')
def list_expenses(user_id: str = Depends(get_current_user_id), db: Database = Depends(get_db)):
    return _list(db, {'userId': _user_oid(user_id)})


@router.get('/range')
def list_expenses_in_range(startDate: Optional[str] = None, endDate: Optional[str] = None,
                           user_id: str = Depends(get_current_user_id), db: Database = Depends(get_db)):
    if not startDate or not endDate:
        raise HTTPException(status_code=400, detail='Start date and end date are required')

    start = _parse_date_or_400(startDate)
    end = _parse_date_or_400(endDate)
    return _list(db, {'userId': _user_oid(user_id), 'date': {'$gte': start, '$lte': end}})


@router.get('/category/{category}')
def list_expenses_by_category(category: str, user_id: str = Depends(get_current_user_id),
                              db: Database = Depends(get_db)):
    return _list(db, {'userId': _user_oid(user_id), 'category': category})


@router.get('/summary')
def get_summary(timeFrame: Optional[str] = None, user_id: str = Depends(get_current_user_id),
                db: Database = Depends(get_db)):
    try:
        time_frame = TimeFrame(timeFrame)
    except ValueError:
        raise HTTPException(
            status_code=400,
            detail=f'timeFrame must be one of {", ".join(t.value for t in TimeFrame)}'
        )

    expenses = [Expense.from_dict(doc) for doc in _list(db, {'userId': _user_oid(user_id)})]
    return data.get_expense_summary(expenses, time_frame).to_dict()


@router.post('', status_code=201)
def create_expense(payload: ExpenseCreate, user_id: str = Depends(get_current_user_id),
                   db: Database = Depends(get_db)):
    if payload.amount is None or not payload.category or not payload.date:
        raise HTTPException(status_code=400, detail='All fields are required')

    now = utcnow()
    doc = {
        'userId': _user_oid(user_id),
        'amount': _check_amount(payload.amount),
        'category': payload.category.strip(),
        'description': (payload.description or '').strip(),
        'date': _parse_date_or_400(payload.date),
        'isSynced': True,
        'createdAt': now,
        'updatedAt': now,
    }
    doc['_id'] = db[EXPENSES].insert_one(doc).inserted_id
    logging.debug(f'Created expense {doc["_id"]} for user {user_id}')
    return to_str_id(doc)


@router.put('/{expense_id}')
def update_expense(expense_id: str, payload: ExpenseUpdate, user_id: str = Depends(get_current_user_id),
                   db: Database = Depends(get_db)):
    user_oid = _user_oid(user_id)
    doc = _find_owned(db, expense_id, user_oid)

    changes: Dict[str, Any] = {}
    if payload.amount is not None:
        changes['amount'] = _check_amount(payload.amount)
    if payload.category:
        changes['category'] = payload.category.strip()
    if payload.description is not None:
        changes['description'] = payload.description.strip()
    if payload.date:
        changes['date'] = _parse_date_or_400(payload.date)

    if changes:
        changes['updatedAt'] = utcnow()
        db[EXPENSES].update_one({'_id': doc['_id'], 'userId': user_oid}, {'$set': changes})
        doc.update(changes)
    return to_str_id(doc)


@router.delete('/{expense_id}')
def delete_expense(expense_id: str, user_id: str = Depends(get_current_user_id),
                   db: Database = Depends(get_db)):
    user_oid = _user_oid(user_id)
    doc = _find_owned(db, expense_id, user_oid)
    db[EXPENSES].delete_one({'_id': doc['_id'], 'userId': user_oid})
    return {'message': 'Expense deleted'}
