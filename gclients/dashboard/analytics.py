import math
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorDatabase

from gclients.users.user_models import UserRole


def _month_windows(now: datetime) -> Tuple[Tuple[int, int], Tuple[int, int]]:
    """(year, month) of the current and the previous calendar month"""
    current = (now.year, now.month)
    previous = (now.year - 1, 12) if now.month == 1 else (now.year, now.month - 1)
    return current, previous


def _in_month(record: dict, window: Tuple[int, int], date_field: str) -> bool:
    moment = record.get(date_field)
    if not isinstance(moment, datetime):
        return False
    return (moment.year, moment.month) == window


def _percentage_change(current: float, previous: float) -> Optional[dict]:
    if previous == 0:
        return None
    change = (current - previous) / previous * 100
    # halves round up, matching the dashboard charts
    return {"change": math.floor(change + 0.5), "isPositive": change >= 0}


def _compare_months(
    records: Iterable[dict],
    measure: Callable[[List[dict]], float],
    date_field: str,
    now: Optional[datetime]
) -> Optional[dict]:
    records = list(records)
    current, previous = _month_windows(now or datetime.utcnow())
    this_month = [r for r in records if _in_month(r, current, date_field)]
    last_month = [r for r in records if _in_month(r, previous, date_field)]
    return _percentage_change(measure(this_month), measure(last_month))


def _total_amount(invoices: List[dict]) -> float:
    return sum(invoice.get("amount") or 0 for invoice in invoices)


def calculate_count_change(
    records: Iterable[dict],
    date_field: str = "created_at",
    now: Optional[datetime] = None
) -> Optional[dict]:
    """
    Month-over-month change in the number of records

    None when the previous month has no records, otherwise
    {"change": rounded percent, "isPositive": bool}.
    """
    return _compare_months(records, len, date_field, now)


def calculate_revenue_change(invoices: Iterable[dict], now: Optional[datetime] = None) -> Optional[dict]:
    """Month-over-month change in invoiced amount; None when last month billed nothing"""
    return _compare_months(invoices, _total_amount, "created_at", now)


def summarize(learners: List[dict], invoices: List[dict], now: Optional[datetime] = None) -> dict:
    return {
        "totalLearners": len(learners),
        "totalRevenue": _total_amount(invoices),
        "totalInvoices": len(invoices),
        "learnersChange": calculate_count_change(learners, now=now),
        "revenueChange": calculate_revenue_change(invoices, now=now),
        "invoicesChange": calculate_count_change(invoices, now=now),
    }


async def calculate_dashboard_metrics(db: AsyncIOMotorDatabase, now: Optional[datetime] = None) -> dict:
    learners = await db.users.find(
        {"role": UserRole.LEARNER.value},
        {"_id": 0, "created_at": 1}
    ).to_list(length=None)
    invoices = await db.invoices.find(
        {},
        {"_id": 0, "created_at": 1, "amount": 1}
    ).to_list(length=None)
    return summarize(learners, invoices, now=now)
