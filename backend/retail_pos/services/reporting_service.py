# Overview: Read-only revenue, sales and profit aggregation over completed transactions.

from __future__ import annotations

from collections import OrderedDict
from datetime import date
from decimal import Decimal, ROUND_HALF_UP

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Product, Transaction, TransactionItem
from ..models.sales import STATUS_COMPLETED
from ..time_utils import (
    day_bounds_utc,
    local_date_of,
    local_today,
    parse_calendar_date,
    resolve_timezone,
)
from ..validation import ValidationError, cents_to_decimal
"""
Reporting semantics (authoritative)

- Only status='completed' transactions count. Pending and cancelled rows are ignored.
- A calendar day is [00:00, next 00:00) in REPORT_TIMEZONE; timestamps are stored UTC-naive.
- Date ranges are inclusive of both end days.
- Sums run over integer cents and are converted to Decimal only for output.
- Cost basis "current" multiplies quantity by the product's cost today, so
  past profit moves when a cost is edited. "snapshot" uses the cost captured
  on the line item at checkout.
- Empty ranges produce zero values, never errors.
"""


COST_BASES = ("current", "snapshot")

MARGIN_PLACES = Decimal("0.0001")


class ReportError(Exception):
    """Raised when report generation fails."""
    pass


def _report_timezone():
    return resolve_timezone(current_app.config.get("REPORT_TIMEZONE", "UTC"))


def _parse_range(start: str | None, end: str | None) -> tuple[date, date]:
    start_day = parse_calendar_date(start, "start_date")
    end_day = parse_calendar_date(end, "end_date")
    if start_day is None or end_day is None:
        raise ValidationError("start_date and end_date are required")
    if end_day < start_day:
        raise ValidationError("end_date must not be before start_date")
    return start_day, end_day


def _cost_expression(cost_basis: str):
    if cost_basis == "current":
        return TransactionItem.quantity * Product.cost_cents
    if cost_basis == "snapshot":
        return TransactionItem.quantity * TransactionItem.unit_cost_cents
    raise ReportError(f"cost_basis must be one of: {', '.join(COST_BASES)}")


def _completed_in_window(query, start_dt, end_dt):
    return query.filter(
        Transaction.status == STATUS_COMPLETED,
        Transaction.created_at >= start_dt,
        Transaction.created_at < end_dt,
    )


def _completed_with_cost(start_dt, end_dt, cost_basis: str):
    """
    One row per completed transaction in the window, with its line cost.

    Revenue and cost come from the same statement, so a cancellation that
    commits mid-report cannot leave a transaction counted on one side only.
    """
    cost_expr = _cost_expression(cost_basis)
    query = (
        db.session.query(
            Transaction.id,
            Transaction.created_at,
            Transaction.total_amount_cents,
            Transaction.discount_amount_cents,
            func.coalesce(func.sum(cost_expr), 0).label("cost_cents"),
        )
        .outerjoin(TransactionItem, TransactionItem.transaction_id == Transaction.id)
        .outerjoin(Product, TransactionItem.product_id == Product.id)
    )
    return (
        _completed_in_window(query, start_dt, end_dt)
        .group_by(
            Transaction.id,
            Transaction.created_at,
            Transaction.total_amount_cents,
            Transaction.discount_amount_cents,
        )
        .order_by(Transaction.created_at.asc(), Transaction.id.asc())
        .all()
    )


def daily_revenue(date_str: str | None = None) -> dict:
    """Sum of total_amount over completed transactions on one calendar day (default today)."""
    tz = _report_timezone()
    day = parse_calendar_date(date_str, "date") or local_today(tz)
    start_dt, end_dt = day_bounds_utc(day, day, tz)

    query = db.session.query(func.coalesce(func.sum(Transaction.total_amount_cents), 0))
    revenue_cents = int(_completed_in_window(query, start_dt, end_dt).scalar() or 0)

    return {
        "date": day.isoformat(),
        "revenue": cents_to_decimal(revenue_cents),
    }


def sales_report(start: str | None, end: str | None, *, cost_basis: str = "current") -> list[dict]:
    """
    One row per calendar day with at least one completed transaction, ascending.

    Days without completed transactions are omitted rather than zero-filled.
    """
    _cost_expression(cost_basis)
    tz = _report_timezone()
    start_day, end_day = _parse_range(start, end)
    start_dt, end_dt = day_bounds_utc(start_day, end_day, tz)

    days: "OrderedDict[date, dict]" = OrderedDict()
    for row in _completed_with_cost(start_dt, end_dt, cost_basis):
        day = local_date_of(row.created_at, tz)
        bucket = days.setdefault(day, {"sales": 0, "count": 0, "discount": 0, "cost": 0})
        bucket["sales"] += int(row.total_amount_cents)
        bucket["count"] += 1
        bucket["discount"] += int(row.discount_amount_cents)
        bucket["cost"] += int(row.cost_cents or 0)

    return [
        {
            "date": day.isoformat(),
            "total_sales": cents_to_decimal(bucket["sales"]),
            "total_transactions": bucket["count"],
            "total_discount": cents_to_decimal(bucket["discount"]),
            "total_profit": cents_to_decimal(bucket["sales"] - bucket["cost"]),
        }
        for day, bucket in sorted(days.items())
    ]


def profit_report(start: str | None, end: str | None, *, cost_basis: str = "current") -> dict:
    """
    Revenue, cost and margin over completed transactions in an inclusive date range.

    profit_margin = total_profit / (total_profit + total_cost), i.e. profit
    over revenue, and 0 when revenue is 0.
    """
    _cost_expression(cost_basis)
    tz = _report_timezone()
    start_day, end_day = _parse_range(start, end)
    start_dt, end_dt = day_bounds_utc(start_day, end_day, tz)

    revenue_cents = 0
    cost_cents = 0
    for row in _completed_with_cost(start_dt, end_dt, cost_basis):
        revenue_cents += int(row.total_amount_cents)
        cost_cents += int(row.cost_cents or 0)

    profit_cents = revenue_cents - cost_cents
    denominator = profit_cents + cost_cents
    if denominator:
        margin = (Decimal(profit_cents) / Decimal(denominator)).quantize(MARGIN_PLACES, rounding=ROUND_HALF_UP)
    else:
        margin = Decimal("0").quantize(MARGIN_PLACES)

    return {
        "start_date": start_day.isoformat(),
        "end_date": end_day.isoformat(),
        "total_revenue": cents_to_decimal(revenue_cents),
        "total_cost": cents_to_decimal(cost_cents),
        "total_profit": cents_to_decimal(profit_cents),
        "profit_margin": margin,
    }
