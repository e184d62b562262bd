"""Reporting engine: daily revenue, per-day sales and profit over completed transactions."""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from retail_pos.services import reporting_service, transaction_service
from retail_pos.services.reporting_service import ReportError
from retail_pos.time_utils import local_today, resolve_timezone, utcnow
from retail_pos.validation import ValidationError

from conftest import header_for, insert_transaction, line


@pytest.fixture
def shelf(make_product):
    """Two products with known costs."""
    return {
        "mug": make_product(stock=100, price_cents=1000, cost_cents=500, sku="MUG"),
        "tea": make_product(stock=100, price_cents=450, cost_cents=125, sku="TEA"),
    }


def test_daily_revenue_sums_completed_transactions_of_the_day(db_session, cashier, shelf):
    mug = shelf["mug"]
    insert_transaction(user_id=cashier.id, created_at=datetime(2026, 3, 9, 0, 0, 0), total_cents=1000, items=[(mug, 1, 1000)])
    insert_transaction(user_id=cashier.id, created_at=datetime(2026, 3, 9, 23, 59, 59), total_cents=2550, items=[(mug, 2, 1275)])
    insert_transaction(user_id=cashier.id, created_at=datetime(2026, 3, 9, 12), total_cents=9900, status="cancelled")
    insert_transaction(user_id=cashier.id, created_at=datetime(2026, 3, 9, 13), total_cents=7700, status="pending")
    insert_transaction(user_id=cashier.id, created_at=datetime(2026, 3, 10, 0, 0, 0), total_cents=4000)
    insert_transaction(user_id=cashier.id, created_at=datetime(2026, 3, 8, 23, 59, 59), total_cents=3000)

    report = reporting_service.daily_revenue("2026-03-09")

    assert report == {"date": "2026-03-09", "revenue": Decimal("35.50")}


def test_daily_revenue_is_zero_for_a_quiet_day(db_session):
    assert reporting_service.daily_revenue("2026-01-01") == {"date": "2026-01-01", "revenue": Decimal("0.00")}


def test_daily_revenue_defaults_to_today(db_session, make_product, cashier):
    product = make_product(stock=5)
    transaction_service.create_transaction(header_for(cashier.id, 1999), [line(product.id, 1, 1999)])

    report = reporting_service.daily_revenue()

    assert report["date"] == local_today(resolve_timezone("UTC")).isoformat()
    assert report["revenue"] == Decimal("19.99")


def test_daily_revenue_rejects_malformed_date(db_session):
    with pytest.raises(ValidationError):
        reporting_service.daily_revenue("09/03/2026")


def test_daily_revenue_drops_cancelled_checkout(db_session, make_product, cashier):
    product = make_product(stock=5)
    kept = transaction_service.create_transaction(header_for(cashier.id, 1000), [line(product.id, 1)])
    dropped = transaction_service.create_transaction(header_for(cashier.id, 2000), [line(product.id, 2)])
    transaction_service.cancel_transaction(dropped.id)

    today = kept.created_at.date().isoformat()

    assert reporting_service.daily_revenue(today)["revenue"] == Decimal("10.00")


def test_sales_report_rows_per_day_ascending_without_gaps_filled(db_session, cashier, shelf):
    mug, tea = shelf["mug"], shelf["tea"]
    insert_transaction(user_id=cashier.id, created_at=datetime(2026, 5, 3, 15), total_cents=1900, discount_cents=100,
                       items=[(mug, 2, 1000)])
    insert_transaction(user_id=cashier.id, created_at=datetime(2026, 5, 1, 9), total_cents=1000,
                       items=[(mug, 1, 1000)])
    insert_transaction(user_id=cashier.id, created_at=datetime(2026, 5, 1, 18), total_cents=1350,
                       items=[(tea, 3, 450)])
    insert_transaction(user_id=cashier.id, created_at=datetime(2026, 5, 2, 12), total_cents=5000, status="cancelled",
                       items=[(mug, 5, 1000)])

    rows = reporting_service.sales_report("2026-05-01", "2026-05-03")

    assert rows == [
        {
            "date": "2026-05-01",
            "total_sales": Decimal("23.50"),
            "total_transactions": 2,
            "total_discount": Decimal("0.00"),
            # 23.50 - (1 * 5.00 + 3 * 1.25)
            "total_profit": Decimal("14.75"),
        },
        {
            "date": "2026-05-03",
            "total_sales": Decimal("19.00"),
            "total_transactions": 1,
            "total_discount": Decimal("1.00"),
            "total_profit": Decimal("9.00"),
        },
    ]


def test_sales_report_range_is_inclusive(db_session, cashier, shelf):
    mug = shelf["mug"]
    insert_transaction(user_id=cashier.id, created_at=datetime(2026, 6, 1, 0, 0), total_cents=1000, items=[(mug, 1, 1000)])
    insert_transaction(user_id=cashier.id, created_at=datetime(2026, 6, 30, 23, 59, 59), total_cents=1000, items=[(mug, 1, 1000)])
    insert_transaction(user_id=cashier.id, created_at=datetime(2026, 7, 1, 0, 0), total_cents=1000, items=[(mug, 1, 1000)])

    rows = reporting_service.sales_report("2026-06-01", "2026-06-30")

    assert [row["date"] for row in rows] == ["2026-06-01", "2026-06-30"]


def test_sales_report_empty_range(db_session):
    assert reporting_service.sales_report("2026-01-01", "2026-01-31") == []


def test_profit_follows_current_cost_unless_snapshot_requested(db_session, cashier, shelf):
    mug = shelf["mug"]
    insert_transaction(user_id=cashier.id, created_at=datetime(2026, 4, 2, 10), total_cents=3000, items=[(mug, 3, 1000)])

    mug.cost_cents = 800
    db_session.commit()

    current = reporting_service.sales_report("2026-04-02", "2026-04-02")
    snapshot = reporting_service.sales_report("2026-04-02", "2026-04-02", cost_basis="snapshot")

    assert current[0]["total_profit"] == Decimal("6.00")
    assert snapshot[0]["total_profit"] == Decimal("15.00")


def test_profit_report_totals_and_margin(db_session, cashier, shelf):
    mug, tea = shelf["mug"], shelf["tea"]
    insert_transaction(user_id=cashier.id, created_at=datetime(2026, 2, 10, 10), total_cents=2000, items=[(mug, 2, 1000)])
    insert_transaction(user_id=cashier.id, created_at=datetime(2026, 2, 11, 10), total_cents=900, items=[(tea, 2, 450)])
    insert_transaction(user_id=cashier.id, created_at=datetime(2026, 2, 11, 11), total_cents=5000, status="cancelled",
                       items=[(mug, 5, 1000)])

    report = reporting_service.profit_report("2026-02-01", "2026-02-28")

    # cost = 2 * 5.00 + 2 * 1.25 = 12.50, revenue = 29.00
    assert report["total_revenue"] == Decimal("29.00")
    assert report["total_cost"] == Decimal("12.50")
    assert report["total_profit"] == Decimal("16.50")
    assert report["profit_margin"] == Decimal("0.5690")


def test_profit_report_with_no_sales_has_zero_margin(db_session):
    report = reporting_service.profit_report("2026-02-01", "2026-02-28")

    assert report["total_profit"] == Decimal("0.00")
    assert report["total_cost"] == Decimal("0.00")
    assert report["profit_margin"] == Decimal("0")


def test_profit_report_loss_gives_negative_margin(db_session, cashier, shelf):
    mug = shelf["mug"]
    insert_transaction(user_id=cashier.id, created_at=datetime(2026, 2, 10, 10), total_cents=400, items=[(mug, 1, 400)])

    report = reporting_service.profit_report("2026-02-10", "2026-02-10")

    assert report["total_profit"] == Decimal("-1.00")
    assert report["profit_margin"] == Decimal("-0.2500")


def test_multi_item_and_itemless_sales_count_once(db_session, cashier, shelf):
    mug, tea = shelf["mug"], shelf["tea"]
    insert_transaction(user_id=cashier.id, created_at=datetime(2026, 6, 1, 10), total_cents=2900,
                       items=[(mug, 2, 1000), (tea, 2, 450)])
    insert_transaction(user_id=cashier.id, created_at=datetime(2026, 6, 1, 11), total_cents=500)
    insert_transaction(user_id=cashier.id, created_at=datetime(2026, 6, 2, 9), total_cents=1000,
                       items=[(mug, 1, 1000)])

    rows = reporting_service.sales_report("2026-06-01", "2026-06-02")
    profit = reporting_service.profit_report("2026-06-01", "2026-06-02")

    assert rows == [
        {
            "date": "2026-06-01",
            "total_sales": Decimal("34.00"),
            "total_transactions": 2,
            "total_discount": Decimal("0.00"),
            "total_profit": Decimal("21.50"),
        },
        {
            "date": "2026-06-02",
            "total_sales": Decimal("10.00"),
            "total_transactions": 1,
            "total_discount": Decimal("0.00"),
            "total_profit": Decimal("5.00"),
        },
    ]
    assert profit["total_revenue"] == Decimal("44.00")
    assert profit["total_cost"] == Decimal("17.50")
    assert profit["total_profit"] == sum(row["total_profit"] for row in rows)
    assert profit["profit_margin"] == Decimal("0.6023")


def test_reports_are_pure_reads(db_session, cashier, shelf):
    mug = shelf["mug"]
    insert_transaction(user_id=cashier.id, created_at=datetime(2026, 8, 1, 10), total_cents=2000, items=[(mug, 2, 1000)])

    assert reporting_service.daily_revenue("2026-08-01") == reporting_service.daily_revenue("2026-08-01")
    assert (
        reporting_service.sales_report("2026-08-01", "2026-08-31")
        == reporting_service.sales_report("2026-08-01", "2026-08-31")
    )


def test_days_follow_the_report_timezone(app, db_session, cashier, shelf):
    mug = shelf["mug"]
    # 03:30 UTC on the 10th is still the evening of the 9th in New York
    insert_transaction(user_id=cashier.id, created_at=datetime(2026, 3, 10, 3, 30), total_cents=1000, items=[(mug, 1, 1000)])

    assert reporting_service.daily_revenue("2026-03-10")["revenue"] == Decimal("10.00")

    app.config["REPORT_TIMEZONE"] = "America/New_York"

    assert reporting_service.daily_revenue("2026-03-10")["revenue"] == Decimal("0.00")
    assert reporting_service.daily_revenue("2026-03-09")["revenue"] == Decimal("10.00")
    assert [row["date"] for row in reporting_service.sales_report("2026-03-01", "2026-03-31")] == ["2026-03-09"]


@pytest.mark.parametrize("start, end", [
    (None, "2026-01-31"),
    ("2026-01-01", None),
    ("2026-02-01", "2026-01-01"),
    ("2026-1-1", "2026-01-31"),
    ("yesterday", "today"),
])
def test_report_ranges_are_validated(db_session, start, end):
    with pytest.raises(ValidationError):
        reporting_service.sales_report(start, end)
    with pytest.raises(ValidationError):
        reporting_service.profit_report(start, end)


def test_unknown_cost_basis(db_session):
    with pytest.raises(ReportError):
        reporting_service.sales_report("2026-01-01", "2026-01-31", cost_basis="average")
    with pytest.raises(ReportError):
        reporting_service.profit_report("2026-01-01", "2026-01-31", cost_basis="average")


def test_recent_checkout_appears_in_reports(db_session, make_product, cashier):
    product = make_product(stock=10, cost_cents=300)
    transaction_service.create_transaction(header_for(cashier.id, 2000), [line(product.id, 2, 1000)])

    today = utcnow().date()
    rows = reporting_service.sales_report(
        (today - timedelta(days=1)).isoformat(),
        (today + timedelta(days=1)).isoformat(),
    )

    assert sum(row["total_transactions"] for row in rows) == 1
    assert sum(row["total_profit"] for row in rows) == Decimal("14.00")
