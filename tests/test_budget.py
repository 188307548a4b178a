import os
import time
from datetime import datetime

import pytest

from budgy.budget import (
    BudgetStatus,
    budget_status,
    current_month_spend,
    summarize_budget,
)
from budgy.normalizer import Receipt

NOW = datetime(2024, 5, 20, 12, 0).astimezone()


@pytest.fixture
def new_york():
    previous = os.environ.get("TZ")
    os.environ["TZ"] = "America/New_York"
    time.tzset()
    yield
    if previous is None:
        os.environ.pop("TZ", None)
    else:
        os.environ["TZ"] = previous
    time.tzset()


def local(*args) -> datetime:
    return datetime(*args).astimezone()


def test_only_current_month_counts():
    receipts = [
        Receipt(total_amount=40.0, transaction_date_time=local(2024, 5, 3, 10)),
        Receipt(total_amount=60.0, transaction_date_time=local(2024, 4, 15, 10)),
    ]
    summary = summarize_budget(100.0, receipts, now=NOW)

    assert summary.spent == 40.0
    assert summary.remaining == 60.0
    assert summary.progress == pytest.approx(0.4)
    assert summary.status == BudgetStatus.GOOD
    assert summary.status.message == "You're on track with your budget!"


def test_purchase_time_not_scan_time_decides_the_month():
    receipts = [
        Receipt(total_amount=25.0, date="2024-04-30", scanned_time=local(2024, 5, 2)),
        Receipt(total_amount=10.0, date="05/01/2024"),
        Receipt(total_amount=5.0, scanned_time=local(2024, 5, 19)),
    ]
    assert current_month_spend(receipts, now=NOW) == 15.0


def test_receipts_without_time_or_total_are_ignored():
    receipts = [
        Receipt(total_amount=99.0),
        Receipt(transaction_date_time=local(2024, 5, 5)),
    ]
    assert current_month_spend(receipts, now=NOW) == 0.0


@pytest.mark.parametrize("spent, status", [
    (0.0, BudgetStatus.GOOD),
    (69.99, BudgetStatus.GOOD),
    (70.0, BudgetStatus.WARNING),
    (89.99, BudgetStatus.WARNING),
    (90.0, BudgetStatus.CRITICAL),
    (150.0, BudgetStatus.CRITICAL),
])
def test_status_thresholds(spent, status):
    receipts = [Receipt(total_amount=spent, transaction_date_time=local(2024, 5, 10))]
    assert summarize_budget(100.0, receipts, now=NOW).status == status


def test_overspending_caps_progress_and_remaining():
    receipts = [Receipt(total_amount=130.0, transaction_date_time=local(2024, 5, 10))]
    summary = summarize_budget(100.0, receipts, now=NOW)

    assert summary.progress == 1.0
    assert summary.remaining == 0.0
    assert summary.spent == 130.0


def test_zero_budget_has_no_progress():
    receipts = [Receipt(total_amount=20.0, transaction_date_time=local(2024, 5, 10))]
    summary = summarize_budget(0.0, receipts, now=NOW)

    assert summary.progress == 0.0
    assert summary.remaining == 0.0
    assert summary.status == BudgetStatus.GOOD


def test_status_messages():
    assert budget_status(0.75).message == "You're approaching your budget limit."
    assert budget_status(0.95).message == "You've nearly reached your budget limit!"


@pytest.mark.skipif(not hasattr(time, "tzset"), reason="needs time.tzset")
def test_month_start_counts_across_daylight_saving_change(new_york):
    # Nov 1 is still EDT (-4); Nov 20 is EST (-5)
    receipts = [
        Receipt(total_amount=40.0, date="11/01/2024"),
        Receipt(total_amount=15.0, date="10/31/2024"),
    ]
    now = datetime(2024, 11, 20, 12).astimezone()

    assert current_month_spend(receipts, now=now) == 40.0


@pytest.mark.skipif(not hasattr(time, "tzset"), reason="needs time.tzset")
def test_month_end_stays_in_its_month_across_daylight_saving_change(new_york):
    # Feb 29 23:30 is EST (-5); Mar 20 is EDT (-4)
    receipts = [Receipt(total_amount=25.0, transaction_date_time=datetime(2024, 2, 29, 23, 30).astimezone())]

    assert current_month_spend(receipts, now=datetime(2024, 3, 20, 12).astimezone()) == 0.0
    assert current_month_spend(receipts, now=datetime(2024, 2, 10, 12).astimezone()) == 25.0
