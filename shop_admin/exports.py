"""CSV exports of the expense and deposit ledgers."""
from __future__ import annotations

from datetime import date, datetime, timezone, tzinfo
from typing import Iterable, Optional

import pandas as pd

from .models import ExpenseRecord, FinanceRecord

EXPENSE_COLUMNS = ["Item", "Amount Spent", "Department", "Mode of Payment", "Account", "Createdby", "Date"]
LEDGER_COLUMNS = ["Amount", "Payment Method", "Service Provider", "Purpose", "Deposited By", "Date"]


def expenses_frame(expenses: Iterable[ExpenseRecord], tz: tzinfo = timezone.utc) -> pd.DataFrame:
    records = [
        {
            "Item": expense.item,
            "Amount Spent": expense.amount_spent,
            "Department": expense.department or "",
            "Mode of Payment": expense.mode_of_payment or "",
            "Account": expense.account or "",
            "Createdby": expense.submittedby or "",
            "Date": _format_date(expense.date, tz),
        }
        for expense in expenses
    ]
    return pd.DataFrame.from_records(records, columns=EXPENSE_COLUMNS)


def ledger_frame(finances: Iterable[FinanceRecord], tz: tzinfo = timezone.utc) -> pd.DataFrame:
    records = [
        {
            "Amount": finance.amount_paid,
            "Payment Method": finance.mode_of_payment or "",
            "Service Provider": finance.mode_of_mobilemoney or finance.bank_name or "-",
            "Purpose": finance.purpose or "-",
            "Deposited By": finance.submittedby or "",
            "Date": _format_date(finance.created_at, tz),
        }
        for finance in finances
    ]
    return pd.DataFrame.from_records(records, columns=LEDGER_COLUMNS)


def expenses_csv(expenses: Iterable[ExpenseRecord], tz: tzinfo = timezone.utc) -> str:
    return expenses_frame(expenses, tz).to_csv(index=False)


def ledger_csv(finances: Iterable[FinanceRecord], tz: tzinfo = timezone.utc) -> str:
    return ledger_frame(finances, tz).to_csv(index=False)


def export_filename(kind: str, period: str, today: date) -> str:
    return f"{kind}_{period}_{today.isoformat()}.csv"


def _format_date(value: Optional[datetime], tz: tzinfo) -> str:
    if value is None:
        return ""
    local = value.astimezone(tz)
    return f"{local.month}/{local.day}/{local.year}"
