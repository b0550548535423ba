"""Spending dashboard for one pet."""

from __future__ import annotations

from collections import Counter
from typing import List, Optional

from .models import BudgetReport, Expense, SavingsGoal
from .toys import Toy, parse_label


def savings_progress(balance: int, target: int) -> float:
    if target <= 0:
        return 0.0
    return min(100.0, balance / target * 100)


def budget_report(
    expenses: List[Expense], balance: int, goal: Optional[SavingsGoal] = None
) -> BudgetReport:
    report = BudgetReport()
    if goal is not None:
        report.savings_goal = goal.target_amount
        report.savings_progress = savings_progress(balance, goal.target_amount)
        report.goal_reached = balance >= goal.target_amount

    if not expenses:
        return report

    totals = Counter()
    for expense in expenses:
        totals[expense.category] += expense.amount
    report.totals_by_category = dict(totals)
    report.top_category, report.top_category_amount = totals.most_common(1)[0]
    report.average_transaction = sum(totals.values()) / len(expenses)
    report.most_expensive = max(expenses, key=lambda e: e.amount)
    return report


def toy_collection(expenses: List[Expense]) -> List[Toy]:
    """Toys bought for a pet, newest first, parsed from their expense labels."""
    return [parse_label(e.item) for e in expenses if e.category == "toy" and e.item != "Playtime"]
