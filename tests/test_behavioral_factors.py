import unittest
from datetime import date, timedelta

import pandas as pd

from schemas.risk_profile import BehavioralRiskFactors
from services.errors import InvalidInput
from services.risk.behavioral_factors import (
    DEFAULT_INCOME_STABILITY,
    DEFAULT_SPENDING_VOLATILITY,
    behavioral_factors_from_transactions,
)


def _spending(month_totals, per_month=15):
    """`per_month` equal debits in each month, summing to the given totals."""
    rows = []
    for i, total in enumerate(month_totals):
        for d in range(per_month):
            rows.append({"date": f"2024-{i + 1:02d}-{d + 1:02d}", "amount": -total / per_month})
    return rows


def _deposits(start, gaps, amount=2500.0):
    day = start
    rows = [{"date": day.isoformat(), "amount": amount}]
    for g in gaps:
        day = day + timedelta(days=g)
        rows.append({"date": day.isoformat(), "amount": amount})
    return rows


class BehavioralFactorsTests(unittest.TestCase):
    def test_defaults_with_sparse_history(self):
        f = behavioral_factors_from_transactions([{"date": "2024-01-01", "amount": -20}], age=35)
        self.assertIsInstance(f, BehavioralRiskFactors)
        self.assertEqual(f.spending_volatility, DEFAULT_SPENDING_VOLATILITY)
        self.assertEqual(f.income_stability, DEFAULT_INCOME_STABILITY)
        self.assertEqual(f.emergency_fund_ratio, 3.0)
        self.assertEqual(f.debt_to_income_ratio, 0.2)
        self.assertEqual(f.age, 35)

    def test_empty_history_uses_defaults(self):
        f = behavioral_factors_from_transactions([], age=40)
        self.assertEqual(f.spending_volatility, DEFAULT_SPENDING_VOLATILITY)
        self.assertEqual(f.income_stability, DEFAULT_INCOME_STABILITY)

    def test_steady_spending_has_zero_volatility(self):
        f = behavioral_factors_from_transactions(_spending([1500, 1500]), age=35)
        self.assertEqual(f.spending_volatility, 0.0)

    def test_spending_volatility_is_scaled_cv(self):
        # monthly totals 1500 and 4500: mean 3000, std 1500, CV 0.5
        f = behavioral_factors_from_transactions(_spending([1500, 4500]), age=35)
        self.assertAlmostEqual(f.spending_volatility, 5.0)

    def test_spending_volatility_caps_at_ten(self):
        f = behavioral_factors_from_transactions(_spending([1, 1, 100_000], per_month=10), age=35)
        self.assertEqual(f.spending_volatility, 10.0)

    def test_regular_income_is_most_stable(self):
        rows = _deposits(date(2024, 1, 5), [14, 14, 14])
        f = behavioral_factors_from_transactions(rows, age=35)
        self.assertEqual(f.income_stability, 10.0)

    def test_irregular_income_lowers_stability(self):
        # gaps 10 and 30 days: mean 20, std 10, CV 0.5 -> 10 - 2.5
        rows = _deposits(date(2024, 1, 5), [10, 30])
        f = behavioral_factors_from_transactions(rows, age=35)
        self.assertAlmostEqual(f.income_stability, 7.5)

    def test_small_inflows_are_not_income(self):
        rows = _deposits(date(2024, 1, 5), [3, 40, 2], amount=800.0)
        f = behavioral_factors_from_transactions(rows, age=35)
        self.assertEqual(f.income_stability, DEFAULT_INCOME_STABILITY)

    def test_accepts_dataframe_and_overrides(self):
        df = pd.DataFrame(_spending([1500, 4500]))
        f = behavioral_factors_from_transactions(
            df,
            age=50,
            investment_experience_years=4,
            emergency_fund_ratio=8,
            debt_to_income_ratio=0.4,
        )
        self.assertAlmostEqual(f.spending_volatility, 5.0)
        self.assertEqual(f.investment_experience_years, 4)
        self.assertEqual(f.emergency_fund_ratio, 8)
        self.assertEqual(f.debt_to_income_ratio, 0.4)

    def test_missing_columns_rejected(self):
        with self.assertRaises(InvalidInput) as ctx:
            behavioral_factors_from_transactions([{"amount": -10}], age=30)
        self.assertEqual(ctx.exception.field, "transactions")

    def test_bad_dates_rejected(self):
        with self.assertRaises(InvalidInput) as ctx:
            behavioral_factors_from_transactions([{"date": "not a date", "amount": -10}], age=30)
        self.assertEqual(ctx.exception.field, "transactions.date")

    def test_out_of_range_age_rejected(self):
        with self.assertRaises(InvalidInput) as ctx:
            behavioral_factors_from_transactions([], age=200)
        self.assertIn("age", ctx.exception.field)


if __name__ == "__main__":
    unittest.main()
