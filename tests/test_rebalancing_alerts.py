import unittest
from datetime import datetime, timezone

from pydantic import ValidationError

from schemas.allocation import AssetClass
from services.portfolio.drift_analyzer import analyze_drift
from services.portfolio.rebalancing_alerts import (
    alert_key,
    check_rebalancing,
    generate_alerts,
    sort_alerts,
    urgency_for,
    visible_alerts,
)

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class RebalancingAlertTests(unittest.TestCase):
    def _alerts(self, current, target, threshold=5.0, **kwargs):
        return generate_alerts(analyze_drift(current, target, threshold), now=NOW, **kwargs)

    def test_overweight_alert_fields(self):
        alerts = self._alerts({"stocks_us": 70, "bonds": 30}, {"stocks_us": 60, "bonds": 30})
        self.assertEqual(len(alerts), 1)
        a = alerts[0]
        self.assertEqual(a.alert_type, "overweight")
        self.assertEqual(a.urgency, "high")
        self.assertEqual(a.deviation_percentage, 10.0)
        self.assertEqual(a.current_allocation, 70.0)
        self.assertEqual(a.target_allocation, 60.0)
        self.assertEqual(a.suggested_action, "Sell US Stocks to reduce allocation by 10.0 points")
        self.assertIn("~1.0%", a.potential_impact)
        self.assertEqual(a.alert_key, "stocks_us:overweight")
        self.assertEqual(a.created_date, NOW)
        self.assertFalse(a.dismissed)

    def test_underweight_alert_suggests_buying(self):
        alerts = self._alerts({"bonds": 20}, {"bonds": 30})
        self.assertEqual(alerts[0].alert_type, "underweight")
        self.assertEqual(alerts[0].suggested_action, "Buy Bonds to increase allocation by 10.0 points")

    def test_round_trip_balanced_and_shifted(self):
        target = {"stocks_us": 60, "bonds": 40}
        self.assertEqual(self._alerts(dict(target), target), [])

        alerts = {a.asset_class: a for a in self._alerts({"stocks_us": 80, "bonds": 20}, target)}
        self.assertEqual(len(alerts), 2)
        self.assertEqual(alerts[AssetClass.stocks_us].alert_type, "overweight")
        self.assertEqual(alerts[AssetClass.stocks_us].urgency, "high")
        self.assertEqual(alerts[AssetClass.stocks_us].deviation_percentage, 20.0)
        self.assertEqual(alerts[AssetClass.bonds].alert_type, "underweight")
        self.assertEqual(alerts[AssetClass.bonds].deviation_percentage, -20.0)

    def test_ten_point_shift_is_high_on_both_sides(self):
        alerts = {
            a.asset_class: a
            for a in self._alerts({"stocks_us": 70, "bonds": 30}, {"stocks_us": 60, "bonds": 40})
        }
        self.assertEqual(set(alerts), {AssetClass.stocks_us, AssetClass.bonds})
        self.assertEqual(alerts[AssetClass.stocks_us].alert_type, "overweight")
        self.assertEqual(alerts[AssetClass.stocks_us].urgency, "high")
        self.assertEqual(alerts[AssetClass.bonds].alert_type, "underweight")
        self.assertEqual(alerts[AssetClass.bonds].urgency, "high")

    def test_urgency_levels(self):
        self.assertEqual(urgency_for(10.0, 5.0), "high")
        self.assertEqual(urgency_for(9.9, 5.0), "medium")
        self.assertEqual(urgency_for(5.0, 5.0), "medium")
        self.assertEqual(urgency_for(4.0, 5.0), "low")

        drift = self._alerts({"stocks_us": 66}, {"stocks_us": 60})[0]
        self.assertEqual(drift.alert_type, "drift")
        self.assertEqual(drift.urgency, "medium")

    def test_sort_by_urgency_then_magnitude(self):
        alerts = self._alerts(
            {"stocks_us": 52, "bonds": 45, "cash": 3},
            {"stocks_us": 60, "bonds": 30, "cash": 10},
        )
        ordered = sort_alerts(alerts)
        self.assertEqual([a.urgency for a in ordered], ["high", "medium", "medium"])
        self.assertEqual(ordered[0].asset_class, AssetClass.bonds)
        self.assertEqual(ordered[1].asset_class, AssetClass.stocks_us)  # |-8| before |-7|
        self.assertEqual(ordered[2].asset_class, AssetClass.cash)

    def test_fields_are_frozen_except_dismissed(self):
        a = self._alerts({"stocks_us": 70}, {"stocks_us": 60})[0]
        with self.assertRaises(ValidationError):
            a.urgency = "low"
        with self.assertRaises(ValidationError):
            a.deviation_percentage = 0.0
        a.dismissed = True
        self.assertTrue(a.dismissed)

    def test_visible_alerts_filters_dismissed(self):
        alerts = self._alerts({"stocks_us": 70, "bonds": 20}, {"stocks_us": 60, "bonds": 30})
        hidden_key = alert_key(AssetClass.stocks_us, "overweight")
        visible = visible_alerts(alerts, [hidden_key])
        self.assertEqual([a.asset_class for a in visible], [AssetClass.bonds])

        alerts[1].dismissed = True
        self.assertEqual(visible_alerts(alerts), [alerts[0]])

    def test_no_opportunity_alerts_without_scorer(self):
        alerts = check_rebalancing({"bonds": 27}, {"bonds": 30}, 5.0, now=NOW)
        self.assertEqual(alerts, [])

    def test_opportunity_scorer_flags_within_band_underweight(self):
        seen = []

        def scorer(row):
            seen.append(row.asset_class)
            return "Bond yields are near a multi-year high" if row.asset_class == AssetClass.bonds else None

        alerts = check_rebalancing(
            {"bonds": 27, "stocks_us": 63, "cash": 8},
            {"bonds": 30, "stocks_us": 60, "cash": 10},
            5.0,
            opportunity_scorer=scorer,
            now=NOW,
        )
        self.assertEqual(len(alerts), 1)
        a = alerts[0]
        self.assertEqual(a.alert_type, "opportunity")
        self.assertEqual(a.urgency, "low")
        self.assertTrue(a.potential_impact.startswith("Bond yields are near a multi-year high"))
        # overweight rows are never offered to the scorer
        self.assertNotIn(AssetClass.stocks_us, seen)
        self.assertIn(AssetClass.cash, seen)

    def test_check_rebalancing_is_deterministic(self):
        args = ({"stocks_us": 75, "bonds": 15, "cash": 10}, {"stocks_us": 60, "bonds": 30, "cash": 10}, 5.0)
        first = [a.model_dump() for a in check_rebalancing(*args, now=NOW)]
        second = [a.model_dump() for a in check_rebalancing(*args, now=NOW)]
        self.assertEqual(first, second)
        self.assertEqual(len(first), 2)

    def test_check_rebalancing_honours_dismissed_keys(self):
        alerts = check_rebalancing(
            {"stocks_us": 75, "bonds": 15},
            {"stocks_us": 60, "bonds": 30},
            5.0,
            dismissed_keys=["bonds:underweight"],
            now=NOW,
        )
        self.assertEqual([a.alert_key for a in alerts], ["stocks_us:overweight"])


if __name__ == "__main__":
    unittest.main()
