import unittest

from schemas.allocation import AllocationMix, AssetClass
from services.errors import InvalidInput
from services.portfolio.drift_analyzer import analyze_drift, classify_deviation, is_balanced


class DriftAnalyzerTests(unittest.TestCase):
    def test_identical_mixes_have_no_drift(self):
        mix = {"stocks_us": 60, "bonds": 30, "cash": 10}
        self.assertEqual(analyze_drift(mix, mix, 5.0), [])

    def test_exact_threshold_is_included(self):
        rows = analyze_drift({"stocks_us": 65, "bonds": 35}, {"stocks_us": 60, "bonds": 35}, 5.0)
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0].asset_class, AssetClass.stocks_us)
        self.assertEqual(rows[0].deviation, 5.0)
        self.assertEqual(rows[0].classification, "drift")

    def test_just_below_threshold_is_excluded(self):
        rows = analyze_drift({"stocks_us": 64.99}, {"stocks_us": 60}, 5.0)
        self.assertEqual(rows, [])

    def test_large_deviation_is_overweight_or_underweight(self):
        rows = analyze_drift(
            {"stocks_us": 70, "bonds": 20},
            {"stocks_us": 60, "bonds": 30},
            5.0,
        )
        by_class = {r.asset_class: r for r in rows}
        self.assertEqual(by_class[AssetClass.stocks_us].classification, "overweight")
        self.assertEqual(by_class[AssetClass.stocks_us].deviation, 10.0)
        self.assertEqual(by_class[AssetClass.bonds].classification, "underweight")
        self.assertEqual(by_class[AssetClass.bonds].deviation, -10.0)
        self.assertEqual(by_class[AssetClass.bonds].abs_deviation, 10.0)

    def test_band_multiplier_one_disables_drift_tier(self):
        rows = analyze_drift({"stocks_us": 65}, {"stocks_us": 60}, 5.0, band_multiplier=1.0)
        self.assertEqual(rows[0].classification, "overweight")

    def test_classify_deviation_boundaries(self):
        self.assertIsNone(classify_deviation(4.9, 5.0))
        self.assertEqual(classify_deviation(-5.0, 5.0), "drift")
        self.assertEqual(classify_deviation(7.4, 5.0), "drift")
        self.assertEqual(classify_deviation(7.5, 5.0), "overweight")
        self.assertEqual(classify_deviation(-7.5, 5.0), "underweight")

    def test_missing_classes_read_as_zero(self):
        rows = analyze_drift({"stocks_us": 100}, {"stocks_us": 60, "bonds": 40}, 5.0)
        self.assertEqual([r.asset_class for r in rows], [AssetClass.stocks_us, AssetClass.bonds])
        self.assertEqual(rows[1].current_pct, 0.0)
        self.assertEqual(rows[1].deviation, -40.0)

    def test_classes_are_evaluated_independently(self):
        # totals differ (100 vs 90); only the class that actually moved is reported
        rows = analyze_drift({"stocks_us": 70, "bonds": 30}, {"stocks_us": 60, "bonds": 30}, 5.0)
        self.assertEqual([r.asset_class for r in rows], [AssetClass.stocks_us])

    def test_output_follows_asset_class_order(self):
        rows = analyze_drift(
            {"cash": 20, "stocks_us": 40, "bonds": 40},
            {"cash": 5, "stocks_us": 60, "bonds": 35},
            5.0,
        )
        self.assertEqual(
            [r.asset_class for r in rows],
            [AssetClass.stocks_us, AssetClass.bonds, AssetClass.cash],
        )

    def test_include_within_band_returns_unflagged_rows(self):
        rows = analyze_drift(
            {"stocks_us": 62, "bonds": 38},
            {"stocks_us": 60, "bonds": 40},
            5.0,
            include_within_band=True,
        )
        self.assertEqual(len(rows), 2)
        self.assertTrue(all(r.classification is None for r in rows))
        self.assertTrue(rows[0].is_within_band)

    def test_threshold_must_be_positive(self):
        with self.assertRaises(InvalidInput) as ctx:
            analyze_drift({"stocks_us": 60}, {"stocks_us": 60}, 0)
        self.assertEqual(ctx.exception.field, "threshold")

        with self.assertRaises(InvalidInput):
            analyze_drift({"stocks_us": 60}, {"stocks_us": 60}, -1)

    def test_negative_percentage_rejected(self):
        with self.assertRaises(InvalidInput) as ctx:
            analyze_drift({"stocks_us": -5}, {"stocks_us": 60}, 5.0)
        self.assertTrue(ctx.exception.field.startswith("current"))

    def test_unknown_asset_class_rejected(self):
        with self.assertRaises(InvalidInput) as ctx:
            analyze_drift({"stocks_us": 60}, {"gold": 60}, 5.0)
        self.assertTrue(ctx.exception.field.startswith("target"))

    def test_invalid_input_is_a_value_error(self):
        with self.assertRaises(ValueError):
            analyze_drift("not a mix", {"stocks_us": 60}, 5.0)

    def test_accepts_allocation_mix_objects(self):
        current = AllocationMix({AssetClass.bonds: 50.0})
        target = AllocationMix({AssetClass.bonds: 40.0})
        rows = analyze_drift(current, target, 5.0)
        self.assertEqual(rows[0].classification, "overweight")

    def test_is_balanced(self):
        self.assertTrue(is_balanced({"stocks_us": 60, "bonds": 39.5}))
        self.assertFalse(is_balanced({"stocks_us": 60, "bonds": 37}))
        self.assertTrue(is_balanced({"stocks_us": 60, "bonds": 37}, tolerance=3.0))
        with self.assertRaises(InvalidInput):
            is_balanced({"stocks_us": 100}, tolerance=-1)


if __name__ == "__main__":
    unittest.main()
