"""
Pure classification tests: no database, no app context.
"""

import unittest

from plantops.services.scenario_resolver import LineRequest, Scenario, aggregate, classify, shortfall


WS7 = 7
WS8 = 8

BOM = {
    ("PRODUCT", 1): [("MODULE", 1, 1), ("MODULE", 2, 1)],
    ("PRODUCT", 2): [("MODULE", 1, 2), ("MODULE", 3, 1)],
}


def lines(*specs):
    return [LineRequest("PRODUCT", item_id, qty) for item_id, qty in specs]


class ClassifyTests(unittest.TestCase):
    def test_lot_size_wins_even_with_full_stock(self):
        snapshot = {(WS7, "PRODUCT", 1): 5000}
        result = classify(lines((1, 1000)), snapshot, 500, stage_workstation_id=WS7)
        self.assertEqual(result, Scenario.DIRECT_PRODUCTION)

    def test_lot_size_uses_per_item_sum(self):
        snapshot = {(WS7, "PRODUCT", 1): 100}
        result = classify(lines((1, 2), (1, 2)), snapshot, 4, stage_workstation_id=WS7)
        self.assertEqual(result, Scenario.DIRECT_PRODUCTION)

    def test_lot_size_not_reached_across_items(self):
        snapshot = {(WS7, "PRODUCT", 1): 10, (WS7, "PRODUCT", 2): 10}
        result = classify(lines((1, 2), (2, 2)), snapshot, 4, stage_workstation_id=WS7)
        self.assertEqual(result, Scenario.DIRECT_FULFILLMENT)

    def test_direct_fulfillment_when_covered(self):
        snapshot = {(WS7, "PRODUCT", 1): 50}
        result = classify(lines((1, 5)), snapshot, 100, stage_workstation_id=WS7)
        self.assertEqual(result, Scenario.DIRECT_FULFILLMENT)

    def test_warehouse_order_when_modules_cover_shortfall(self):
        snapshot = {
            (WS7, "PRODUCT", 1): 1,
            (WS8, "MODULE", 1): 2,
            (WS8, "MODULE", 2): 2,
        }
        result = classify(
            lines((1, 3)), snapshot, 100,
            stage_workstation_id=WS7, upstream_workstation_id=WS8, bom=BOM,
        )
        self.assertEqual(result, Scenario.WAREHOUSE_ORDER_NEEDED)

    def test_production_required_when_modules_short(self):
        snapshot = {(WS8, "MODULE", 1): 1, (WS8, "MODULE", 3): 5}
        result = classify(
            lines((2, 1)), snapshot, 100,
            stage_workstation_id=WS7, upstream_workstation_id=WS8, bom=BOM,
        )
        self.assertEqual(result, Scenario.PRODUCTION_REQUIRED)

    def test_production_required_without_bom(self):
        result = classify(
            lines((9, 1)), {}, 100,
            stage_workstation_id=WS7, upstream_workstation_id=WS8, bom={("PRODUCT", 9): []},
        )
        self.assertEqual(result, Scenario.PRODUCTION_REQUIRED)

    def test_none_lot_size_skips_direct_production(self):
        snapshot = {(WS8, "MODULE", 1): 1000}
        requests = [LineRequest("MODULE", 1, 1000)]
        result = classify(requests, snapshot, None, stage_workstation_id=WS8)
        self.assertEqual(result, Scenario.DIRECT_FULFILLMENT)

    def test_deterministic(self):
        snapshot = {(WS7, "PRODUCT", 1): 1, (WS8, "MODULE", 1): 9, (WS8, "MODULE", 2): 9}
        args = (lines((1, 4), (2, 1)), snapshot, 100)
        kwargs = dict(stage_workstation_id=WS7, upstream_workstation_id=WS8, bom=BOM)
        results = {classify(*args, **kwargs) for _ in range(5)}
        self.assertEqual(len(results), 1)

    def test_empty_order_rejected(self):
        with self.assertRaises(ValueError):
            classify([], {}, 3, stage_workstation_id=WS7)


class HelperTests(unittest.TestCase):
    def test_aggregate_sums_duplicate_items(self):
        self.assertEqual(aggregate(lines((1, 2), (1, 3), (2, 1))), {("PRODUCT", 1): 5, ("PRODUCT", 2): 1})

    def test_shortfall_omits_covered_items(self):
        snapshot = {(WS7, "PRODUCT", 1): 10, (WS7, "PRODUCT", 2): 1}
        self.assertEqual(shortfall(lines((1, 5), (2, 4)), snapshot, WS7), {("PRODUCT", 2): 3})
