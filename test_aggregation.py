import unittest
from datetime import date, timedelta

from datasets import DailyReport, FeedDelivery, ChicksReceiving, CatchingDetails, FarmDatasets, to_int
from cycles import FarmCycle
from aggregation import (format_house_numbers, consolidate_lines, mortality_totals, mortality_for_date,
                         feed_totals, balance, cycle_house_rollup, sum_rollups, house_indexes)


def report(day, houses):
    return DailyReport.from_dict({'date': day, 'houses': houses})


class HouseRangeTestCase(unittest.TestCase):

    def test_format_house_numbers(self):
        self.assertEqual(format_house_numbers({1, 2, 3, 5, 6, 8}), '1 To 3, 5 To 6, 8')
        self.assertEqual(format_house_numbers({4}), '4')
        self.assertEqual(format_house_numbers(set()), '')
        self.assertEqual(format_house_numbers([3, 1, 2, 2, 1]), '1 To 3')
        self.assertEqual(format_house_numbers([10, 12]), '10, 12')

    def test_consolidate_lines(self):
        lines = [
            {'farm_name': 'B2/1', 'feed_type': 'Broiler Starter', 'house_no': 1, 'quantity': 2.0},
            {'farm_name': 'B2/1', 'feed_type': 'Broiler Starter', 'house_no': 2, 'quantity': 2.5},
            {'farm_name': 'B2/1', 'feed_type': 'Broiler Starter', 'house_no': 3, 'quantity': 1.5},
            {'farm_name': 'B2/1', 'feed_type': 'Broiler Finisher', 'house_no': 5, 'quantity': 4.0},
        ]
        rows = consolidate_lines(lines, ['farm_name', 'feed_type'])
        self.assertEqual(len(rows), 2)
        self.assertEqual(rows[0]['quantity'], 6.0)
        self.assertEqual(rows[0]['house_no_display'], '1 To 3')
        self.assertEqual(rows[1]['house_no_display'], '5')
        # inputs untouched
        self.assertEqual(lines[0]['quantity'], 2.0)


class MortalityTestCase(unittest.TestCase):
    def setUp(self):
        self.reports = [
            report('2023-12-31', [{'mortality': 100}]),  # before the cycle
            report('2024-01-01', [{'mortality': 2, 'culls': 1}, {'mortality': 4}]),
            report('2024-01-02', [{'mortality': 3, 'culls': ''}]),  # short record, blank culls
            report('2024-01-05', [{'mortality': 'abc', 'culls': 2}, {'mortality': 1}]),
            report('2024-02-10', [{'mortality': 50}]),  # after finish
        ]

    def test_blank_and_garbage_are_zero(self):
        self.assertEqual(to_int(''), 0)
        self.assertEqual(to_int('abc'), 0)
        self.assertEqual(to_int('12'), 12)
        self.assertEqual(self.reports[3].house(0).mortality, 0)
        # missing house reads as empty
        self.assertEqual(self.reports[2].house(1).total_loss, 0)

    def test_mortality_totals_over_window(self):
        totals = mortality_totals(self.reports, 2, date(2024, 1, 1), date(2024, 2, 5))
        self.assertEqual(totals[0], {'mortality': 5, 'culls': 3, 'total': 8})
        self.assertEqual(totals[1]['total'], 5)

    def test_mortality_totals_capped_at_query_date(self):
        totals = mortality_totals(self.reports, 2, date(2024, 1, 1), None, as_of=date(2024, 1, 2))
        self.assertEqual(totals[0]['total'], 6)
        self.assertEqual(totals[1]['total'], 4)

    def test_mortality_for_date(self):
        today = mortality_for_date(self.reports, 2, date(2024, 1, 1))
        self.assertEqual([h.mortality for h in today], [2, 4])
        empty = mortality_for_date(self.reports, 2, date(2024, 1, 3))
        self.assertEqual([h.total_loss for h in empty], [0, 0])

    def test_balance_stays_raw(self):
        self.assertEqual(balance(100, 120), -20)
        self.assertEqual(balance(None, 5), -5)


class FeedTestCase(unittest.TestCase):

    def test_feed_totals_match_cycle(self):
        deliveries = [
            FeedDelivery.from_dict({'date': '2024-01-01', 'cycle_id': 1,
                                    'houses': [{'starter': 1000, 'grower_cr': 500}, {'finisher': '200'}]}),
            FeedDelivery.from_dict({'date': '2024-01-08', 'cycle_id': 1, 'houses': [{'grower_pl': 300}]}),
            FeedDelivery.from_dict({'date': '2024-01-08', 'cycle_id': 2, 'houses': [{'starter': 9999}]}),
            FeedDelivery.from_dict({'date': '2024-01-08', 'houses': [{'starter': 9999}]}),
        ]
        totals, by_type = feed_totals(deliveries, 2, 1)
        self.assertEqual(totals[0], 1800.0)
        self.assertEqual(totals[1], 200.0)
        self.assertEqual(by_type[0].grower_pl, 300.0)

        clipped, _ = feed_totals(deliveries, 2, 1, start=date(2024, 1, 5))
        self.assertEqual(clipped[0], 300.0)


class RollupTestCase(unittest.TestCase):
    def setUp(self):
        start = date(2024, 1, 1)
        self.farm_cycle = FarmCycle(cycle_id=1, farm_name='B2/1', crop_no='1',
                                    start_date=start, finish_date=date(2024, 2, 5))
        self.data = FarmDatasets(
            farm_name='B2/1',
            house_count=3,
            daily_reports=[report(start + timedelta(days=d), [{'mortality': 10}, {'mortality': 20}])
                           for d in range(10)],
            chicks_receiving=[ChicksReceiving.from_dict({'cycle_id': 1, 'houses': [
                {'placement_date': '2024-01-01', 'net_chicks_placed': 20000, 'breed': 'Cobb',
                 'flock': 'F1', 'flock_no': '2'},
                {'placement_date': '2024-01-01', 'net_chicks_placed': 18000},
            ]})],
            feed_deliveries=[FeedDelivery.from_dict({'date': '2024-01-01', 'cycle_id': 1, 'houses': [
                {'starter': 60000}, {'starter': 50000}]})],
            catching_details=[CatchingDetails.from_dict({'cycle_id': 1, 'houses': [
                {'electric_counter': 19500, 'scale_weight': 39000, 'catch_loss': 100},
                {'electric_counter': 17500, 'scale_weight': 35000, 'catch_loss': 0},
            ]})],
        )

    def test_house_indexes(self):
        self.assertEqual(house_indexes(3), [0, 1, 2])
        self.assertEqual(house_indexes(3, ['2', 'x', 9]), [1])

    def test_cycle_house_rollup(self):
        rows = cycle_house_rollup(self.data, self.farm_cycle)
        self.assertEqual(len(rows), 3)
        first = rows[0]
        self.assertEqual(first['chicks_placed'], 20000)
        self.assertEqual(first['total_mortality'], 100)
        self.assertEqual(first['balance_chicks'], 19900)
        self.assertEqual(first['age'], 35)
        self.assertEqual(first['age_label'], 'catching_age')
        self.assertEqual(first['breed'], 'Cobb')
        self.assertEqual(first['flock'], 'F1 2')
        self.assertEqual(first['total_feed_kg'], 60000.0)
        self.assertAlmostEqual(first['fcr'], 60000.0 / 39100)

        # house 3 has nothing placed but still gets a row
        self.assertEqual(rows[2]['chicks_placed'], 0)
        self.assertEqual(rows[2]['breed'], 'N/A')
        self.assertEqual(rows[2]['livability_pct'], 0.0)

    def test_rollup_house_filter(self):
        rows = cycle_house_rollup(self.data, self.farm_cycle, houses=[2])
        self.assertEqual([r['house_no'] for r in rows], [2])

    def test_sum_rollups_recomputes_ratios(self):
        rows = cycle_house_rollup(self.data, self.farm_cycle)
        total = sum_rollups(rows)
        self.assertEqual(total['house_no'], 'Total')
        self.assertEqual(total['chicks_placed'], 38000)
        self.assertEqual(total['total_mortality'], 300)
        self.assertEqual(total['balance_chicks'], 37700)
        self.assertEqual(total['age'], 35)
        self.assertEqual(total['house_count'], 2)
        self.assertAlmostEqual(total['livability_pct'], 37700 * 100.0 / 38000)
        self.assertAlmostEqual(total['fcr'], 110000.0 / 74100)
        # same keys as a house row
        for key in ('livability_pct', 'fcr', 'production_index', 'avg_live_weight'):
            self.assertIn(key, total)


if __name__ == '__main__':
    unittest.main()
