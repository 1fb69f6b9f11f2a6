import os
os.environ['DATABASE_URL'] = 'sqlite:///:memory:'

import unittest
from datetime import date

from app import app, db, Cycle, FarmCycle, DailyReport, FeedDelivery, FeedOrder


class CycleApiTestCase(unittest.TestCase):
    def setUp(self):
        app.config['TESTING'] = True
        self.app = app.test_client()
        self.ctx = app.app_context()
        self.ctx.push()
        db.create_all()

    def tearDown(self):
        db.session.remove()
        db.drop_all()
        self.ctx.pop()

    def login_as(self, role):
        with self.app.session_transaction() as sess:
            sess['user_role'] = role

    def start(self, cycle_no='C1', farms=None):
        farms = farms or [{'farm_name': 'B2/1', 'crop_no': '1', 'start_date': '2024-01-01'}]
        return self.app.post('/api/cycles', json={'cycle_no': cycle_no, 'farms': farms})

    def seed_farm(self):
        self.start()
        self.app.post('/api/chicks_receiving', json={
            'farm_name': 'B2/1', 'cycle_id': 1,
            'houses': [{'placement_date': '2024-01-01', 'net_chicks_placed': 20000, 'breed': 'Cobb'}]})
        for day in range(2, 10):
            self.app.post('/api/daily_reports', json={
                'farm_name': 'B2/1', 'date': '2024-01-%02d' % day, 'houses': [{'mortality': 4, 'culls': 1}]})
        self.app.post('/api/daily_reports', json={
            'farm_name': 'B2/1', 'date': '2024-01-10', 'houses': [{'mortality': 5, 'culls': 1}]})

    def test_start_cycle(self):
        response = self.start()
        self.assertEqual(response.status_code, 201)
        data = response.get_json()
        self.assertEqual(data['cycle_no'], 'C1')
        self.assertEqual(data['farms'][0]['start_date'], '2024-01-01')
        self.assertEqual(FarmCycle.query.count(), 1)

        listing = self.app.get('/api/cycles').get_json()
        self.assertEqual(listing['active_cycle_id'], 1)
        self.assertEqual(len(listing['cycles']), 1)

    def test_start_rejected_for_active_farm(self):
        self.start()
        response = self.start('C2')
        self.assertEqual(response.status_code, 400)
        self.assertIn('already has an active cycle', response.get_json()['error'])
        self.assertEqual(Cycle.query.count(), 1)

    def test_start_rejects_unknown_farm(self):
        response = self.start(farms=[{'farm_name': 'Nowhere', 'crop_no': '1', 'start_date': '2024-01-01'}])
        self.assertEqual(response.status_code, 400)

    def test_finish_lock_and_reopen(self):
        self.start()
        response = self.app.post('/api/cycles/1/finish', json={'farm_name': 'B2/1', 'finish_date': '2024-02-05'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(FarmCycle.query.first().finish_date, date(2024, 2, 5))

        # the finish day is still open, the day after is locked
        ok = self.app.post('/api/daily_reports', json={'farm_name': 'B2/1', 'date': '2024-02-05',
                                                      'houses': [{'mortality': 1}]})
        self.assertEqual(ok.status_code, 201)
        locked = self.app.post('/api/daily_reports', json={'farm_name': 'B2/1', 'date': '2024-02-06',
                                                          'houses': [{'mortality': 1}]})
        self.assertEqual(locked.status_code, 400)
        self.assertIn('locked', locked.get_json()['error'])

        # changing a finish date or reopening needs an admin
        again = self.app.post('/api/cycles/1/finish', json={'farm_name': 'B2/1', 'finish_date': '2024-02-07'})
        self.assertEqual(again.status_code, 403)
        self.assertEqual(self.app.post('/api/cycles/1/reopen', json={'farm_name': 'B2/1'}).status_code, 403)

        self.login_as('Admin')
        response = self.app.post('/api/cycles/1/reopen', json={'farm_name': 'B2/1'})
        self.assertEqual(response.status_code, 200)
        self.assertIsNone(FarmCycle.query.first().finish_date)
        # the report entered on the finish day survives
        self.assertEqual(DailyReport.query.count(), 1)

    def test_edit_farm_cycle(self):
        self.start()
        self.login_as('Admin')
        response = self.app.post('/api/cycles/1/edit', json={'farm_name': 'B2/1', 'crop_no': '3',
                                                             'start_date': '2024-01-02'})
        self.assertEqual(response.status_code, 200)
        row = FarmCycle.query.first()
        self.assertEqual(row.crop_no, '3')
        self.assertEqual(row.start_date, date(2024, 1, 2))

    def test_daily_report_outside_cycle(self):
        self.start()
        response = self.app.post('/api/daily_reports', json={'farm_name': 'B2/1', 'date': '2023-12-01'})
        self.assertEqual(response.status_code, 400)

    def test_resolve_farm_cycle(self):
        self.start()
        data = self.app.get('/api/farm_cycle?farm=B2/1&date=2024-01-05').get_json()
        self.assertEqual(data['cycle']['cycle_id'], 1)
        self.assertFalse(data['cycle']['is_locked'])
        data = self.app.get('/api/farm_cycle?farm=B2/1&date=2023-01-05').get_json()
        self.assertIsNone(data['cycle'])

    def test_farm_day_report(self):
        self.seed_farm()
        data = self.app.get('/api/reports/farm_day?farm=B2/1&date=2024-01-10').get_json()
        house = data['houses'][0]
        self.assertEqual(house['age'], 10)
        self.assertEqual(house['cumulative_mortality'], 46)
        self.assertEqual(house['balance_chicks'], 19954)
        self.assertAlmostEqual(house['livability_pct'], 99.77, places=2)

    def test_daily_mortality_report(self):
        self.seed_farm()
        data = self.app.get('/api/reports/daily_mortality?date=2024-01-10').get_json()
        self.assertEqual(len(data['rows']), 11)
        available = [r for r in data['rows'] if r['data_available']]
        self.assertEqual([r['farm_name'] for r in available], ['B2/1'])
        self.assertEqual(data['grand_total']['cum_total'], 46)
        self.assertEqual(data['date'], '2024-01-10')

    def test_broiler_performance_report(self):
        self.seed_farm()
        response = self.app.get('/api/reports/broiler_performance?farm=B2/1&cycle_id=1&date=2024-01-10')
        data = response.get_json()
        self.assertEqual(response.status_code, 200)
        self.assertEqual(data['age_label'], 'current_age')
        self.assertEqual(data['totals']['total_mortality'], 46)

        missing = self.app.get('/api/reports/broiler_performance?farm=B3/1&cycle_id=1')
        self.assertEqual(missing.status_code, 404)

    def test_feed_order_delivery(self):
        self.start()
        response = self.app.post('/api/feed_orders', json={
            'farm_name': 'B2/1', 'cycle_id': 1, 'delivery_date': '2024-01-10', 'feed_mill_no': 'M1',
            'items': [{'house_no': 1, 'feed_type': 'Broiler Starter', 'quantity': 2.5},
                      {'house_no': 2, 'feed_type': 'Broiler Starter', 'quantity': 1}]})
        self.assertEqual(response.status_code, 201)
        order_id = response.get_json()['id']

        plan = self.app.get('/api/reports/feed_plan?date=2024-01-10').get_json()
        self.assertEqual(plan['rows'][0]['house_no_display'], '1 To 2')
        self.assertEqual(plan['grand_total'], 3.5)

        response = self.app.post('/api/feed_orders/%d/deliver' % order_id,
                                 json={'actual_delivery_date': '2024-01-11'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(db.session.get(FeedOrder, order_id).status, 'Delivered')
        delivery = FeedDelivery.query.first()
        self.assertEqual(delivery.houses[0]['starter'], 2500.0)
        self.assertEqual(delivery.date, date(2024, 1, 11))

        consumption = self.app.get('/api/reports/feed_consumption?start=2024-01-01&end=2024-01-31').get_json()
        self.assertEqual(consumption['rows'], [{'farm_name': 'B2/1', 'total_tons': 3.5}])

        # delivering twice is rejected
        again = self.app.post('/api/feed_orders/%d/deliver' % order_id, json={})
        self.assertEqual(again.status_code, 400)

    def test_feed_order_after_finish_is_locked(self):
        self.start()
        self.app.post('/api/cycles/1/finish', json={'farm_name': 'B2/1', 'finish_date': '2024-02-05'})
        response = self.app.post('/api/feed_orders', json={
            'farm_name': 'B2/1', 'cycle_id': 1, 'delivery_date': '2024-02-06',
            'items': [{'house_no': 1, 'feed_type': 'Broiler Finisher', 'quantity': 2}]})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(FeedOrder.query.count(), 0)

    def test_cross_farm_chart(self):
        self.seed_farm()
        data = self.app.get('/api/charts/cross_farm_mortality').get_json()
        self.assertEqual(data['farms'], ['B2/1'])
        self.assertEqual(data['rows'][-1], {'date': '2024-01-10', 'B2/1': 6})


if __name__ == '__main__':
    unittest.main()
