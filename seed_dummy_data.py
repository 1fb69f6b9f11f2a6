from app import app, db, Cycle, FarmCycle, DailyReport, ChicksReceiving, FeedDelivery
from config import get_house_count_for_farm
from datetime import date, timedelta
import random

FARMS = ['B2/1', 'B2/2']

with app.app_context():
    db.create_all()

    cycle = Cycle.query.filter_by(cycle_no="DEMO-1").first()
    if not cycle:
        cycle = Cycle(cycle_no="DEMO-1")
        db.session.add(cycle)
        db.session.commit()

    start = date.today() - timedelta(days=30)

    for i, farm in enumerate(FARMS):
        house_count = get_house_count_for_farm(farm)

        if not FarmCycle.query.filter_by(cycle_id=cycle.id, farm_name=farm).first():
            db.session.add(FarmCycle(cycle_id=cycle.id, farm_name=farm, crop_no=str(i + 1), start_date=start))

        if not ChicksReceiving.query.filter_by(cycle_id=cycle.id, farm_name=farm).first():
            chicks = ChicksReceiving(farm_name=farm, cycle_id=cycle.id, crop_no=str(i + 1), cycle_no=cycle.cycle_no)
            chicks.houses = [{
                'placement_date': start.isoformat(),
                'net_chicks_placed': 20000,
                'breed': random.choice(['Cobb', 'Ross']),
                'flock': 'F%d' % (h + 1),
                'flock_no': '1',
                'trial_or_control': 'Trial' if h % 2 == 0 else 'Control',
            } for h in range(house_count)]
            db.session.add(chicks)

        # Daily reports up to yesterday
        for d in range(30):
            day = start + timedelta(days=d)
            if not DailyReport.query.filter_by(farm_name=farm, date=day).first():
                report = DailyReport(farm_name=farm, date=day)
                report.houses = [{'mortality': random.randint(0, 8), 'culls': random.randint(0, 3)}
                                 for _ in range(house_count)]
                db.session.add(report)

        # Weekly starter/grower deliveries
        for d in range(0, 30, 7):
            day = start + timedelta(days=d)
            if FeedDelivery.query.filter_by(farm_name=farm, date=day, cycle_id=cycle.id).first():
                continue
            delivery = FeedDelivery(farm_name=farm, date=day, cycle_id=cycle.id)
            feed_field = 'starter' if d < 10 else 'grower_cr'
            delivery.houses = [{feed_field: random.randint(4000, 6000)} for _ in range(house_count)]
            db.session.add(delivery)

        db.session.commit()
        print(f"Seeded {farm}")

    print("Dummy data seeded.")
