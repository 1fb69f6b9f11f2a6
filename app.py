from flask import Flask, request, session, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from sqlalchemy.orm import joinedload
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError
from datetime import datetime, date
import os
import json
import logging
from functools import wraps

import config
from config import FARM_NAMES, FARM_HOUSE_COUNTS, FEED_TYPES, ADMIN_ROLE, get_house_count_for_farm
from dates import parse_date
from datasets import (DailyReport as DailyReportData, ChicksReceiving as ChicksReceivingData,
                      FeedDelivery as FeedDeliveryData, CatchingDetails as CatchingDetailsData,
                      FeedOrder as FeedOrderData, FarmDatasets)
from cycles import CycleRegistry, CycleValidationError, Cycle as CycleData, FarmCycle as FarmCycleData
import reports
import rollup

logging.basicConfig(level=logging.INFO)

app = Flask(__name__)

app.config['SQLALCHEMY_DATABASE_URI'] = config.database_url()
app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
app.config['SECRET_KEY'] = os.getenv('SECRET_KEY', 'dev_key')

# Ensure instance folder exists for the default sqlite database
os.makedirs(os.path.join(config.basedir, 'instance'), exist_ok=True)

db = SQLAlchemy(app)
migrate = Migrate(app, db)


def role_required(required_role):
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user_role = session.get('user_role')

            # Admin can do everything
            if user_role == ADMIN_ROLE or user_role == required_role:
                return f(*args, **kwargs)

            return jsonify({'error': 'This action requires the %s role.' % required_role}), 403
        return decorated_function
    return decorator


def is_admin():
    return session.get('user_role') == ADMIN_ROLE


# --- Models ---

class HousesJsonMixin:
    houses_json = db.Column(db.Text, nullable=False, default='[]')

    @property
    def houses(self):
        try:
            return json.loads(self.houses_json or '[]')
        except json.JSONDecodeError:
            return []

    @houses.setter
    def houses(self, value):
        self.houses_json = json.dumps(value or [])


class Cycle(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    cycle_no = db.Column(db.String(50), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    farms = db.relationship('FarmCycle', backref='cycle', lazy=True, cascade="all, delete-orphan")


class FarmCycle(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    cycle_id = db.Column(db.Integer, db.ForeignKey('cycle.id'), nullable=False)
    farm_name = db.Column(db.String(20), nullable=False)
    crop_no = db.Column(db.String(20), nullable=False)
    start_date = db.Column(db.Date, nullable=False)
    finish_date = db.Column(db.Date, nullable=True)  # None while the farm is running
    version = db.Column(db.Integer, nullable=False, default=1, server_default='1')

    __mapper_args__ = {'version_id_col': version}
    __table_args__ = (
        db.UniqueConstraint('cycle_id', 'farm_name', name='uq_farm_cycle_farm'),
        db.Index('uq_farm_cycle_active', 'farm_name', unique=True,
                 sqlite_where=db.text('finish_date IS NULL'),
                 postgresql_where=db.text('finish_date IS NULL')),
    )


class DailyReport(HousesJsonMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    farm_name = db.Column(db.String(20), nullable=False, index=True)
    date = db.Column(db.Date, nullable=False)

    __table_args__ = (db.UniqueConstraint('farm_name', 'date', name='uq_daily_report_farm_date'),)


class ChicksReceiving(HousesJsonMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    farm_name = db.Column(db.String(20), nullable=False, index=True)
    cycle_id = db.Column(db.Integer, db.ForeignKey('cycle.id'), nullable=False)
    crop_no = db.Column(db.String(20), default='')
    cycle_no = db.Column(db.String(50), default='')

    __table_args__ = (db.UniqueConstraint('farm_name', 'cycle_id', name='uq_chicks_farm_cycle'),)


class FeedDelivery(HousesJsonMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    farm_name = db.Column(db.String(20), nullable=False, index=True)
    date = db.Column(db.Date, nullable=False)
    cycle_id = db.Column(db.Integer, db.ForeignKey('cycle.id'), nullable=True)
    feed_order_id = db.Column(db.Integer, db.ForeignKey('feed_order.id'), nullable=True)


class CatchingDetails(HousesJsonMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    farm_name = db.Column(db.String(20), nullable=False, index=True)
    cycle_id = db.Column(db.Integer, db.ForeignKey('cycle.id'), nullable=False)

    __table_args__ = (db.UniqueConstraint('farm_name', 'cycle_id', name='uq_catching_farm_cycle'),)


class FeedOrder(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    farm_name = db.Column(db.String(20), nullable=False, index=True)
    cycle_id = db.Column(db.Integer, db.ForeignKey('cycle.id'), nullable=False)
    order_date = db.Column(db.Date, nullable=False, default=date.today)
    delivery_date = db.Column(db.Date, nullable=True)
    feed_mill_no = db.Column(db.String(50), default='')
    priority = db.Column(db.String(20), default='')
    remarks = db.Column(db.Text, default='')
    status = db.Column(db.String(20), default='Submitted', nullable=False)  # 'Submitted' or 'Delivered'
    actual_delivery_date = db.Column(db.Date, nullable=True)
    items_json = db.Column(db.Text, nullable=False, default='[]')  # quantities in tons

    @property
    def items(self):
        try:
            return json.loads(self.items_json or '[]')
        except json.JSONDecodeError:
            return []

    @items.setter
    def items(self, value):
        self.items_json = json.dumps(value or [])

    def to_dict(self):
        return {
            'id': self.id,
            'farm_name': self.farm_name,
            'cycle_id': self.cycle_id,
            'order_date': self.order_date,
            'delivery_date': self.delivery_date,
            'feed_mill_no': self.feed_mill_no,
            'priority': self.priority,
            'remarks': self.remarks,
            'status': self.status,
            'actual_delivery_date': self.actual_delivery_date,
            'items': self.items,
        }


# --- Loading snapshots for the engine ---

def load_registry():
    cycles = []
    for c in Cycle.query.options(joinedload(Cycle.farms)).all():
        cycles.append(CycleData(id=c.id, cycle_no=c.cycle_no, farms=[
            FarmCycleData(cycle_id=c.id, farm_name=fc.farm_name, crop_no=fc.crop_no,
                          start_date=fc.start_date, finish_date=fc.finish_date)
            for fc in sorted(c.farms, key=lambda x: x.id)
        ]))
    return CycleRegistry(cycles)


def load_farm_datasets(farm_name):
    return FarmDatasets(
        farm_name=farm_name,
        house_count=get_house_count_for_farm(farm_name),
        daily_reports=[DailyReportData.from_dict({'date': r.date, 'houses': r.houses})
                       for r in DailyReport.query.filter_by(farm_name=farm_name).order_by(DailyReport.date).all()],
        chicks_receiving=[ChicksReceivingData.from_dict({'cycle_id': r.cycle_id, 'crop_no': r.crop_no,
                                                         'cycle_no': r.cycle_no, 'houses': r.houses})
                          for r in ChicksReceiving.query.filter_by(farm_name=farm_name).all()],
        feed_deliveries=[FeedDeliveryData.from_dict({'date': r.date, 'cycle_id': r.cycle_id, 'houses': r.houses})
                         for r in FeedDelivery.query.filter_by(farm_name=farm_name).all()],
        catching_details=[CatchingDetailsData.from_dict({'cycle_id': r.cycle_id, 'houses': r.houses})
                          for r in CatchingDetails.query.filter_by(farm_name=farm_name).all()],
        feed_orders=[FeedOrderData.from_dict(o.to_dict())
                     for o in FeedOrder.query.filter_by(farm_name=farm_name).all()],
    )


def load_all_farm_datasets(farm_names=None):
    return {name: load_farm_datasets(name) for name in (farm_names or FARM_NAMES)}


def to_json(value):
    """Dates as ISO strings; Flask would otherwise send HTTP dates."""
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: to_json(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json(v) for v in value]
    if isinstance(value, (CycleData, FarmCycleData)):
        return to_json(value.to_dict())
    return value


# --- Request helpers ---

def request_date(name='date'):
    raw = request.args.get(name)
    if not raw:
        return date.today()
    d = parse_date(raw)
    if d is None:
        raise CycleValidationError("Invalid date: %s" % raw)
    return d


def list_arg(name):
    raw = request.args.get(name, '')
    return [v.strip() for v in raw.split(',') if v.strip()]


def require_farm(farm_name):
    if farm_name not in FARM_HOUSE_COUNTS:
        raise CycleValidationError("Unknown farm: %s" % (farm_name or ''))
    return farm_name


def require_int(value, label):
    try:
        return int(value)
    except (ValueError, TypeError):
        raise CycleValidationError("%s is required." % label)


def farm_cycle_row(cycle_id, farm_name):
    row = FarmCycle.query.filter_by(cycle_id=cycle_id, farm_name=farm_name).first()
    if row is None:
        raise CycleValidationError("Farm %s is not part of cycle %s." % (farm_name, cycle_id))
    return row


def check_entry_allowed(registry, farm_name, cycle_id, entry_dates):
    fc = registry.get(cycle_id).farm(farm_name) if registry.get(cycle_id) else None
    if fc is None:
        raise CycleValidationError("Farm %s is not part of cycle %s." % (farm_name, cycle_id))
    if registry.is_feed_order_locked(fc, entry_dates):
        raise CycleValidationError(
            "Data entry is locked: %s finished on %s." % (farm_name, fc.finish_date.isoformat()))
    return fc


@app.errorhandler(CycleValidationError)
def handle_validation_error(e):
    db.session.rollback()
    return jsonify({'error': str(e)}), 400


@app.errorhandler(StaleDataError)
@app.errorhandler(IntegrityError)
def handle_conflict(e):
    db.session.rollback()
    app.logger.warning("Concurrent write rejected: %s", e)
    return jsonify({'error': 'The record was changed by someone else. Reload and try again.'}), 409


# --- Cycle management ---

@app.route('/api/cycles', methods=['GET'])
def list_cycles():
    registry = load_registry()
    active = registry.active_cycle()
    return jsonify({
        'cycles': to_json([c.to_dict() for c in registry.sorted_cycles()]),
        'active_cycle_id': active.id if active else None,
    })


@app.route('/api/cycles', methods=['POST'])
def start_cycle():
    payload = request.get_json(silent=True) or {}
    farms = payload.get('farms') or []
    for entry in farms:
        require_farm(entry.get('farm_name'))

    registry = load_registry()
    cycle = registry.start_cycle(payload.get('cycle_no'), farms)

    row = Cycle(id=cycle.id, cycle_no=cycle.cycle_no)
    db.session.add(row)
    for fc in cycle.farms:
        db.session.add(FarmCycle(cycle_id=cycle.id, farm_name=fc.farm_name, crop_no=fc.crop_no,
                                 start_date=fc.start_date))
    db.session.commit()
    app.logger.info("Cycle %s started for %s", cycle.cycle_no, [fc.farm_name for fc in cycle.farms])
    return jsonify(to_json(cycle.to_dict())), 201


@app.route('/api/cycles/<int:cycle_id>/finish', methods=['POST'])
def finish_farm_cycle(cycle_id):
    payload = request.get_json(silent=True) or {}
    farm_name = require_farm(payload.get('farm_name'))
    row = farm_cycle_row(cycle_id, farm_name)
    if row.finish_date is not None and not is_admin():
        return jsonify({'error': 'Only an administrator can change a finish date.'}), 403

    registry = load_registry()
    fc = registry.finish_farm_cycle(cycle_id, farm_name, payload.get('finish_date'))
    row.finish_date = fc.finish_date
    db.session.commit()
    return jsonify(to_json(fc.to_dict()))


@app.route('/api/cycles/<int:cycle_id>/reopen', methods=['POST'])
@role_required(ADMIN_ROLE)
def reopen_farm_cycle(cycle_id):
    payload = request.get_json(silent=True) or {}
    farm_name = require_farm(payload.get('farm_name'))
    row = farm_cycle_row(cycle_id, farm_name)

    registry = load_registry()
    fc = registry.reopen_farm_cycle(cycle_id, farm_name)
    row.finish_date = None
    db.session.commit()
    app.logger.info("Farm %s reopened in cycle %s by admin", farm_name, cycle_id)
    return jsonify(to_json(fc.to_dict()))


@app.route('/api/cycles/<int:cycle_id>/edit', methods=['POST'])
@role_required(ADMIN_ROLE)
def edit_farm_cycle(cycle_id):
    payload = request.get_json(silent=True) or {}
    farm_name = require_farm(payload.get('farm_name'))
    row = farm_cycle_row(cycle_id, farm_name)

    registry = load_registry()
    fc = registry.update_farm_cycle(cycle_id, farm_name, payload.get('crop_no'), payload.get('start_date'))
    row.crop_no = fc.crop_no
    row.start_date = fc.start_date
    db.session.commit()
    return jsonify(to_json(fc.to_dict()))


@app.route('/api/farm_cycle')
def resolve_farm_cycle():
    farm_name = require_farm(request.args.get('farm'))
    day = request_date()
    registry = load_registry()
    fc = registry.resolve_cycle_for_date(farm_name, day)
    if fc is None:
        return jsonify({'farm_name': farm_name, 'date': day.isoformat(), 'cycle': None})
    cycle = registry.get(fc.cycle_id)
    data = fc.to_dict()
    data['cycle_no'] = cycle.cycle_no
    data['is_locked'] = registry.is_entry_locked(fc, day)
    return jsonify({'farm_name': farm_name, 'date': day.isoformat(), 'cycle': data})


# --- Data entry ---

@app.route('/api/daily_reports', methods=['POST'])
def save_daily_report():
    payload = request.get_json(silent=True) or {}
    farm_name = require_farm(payload.get('farm_name'))
    day = parse_date(payload.get('date'))
    if day is None:
        raise CycleValidationError("Date is required.")

    registry = load_registry()
    fc = registry.resolve_cycle_for_date(farm_name, day)
    if fc is None:
        latest = registry.assignments_for_farm(farm_name)
        if latest and registry.is_entry_locked(latest[0], day):
            raise CycleValidationError(
                "Data entry is locked: %s finished on %s." % (farm_name, latest[0].finish_date.isoformat()))
        raise CycleValidationError("No cycle covers %s on %s." % (farm_name, day.isoformat()))

    report = DailyReport.query.filter_by(farm_name=farm_name, date=day).first()
    if report is None:
        report = DailyReport(farm_name=farm_name, date=day)
        db.session.add(report)
    report.houses = payload.get('houses')
    db.session.commit()
    return jsonify({'id': report.id, 'cycle_id': fc.cycle_id}), 201


@app.route('/api/chicks_receiving', methods=['POST'])
def save_chicks_receiving():
    payload = request.get_json(silent=True) or {}
    farm_name = require_farm(payload.get('farm_name'))
    cycle_id = require_int(payload.get('cycle_id'), 'Cycle')
    registry = load_registry()
    fc = check_entry_allowed(registry, farm_name, cycle_id, [])
    cycle = registry.get(cycle_id)

    record = ChicksReceiving.query.filter_by(farm_name=farm_name, cycle_id=cycle_id).first()
    if record is None:
        record = ChicksReceiving(farm_name=farm_name, cycle_id=cycle_id)
        db.session.add(record)
    record.crop_no = fc.crop_no
    record.cycle_no = cycle.cycle_no
    record.houses = payload.get('houses')
    db.session.commit()
    return jsonify({'id': record.id}), 201


@app.route('/api/feed_deliveries', methods=['POST'])
def save_feed_delivery():
    payload = request.get_json(silent=True) or {}
    farm_name = require_farm(payload.get('farm_name'))
    cycle_id = require_int(payload.get('cycle_id'), 'Cycle')
    day = parse_date(payload.get('date'))
    if day is None:
        raise CycleValidationError("Date is required.")
    check_entry_allowed(load_registry(), farm_name, cycle_id, [day])

    record = FeedDelivery(farm_name=farm_name, date=day, cycle_id=cycle_id)
    record.houses = payload.get('houses')
    db.session.add(record)
    db.session.commit()
    return jsonify({'id': record.id}), 201


@app.route('/api/catching_details', methods=['POST'])
def save_catching_details():
    payload = request.get_json(silent=True) or {}
    farm_name = require_farm(payload.get('farm_name'))
    cycle_id = require_int(payload.get('cycle_id'), 'Cycle')
    check_entry_allowed(load_registry(), farm_name, cycle_id, [])

    record = CatchingDetails.query.filter_by(farm_name=farm_name, cycle_id=cycle_id).first()
    if record is None:
        record = CatchingDetails(farm_name=farm_name, cycle_id=cycle_id)
        db.session.add(record)
    record.houses = payload.get('houses')
    db.session.commit()
    return jsonify({'id': record.id}), 201


@app.route('/api/feed_orders', methods=['POST'])
def submit_feed_order():
    payload = request.get_json(silent=True) or {}
    farm_name = require_farm(payload.get('farm_name'))
    cycle_id = require_int(payload.get('cycle_id'), 'Cycle')
    order_data = FeedOrderData.from_dict(payload)
    if not order_data.items:
        raise CycleValidationError("A feed order needs at least one item.")
    for item in order_data.items:
        if item.feed_type not in FEED_TYPES:
            raise CycleValidationError("Unknown feed type: %s" % item.feed_type)

    delivery_dates = [i.delivery_date for i in order_data.items]
    check_entry_allowed(load_registry(), farm_name, cycle_id, delivery_dates)

    order = FeedOrder(
        farm_name=farm_name,
        cycle_id=cycle_id,
        order_date=order_data.order_date or date.today(),
        delivery_date=order_data.delivery_date,
        feed_mill_no=order_data.feed_mill_no,
        priority=order_data.priority,
        remarks=order_data.remarks,
        status='Submitted',
    )
    order.items = [{
        'house_no': i.house_no,
        'feed_type': i.feed_type,
        'quantity': i.quantity.to_tons(),
        'delivery_date': i.delivery_date.isoformat() if i.delivery_date else None,
        'sto_no': i.sto_no,
    } for i in order_data.items]
    db.session.add(order)
    db.session.commit()
    return jsonify({'id': order.id}), 201


@app.route('/api/feed_orders/<int:order_id>/deliver', methods=['POST'])
def confirm_feed_delivery(order_id):
    order = db.get_or_404(FeedOrder, order_id)
    if order.status == 'Delivered':
        raise CycleValidationError("Order %s is already delivered." % order_id)
    payload = request.get_json(silent=True) or {}
    actual = parse_date(payload.get('actual_delivery_date')) or date.today()

    order_data = FeedOrderData.from_dict(order.to_dict())
    delivery = reports.delivery_from_order(order_data, get_house_count_for_farm(order.farm_name), actual)

    record = FeedDelivery(farm_name=order.farm_name, date=delivery.date, cycle_id=order.cycle_id,
                          feed_order_id=order.id)
    record.houses = [{'starter': h.starter, 'grower_cr': h.grower_cr,
                      'grower_pl': h.grower_pl, 'finisher': h.finisher} for h in delivery.houses]
    db.session.add(record)
    order.status = 'Delivered'
    order.actual_delivery_date = actual
    db.session.commit()
    app.logger.info("Feed order %s delivered to %s on %s", order.id, order.farm_name, actual)
    return jsonify({'id': order.id, 'delivery_id': record.id, 'status': order.status})


@app.route('/api/entry_history')
def entry_history():
    farm_name = require_farm(request.args.get('farm'))
    cycle_id = require_int(request.args.get('cycle_id'), 'Cycle')
    registry = load_registry()
    fc = check_entry_allowed(registry, farm_name, cycle_id, [])
    history = reports.entry_history(load_farm_datasets(farm_name), fc, request_date())
    return jsonify(to_json(history))


# --- Reports ---

@app.route('/api/reports/farm_day')
def farm_day_report():
    farm_name = require_farm(request.args.get('farm'))
    result = reports.farm_day_report(load_farm_datasets(farm_name), load_registry(),
                                     request_date(), houses=list_arg('houses'))
    return jsonify(to_json(result))


@app.route('/api/reports/broiler_performance')
def broiler_performance_report():
    farm_name = require_farm(request.args.get('farm'))
    cycle_id = require_int(request.args.get('cycle_id'), 'Cycle')
    result = reports.broiler_performance_report(load_farm_datasets(farm_name), load_registry(), cycle_id,
                                                as_of=request_date(), houses=list_arg('houses'))
    if result is None:
        return jsonify({'error': 'Farm %s is not part of cycle %s.' % (farm_name, cycle_id)}), 404
    return jsonify(to_json(result))


@app.route('/api/reports/finished_cycles')
def finished_cycles_report():
    farm_name = require_farm(request.args.get('farm'))
    return jsonify(to_json(reports.finished_cycles_report(load_registry(), farm_name)))


@app.route('/api/reports/weekly_mortality')
def weekly_mortality_report():
    farm_name = require_farm(request.args.get('farm'))
    cycle_id = require_int(request.args.get('cycle_id'), 'Cycle')
    result = reports.weekly_mortality_report(load_farm_datasets(farm_name), load_registry(), cycle_id,
                                             as_of=request_date(), houses=list_arg('houses'))
    if result is None:
        return jsonify({'error': 'Farm %s is not part of cycle %s.' % (farm_name, cycle_id)}), 404
    return jsonify(to_json(result))


@app.route('/api/reports/daily_mortality')
def daily_mortality_report():
    farm_names = list_arg('farms') or FARM_NAMES
    for name in farm_names:
        require_farm(name)
    result = rollup.daily_mortality_rollup(farm_names, load_all_farm_datasets(farm_names),
                                           load_registry(), request_date())
    return jsonify(to_json(result))


@app.route('/api/reports/trial_control/cycles')
def trial_control_cycles():
    cycles = reports.trial_control_cycles(load_registry(), load_all_farm_datasets())
    return jsonify(to_json([c.to_dict() for c in cycles]))


@app.route('/api/reports/trial_control')
def trial_control_report():
    cycle_ids = [require_int(c, 'Cycle') for c in list_arg('cycle_ids')]
    if not cycle_ids:
        raise CycleValidationError("Select at least one cycle.")
    result = reports.trial_control_report(load_all_farm_datasets(), load_registry(), cycle_ids,
                                          farms=list_arg('farms'), houses=list_arg('houses'),
                                          as_of=request_date())
    return jsonify(to_json(result))


@app.route('/api/reports/cycle_comparison')
def cycle_comparison():
    farm_name = require_farm(request.args.get('farm'))
    metric = request.args.get('metric', 'mortality')  # 'mortality' or 'livability'
    result = reports.cycle_comparison_curves(load_farm_datasets(farm_name), load_registry(),
                                             cycle_ids=list_arg('cycle_ids'), metric=metric)
    return jsonify(to_json(result))


@app.route('/api/reports/feed_plan')
def daily_feed_plan():
    result = reports.daily_feed_plan_report(load_all_farm_datasets(), load_registry(), request_date())
    return jsonify(to_json(result))


@app.route('/api/reports/feed_consumption')
def feed_consumption():
    start = parse_date(request.args.get('start'))
    end = parse_date(request.args.get('end'))
    if start is None or end is None:
        raise CycleValidationError("Start and end dates are required.")
    result = reports.feed_consumption_report(load_all_farm_datasets(), start, end)
    return jsonify(to_json(result))


@app.route('/api/charts/cross_farm_mortality')
def cross_farm_mortality_chart():
    farm_filter = list_arg('farms')
    frame = rollup.cross_farm_mortality_series(FARM_NAMES, load_all_farm_datasets(), load_registry(),
                                               farm_filter=farm_filter)
    return jsonify({
        'farms': list(frame.columns) if not frame.empty else [],
        'rows': rollup.series_to_rows(frame),
    })


if __name__ == '__main__':
    app.run(debug=True)
