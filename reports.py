"""
Report builders. Each one resolves its cycle(s) through the registry and hands
the window to the aggregation functions; nothing here reads the database.
"""
from datetime import timedelta
import logging

from config import PRODUCTION_LINE_MAP, FEED_TYPE_FIELDS, site_name_for_farm
from dates import (parse_date, age_in_days, days_since, cycle_length_days,
                   window_end, week_bucket, date_span, WEEK_BUCKETS)
from datasets import FeedDelivery, FeedHouse
from metrics import (safe_div, mortality_pct, livability_pct, feed_conversion_ratio,
                     production_index, avg_live_weight)
from aggregation import (house_indexes, cycle_house_rollup, sum_rollups, house_day_status,
                         reports_in_window, mortality_totals, feed_totals, balance,
                         consolidate_lines, report_dates)

logger = logging.getLogger(__name__)

GROUPS = ('Trial', 'Control')

FEED_SUMMARY_BUCKETS = ['Starter', 'Grower CR', 'Grower PL', 'Finisher']


def _farm_cycle(registry, cycle_id, farm_name):
    cycle = registry.get(cycle_id)
    if cycle is None:
        return None, None
    return cycle, cycle.farm(farm_name)


# --- Farm day report ---

def farm_day_report(farm_data, registry, day, houses=None):
    """House-by-house status of one farm on one day."""
    day = parse_date(day)
    fc = registry.resolve_cycle_for_date(farm_data.farm_name, day)
    result = {'farm_name': farm_data.farm_name, 'date': day, 'data_available': False,
              'houses': [], 'totals': None}
    if fc is None:
        logger.info("No cycle covers %s on %s", farm_data.farm_name, day)
        return result
    cycle = registry.get(fc.cycle_id)

    rows = house_day_status(farm_data, fc, day, houses)
    for d in rows:
        d['livability_pct'] = livability_pct(d['chicks_placed'], d['cumulative_mortality'])

    ages = [d['age'] for d in rows if d['age'] is not None and d['chicks_placed']]
    totals = {
        'house_no': 'Total',
        'chicks_placed': sum(d['chicks_placed'] for d in rows),
        'mortality': sum(d['mortality'] for d in rows),
        'culls': sum(d['culls'] for d in rows),
        'cumulative_mortality': sum(d['cumulative_mortality'] for d in rows),
        'age': int(round(sum(ages) / float(len(ages)))) if ages else None,
    }
    totals['balance_chicks'] = balance(totals['chicks_placed'], totals['cumulative_mortality'])
    totals['livability_pct'] = livability_pct(totals['chicks_placed'], totals['cumulative_mortality'])

    result.update({
        'data_available': True,
        'cycle_id': fc.cycle_id,
        'cycle_no': cycle.cycle_no if cycle else '',
        'crop_no': fc.crop_no,
        'is_locked': registry.is_entry_locked(fc, day),
        'houses': rows,
        'totals': totals,
    })
    return result


# --- Broiler performance ---

def broiler_performance_report(farm_data, registry, cycle_id, as_of=None, houses=None):
    """Per-house performance of a farm cycle, with a totals row."""
    cycle, fc = _farm_cycle(registry, cycle_id, farm_data.farm_name)
    if fc is None:
        return None
    rows = cycle_house_rollup(farm_data, fc, as_of=as_of, houses=houses)
    return {
        'farm_name': farm_data.farm_name,
        'cycle_id': cycle.id,
        'cycle_no': cycle.cycle_no,
        'crop_no': fc.crop_no,
        'start_date': fc.start_date,
        'finish_date': fc.finish_date,
        'age_label': 'catching_age' if fc.finish_date else 'current_age',
        'houses': rows,
        'totals': sum_rollups(rows),
    }


def finished_cycles_report(registry, farm_name):
    """Finished cycles of a farm, most recently finished first."""
    result = []
    for fc in registry.finished_cycles_for_farm(farm_name):
        cycle = registry.get(fc.cycle_id)
        d = fc.to_dict()
        d['cycle_no'] = cycle.cycle_no if cycle else ''
        result.append(d)
    return result


# --- Weekly mortality ---

def _empty_bucket():
    return {'mortality': 0, 'culls': 0, 'total': 0}


def _bucket_pcts(bucket, placed):
    bucket['mortality_pct'] = mortality_pct(bucket['mortality'], placed)
    bucket['culls_pct'] = mortality_pct(bucket['culls'], placed)
    bucket['total_pct'] = mortality_pct(bucket['total'], placed)
    return bucket


def weekly_mortality_report(farm_data, registry, cycle_id, as_of=None, houses=None):
    cycle, fc = _farm_cycle(registry, cycle_id, farm_data.farm_name)
    if fc is None:
        return None
    chicks = farm_data.chicks_for_cycle(fc.cycle_id)
    reports = reports_in_window(farm_data.daily_reports, fc.start_date, fc.finish_date, as_of)
    end = fc.finish_date or parse_date(as_of)

    house_rows = []
    grand = [_empty_bucket() for _ in WEEK_BUCKETS]
    grand_placed = 0
    for i in house_indexes(farm_data.house_count, houses):
        ch = chicks.house(i) if chicks else None
        if ch is None or ch.placement_date is None or ch.net_chicks_placed <= 0:
            continue
        buckets = [_empty_bucket() for _ in WEEK_BUCKETS]
        for report in reports:
            b = week_bucket(days_since(ch.placement_date, report.date))
            if b is None:
                continue
            h = report.house(i)
            buckets[b]['mortality'] += h.mortality
            buckets[b]['culls'] += h.culls
            buckets[b]['total'] += h.total_loss

        total = _empty_bucket()
        for b, bucket in enumerate(buckets):
            for k in ('mortality', 'culls', 'total'):
                total[k] += bucket[k]
                grand[b][k] += bucket[k]
            _bucket_pcts(bucket, ch.net_chicks_placed)
        grand_placed += ch.net_chicks_placed

        house_rows.append({
            'house_no': i + 1,
            'chicks_placed': ch.net_chicks_placed,
            'current_age': age_in_days(ch.placement_date, end),
            'weeks': buckets,
            'total': _bucket_pcts(total, ch.net_chicks_placed),
        })

    grand_total = _empty_bucket()
    for bucket in grand:
        for k in ('mortality', 'culls', 'total'):
            grand_total[k] += bucket[k]
        _bucket_pcts(bucket, grand_placed)

    return {
        'farm_name': farm_data.farm_name,
        'cycle_id': cycle.id,
        'cycle_no': cycle.cycle_no,
        'weeks': [b['label'] for b in WEEK_BUCKETS],
        'houses': house_rows,
        'totals': {
            'chicks_placed': grand_placed,
            'weeks': grand,
            'total': _bucket_pcts(grand_total, grand_placed),
        },
    }


# --- Trial vs control ---

def _empty_group_stats():
    return {
        'house_count': 0, 'chicks_placed': 0, 'total_mortality': 0, 'total_feed_kg': 0.0,
        'total_weight_kg': 0.0, 'birds_caught': 0, 'cumulative_age': 0, 'aged_houses': 0,
    }


def _finalize_group(s):
    s['livability_pct'] = livability_pct(s['chicks_placed'], s['total_mortality'])
    s['avg_age'] = safe_div(s['cumulative_age'], s['aged_houses'], 1.0)
    s['avg_weight'] = avg_live_weight(s['total_weight_kg'], s['birds_caught'])
    s['fcr'] = feed_conversion_ratio(s['total_feed_kg'], s['total_weight_kg'])
    s['production_index'] = production_index(s['avg_weight'], s['livability_pct'], s['fcr'], s['avg_age'])
    return s


def trial_control_cycles(registry, farm_datas):
    """Cycles where at least one house is marked Trial and one Control."""
    result = []
    for cycle in registry.sorted_cycles():
        seen = set()
        for fc in cycle.farms:
            data = farm_datas.get(fc.farm_name)
            chicks = data.chicks_for_cycle(cycle.id) if data else None
            if chicks:
                seen.update(h.trial_or_control for h in chicks.houses)
        if all(g in seen for g in GROUPS):
            result.append(cycle)
    return result


def trial_control_report(farm_datas, registry, cycle_ids, farms=None, houses=None, as_of=None):
    stats = {g: _empty_group_stats() for g in GROUPS}
    any_active = False
    for cycle_id in cycle_ids:
        cycle = registry.get(cycle_id)
        if cycle is None:
            continue
        for fc in cycle.farms:
            if farms and fc.farm_name not in farms:
                continue
            data = farm_datas.get(fc.farm_name)
            if data is None:
                continue
            chicks = data.chicks_for_cycle(cycle.id)
            if chicks is None:
                continue
            if fc.is_active:
                any_active = True
            catching = data.catching_for_cycle(cycle.id)
            mort = mortality_totals(data.daily_reports, data.house_count, fc.start_date, fc.finish_date, as_of)
            feed, _ = feed_totals(data.feed_deliveries, data.house_count, cycle.id)
            end = fc.finish_date or parse_date(as_of)

            for i in house_indexes(data.house_count, houses):
                ch = chicks.house(i)
                if ch.trial_or_control not in GROUPS or ch.net_chicks_placed <= 0:
                    continue
                s = stats[ch.trial_or_control]
                ct = catching.house(i) if catching else None
                s['house_count'] += 1
                s['chicks_placed'] += ch.net_chicks_placed
                s['total_mortality'] += mort[i]['total']
                s['total_feed_kg'] += feed[i]
                if ct:
                    s['total_weight_kg'] += ct.scale_weight + ct.catch_loss
                    s['birds_caught'] += ct.electric_counter
                age = days_since(ch.placement_date, end)
                if age is not None and age >= 0:
                    s['cumulative_age'] += age
                    s['aged_houses'] += 1

    for s in stats.values():
        _finalize_group(s)
    difference = {k: stats['Trial'][k] - stats['Control'][k]
                  for k in ('livability_pct', 'avg_age', 'avg_weight', 'fcr', 'production_index')}
    return {
        'trial': stats['Trial'],
        'control': stats['Control'],
        'difference': difference,
        'is_any_farm_active': any_active,
    }


# --- Cycle comparison curves ---

def cycle_comparison_curves(farm_data, registry, cycle_ids=None, metric='mortality'):
    """
    Day-by-day cumulative mortality % (or livability %) of finished cycles,
    aligned on day of cycle so cycles of different lengths can be overlaid.
    """
    series = []
    longest = -1
    for fc in registry.finished_cycles_for_farm(farm_data.farm_name, ascending=True):
        if cycle_ids and str(fc.cycle_id) not in {str(c) for c in cycle_ids}:
            continue
        chicks = farm_data.chicks_for_cycle(fc.cycle_id)
        if chicks is None:
            continue
        placed = chicks.total_placed(farm_data.house_count)
        length = cycle_length_days(fc.start_date, fc.finish_date)

        daily = {}
        for report in reports_in_window(farm_data.daily_reports, fc.start_date, fc.finish_date):
            daily[report.date] = sum(report.house(i).total_loss for i in range(farm_data.house_count))

        values = []
        cum = 0
        for age in range(length + 1):
            cum += daily.get(fc.start_date + timedelta(days=age), 0)
            if metric == 'livability':
                values.append(livability_pct(placed, cum))
            else:
                values.append(mortality_pct(cum, placed))
        longest = max(longest, length)
        cycle = registry.get(fc.cycle_id)
        series.append({'cycle_id': fc.cycle_id, 'cycle_no': cycle.cycle_no if cycle else '',
                       'crop_no': fc.crop_no, 'values': values})

    ages = list(range(longest + 1))
    for s in series:
        s['values'] = s['values'] + [None] * (len(ages) - len(s['values']))
    return {'metric': metric, 'ages': ages, 'series': series}


# --- Feed orders ---

def order_item_age(placement_date, delivery_date):
    return age_in_days(placement_date, delivery_date)


def feed_summary_bucket(feed_type):
    for bucket in FEED_SUMMARY_BUCKETS:
        if feed_type.endswith(bucket):
            return bucket
    return feed_type


def daily_feed_plan_report(farm_datas, registry, day):
    """Consolidated feed order lines (tons) due for delivery on `day`."""
    day = parse_date(day)
    lines = []
    for farm_name, data in farm_datas.items():
        for order in data.feed_orders:
            cycle = registry.get(order.cycle_id)
            chicks = data.chicks_for_cycle(order.cycle_id)
            for item in order.items:
                if item.delivery_date != day or item.quantity.to_tons() <= 0:
                    continue
                ch = chicks.house(item.house_no - 1) if chicks and item.house_no > 0 else None
                lines.append({
                    'farm_name': farm_name,
                    'site': site_name_for_farm(farm_name),
                    'purch_group': PRODUCTION_LINE_MAP.get(farm_name, ''),
                    'sto_no': item.sto_no or order.feed_mill_no,
                    'feed_type': item.feed_type,
                    'cycle_no': cycle.cycle_no if cycle else '',
                    'remarks': ch.trial_or_control if ch else '',
                    'house_no': item.house_no,
                    'quantity': item.quantity.to_tons(),
                })

    rows = consolidate_lines(lines, ['farm_name', 'site', 'purch_group', 'sto_no', 'feed_type', 'cycle_no', 'remarks'])
    rows.sort(key=lambda r: (r['purch_group'], r['farm_name'], r['sto_no'], r['house_nos'][0] if r['house_nos'] else 0))

    summary = {b: 0.0 for b in FEED_SUMMARY_BUCKETS}
    by_farm = {}
    for r in rows:
        bucket = feed_summary_bucket(r['feed_type'])
        summary[bucket] = summary.get(bucket, 0.0) + r['quantity']
        by_farm[r['farm_name']] = by_farm.get(r['farm_name'], 0.0) + r['quantity']
    return {
        'date': day,
        'rows': rows,
        'summary': summary,
        'farm_totals': [{'farm_name': f, 'quantity': q} for f, q in sorted(by_farm.items())],
        'grand_total': sum(r['quantity'] for r in rows),
    }


def feed_consumption_report(farm_datas, start, end):
    """Tons actually delivered per farm between two dates."""
    start, end = parse_date(start), parse_date(end)
    totals = {}
    for farm_name, data in farm_datas.items():
        for order in data.feed_orders:
            d = order.actual_delivery_date
            if not order.is_delivered or d is None:
                continue
            if (start and d < start) or (end and d > end):
                continue
            totals[farm_name] = totals.get(farm_name, 0.0) + sum(i.quantity.to_tons() for i in order.items)
    rows = [{'farm_name': f, 'total_tons': t} for f, t in sorted(totals.items())]
    return {'start': start, 'end': end, 'rows': rows, 'grand_total': sum(totals.values())}


def delivery_from_order(order, house_count, actual_date=None):
    """Kilogram delivery record for a confirmed order (order quantities are tons)."""
    houses = [FeedHouse() for _ in range(house_count)]
    for item in order.items:
        field_name = FEED_TYPE_FIELDS.get(item.feed_type)
        if field_name is None or not (1 <= item.house_no <= house_count):
            logger.warning("Skipping order line %s / house %s", item.feed_type, item.house_no)
            continue
        house = houses[item.house_no - 1]
        setattr(house, field_name, getattr(house, field_name) + item.quantity.to_kg())
    return FeedDelivery(date=parse_date(actual_date) or order.delivery_date, houses=houses, cycle_id=order.cycle_id)


# --- Entry history ---

def entry_history(farm_data, farm_cycle, as_of=None):
    entered = report_dates(farm_data.daily_reports, farm_cycle, as_of)
    end = window_end(farm_cycle.finish_date, as_of)
    return [{'date': d, 'status': 'Entered' if d in entered else 'Missing'}
            for d in date_span(farm_cycle.start_date, end)]
