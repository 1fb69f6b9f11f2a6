"""
Joins the per-house datasets of a farm over a cycle window.

Every function here is pure: it reads FarmDatasets / FarmCycle objects and
returns new dicts and lists, never touching its inputs.
"""
from dates import parse_date, within_range, window_end, age_in_days
from datasets import DailyHouse, FeedHouse
from metrics import calculate_house_metrics, catching_age


def house_indexes(house_count, houses=None):
    """0-based indexes for a farm, optionally restricted to house numbers."""
    if not houses:
        return list(range(house_count))
    wanted = set()
    for h in houses:
        try:
            wanted.add(int(h))
        except (ValueError, TypeError):
            continue
    return [i for i in range(house_count) if (i + 1) in wanted]


def reports_in_window(daily_reports, start, finish, as_of=None):
    start = parse_date(start)
    end = window_end(finish, as_of)
    result = []
    for report in daily_reports:
        if report.date is None or start is None or report.date < start:
            continue
        if end is not None and report.date > end:
            continue
        result.append(report)
    return sorted(result, key=lambda r: r.date)


def mortality_totals(daily_reports, house_count, start, finish=None, as_of=None):
    """
    Per-house cumulative mortality + culls over [start, min(finish, as_of)].
    Returns {index: {'mortality', 'culls', 'total'}}.
    """
    totals = {i: {'mortality': 0, 'culls': 0, 'total': 0} for i in range(house_count)}
    for report in reports_in_window(daily_reports, start, finish, as_of):
        for i in range(house_count):
            h = report.house(i)
            totals[i]['mortality'] += h.mortality
            totals[i]['culls'] += h.culls
            totals[i]['total'] += h.total_loss
    return totals


def mortality_for_date(daily_reports, house_count, day):
    """Per-house entries of the single report dated `day` (empty houses if none)."""
    day = parse_date(day)
    report = None
    for r in daily_reports:
        if r.date == day:
            report = r
            break
    if report is None:
        return [DailyHouse() for _ in range(house_count)]
    return [report.house(i) for i in range(house_count)]


def feed_totals(feed_deliveries, house_count, cycle_id, start=None, end=None):
    """Per-house kilograms delivered for a cycle, optionally clipped to a range."""
    totals = {i: 0.0 for i in range(house_count)}
    by_type = {i: FeedHouse() for i in range(house_count)}
    start, end = parse_date(start), parse_date(end)
    for record in feed_deliveries:
        if record.cycle_id is None or str(record.cycle_id) != str(cycle_id):
            continue
        if start is not None and (record.date is None or record.date < start):
            continue
        if end is not None and (record.date is None or record.date > end):
            continue
        for i in range(house_count):
            h = record.house(i)
            totals[i] += h.total_kg
            acc = by_type[i]
            acc.starter += h.starter
            acc.grower_cr += h.grower_cr
            acc.grower_pl += h.grower_pl
            acc.finisher += h.finisher
    return totals, by_type


def balance(chicks_placed, cumulative_mortality):
    # A negative balance is left visible; ratio code guards against it
    return (chicks_placed or 0) - (cumulative_mortality or 0)


def format_house_numbers(numbers):
    """Collapse house numbers into ranges: {1,2,3,5,6,8} -> '1 To 3, 5 To 6, 8'."""
    unique = sorted({int(n) for n in numbers if n is not None and str(n).strip() != ''})
    if not unique:
        return ''
    parts = []
    start = prev = unique[0]
    for n in unique[1:] + [None]:
        if n is not None and n == prev + 1:
            prev = n
            continue
        parts.append(str(start) if start == prev else '%s To %s' % (start, prev))
        if n is not None:
            start = prev = n
    return ', '.join(parts)


def consolidate_lines(lines, group_fields, house_field='house_no', quantity_field='quantity'):
    """
    Merge lines that agree on every `group_fields` value. The merged line sums
    the quantity and lists its houses as a formatted range in 'house_no_display'.
    Group order follows first appearance.
    """
    groups = {}
    order = []
    for line in lines:
        key = tuple(line.get(f) for f in group_fields)
        if key not in groups:
            merged = {f: line.get(f) for f in group_fields}
            merged[quantity_field] = 0.0
            merged['house_nos'] = []
            groups[key] = merged
            order.append(key)
        merged = groups[key]
        merged[quantity_field] += line.get(quantity_field) or 0
        merged['house_nos'].append(line.get(house_field))

    result = []
    for key in order:
        merged = groups[key]
        merged['house_nos'] = sorted({int(h) for h in merged['house_nos'] if h is not None})
        merged['house_no_display'] = format_house_numbers(merged['house_nos'])
        result.append(merged)
    return result


def cycle_house_rollup(farm_data, farm_cycle, as_of=None, houses=None):
    """
    One row per house for a farm cycle: placement, mortality, feed and
    catching joined over the cycle window. Houses with nothing placed still
    get a row so tables keep their house order.
    """
    cycle_id = farm_cycle.cycle_id
    chicks = farm_data.chicks_for_cycle(cycle_id)
    catching = farm_data.catching_for_cycle(cycle_id)
    mort = mortality_totals(farm_data.daily_reports, farm_data.house_count,
                            farm_cycle.start_date, farm_cycle.finish_date, as_of)
    feed, feed_by_type = feed_totals(farm_data.feed_deliveries, farm_data.house_count, cycle_id)

    rows = []
    for i in house_indexes(farm_data.house_count, houses):
        ch = chicks.house(i) if chicks else None
        ct = catching.house(i) if catching else None
        placement = ch.placement_date if ch else None
        age, age_label = catching_age(placement, farm_cycle.finish_date, as_of)

        d = {
            'house_no': i + 1,
            'placement_date': placement,
            'breed': (ch.breed if ch and ch.breed else 'N/A'),
            'flock': ch.flock_label if ch else '-',
            'trial_or_control': ch.trial_or_control if ch else '',
            'chicks_placed': ch.net_chicks_placed if ch else 0,
            'mortality': mort[i]['mortality'],
            'culls': mort[i]['culls'],
            'total_mortality': mort[i]['total'],
            'age': age,
            'age_label': age_label,
            'total_feed_kg': feed[i],
            'starter_kg': feed_by_type[i].starter,
            'grower_cr_kg': feed_by_type[i].grower_cr,
            'grower_pl_kg': feed_by_type[i].grower_pl,
            'finisher_kg': feed_by_type[i].finisher,
            'electric_counter': ct.electric_counter if ct else 0,
            'catch_culls': ct.catch_culls if ct else 0,
            'catch_doa': ct.doa if ct else 0,
            'catch_loss': ct.catch_loss if ct else 0.0,
            'scale_weight': ct.scale_weight if ct else 0.0,
        }
        calculate_house_metrics(d)
        rows.append(d)
    return rows


SUMMED_FIELDS = [
    'chicks_placed', 'mortality', 'culls', 'total_mortality', 'total_feed_kg',
    'starter_kg', 'grower_cr_kg', 'grower_pl_kg', 'finisher_kg',
    'electric_counter', 'catch_culls', 'catch_doa', 'catch_loss', 'scale_weight',
]


def sum_rollups(rows, label='Total'):
    """Summary row with the same shape as a house row, ratios recomputed from sums."""
    total = {f: 0 for f in SUMMED_FIELDS}
    age_sum = 0
    aged_houses = 0
    for row in rows:
        for f in SUMMED_FIELDS:
            total[f] += row.get(f) or 0
        if row.get('chicks_placed') and row.get('placement_date'):
            age_sum += row.get('age') or 0
            aged_houses += 1
    total['house_no'] = label
    total['age'] = int(round(age_sum / aged_houses)) if aged_houses else 0
    total['house_count'] = aged_houses
    calculate_house_metrics(total)
    return total


def house_day_status(farm_data, farm_cycle, day, houses=None):
    """Per-house status of a farm on one day of a cycle."""
    day = parse_date(day)
    chicks = farm_data.chicks_for_cycle(farm_cycle.cycle_id)
    today = mortality_for_date(farm_data.daily_reports, farm_data.house_count, day)
    mort = mortality_totals(farm_data.daily_reports, farm_data.house_count,
                            farm_cycle.start_date, farm_cycle.finish_date, day)
    rows = []
    for i in house_indexes(farm_data.house_count, houses):
        ch = chicks.house(i) if chicks else None
        placed = ch.net_chicks_placed if ch else 0
        d = {
            'house_no': i + 1,
            'placement_date': ch.placement_date if ch else None,
            'age': age_in_days(ch.placement_date, day) if ch else None,
            'chicks_placed': placed,
            'mortality': today[i].mortality,
            'culls': today[i].culls,
            'cumulative_mortality': mort[i]['total'],
        }
        d['balance_chicks'] = balance(placed, d['cumulative_mortality'])
        rows.append(d)
    return rows


def report_dates(daily_reports, farm_cycle, as_of=None):
    return {r.date for r in daily_reports
            if within_range(r.date, farm_cycle.start_date, farm_cycle.finish_date, as_of)}
