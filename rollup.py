"""
Cross-farm rollups: one row per farm for a date, and a grand total.
"""
import logging

import pandas as pd

from config import max_house_count
from dates import parse_date, days_since
from metrics import mortality_pct
from aggregation import mortality_totals, mortality_for_date, balance

logger = logging.getLogger(__name__)


def _unavailable(farm_name, reason):
    logger.info("Daily mortality: %s skipped (%s)", farm_name, reason)
    return {'farm_name': farm_name, 'data_available': False, 'reason': reason}


def farm_mortality_row(farm_data, registry, day, width):
    """Daily mortality row of one farm, or an unavailable marker."""
    farm_name = farm_data.farm_name
    fc = registry.resolve_cycle_for_date(farm_name, day)
    if fc is None:
        return _unavailable(farm_name, 'no cycle')
    chicks = farm_data.chicks_for_cycle(fc.cycle_id)
    if chicks is None:
        return _unavailable(farm_name, 'no chicks receiving data')
    placed = chicks.total_placed(farm_data.house_count)
    if placed <= 0:
        return _unavailable(farm_name, 'no chicks placed')

    cycle = registry.get(fc.cycle_id)
    today = mortality_for_date(farm_data.daily_reports, farm_data.house_count, day)
    cum = mortality_totals(farm_data.daily_reports, farm_data.house_count, fc.start_date, fc.finish_date, day)

    cumulative_age = 0
    aged_houses = 0
    details = []
    for i in range(farm_data.house_count):
        ch = chicks.house(i)
        if ch.placement_date is None:
            continue
        aged_houses += 1
        # whole days since placement; the placement day itself is age 0
        age = days_since(ch.placement_date, day)
        cumulative_age += age if age is not None and age >= 0 else 0
        if ch.detail_label:
            details.append(ch.detail_label)

    house_mort = [h.mortality for h in today] + [0] * (width - len(today))
    house_culls = [h.culls for h in today] + [0] * (width - len(today))
    total_mort = sum(house_mort)
    total_culls = sum(house_culls)
    cum_total = sum(v['total'] for v in cum.values())

    return {
        'farm_name': farm_name,
        'data_available': True,
        'cycle_id': fc.cycle_id,
        'cycle_no': cycle.cycle_no if cycle else '',
        'crop_no': fc.crop_no,
        'ave_age': cumulative_age / float(aged_houses) if aged_houses else 0,
        'cumulative_age_days': cumulative_age,
        'house_count_with_placement': aged_houses,
        'chicks_placed': placed,
        'house_mortality': house_mort,
        'house_culls': house_culls,
        'total_mortality': total_mort,
        'total_culls': total_culls,
        'mortality_pct': mortality_pct(total_mort, placed),
        'culls_pct': mortality_pct(total_culls, placed),
        'today_pct': mortality_pct(total_mort + total_culls, placed),
        'cum_total': cum_total,
        'cum_pct': mortality_pct(cum_total, placed),
        'balance_chicks': balance(placed, cum_total),
        'house_details': ', '.join(details),
    }


def daily_mortality_rollup(farm_names, farm_datas, registry, day, roster=None):
    """Every farm gets a row, available or not, plus a grand total of the available ones."""
    day = parse_date(day)
    width = max_house_count(roster)
    rows = []
    for name in farm_names:
        data = farm_datas.get(name)
        if data is None:
            rows.append(_unavailable(name, 'farm not loaded'))
            continue
        rows.append(farm_mortality_row(data, registry, day, width))

    available = [r for r in rows if r['data_available']]
    grand = {
        'chicks_placed': sum(r['chicks_placed'] for r in available),
        'cum_total': sum(r['cum_total'] for r in available),
        'balance_chicks': sum(r['balance_chicks'] for r in available),
        'total_mortality': sum(r['total_mortality'] for r in available),
        'total_culls': sum(r['total_culls'] for r in available),
        'cumulative_age_days': sum(r['cumulative_age_days'] for r in available),
        'house_count_with_placement': sum(r['house_count_with_placement'] for r in available),
        'house_mortality': [sum(r['house_mortality'][i] for r in available) for i in range(width)],
        'house_culls': [sum(r['house_culls'][i] for r in available) for i in range(width)],
    }
    grand['ave_age'] = (grand['cumulative_age_days'] / float(grand['house_count_with_placement'])
                        if grand['house_count_with_placement'] else 0)
    grand['mortality_pct'] = mortality_pct(grand['total_mortality'], grand['chicks_placed'])
    grand['culls_pct'] = mortality_pct(grand['total_culls'], grand['chicks_placed'])
    grand['today_pct'] = mortality_pct(grand['total_mortality'] + grand['total_culls'], grand['chicks_placed'])
    grand['cum_pct'] = mortality_pct(grand['cum_total'], grand['chicks_placed'])

    return {
        'date': day,
        'cycle_no': available[0]['cycle_no'] if available else '',
        'rows': rows,
        'grand_total': grand,
    }


def cross_farm_mortality_series(farm_names, farm_datas, registry, farm_filter=None):
    """
    Daily mortality + culls of each farm's running cycle, one column per farm.
    Returns a DataFrame indexed by ISO date; farms with no running cycle are left out.
    """
    records = []
    for name in farm_names:
        if farm_filter and name not in farm_filter:
            continue
        data = farm_datas.get(name)
        fc = registry.active_assignment(name)
        if data is None or fc is None:
            continue
        for report in data.daily_reports:
            if report.date is None or report.date < fc.start_date:
                continue
            total = sum(report.house(i).total_loss for i in range(data.house_count))
            records.append({'date': report.date.isoformat(), 'farm_name': name, 'total': total})

    if not records:
        return pd.DataFrame()
    df = pd.DataFrame(records)
    pivot = df.pivot_table(index='date', columns='farm_name', values='total', aggfunc='sum')
    ordered = [n for n in farm_names if n in pivot.columns]
    return pivot[ordered].sort_index()


def series_to_rows(frame):
    """Chart rows: [{'date': 'YYYY-MM-DD', farm: value or None}]."""
    rows = []
    if frame is None or frame.empty:
        return rows
    for day, values in frame.iterrows():
        row = {'date': day}
        for farm, value in values.items():
            row[farm] = None if pd.isna(value) else int(value)
        rows.append(row)
    return rows


def rows_to_frame(rows, columns=None):
    """Flatten report rows into a DataFrame for export collaborators."""
    frame = pd.DataFrame(rows)
    if columns:
        frame = frame[[c for c in columns if c in frame.columns]]
    return frame
