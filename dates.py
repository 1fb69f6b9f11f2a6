from datetime import datetime, date, timedelta
import math

DATE_FORMATS = ['%Y-%m-%d', '%d/%m/%Y', '%d/%m/%y', '%m/%d/%Y']

# Inclusive ranges of days since placement. The last bucket is open ended.
WEEK_BUCKETS = [
    {'label': '0-7 DAYS', 'start': 0, 'end': 7},
    {'label': '8-14 DAYS', 'start': 8, 'end': 14},
    {'label': '15-21 DAYS', 'start': 15, 'end': 21},
    {'label': '22-28 DAYS', 'start': 22, 'end': 28},
    {'label': '29 DAYS & ABOVE', 'start': 29, 'end': None},
]


def parse_date(value):
    """Best effort conversion of a date-ish value. Blank or garbage gives None."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
        # tolerate full ISO timestamps
        if 'T' in value:
            value = value.split('T', 1)[0]
        for fmt in DATE_FORMATS:
            try:
                return datetime.strptime(value, fmt).date()
            except ValueError:
                continue
    return None


def days_since(start, end):
    start, end = parse_date(start), parse_date(end)
    if start is None or end is None:
        return None
    return (end - start).days


def age_in_days(placement_date, as_of):
    """Age of a flock on `as_of`, the placement day being day 1.

    Returns None when either date is missing or `as_of` is before placement.
    """
    diff = days_since(placement_date, as_of)
    if diff is None or diff < 0:
        return None
    return diff + 1


def cycle_length_days(start, finish):
    start, finish = parse_date(start), parse_date(finish)
    if start is None or finish is None:
        return None
    return int(math.ceil((finish - start).total_seconds() / 86400.0))


def within_range(value, start, finish=None, as_of=None):
    """Inclusive check of `value` against a cycle window.

    A missing finish is open ended, bounded only by `as_of` when given.
    """
    value, start = parse_date(value), parse_date(start)
    if value is None or start is None or value < start:
        return False
    finish = parse_date(finish)
    if finish is not None:
        return value <= finish
    as_of = parse_date(as_of)
    return as_of is None or value <= as_of


def window_end(finish, as_of):
    """Last day a report window covers: the earlier of finish and query date."""
    finish, as_of = parse_date(finish), parse_date(as_of)
    if finish is None:
        return as_of
    if as_of is None:
        return finish
    return min(finish, as_of)


def day_of_cycle(report_date, placement_date):
    diff = days_since(placement_date, report_date)
    return None if diff is None else diff + 1


def week_bucket(days_since_placement):
    if days_since_placement is None or days_since_placement < 0:
        return None
    for i, bucket in enumerate(WEEK_BUCKETS):
        if bucket['end'] is None or days_since_placement <= bucket['end']:
            return i
    return None


def date_span(start, end):
    start, end = parse_date(start), parse_date(end)
    if start is None or end is None:
        return
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)
