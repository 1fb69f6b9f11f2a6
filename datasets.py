"""
House-indexed datasets entered per farm.

Each record holds one entry per house, position 0 being house 1. Records come
from the database as plain dicts and are coerced here, so the aggregation code
never has to care about blanks or strings typed into a form.
"""
from dataclasses import dataclass, field
import math

from dates import parse_date

KG = 'kg'
TON = 'ton'
TONS_TO_KG = 1000.0


def to_float(value):
    if value is None or value == '':
        return 0.0
    try:
        result = float(value)
    except (ValueError, TypeError):
        return 0.0
    if math.isnan(result) or math.isinf(result):
        return 0.0
    return result


def to_int(value):
    return int(to_float(value))


def to_text(value):
    if value is None:
        return ''
    return str(value).strip()


@dataclass(frozen=True)
class FeedQuantity:
    """A feed amount tagged with its unit. Orders are in tons, deliveries in kg."""
    value: float
    unit: str = KG

    def to_kg(self):
        if self.unit == TON:
            return self.value * TONS_TO_KG
        return self.value

    def to_tons(self):
        if self.unit == KG:
            return self.value / TONS_TO_KG
        return self.value


# --- Per-house entries ---

@dataclass
class DailyHouse:
    mortality: int = 0
    culls: int = 0
    day_water: float = 0.0
    night_water: float = 0.0
    min_temp: float = 0.0
    max_temp: float = 0.0

    @property
    def total_loss(self):
        return self.mortality + self.culls

    @classmethod
    def from_dict(cls, d):
        d = d or {}
        return cls(
            mortality=to_int(d.get('mortality')),
            culls=to_int(d.get('culls')),
            day_water=to_float(d.get('day_water')),
            night_water=to_float(d.get('night_water')),
            min_temp=to_float(d.get('min_temp')),
            max_temp=to_float(d.get('max_temp')),
        )


@dataclass
class ChicksHouse:
    placement_date: object = None
    net_chicks_placed: int = 0
    gross_chicks_placed: int = 0
    doa: int = 0
    breed: str = ''
    flock: str = ''
    flock_no: str = ''
    flock_age: str = ''
    hatchery_no: str = ''
    production_line: str = ''
    trial_or_control: str = ''

    @classmethod
    def from_dict(cls, d):
        d = d or {}
        return cls(
            placement_date=parse_date(d.get('placement_date')),
            net_chicks_placed=to_int(d.get('net_chicks_placed')),
            gross_chicks_placed=to_int(d.get('gross_chicks_placed')),
            doa=to_int(d.get('doa')),
            breed=to_text(d.get('breed')),
            flock=to_text(d.get('flock')),
            flock_no=to_text(d.get('flock_no')),
            flock_age=to_text(d.get('flock_age')),
            hatchery_no=to_text(d.get('hatchery_no')),
            production_line=to_text(d.get('production_line')),
            trial_or_control=to_text(d.get('trial_or_control')),
        )

    @property
    def flock_label(self):
        if not self.flock:
            return '-'
        return '%s %s' % (self.flock, self.flock_no) if self.flock_no else self.flock

    @property
    def detail_label(self):
        # e.g. C/F12-3/45/H7; blank when the house has no details at all
        breed = self.breed.lower()
        if breed.startswith('cobb'):
            initial = 'C'
        elif breed.startswith('ross'):
            initial = 'R'
        else:
            initial = self.breed[:1].upper()
        if not (initial or self.flock or self.flock_no or self.flock_age or self.hatchery_no):
            return ''
        flock = '-'.join(p for p in (self.flock, self.flock_no) if p)
        return '%s/%s/%s/%s' % (initial, flock, self.flock_age, self.hatchery_no)


@dataclass
class FeedHouse:
    # all kilograms
    starter: float = 0.0
    grower_cr: float = 0.0
    grower_pl: float = 0.0
    finisher: float = 0.0

    @property
    def total_kg(self):
        return self.starter + self.grower_cr + self.grower_pl + self.finisher

    @classmethod
    def from_dict(cls, d):
        d = d or {}
        return cls(
            starter=to_float(d.get('starter')),
            grower_cr=to_float(d.get('grower_cr')),
            grower_pl=to_float(d.get('grower_pl')),
            finisher=to_float(d.get('finisher')),
        )


@dataclass
class CatchingHouse:
    electric_counter: int = 0
    catch_culls: int = 0
    doa: int = 0
    catch_loss: float = 0.0
    scale_weight: float = 0.0

    @classmethod
    def from_dict(cls, d):
        d = d or {}
        return cls(
            electric_counter=to_int(d.get('electric_counter')),
            catch_culls=to_int(d.get('catch_culls')),
            doa=to_int(d.get('doa')),
            catch_loss=to_float(d.get('catch_loss')),
            scale_weight=to_float(d.get('scale_weight')),
        )


def _houses(raw, house_cls):
    return [house_cls.from_dict(h) for h in (raw or [])]


def house_at(houses, index, house_cls):
    """Entry for a 0-based house index; short records read as empty houses."""
    if 0 <= index < len(houses):
        return houses[index]
    return house_cls()


# --- Records ---

@dataclass
class DailyReport:
    date: object
    houses: list = field(default_factory=list)

    def house(self, index):
        return house_at(self.houses, index, DailyHouse)

    @classmethod
    def from_dict(cls, d):
        return cls(date=parse_date(d.get('date')), houses=_houses(d.get('houses'), DailyHouse))


@dataclass
class ChicksReceiving:
    cycle_id: object
    houses: list = field(default_factory=list)
    crop_no: str = ''
    cycle_no: str = ''

    def house(self, index):
        return house_at(self.houses, index, ChicksHouse)

    def total_placed(self, house_count=None):
        houses = self.houses if house_count is None else self.houses[:house_count]
        return sum(h.net_chicks_placed for h in houses)

    @classmethod
    def from_dict(cls, d):
        return cls(
            cycle_id=d.get('cycle_id'),
            houses=_houses(d.get('houses'), ChicksHouse),
            crop_no=to_text(d.get('crop_no')),
            cycle_no=to_text(d.get('cycle_no')),
        )


@dataclass
class FeedDelivery:
    date: object
    houses: list = field(default_factory=list)
    cycle_id: object = None

    def house(self, index):
        return house_at(self.houses, index, FeedHouse)

    @classmethod
    def from_dict(cls, d):
        return cls(
            date=parse_date(d.get('date')),
            houses=_houses(d.get('houses'), FeedHouse),
            cycle_id=d.get('cycle_id'),
        )


@dataclass
class CatchingDetails:
    cycle_id: object
    houses: list = field(default_factory=list)

    def house(self, index):
        return house_at(self.houses, index, CatchingHouse)

    @classmethod
    def from_dict(cls, d):
        return cls(cycle_id=d.get('cycle_id'), houses=_houses(d.get('houses'), CatchingHouse))


@dataclass
class FeedOrderItem:
    house_no: int
    feed_type: str
    quantity: FeedQuantity
    delivery_date: object = None
    sto_no: str = ''

    @classmethod
    def from_dict(cls, d, default_delivery=None):
        return cls(
            house_no=to_int(d.get('house_no')),
            feed_type=to_text(d.get('feed_type')),
            quantity=FeedQuantity(to_float(d.get('quantity')), TON),
            delivery_date=parse_date(d.get('delivery_date')) or default_delivery,
            sto_no=to_text(d.get('sto_no')),
        )


@dataclass
class FeedOrder:
    farm_name: str
    cycle_id: object
    items: list = field(default_factory=list)
    order_date: object = None
    delivery_date: object = None
    feed_mill_no: str = ''
    priority: str = ''
    remarks: str = ''
    status: str = 'Submitted'
    actual_delivery_date: object = None
    id: object = None

    @property
    def is_delivered(self):
        return self.status == 'Delivered'

    @classmethod
    def from_dict(cls, d):
        delivery_date = parse_date(d.get('delivery_date'))
        return cls(
            id=d.get('id'),
            farm_name=to_text(d.get('farm_name')),
            cycle_id=d.get('cycle_id'),
            items=[FeedOrderItem.from_dict(i, delivery_date) for i in (d.get('items') or [])],
            order_date=parse_date(d.get('order_date')),
            delivery_date=delivery_date,
            feed_mill_no=to_text(d.get('feed_mill_no')),
            priority=to_text(d.get('priority')),
            remarks=to_text(d.get('remarks')),
            status=to_text(d.get('status')) or 'Submitted',
            actual_delivery_date=parse_date(d.get('actual_delivery_date')),
        )


@dataclass
class FarmDatasets:
    """Everything entered for one farm, as loaded for a single request."""
    farm_name: str
    house_count: int
    daily_reports: list = field(default_factory=list)
    chicks_receiving: list = field(default_factory=list)
    feed_deliveries: list = field(default_factory=list)
    catching_details: list = field(default_factory=list)
    feed_orders: list = field(default_factory=list)

    def chicks_for_cycle(self, cycle_id):
        for record in self.chicks_receiving:
            if str(record.cycle_id) == str(cycle_id):
                return record
        return None

    def catching_for_cycle(self, cycle_id):
        for record in self.catching_details:
            if str(record.cycle_id) == str(cycle_id):
                return record
        return None

    def deliveries_for_cycle(self, cycle_id):
        return [r for r in self.feed_deliveries if r.cycle_id is not None and str(r.cycle_id) == str(cycle_id)]

    def report_for_date(self, day):
        day = parse_date(day)
        for report in self.daily_reports:
            if report.date == day:
                return report
        return None

    def orders_for_cycle(self, cycle_id):
        return [o for o in self.feed_orders if str(o.cycle_id) == str(cycle_id)]
