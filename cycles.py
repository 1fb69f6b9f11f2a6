"""
Cycle registry.

A cycle groups one assignment per participating farm. Each assignment has its
own start date and, once the farm is emptied, a finish date. A farm may only
have one assignment without a finish date at a time.
"""
from dataclasses import dataclass, field
from contextlib import ExitStack
import threading
import logging

from dates import parse_date, within_range

logger = logging.getLogger(__name__)


class CycleValidationError(ValueError):
    """Raised when a cycle operation is rejected. Registry state is unchanged."""
    pass


@dataclass
class FarmCycle:
    cycle_id: object
    farm_name: str
    crop_no: str
    start_date: object
    finish_date: object = None

    @property
    def is_active(self):
        return self.finish_date is None

    def to_dict(self):
        return {
            'cycle_id': self.cycle_id,
            'farm_name': self.farm_name,
            'crop_no': self.crop_no,
            'start_date': self.start_date.isoformat() if self.start_date else None,
            'finish_date': self.finish_date.isoformat() if self.finish_date else None,
            'status': 'Active' if self.is_active else 'Finished',
        }


@dataclass
class Cycle:
    id: object
    cycle_no: str
    farms: list = field(default_factory=list)

    def farm(self, farm_name):
        for fc in self.farms:
            if fc.farm_name == farm_name:
                return fc
        return None

    @property
    def is_active(self):
        return any(fc.is_active for fc in self.farms)

    def to_dict(self):
        return {
            'id': self.id,
            'cycle_no': self.cycle_no,
            'is_active': self.is_active,
            'farms': [fc.to_dict() for fc in self.farms],
        }


def _sort_key(cycle_id):
    # numeric ids sort numerically, anything else as text
    try:
        return (0, int(cycle_id), '')
    except (ValueError, TypeError):
        return (1, 0, str(cycle_id))


class CycleRegistry:
    def __init__(self, cycles=None, id_factory=None):
        self._cycles = {}
        for cycle in cycles or []:
            self._cycles[cycle.id] = cycle
        self._id_factory = id_factory
        self._guard = threading.Lock()
        self._farm_locks = {}

    def _lock_for(self, farm_name):
        with self._guard:
            if farm_name not in self._farm_locks:
                self._farm_locks[farm_name] = threading.Lock()
            return self._farm_locks[farm_name]

    def _locked(self, farm_names):
        stack = ExitStack()
        # sorted so two multi-farm writers never wait on each other
        for name in sorted(set(farm_names)):
            stack.enter_context(self._lock_for(name))
        return stack

    def _next_id(self):
        if self._id_factory:
            return self._id_factory()
        numeric = [c for c in self._cycles if isinstance(c, int)]
        return (max(numeric) + 1) if numeric else 1

    # --- Reads ---

    def get(self, cycle_id):
        cycle = self._cycles.get(cycle_id)
        if cycle is None:
            for key, value in self._cycles.items():
                if str(key) == str(cycle_id):
                    return value
        return cycle

    def sorted_cycles(self):
        return sorted(self._cycles.values(), key=lambda c: _sort_key(c.id), reverse=True)

    def assignments_for_farm(self, farm_name):
        result = []
        for cycle in self.sorted_cycles():
            fc = cycle.farm(farm_name)
            if fc:
                result.append(fc)
        return result

    def cycles_for_farm(self, farm_name):
        return [c for c in self.sorted_cycles() if c.farm(farm_name)]

    def finished_cycles_for_farm(self, farm_name, ascending=False):
        finished = [fc for fc in self.assignments_for_farm(farm_name) if fc.finish_date]
        return sorted(finished, key=lambda fc: fc.finish_date, reverse=not ascending)

    def active_assignment(self, farm_name):
        active = [fc for fc in self.assignments_for_farm(farm_name) if fc.is_active]
        if not active:
            return None
        return max(active, key=lambda fc: (fc.start_date, _sort_key(fc.cycle_id)))

    def active_cycle(self):
        """Most recent cycle with any farm still running."""
        for cycle in self.sorted_cycles():
            if cycle.is_active:
                return cycle
        return None

    def resolve_cycle_for_date(self, farm_name, day):
        """Assignment covering `day` for a farm. Latest start date wins on overlap."""
        day = parse_date(day)
        if day is None:
            return None
        candidates = [
            fc for fc in self.assignments_for_farm(farm_name)
            if fc.start_date and within_range(day, fc.start_date, fc.finish_date)
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda fc: (fc.start_date, _sort_key(fc.cycle_id)))

    def is_entry_locked(self, farm_cycle, entry_date):
        """Entries dated after the finish date are locked; the finish day is open."""
        entry_date = parse_date(entry_date)
        if farm_cycle is None or farm_cycle.finish_date is None or entry_date is None:
            return False
        return entry_date > farm_cycle.finish_date

    def is_feed_order_locked(self, farm_cycle, delivery_dates):
        return any(self.is_entry_locked(farm_cycle, d) for d in delivery_dates)

    def _assignment(self, cycle_id, farm_name):
        cycle = self.get(cycle_id)
        if cycle is None:
            raise CycleValidationError("Cycle %s not found." % cycle_id)
        fc = cycle.farm(farm_name)
        if fc is None:
            raise CycleValidationError("Farm %s is not part of cycle %s." % (farm_name, cycle.cycle_no))
        return fc

    # --- Writes ---

    def start_cycle(self, cycle_no, farm_assignments, cycle_id=None):
        """Create a cycle. `farm_assignments` is a list of dicts with
        farm_name, crop_no and start_date."""
        cycle_no = (cycle_no or '').strip()
        if not cycle_no:
            raise CycleValidationError("Cycle number is required.")
        if not farm_assignments:
            raise CycleValidationError("Select at least one farm to start a cycle.")

        prepared = []
        seen = set()
        for entry in farm_assignments:
            farm_name = (entry.get('farm_name') or '').strip()
            crop_no = str(entry.get('crop_no') or '').strip()
            start_date = parse_date(entry.get('start_date'))
            if not farm_name:
                raise CycleValidationError("Farm name is required.")
            if farm_name in seen:
                raise CycleValidationError("Farm %s is listed more than once." % farm_name)
            if not crop_no or start_date is None:
                raise CycleValidationError("Crop number and start date are required for %s." % farm_name)
            seen.add(farm_name)
            prepared.append((farm_name, crop_no, start_date))

        with self._locked(seen):
            for farm_name, _, _ in prepared:
                existing = self.active_assignment(farm_name)
                if existing:
                    cycle = self.get(existing.cycle_id)
                    raise CycleValidationError(
                        "Error: Farm %s already has an active cycle (%s)." % (farm_name, cycle.cycle_no if cycle else existing.cycle_id))
            with self._guard:
                # id choice and insert must not interleave with starts on other farms
                new_id = cycle_id if cycle_id is not None else self._next_id()
                if new_id in self._cycles:
                    raise CycleValidationError("Cycle %s already exists." % new_id)
                cycle = Cycle(id=new_id, cycle_no=cycle_no, farms=[
                    FarmCycle(cycle_id=new_id, farm_name=f, crop_no=c, start_date=s) for f, c, s in prepared
                ])
                self._cycles[new_id] = cycle

        logger.info("Started cycle %s (%s) for %s", cycle_no, new_id, ', '.join(sorted(seen)))
        return cycle

    def finish_farm_cycle(self, cycle_id, farm_name, finish_date):
        finish_date = parse_date(finish_date)
        if finish_date is None:
            raise CycleValidationError("Finish date is required.")
        with self._locked([farm_name]):
            fc = self._assignment(cycle_id, farm_name)
            if fc.start_date and finish_date < fc.start_date:
                raise CycleValidationError("Finish date cannot be before the start date.")
            fc.finish_date = finish_date
        logger.info("Finished farm %s in cycle %s on %s", farm_name, cycle_id, finish_date)
        return fc

    def reopen_farm_cycle(self, cycle_id, farm_name):
        with self._locked([farm_name]):
            fc = self._assignment(cycle_id, farm_name)
            if fc.is_active:
                return fc
            other = self.active_assignment(farm_name)
            if other is not None and other is not fc:
                raise CycleValidationError(
                    "Farm %s already has an active cycle; finish it before reopening." % farm_name)
            fc.finish_date = None
        logger.info("Reopened farm %s in cycle %s", farm_name, cycle_id)
        return fc

    def update_farm_cycle(self, cycle_id, farm_name, crop_no, start_date):
        crop_no = str(crop_no or '').strip()
        start_date = parse_date(start_date)
        if not crop_no or start_date is None:
            raise CycleValidationError("Crop number and start date are required.")
        with self._locked([farm_name]):
            fc = self._assignment(cycle_id, farm_name)
            if fc.finish_date and start_date > fc.finish_date:
                raise CycleValidationError("Start date cannot be after the finish date.")
            fc.crop_no = crop_no
            fc.start_date = start_date
        return fc
