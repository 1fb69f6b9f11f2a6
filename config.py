import os
import logging
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

basedir = os.path.abspath(os.path.dirname(__file__))

# Farm roster, in the order farms are listed on every cross-farm report
FARM_NAMES = ['B2/3', 'B2/4', 'B2/2', 'B2/1', 'B3/4', 'B3/1', 'B3/3', 'B3/2', 'She/1', 'She/2', 'She/3']

DEFAULT_HOUSE_COUNT = 12
SMALL_FARMS = ('B2/1', 'B3/4')  # 10 houses

PRODUCTION_LINE_MAP = {
    'B2/3': 'B084', 'B2/4': 'B085', 'B2/2': 'B086', 'B2/1': 'B087',
    'B3/4': 'B088', 'B3/1': 'B089', 'B3/3': 'B090', 'B3/2': 'B091',
    'She/1': 'B092', 'She/2': 'B093', 'She/3': 'B094',
}

SITE_NAMES = {'B2': 'Butain 2', 'B3': 'Butain 3', 'She': 'Shemalia'}

FEED_TYPES = ['Broiler Starter', 'Broiler Grower CR', 'Broiler Grower PL', 'Broiler Finisher']

# feed type -> per-house field of a delivery record
FEED_TYPE_FIELDS = {
    'Broiler Starter': 'starter',
    'Broiler Grower CR': 'grower_cr',
    'Broiler Grower PL': 'grower_pl',
    'Broiler Finisher': 'finisher',
}

ADMIN_ROLE = 'Admin'


def parse_roster(raw):
    """Parse 'B2/1:10,B2/2:12' into an ordered {farm: house_count} dict."""
    roster = {}
    if not raw:
        return roster
    for chunk in raw.split(','):
        chunk = chunk.strip()
        if not chunk:
            continue
        name, _, count = chunk.rpartition(':')
        try:
            roster[name.strip()] = int(count)
        except ValueError:
            logger.warning("Ignoring roster entry %r", chunk)
    return roster


def default_roster():
    return {name: (10 if name in SMALL_FARMS else DEFAULT_HOUSE_COUNT) for name in FARM_NAMES}


FARM_HOUSE_COUNTS = parse_roster(os.getenv('FARM_ROSTER')) or default_roster()


def get_house_count_for_farm(farm_name, roster=None):
    roster = roster if roster is not None else FARM_HOUSE_COUNTS
    return roster.get(farm_name, DEFAULT_HOUSE_COUNT)


def max_house_count(roster=None):
    roster = roster if roster is not None else FARM_HOUSE_COUNTS
    return max(roster.values()) if roster else DEFAULT_HOUSE_COUNT


def site_name_for_farm(farm_name):
    prefix = (farm_name or '').split('/')[0]
    return SITE_NAMES.get(prefix, prefix)


def database_url():
    url = os.getenv('DATABASE_URL')
    if url and url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    return url or 'sqlite:///' + os.path.join(basedir, 'instance', 'farm.db')
