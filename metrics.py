import math

from dates import days_since

METRICS_REGISTRY = {
    # --- Placement & Mortality ---
    'chicks_placed': {'label': 'Chicks Placed', 'unit': '', 'type': 'raw'},
    'mortality': {'label': 'Mortality (Count)', 'unit': '', 'type': 'raw'},
    'culls': {'label': 'Culls (Count)', 'unit': '', 'type': 'raw'},
    'total_mortality': {'label': 'Cum. Mortality + Culls', 'unit': '', 'type': 'derived'},
    'mortality_pct': {'label': 'Mortality (%)', 'unit': '%', 'type': 'derived'},
    'culls_pct': {'label': 'Culls (%)', 'unit': '%', 'type': 'derived'},
    'cum_mortality_pct': {'label': 'Cum. Mortality (%)', 'unit': '%', 'type': 'derived'},
    'balance_chicks': {'label': 'Balance Chicks', 'unit': '', 'type': 'derived'},
    'livability_pct': {'label': 'Livability (%)', 'unit': '%', 'type': 'derived'},

    # --- Age ---
    'age': {'label': 'Age (Days)', 'unit': 'days', 'type': 'derived'},
    'catching_age': {'label': 'Catching Age (Days)', 'unit': 'days', 'type': 'derived'},
    'current_age': {'label': 'Current Age (Days)', 'unit': 'days', 'type': 'derived'},

    # --- Feed ---
    'total_feed_kg': {'label': 'Total Feed (Kg)', 'unit': 'Kg', 'type': 'derived'},

    # --- Catching ---
    'electric_counter': {'label': 'Birds Caught (Electric Counter)', 'unit': '', 'type': 'raw'},
    'catch_culls': {'label': 'Catching Culls', 'unit': '', 'type': 'raw'},
    'catch_doa': {'label': 'Catching DOA', 'unit': '', 'type': 'raw'},
    'catch_loss': {'label': 'Catching Loss (Kg)', 'unit': 'Kg', 'type': 'raw'},
    'scale_weight': {'label': 'Scale Weight (Kg)', 'unit': 'Kg', 'type': 'raw'},
    'scale_weight_with_loss': {'label': 'Scale Weight incl. Loss (Kg)', 'unit': 'Kg', 'type': 'derived'},
    'avg_live_weight': {'label': 'Avg Live Weight (Kg)', 'unit': 'Kg', 'type': 'derived'},
    'avg_live_weight_with_loss': {'label': 'Avg Live Weight incl. Loss (Kg)', 'unit': 'Kg', 'type': 'derived'},
    'catch_livability_pct': {'label': 'Livability at Catching (%)', 'unit': '%', 'type': 'derived'},

    # --- Performance ---
    'fcr': {'label': 'FCR', 'unit': '', 'type': 'derived'},
    'production_index': {'label': 'Production Index', 'unit': '', 'type': 'derived'},
}


def round_safe(val, digits=2):
    if val is None: return 0.0
    try:
        val = float(val)
    except (ValueError, TypeError):
        return 0.0
    if math.isnan(val) or math.isinf(val):
        return 0.0
    return round(val, digits)


def safe_div(num, den, multiplier=100.0):
    # Zero, negative, missing or NaN denominators all read as "no data"
    if den and den > 0 and num is not None:
        result = (num * multiplier) / den
        if math.isnan(result):
            return 0.0
        return result
    return 0.0


def mortality_pct(count, placed):
    return safe_div(count, placed)


def livability_pct(placed, mortality):
    return safe_div((placed or 0) - (mortality or 0), placed)


def avg_live_weight(scale_weight, birds):
    return safe_div(scale_weight, birds, 1.0)


def scale_weight_with_loss(scale_weight, catch_loss):
    return (scale_weight or 0) + (catch_loss or 0)


def feed_conversion_ratio(total_feed_kg, live_weight_kg):
    return safe_div(total_feed_kg, live_weight_kg, 1.0)


def catch_livability_pct(birds_caught, balance_chicks):
    """Birds caught as a share of the birds still alive before catching."""
    return safe_div(birds_caught, balance_chicks)


def production_index(avg_weight, livability, fcr, age_days):
    if fcr and fcr > 0 and age_days and age_days > 0:
        return (avg_weight * livability) / (fcr * age_days)
    return 0.0


def catching_age(placement_date, finish_date, as_of=None):
    """
    Whole days from placement to finish. For a running cycle the query date
    stands in and the value is reported as the current age instead.
    Returns (age, label).
    """
    end, label = (finish_date, 'catching_age') if finish_date else (as_of, 'current_age')
    age = days_since(placement_date, end)
    if age is None or age < 0:
        age = 0
    return age, label


def calculate_house_metrics(d):
    """
    Fill in the derived fields of a house (or summary) row in place.

    `d` needs chicks_placed, total_mortality, total_feed_kg, electric_counter,
    scale_weight, catch_loss and age. Summary rows pass summed counts, so the
    ratios are recomputed from totals rather than averaged.
    """
    placed = d.get('chicks_placed') or 0
    mortality = d.get('total_mortality') or 0

    d['balance_chicks'] = placed - mortality
    d['cum_mortality_pct'] = mortality_pct(mortality, placed)
    d['livability_pct'] = livability_pct(placed, mortality)

    d['scale_weight_with_loss'] = scale_weight_with_loss(d.get('scale_weight'), d.get('catch_loss'))
    d['avg_live_weight'] = avg_live_weight(d.get('scale_weight') or 0, d.get('electric_counter'))
    d['avg_live_weight_with_loss'] = avg_live_weight(d['scale_weight_with_loss'], d.get('electric_counter'))
    d['catch_livability_pct'] = catch_livability_pct(d.get('electric_counter') or 0, d['balance_chicks'])
    d['fcr'] = feed_conversion_ratio(d.get('total_feed_kg') or 0, d['scale_weight_with_loss'])

    # Index uses the weight including catching loss and the livability at catching
    d['production_index'] = production_index(
        d['avg_live_weight_with_loss'], d['catch_livability_pct'], d['fcr'], d.get('age') or 0)
    return d
