# Kundali Core - derivation modules
from .errors import InvalidInputError, KundaliError, MismatchWarning, UnknownSignError
from .signs import (
    Planet, PlanetPosition, ResolvedChart, house_from_sign, resolve_position,
    resolve_positions, to_sign_number,
)
from .nakshatra import Nakshatra, nakshatra_from_longitude
from .dasha import DashaPeriod, DashaSystem, DashaTimeline, active_stack, compute_dasha
from .yogas import (
    DoshaMatch, YogaMatch, detect_all, detect_divisional_support, detect_divisional_weakness,
    divisional_summary,
)
from .divisional_charts import build_divisional_chart, divisional_sign

__all__ = [
    "KundaliError", "UnknownSignError", "InvalidInputError", "MismatchWarning",
    "Planet", "PlanetPosition", "ResolvedChart",
    "house_from_sign", "resolve_position", "resolve_positions", "to_sign_number",
    "Nakshatra", "nakshatra_from_longitude",
    "DashaPeriod", "DashaSystem", "DashaTimeline", "active_stack", "compute_dasha",
    "YogaMatch", "DoshaMatch", "detect_all", "detect_divisional_support",
    "detect_divisional_weakness", "divisional_summary",
    "build_divisional_chart", "divisional_sign",
]
