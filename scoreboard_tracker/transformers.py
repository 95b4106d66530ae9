"""Token and name transformation helpers for scoreboard log parsing."""
import re
import math
import logging
from typing import Iterable, Optional

from scoreboard_tracker.errors import BadFilenameError

logger = logging.getLogger("scoreboard_tracker")

# Regular expressions for parsing
UUID_PATTERN = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$")
COLOR_CODE_PATTERN = re.compile(r"\{#color\([^)]*\)\}|\{#reset\(\)\}")
TIMESTAMP_PATTERN = re.compile(r"^\d+$")
LEADING_INT_PATTERN = re.compile(r"^\s*[+-]?\d+")

DEFAULT_GROUP_ID = "row_resource_score"
DEFAULT_GROUP_NAME = "Resource & Teamwork"
UNKNOWN_PLAYER_NAME = "Unknown"
NULL_TOKEN = "nil"

MISSION_NAMES = {
    "cm_habs": "Hab Dreyko",
    "cm_raid": "Dark Communion",
    "cm_archives": "Chasm Logistratum",
    "lm_rails": "Enclavum Baross",
    "lm_scavenge": "Mercantile HL-70-04",
    "lm_cooling": "Silo Cluster 18-66/a",
    "fm_armoury": "Power Matrix HL-17-36",
    "fm_cargo": "Consignment Yard HL-17-36",
    "fm_resurgence": "Smelter Complex HL-17-36",
    "dm_stockpile": "Ascension Riser 31",
    "dm_propaganda": "Comms-Plex 154/2f",
    "dm_rise": "Magistrati Oubliette TM8-707",
    "dm_forge": "Archivum Sycorax",
    "hm_complex": "Refinery Delta-17",
    "hm_cartel": "Excise Vault Spireside-13",
    "hm_strain": "Relay Station TRS-150",
    "km_enforcer": "Warren 6-19",
    "km_station": "Chasm Station HL-16-11",
    "km_heresy": "Vigil Station Oblivium",
    "km_enforcer_twins": "Orthus Offensive",
    "core_research": "Clandestium Gloriana",
    "op_train": "Rolling Steel",
    "op_no_mans_land": "Battle for Tertium",
    "hub_ship": "Mourningstar (Hub)",
    "psykhanium": "Mortis Trials",
}

DIFFICULTY_NAMES = {
    0: "Sedition",
    1: "Uprising",
    2: "Malice",
    3: "Heresy",
    4: "Damnation",
    5: "Auric",
}


def parse_filename_timestamp(filename: str, extension: str = ".lua") -> int:
    """Decode the match timestamp from a log filename.

    Args:
        filename: Base name of the log file, e.g. ``1700000000.lua``
        extension: Extension stripped (case-insensitively) before decoding

    Returns:
        The unix timestamp encoded in the filename

    Raises:
        BadFilenameError: If the remaining stem is not a decimal number
    """
    stem = filename
    if extension and stem.lower().endswith(extension.lower()):
        stem = stem[:-len(extension)]
    if not TIMESTAMP_PATTERN.match(stem):
        raise BadFilenameError(filename)
    return int(stem)


def convert_numeric(value_str: Optional[str]) -> Optional[int]:
    """Convert a string value to an integer."""
    try:
        return int(value_str.strip())
    except (ValueError, TypeError, AttributeError):
        logger.debug(f"Failed to convert to int: {value_str}")
        return None


def convert_leading_int(value_str: Optional[str]) -> Optional[int]:
    """Convert the leading integer of a string, ignoring anything after it.

    ``"1500.7"`` gives 1500 and ``"2abc"`` gives 2; a string without leading
    digits gives None.
    """
    if value_str is None:
        return None
    match = LEADING_INT_PATTERN.match(value_str)
    if not match:
        logger.debug(f"Failed to convert to int: {value_str}")
        return None
    return int(match.group(0))


def convert_float(value_str: Optional[str]) -> Optional[float]:
    """Convert a string value to a finite float."""
    try:
        value = float(value_str)
    except (ValueError, TypeError):
        logger.debug(f"Failed to convert to float: {value_str}")
        return None
    if not math.isfinite(value):
        logger.debug(f"Ignoring non-finite value: {value_str}")
        return None
    return value


def normalize_modifier(raw_modifier: str) -> str:
    """Map the placeholder modifiers ``nil``/``default`` to an empty string."""
    if raw_modifier in (NULL_TOKEN, "default", ""):
        return ""
    return raw_modifier


def null_if_nil(value: str) -> Optional[str]:
    """Return None for the log format's ``nil`` placeholder."""
    return None if value == NULL_TOKEN else value


def is_uuid(text: str) -> bool:
    """Test whether a participant token is a genuine account id."""
    return bool(UUID_PATTERN.match(text))


def strip_color_codes(text: str) -> str:
    """Remove inline color markup from text."""
    return COLOR_CODE_PATTERN.sub("", text).strip()


def generate_bot_identifier(raw_bot_name: str) -> str:
    """Create a stable ``bot_*`` identifier from a raw bot display name.

    The result depends only on the raw token, so the same bot name maps to
    the same id in every match.

    Args:
        raw_bot_name: Participant token as written in the log

    Returns:
        Synthetic player id, e.g. ``bot_grunt``
    """
    stripped = strip_color_codes(raw_bot_name)
    sanitized = stripped.lower().replace("[bot]", "").replace(" ", "_").strip("_")
    return f"bot_{sanitized}"


def clean_display_name(name: str) -> str:
    """Humanize angle-bracket wrapped internal names.

    ``<damage_dealt>`` becomes ``Damage Dealt``; other bracketed names only
    lose their brackets and plain names are returned unchanged.
    """
    if name.startswith("<") and name.endswith(">"):
        inner = name[1:-1]
        if "_" in inner and inner == inner.lower():
            return re.sub(r"\b\w", lambda m: m.group(0).upper(), inner.replace("_", " "))
        return inner
    return name


def _word_pattern(word: str):
    return re.compile(r"\b" + re.escape(word) + r"\b")


def expand_child_display_name(child_display: str, parent_display: str,
                              sibling_displays: Iterable[str]) -> str:
    """Disambiguate a single-word child property name using its parent's name.

    A child called ``Melee`` under ``Melee / Ranged Kills`` with a sibling
    ``Ranged`` becomes ``Melee Kills``.

    Args:
        child_display: Raw display name of the child
        parent_display: Display name of the parent property
        sibling_displays: Raw display names of the child's siblings

    Returns:
        The expanded name, or the original one when no expansion applies
    """
    if len(child_display.split(" ")) > 1:
        return child_display
    if not _word_pattern(child_display).search(parent_display):
        return child_display

    result = parent_display.replace(" / ", " ")
    for sibling in sibling_displays:
        result = _word_pattern(sibling).sub("", result, count=1)
    result = re.sub(r"\s+", " ", result).strip()
    return result or child_display


def mission_display_name(mission_id: str) -> str:
    """Look up the human readable mission name, falling back to the id."""
    return MISSION_NAMES.get(mission_id, mission_id)


def difficulty_display_name(difficulty: int) -> str:
    """Look up the difficulty tier name, falling back to the number."""
    return DIFFICULTY_NAMES.get(difficulty, str(difficulty))
