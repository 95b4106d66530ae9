"""Parser module for Darktide scoreboard log files."""
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple, Union

from scoreboard_tracker.config.config import TrackerConfig
from scoreboard_tracker.errors import MalformedDirectiveError
from scoreboard_tracker.transformers import (
    DEFAULT_GROUP_ID, DEFAULT_GROUP_NAME, UNKNOWN_PLAYER_NAME,
    parse_filename_timestamp, convert_numeric, convert_leading_int, convert_float, normalize_modifier,
    null_if_nil, is_uuid, strip_color_codes, generate_bot_identifier,
    clean_display_name, expand_child_display_name,
)

logger = logging.getLogger("scoreboard_tracker")

FIELD_SEPARATOR = ";"
CHILD_SEPARATOR = ":"


@dataclass
class RosterEntry:
    """A participant listed in the #players block."""
    slot: int
    player_id: str
    name: str


@dataclass
class PropertyDraft:
    """Metadata of one scoreboard row as declared in a log file."""
    id: str
    display_name: str
    group_id: str
    group_name: str
    sort_direction: str = "ASC"
    is_summary: bool = False
    parent_id: Optional[str] = None
    child_ids: Optional[str] = None
    row_order: int = 0
    visible: bool = True
    plugin_id: str = ""

    def child_list(self) -> List[str]:
        if not self.child_ids:
            return []
        return self.child_ids.split(CHILD_SEPARATOR)


@dataclass
class ParsedGame:
    """Draft match record produced from one log file."""
    filename: str
    timestamp: int
    mission_id: str = ""
    difficulty: int = 0
    modifier: str = ""
    result: str = "unknown"
    duration_seconds: int = 0
    players: List[RosterEntry] = field(default_factory=list)
    properties: Dict[str, PropertyDraft] = field(default_factory=dict)
    scores: List[Tuple[str, str, float]] = field(default_factory=list)  # (property_id, player_id, value)
    discovered_bots: Dict[str, str] = field(default_factory=dict)  # bot id -> cleaned name
    discovered_extra_players: List[str] = field(default_factory=list)


# Directive variants produced by the line tokenizer

@dataclass(frozen=True)
class MissionDirective:
    mission_id: str
    difficulty: int
    modifier: str
    result: str
    duration_seconds: int


@dataclass(frozen=True)
class PlayersDirective:
    count: int


@dataclass(frozen=True)
class GroupDirective:
    group_id: str
    group_name: str


@dataclass(frozen=True)
class RowDirective:
    row_id: str
    row_order: int
    data_line_count: int
    display_name: str
    sort_direction: str
    visible: bool
    plugin_id: str
    parent_id: Optional[str]
    child_ids: Optional[str]


@dataclass(frozen=True)
class DataLine:
    fields: Tuple[str, ...]


Directive = Union[MissionDirective, PlayersDirective, GroupDirective, RowDirective, DataLine]


def _field(parts: List[str], index: int, default: str) -> str:
    return parts[index] if len(parts) > index else default


def _parse_mission(parts: List[str]) -> MissionDirective:
    return MissionDirective(
        mission_id=parts[1].strip(),
        difficulty=convert_leading_int(parts[2]) or 0,
        modifier=normalize_modifier(_field(parts, 3, "")),
        result=_field(parts, 4, "unknown"),
        duration_seconds=convert_leading_int(_field(parts, 5, "0")) or 0,
    )


def _parse_row(parts: List[str]) -> RowDirective:
    # Positions 6, 8 and 11 are written by the plugin but not used here
    row_id = parts[1]
    return RowDirective(
        row_id=row_id,
        row_order=convert_numeric(_field(parts, 2, "0")) or 0,
        data_line_count=convert_numeric(_field(parts, 3, "0")) or 0,
        display_name=clean_display_name(parts[4]) if len(parts) > 4 else row_id,
        sort_direction=_field(parts, 5, "ASC"),
        visible=_field(parts, 7, "nil") != "false",
        plugin_id=_field(parts, 9, ""),
        parent_id=null_if_nil(_field(parts, 10, "nil")),
        child_ids=null_if_nil(_field(parts, 12, "nil")),
    )


def tokenize_line(line: str, line_number: int = 0) -> Optional[Directive]:
    """Turn one stripped, non-blank line into a directive.

    Args:
        line: The line with surrounding whitespace removed
        line_number: 1-based position, used in error messages

    Returns:
        The directive, a DataLine for untagged lines, or None for unknown tags

    Raises:
        MalformedDirectiveError: If a known directive has too few fields
    """
    parts = line.split(FIELD_SEPARATOR)
    tag = parts[0]

    if not tag.startswith("#"):
        return DataLine(tuple(parts))
    if tag == "#mission":
        if len(parts) < 3:
            raise MalformedDirectiveError(line_number, line)
        return _parse_mission(parts)
    if tag == "#players":
        if len(parts) < 2:
            raise MalformedDirectiveError(line_number, line)
        return PlayersDirective(count=convert_numeric(parts[1]) or 0)
    if tag == "#group":
        if len(parts) < 2:
            raise MalformedDirectiveError(line_number, line)
        return GroupDirective(group_id=parts[1], group_name=_field(parts, 2, parts[1]))
    if tag == "#row":
        if len(parts) < 2:
            raise MalformedDirectiveError(line_number, line)
        return _parse_row(parts)
    return None


class PropertyHierarchyResolver:
    """Assign parents to properties and disambiguate child display names.

    Runs once per parsed match, after all directives have been consumed.
    Properties are visited in declaration order so every decision is
    deterministic.
    """

    def __init__(self, properties: Dict[str, PropertyDraft]):
        self.properties = properties

    def resolve(self) -> None:
        self.link_orphaned_children()
        self.attach_plugin_rows()
        self.break_cycles()
        self.expand_display_names()

    def link_orphaned_children(self) -> None:
        """Parent each unparented child to the tightest list that names it.

        Candidates are gathered before any link is made. The candidate with
        the fewest listed children wins; equal lengths go to the parent
        declared first.
        """
        candidates: Dict[str, List[Tuple[str, int]]] = {}
        for row_id, metadata in self.properties.items():
            child_list = metadata.child_list()
            for child_id in child_list:
                child = self.properties.get(child_id)
                if child is None or child.parent_id is not None or child_id == row_id:
                    continue
                candidates.setdefault(child_id, []).append((row_id, len(child_list)))

        for child_id, options in candidates.items():
            parent_id, _ = min(options, key=lambda option: option[1])
            self.properties[child_id].parent_id = parent_id

    def attach_plugin_rows(self) -> None:
        """Attach hidden parentless rows to their plugin's only visible root."""
        plugin_roots: Dict[str, List[str]] = {}
        for row_id, metadata in self.properties.items():
            if metadata.plugin_id and metadata.visible and metadata.parent_id is None:
                plugin_roots.setdefault(metadata.plugin_id, []).append(row_id)

        for row_id, metadata in self.properties.items():
            if metadata.parent_id is not None or metadata.visible or not metadata.plugin_id:
                continue
            roots = plugin_roots.get(metadata.plugin_id, [])
            if len(roots) == 1 and roots[0] != row_id:
                metadata.parent_id = roots[0]

    def break_cycles(self) -> None:
        """Drop any parent link that would make the hierarchy loop."""
        for row_id in self.properties:
            path: Set[str] = {row_id}
            node = self.properties[row_id]
            while node.parent_id is not None and node.parent_id in self.properties:
                if node.parent_id in path:
                    logger.warning(f"Dropping cyclic parent link {node.id} -> {node.parent_id}")
                    node.parent_id = None
                    break
                path.add(node.parent_id)
                node = self.properties[node.parent_id]

    def expand_display_names(self) -> None:
        raw_names = {row_id: metadata.display_name for row_id, metadata in self.properties.items()}
        for row_id, metadata in self.properties.items():
            parent = self.properties.get(metadata.parent_id) if metadata.parent_id else None
            if parent is None:
                continue
            siblings = [
                raw_names[sibling_id]
                for sibling_id, sibling in self.properties.items()
                if sibling_id != row_id and sibling.parent_id == metadata.parent_id
            ]
            metadata.display_name = expand_child_display_name(
                raw_names[row_id], parent.display_name, siblings
            )


class ScoreboardParser:
    """Parser for scoreboard log files."""

    def __init__(self, config: Optional[TrackerConfig] = None):
        """Initialize the parser with the given configuration.

        Args:
            config: Tracker configuration; only the file extension is used
        """
        self.config = config or TrackerConfig()
        self.logger = logging.getLogger("scoreboard_tracker")

    def parse_file(self, file_path: str) -> ParsedGame:
        """Parse a single log file from disk.

        Args:
            file_path: Path to the log file to parse

        Returns:
            The parsed game record

        Raises:
            BadFilenameError: If the filename is not a timestamp
        """
        path = Path(file_path)
        return self.parse_content(path.name, path.read_text(encoding="utf-8"))

    def parse_content(self, filename: str, content: str) -> ParsedGame:
        """Parse the text of one log file into a draft game record.

        Parse-level anomalies (malformed directives, unparseable values) are
        logged and skipped so that a damaged file still yields partial data.

        Args:
            filename: Base name of the file, which encodes the timestamp
            content: Full text of the file

        Returns:
            The parsed game record with its property hierarchy resolved

        Raises:
            BadFilenameError: If the filename is not a timestamp
        """
        timestamp = parse_filename_timestamp(filename, self.config.file_extension)
        lines = content.replace("\r\n", "\n").strip().split("\n")
        game = ParsedGame(filename=filename, timestamp=timestamp)

        group_id = DEFAULT_GROUP_ID
        group_name = DEFAULT_GROUP_NAME
        registered: Set[str] = set()
        index = 0

        while index < len(lines):
            line = lines[index].strip()
            index += 1
            if not line:
                continue

            try:
                directive = tokenize_line(line, index)
            except MalformedDirectiveError as e:
                self.logger.warning(f"{filename}: {e}")
                continue

            if isinstance(directive, MissionDirective):
                game.mission_id = directive.mission_id
                game.difficulty = directive.difficulty
                game.modifier = directive.modifier
                game.result = directive.result
                game.duration_seconds = directive.duration_seconds
            elif isinstance(directive, PlayersDirective):
                index = self._read_players(lines, index, directive.count, game, registered)
            elif isinstance(directive, GroupDirective):
                group_id = directive.group_id
                group_name = directive.group_name
            elif isinstance(directive, RowDirective):
                game.properties[directive.row_id] = PropertyDraft(
                    id=directive.row_id,
                    display_name=directive.display_name,
                    group_id=group_id,
                    group_name=group_name,
                    sort_direction=directive.sort_direction,
                    is_summary=directive.child_ids is not None and CHILD_SEPARATOR in directive.child_ids,
                    parent_id=directive.parent_id,
                    child_ids=directive.child_ids,
                    row_order=directive.row_order,
                    visible=directive.visible,
                    plugin_id=directive.plugin_id,
                )
                index = self._read_row_data(lines, index, directive, game, registered)

        PropertyHierarchyResolver(game.properties).resolve()
        self.logger.debug(
            f"Parsed {filename}: {len(game.players)} players, "
            f"{len(game.properties)} properties, {len(game.scores)} scores"
        )
        return game

    def _read_players(self, lines: List[str], index: int, count: int,
                      game: ParsedGame, registered: Set[str]) -> int:
        """Consume ``count`` roster lines and return the next line index."""
        for _ in range(count):
            if index >= len(lines):
                break
            parts = lines[index].strip().split(FIELD_SEPARATOR)
            index += 1
            if len(parts) < 2:
                self.logger.debug(f"{game.filename}: skipping short roster line {index}")
                continue
            slot = convert_numeric(parts[0])
            player_id = parts[1]
            name = _field(parts, 2, UNKNOWN_PLAYER_NAME)
            game.players.append(RosterEntry(slot=slot if slot is not None else -1,
                                            player_id=player_id, name=name))
            registered.add(player_id)
        return index

    def _read_row_data(self, lines: List[str], index: int, row: RowDirective,
                       game: ParsedGame, registered: Set[str]) -> int:
        """Consume up to ``row.data_line_count`` value lines.

        A blank line or a directive ends the block early; that line is left
        for the main loop to dispatch.
        """
        for _ in range(row.data_line_count):
            if index >= len(lines):
                break
            data_line = lines[index].strip()
            if not data_line or data_line.startswith("#"):
                break
            index += 1

            parts = data_line.split(FIELD_SEPARATOR)
            value = convert_float(parts[1]) if len(parts) > 1 else None
            if value is None:
                self.logger.debug(f"{game.filename}: unparseable value for {row.row_id} at line {index}")
                continue

            player_id = self._resolve_participant(parts[0], game, registered)
            game.scores.append((row.row_id, player_id, value))
        return index

    @staticmethod
    def _resolve_participant(token: str, game: ParsedGame, registered: Set[str]) -> str:
        if is_uuid(token):
            if token not in registered and token not in game.discovered_extra_players:
                game.discovered_extra_players.append(token)
            return token
        bot_id = generate_bot_identifier(token)
        game.discovered_bots[bot_id] = strip_color_codes(token)
        return bot_id
