"""Insert and query operations over the scoreboard database."""
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set, Tuple

from sqlalchemy import select, update, delete, func, and_, or_, text
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from scoreboard_tracker.config.config import TrackerConfig
from scoreboard_tracker.models import (
    Game, Player, GamePlayer, Property, Score, PlayerSettings, AppSetting
)
from scoreboard_tracker.parser import ParsedGame
from scoreboard_tracker.store import SchemaStore
from scoreboard_tracker.transformers import (
    UNKNOWN_PLAYER_NAME, mission_display_name, difficulty_display_name
)

logger = logging.getLogger(__name__)

RESULT_FILTERS = ("all", "won", "lost", "won_and_long_lost")
DEFAULT_PLAYER_NAME = "Me"
DEFAULT_PLAYER_COLOR = "#e94560"


@dataclass
class PropertyInfo:
    id: str
    display_name: str
    sort_direction: str
    is_summary: bool
    parent_id: Optional[str]
    row_order: int
    visible: bool


@dataclass
class PropertyGroup:
    group_id: str
    group_name: str
    properties: List[PropertyInfo] = field(default_factory=list)


@dataclass
class FilterOptions:
    missions: List[Tuple[str, str]]  # (mission_id, mission_name)
    difficulties: List[Tuple[int, str]]  # (difficulty, display name)
    modifiers: List[str]
    time_range: Tuple[int, int]


@dataclass
class PlayerSummary:
    id: str
    is_bot: bool
    names: List[str]
    game_count: int
    custom_name: Optional[str] = None
    color: Optional[str] = None
    is_main: bool = False


@dataclass
class GameQuery:
    """Filter parameters for :meth:`ScoreRepository.get_games`.

    ``last_n_games`` selects the N most recent games matching the other
    filters; the time window still applies when both are given.
    """
    property_ids: Sequence[str] = ()
    result_filter: str = "all"
    difficulties: Sequence[int] = ()
    missions: Sequence[str] = ()
    modifiers: Sequence[str] = ()
    start_time: Optional[int] = None
    end_time: Optional[int] = None
    last_n_games: Optional[int] = None

    def __post_init__(self):
        if self.result_filter not in RESULT_FILTERS:
            raise ValueError(f"Unknown result filter: {self.result_filter}")


@dataclass
class GameRecord:
    id: int
    filename: str
    timestamp: int
    mission_id: str
    mission_name: str
    difficulty: int
    modifier: str
    result: str
    duration_seconds: int
    players: Dict[str, str] = field(default_factory=dict)
    quitters: Set[str] = field(default_factory=set)
    scores: Dict[str, Dict[str, float]] = field(default_factory=dict)


class ScoreRepository:
    """Repository for games, players, properties, scores and settings."""

    def __init__(self, store: SchemaStore, config: Optional[TrackerConfig] = None):
        self.store = store
        self.config = config or TrackerConfig()

    # -- Inserts ---------------------------------------------------------

    def insert_game(self, game: ParsedGame, session: Optional[Session] = None) -> int:
        """Insert a parsed game with its roster, properties and scores.

        Without a session the insert runs in its own committed transaction.
        With a session it runs inside a SAVEPOINT, so a failure rolls back
        only this game and leaves the caller's transaction usable.

        Args:
            game: The parsed game
            session: Optional session owning the outer transaction

        Returns:
            The surrogate id of the new game row

        Raises:
            sqlalchemy.exc.IntegrityError: If the filename was already ingested
        """
        if session is None:
            with self.store.session() as own_session, own_session.begin():
                return self._insert_game(own_session, game)
        with session.begin_nested():
            return self._insert_game(session, game)

    def _insert_game(self, session: Session, game: ParsedGame) -> int:
        result = session.execute(
            Game.__table__.insert().values(
                filename=game.filename,
                timestamp=game.timestamp,
                mission_id=game.mission_id,
                mission_name=mission_display_name(game.mission_id),
                difficulty=game.difficulty,
                modifier=game.modifier,
                result=game.result,
                duration_seconds=game.duration_seconds,
            )
        )
        game_id = result.inserted_primary_key[0]

        player_rows = []
        roster_rows = []
        for entry in game.players:
            player_rows.append({"id": entry.player_id, "is_bot": 0})
            roster_rows.append({"game_id": game_id, "player_id": entry.player_id,
                                "slot": entry.slot, "name": entry.name, "quitter": 0})
        for bot_id, clean_name in game.discovered_bots.items():
            player_rows.append({"id": bot_id, "is_bot": 1})
            roster_rows.append({"game_id": game_id, "player_id": bot_id,
                                "slot": -1, "name": clean_name, "quitter": 0})
        for extra_id in game.discovered_extra_players:
            player_rows.append({"id": extra_id, "is_bot": 0})
            roster_rows.append({"game_id": game_id, "player_id": extra_id,
                                "slot": -1, "name": UNKNOWN_PLAYER_NAME, "quitter": 1})

        if player_rows:
            session.execute(sqlite_insert(Player).on_conflict_do_nothing(), player_rows)
        if roster_rows:
            session.execute(sqlite_insert(GamePlayer).on_conflict_do_nothing(), roster_rows)

        property_rows = [
            {
                "id": row_id,
                "display_name": meta.display_name,
                "group_id": meta.group_id,
                "group_name": meta.group_name,
                "sort_direction": meta.sort_direction,
                "is_summary": int(meta.is_summary),
                "parent_id": meta.parent_id,
                "child_ids": meta.child_ids,
                "row_order": meta.row_order,
                "visible": int(meta.visible),
            }
            for row_id, meta in game.properties.items()
        ]
        if property_rows:
            self._drop_stored_cycles(session, property_rows)
            session.execute(sqlite_insert(Property).prefix_with("OR REPLACE"), property_rows)

        chunk_size = max(1, self.config.score_chunk_size)
        score_stmt = sqlite_insert(Score).on_conflict_do_nothing()
        for start in range(0, len(game.scores), chunk_size):
            batch = game.scores[start:start + chunk_size]
            session.execute(score_stmt, [
                {"game_id": game_id, "player_id": player_id,
                 "property_id": property_id, "value": value}
                for property_id, player_id, value in batch
            ])

        logger.debug(f"Inserted game {game.filename} as id {game_id} with {len(game.scores)} scores")
        return game_id

    def _drop_stored_cycles(self, session: Session, property_rows: List[dict]) -> None:
        """Clear parent links in ``property_rows`` that would loop through stored rows.

        The replaced rows are combined with the stored ancestors they point
        at; any new row whose parent chain leads back to itself loses its
        parent.
        """
        new_parents = {row["id"]: row["parent_id"] for row in property_rows}
        parents: Dict[str, Optional[str]] = {}
        queried: Set[str] = set()
        frontier = {p for p in new_parents.values() if p is not None and p not in new_parents}
        while frontier:
            queried |= frontier
            found = session.execute(
                select(Property.id, Property.parent_id).where(Property.id.in_(list(frontier)))
            ).all()
            frontier = set()
            for prop_id, parent_id in found:
                parents[prop_id] = parent_id
                if parent_id is not None and parent_id not in new_parents and parent_id not in queried:
                    frontier.add(parent_id)
        parents.update(new_parents)

        for row in property_rows:
            row_id = row["id"]
            path = {row_id}
            node = parents.get(row_id)
            while node is not None and node in parents:
                if node == row_id:
                    logger.warning(f"Dropping parent link {row_id} -> {row['parent_id']} that would form a cycle")
                    row["parent_id"] = None
                    parents[row_id] = None
                    break
                if node in path:
                    break
                path.add(node)
                node = parents[node]

    def backfill_unknown_player_names(self, session: Optional[Session] = None) -> int:
        """Replace placeholder roster names with a name known from another game.

        Returns:
            Number of roster rows updated
        """
        stmt = text("""
            UPDATE game_players
            SET name = (
                SELECT gp2.name FROM game_players gp2
                WHERE gp2.player_id = game_players.player_id
                  AND gp2.name != :unknown
                LIMIT 1
            )
            WHERE name = :unknown
              AND EXISTS (
                SELECT 1 FROM game_players gp2
                WHERE gp2.player_id = game_players.player_id
                  AND gp2.name != :unknown
              )
        """)
        params = {"unknown": UNKNOWN_PLAYER_NAME}
        if session is not None:
            updated = session.execute(stmt, params).rowcount
        else:
            with self.store.session() as own_session, own_session.begin():
                updated = own_session.execute(stmt, params).rowcount
        if updated:
            logger.info(f"Backfilled {updated} unknown player names")
        return updated

    # -- Queries ---------------------------------------------------------

    def get_game_count(self) -> int:
        with self.store.session() as session:
            return session.execute(select(func.count()).select_from(Game)).scalar_one()

    def get_existing_filenames(self) -> Set[str]:
        with self.store.session() as session:
            return set(session.execute(select(Game.filename)).scalars())

    def has_game(self, filename: str) -> bool:
        with self.store.session() as session:
            return session.execute(
                select(Game.id).where(Game.filename == filename)
            ).first() is not None

    def get_properties(self) -> List[PropertyGroup]:
        """Return all properties grouped by category in tree order.

        Within a group, each parent is followed by its children depth-first.
        Groups are ordered by the smallest row order they contain.
        """
        with self.store.session() as session:
            rows = session.execute(
                select(Property).order_by(Property.row_order, Property.id)
            ).scalars().all()
            all_props = {
                row.id: PropertyInfo(
                    id=row.id,
                    display_name=row.display_name,
                    sort_direction=row.sort_direction,
                    is_summary=bool(row.is_summary),
                    parent_id=row.parent_id,
                    row_order=row.row_order,
                    visible=bool(row.visible),
                )
                for row in rows
            }
            group_of = {row.id: (row.group_id, row.group_name) for row in rows}

        children_of: Dict[Optional[str], List[str]] = defaultdict(list)
        for prop_id, prop in all_props.items():
            parent = prop.parent_id if prop.parent_id in all_props else None
            children_of[parent].append(prop_id)

        ordered: List[PropertyInfo] = []
        visited: Set[str] = set()

        def walk(parent_id: Optional[str]) -> None:
            for prop_id in children_of.get(parent_id, []):
                if prop_id in visited:
                    continue
                visited.add(prop_id)
                ordered.append(all_props[prop_id])
                walk(prop_id)

        walk(None)
        # Rows caught in a parent cycle are unreachable from the roots
        for prop_id in all_props:
            if prop_id not in visited:
                visited.add(prop_id)
                ordered.append(all_props[prop_id])
                walk(prop_id)

        groups: Dict[str, PropertyGroup] = {}
        min_order: Dict[str, int] = {}
        for prop in ordered:
            group_id, group_name = group_of[prop.id]
            if group_id not in groups:
                groups[group_id] = PropertyGroup(group_id=group_id, group_name=group_name)
                min_order[group_id] = prop.row_order
            groups[group_id].properties.append(prop)
            min_order[group_id] = min(min_order[group_id], prop.row_order)

        return sorted(groups.values(), key=lambda group: min_order[group.group_id])

    def get_filters(self) -> FilterOptions:
        """Distinct values available for the dashboard filters."""
        with self.store.session() as session:
            missions = session.execute(
                select(Game.mission_id, Game.mission_name)
                .where(Game.mission_id != "")
                .distinct()
                .order_by(Game.mission_name)
            ).all()
            difficulties = session.execute(
                select(Game.difficulty).distinct().order_by(Game.difficulty)
            ).scalars().all()
            modifiers = session.execute(
                select(Game.modifier).where(Game.modifier != "").distinct().order_by(Game.modifier)
            ).scalars().all()
            min_ts, max_ts = session.execute(
                select(func.min(Game.timestamp), func.max(Game.timestamp))
            ).one()

        return FilterOptions(
            missions=[(mission_id, name) for mission_id, name in missions],
            difficulties=[(d, difficulty_display_name(d)) for d in difficulties],
            modifiers=list(modifiers),
            time_range=(min_ts or 0, max_ts or 0),
        )

    def get_players(self) -> List[PlayerSummary]:
        """All known players with their seen names, game counts and settings."""
        with self.store.session() as session:
            counts = dict(session.execute(
                select(GamePlayer.player_id, func.count()).group_by(GamePlayer.player_id)
            ).all())
            names: Dict[str, List[str]] = defaultdict(list)
            for player_id, name in session.execute(
                select(GamePlayer.player_id, GamePlayer.name).order_by(GamePlayer.game_id)
            ):
                if name not in names[player_id]:
                    names[player_id].append(name)
            rows = session.execute(
                select(Player, PlayerSettings)
                .outerjoin(PlayerSettings, PlayerSettings.player_id == Player.id)
                .order_by(Player.is_bot, Player.id)
            ).all()

            return [
                PlayerSummary(
                    id=player.id,
                    is_bot=bool(player.is_bot),
                    names=names.get(player.id, []),
                    game_count=counts.get(player.id, 0),
                    custom_name=settings.custom_name if settings else None,
                    color=settings.color if settings else None,
                    is_main=bool(settings.is_main) if settings else False,
                )
                for player, settings in rows
            ]

    def get_games(self, query: GameQuery) -> List[GameRecord]:
        """Load games matching the query with rosters and requested scores.

        Only scores for ``query.property_ids`` are returned; an empty
        property selection returns no games at all.
        """
        property_ids = list(query.property_ids)
        if not property_ids:
            return []

        conditions = []
        if query.result_filter == "won":
            conditions.append(Game.result == "won")
        elif query.result_filter == "lost":
            conditions.append(Game.result == "lost")
        elif query.result_filter == "won_and_long_lost":
            conditions.append(or_(
                Game.result == "won",
                and_(Game.result == "lost",
                     Game.duration_seconds > self.config.long_game_threshold),
            ))
        if query.difficulties:
            conditions.append(Game.difficulty.in_(list(query.difficulties)))
        if query.missions:
            conditions.append(Game.mission_id.in_(list(query.missions)))
        if query.modifiers:
            conditions.append(Game.modifier.in_(list(query.modifiers)))
        if query.start_time is not None:
            conditions.append(Game.timestamp >= query.start_time)
        if query.end_time is not None:
            conditions.append(Game.timestamp <= query.end_time)

        with self.store.session() as session:
            if query.last_n_games and query.last_n_games > 0:
                recent_ids = session.execute(
                    select(Game.id).where(*conditions)
                    .order_by(Game.timestamp.desc(), Game.id.desc())
                    .limit(query.last_n_games)
                ).scalars().all()
                if not recent_ids:
                    return []
                stmt = select(Game).where(Game.id.in_(recent_ids))
            else:
                stmt = select(Game).where(*conditions)
            games = session.execute(
                stmt.order_by(Game.timestamp.asc(), Game.id.asc())
            ).scalars().all()
            if not games:
                return []

            records = {
                g.id: GameRecord(
                    id=g.id,
                    filename=g.filename,
                    timestamp=g.timestamp,
                    mission_id=g.mission_id,
                    mission_name=g.mission_name,
                    difficulty=g.difficulty,
                    modifier=g.modifier,
                    result=g.result,
                    duration_seconds=g.duration_seconds,
                )
                for g in games
            }
            game_ids = list(records)

            for game_id, player_id, name, quitter in session.execute(
                select(GamePlayer.game_id, GamePlayer.player_id, GamePlayer.name, GamePlayer.quitter)
                .where(GamePlayer.game_id.in_(game_ids))
            ):
                records[game_id].players[player_id] = name
                if quitter:
                    records[game_id].quitters.add(player_id)

            for game_id, player_id, property_id, value in session.execute(
                select(Score.game_id, Score.player_id, Score.property_id, Score.value)
                .where(Score.game_id.in_(game_ids), Score.property_id.in_(property_ids))
            ):
                records[game_id].scores.setdefault(player_id, {})[property_id] = value

        return list(records.values())

    # -- Settings --------------------------------------------------------

    def save_player_settings(self, player_id: str, custom_name: Optional[str],
                             color: Optional[str]) -> None:
        """Set a player's custom name and color; clearing both removes the row."""
        with self.store.session() as session, session.begin():
            if not custom_name and not color:
                session.execute(delete(PlayerSettings).where(PlayerSettings.player_id == player_id))
            else:
                stmt = sqlite_insert(PlayerSettings).values(
                    player_id=player_id, custom_name=custom_name, color=color
                )
                session.execute(stmt.on_conflict_do_update(
                    index_elements=[PlayerSettings.player_id],
                    set_={"custom_name": stmt.excluded.custom_name, "color": stmt.excluded.color},
                ))
        self.store.save()

    def save_main_player(self, player_id: str) -> None:
        """Make ``player_id`` the only main player."""
        with self.store.session() as session, session.begin():
            session.execute(
                update(PlayerSettings).where(PlayerSettings.is_main == 1).values(is_main=0)
            )
            stmt = sqlite_insert(PlayerSettings).values(player_id=player_id, is_main=1)
            session.execute(stmt.on_conflict_do_update(
                index_elements=[PlayerSettings.player_id], set_={"is_main": 1}
            ))
        self.store.save()

    def get_main_player(self) -> Optional[str]:
        with self.store.session() as session:
            return session.execute(
                select(PlayerSettings.player_id).where(PlayerSettings.is_main == 1)
            ).scalar_one_or_none()

    def save_app_setting(self, key: str, value: Optional[str]) -> None:
        with self.store.session() as session, session.begin():
            stmt = sqlite_insert(AppSetting).values(key=key, value=value)
            session.execute(stmt.on_conflict_do_update(
                index_elements=[AppSetting.key], set_={"value": stmt.excluded.value}
            ))
        self.store.save()

    def get_app_setting(self, key: str) -> Optional[str]:
        with self.store.session() as session:
            return session.execute(
                select(AppSetting.value).where(AppSetting.key == key)
            ).scalar_one_or_none()

    def clear_app_settings(self) -> None:
        with self.store.session() as session, session.begin():
            session.execute(delete(AppSetting))
        self.store.save()

    def auto_setup_default_player(self) -> Optional[str]:
        """Mark the most frequent human player as "Me" on first run.

        Does nothing once any player has a custom name or color.

        Returns:
            The player id that was set up, or None
        """
        with self.store.session() as session:
            customized = session.execute(
                select(PlayerSettings.player_id).where(or_(
                    PlayerSettings.custom_name.is_not(None),
                    PlayerSettings.color.is_not(None),
                )).limit(1)
            ).first()
            if customized is not None:
                return None
            top = session.execute(
                select(GamePlayer.player_id, func.count().label("cnt"))
                .join(Player, and_(Player.id == GamePlayer.player_id, Player.is_bot == 0))
                .group_by(GamePlayer.player_id)
                .order_by(func.count().desc(), GamePlayer.player_id)
                .limit(1)
            ).first()
        if top is None:
            return None

        player_id = top.player_id
        self.save_player_settings(player_id, DEFAULT_PLAYER_NAME, DEFAULT_PLAYER_COLOR)
        self.save_main_player(player_id)
        logger.info(f"Set up {player_id} as the default main player")
        return player_id

    def clear_database(self) -> None:
        """Drop all data and persist the empty database."""
        self.store.reset()
