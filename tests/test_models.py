"""Tests for the database models."""
import pytest
import os
import tempfile
from sqlalchemy import create_engine, inspect
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from scoreboard_tracker.models import (
    Base, Game, Player, GamePlayer, Property, Score, PlayerSettings, AppSetting
)


class TestModels:
    """Tests for the database models."""

    @pytest.fixture
    def db_engine(self):
        """Create a temporary SQLite database for testing."""
        fd, db_path = tempfile.mkstemp(suffix='.db')
        os.close(fd)

        engine = create_engine(f"sqlite:///{db_path}")
        Base.metadata.create_all(engine)

        yield engine

        engine.dispose()
        os.unlink(db_path)

    @pytest.fixture
    def db_session(self, db_engine):
        """Create a database session for testing."""
        Session = sessionmaker(bind=db_engine)
        session = Session()

        yield session

        session.close()

    def _game(self, filename="1700000000.lua", **kwargs):
        values = dict(
            filename=filename, timestamp=1700000000, mission_id="cm_habs",
            mission_name="Hab Dreyko", difficulty=2, result="won", duration_seconds=1500,
        )
        values.update(kwargs)
        return Game(**values)

    def test_tables_and_indexes(self, db_engine):
        """Test that every table and index is created."""
        inspector = inspect(db_engine)
        assert set(inspector.get_table_names()) >= {
            "games", "players", "game_players", "properties", "scores",
            "player_settings", "app_settings",
        }

        index_names = {idx["name"] for idx in inspector.get_indexes("games")}
        assert {"idx_games_timestamp", "idx_games_result",
                "idx_games_difficulty", "idx_games_mission_id"} <= index_names
        index_names = {idx["name"] for idx in inspector.get_indexes("scores")}
        assert {"idx_scores_property", "idx_scores_player_property",
                "idx_scores_game_property"} <= index_names

    def test_game_with_roster_and_scores(self, db_session):
        """Test creating a game with its roster and scores."""
        game = self._game()
        db_session.add(game)
        db_session.add(Player(id="bot_grunt", is_bot=1))
        db_session.flush()

        db_session.add(GamePlayer(game_id=game.id, player_id="bot_grunt", slot=-1, name="Grunt [BOT]"))
        db_session.add(Score(game_id=game.id, player_id="bot_grunt", property_id="dmg", value=75))
        db_session.commit()

        saved = db_session.query(Game).filter_by(filename="1700000000.lua").one()
        assert saved.modifier == ""
        assert [gp.player_id for gp in saved.roster] == ["bot_grunt"]
        assert saved.roster[0].quitter == 0
        assert saved.scores[0].value == 75.0

    def test_filename_is_unique(self, db_session):
        """Test that a log file can only be recorded once."""
        db_session.add(self._game())
        db_session.commit()

        db_session.add(self._game(timestamp=1))
        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()

    def test_property_and_settings_defaults(self, db_session):
        """Test column defaults on properties and settings."""
        db_session.add(Property(id="dmg", display_name="Damage", group_id="g",
                                group_name="G", sort_direction="DESC"))
        db_session.add(PlayerSettings(player_id="p"))
        db_session.add(AppSetting(key="range_mode", value="30d"))
        db_session.commit()

        prop = db_session.get(Property, "dmg")
        assert prop.visible == 1
        assert prop.is_summary == 0
        assert prop.row_order == 0
        assert prop.parent_id is None
        assert db_session.get(PlayerSettings, "p").is_main == 0
        assert db_session.get(AppSetting, "range_mode").value == "30d"
