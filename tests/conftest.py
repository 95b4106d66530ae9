"""Configuration for pytest."""
import tempfile
import pytest
from pathlib import Path

from scoreboard_tracker.config.config import TrackerConfig
from scoreboard_tracker.parser import ScoreboardParser
from scoreboard_tracker.repository import ScoreRepository
from scoreboard_tracker.store import MemoryBlobStore, SchemaStore

ALICE = "11111111-1111-1111-1111-111111111111"
BOB = "22222222-2222-2222-2222-222222222222"
CAROL = "33333333-3333-3333-3333-333333333333"

SAMPLE_LOG = f"""#mission;cm_habs;2;nil;won;1500
#players;2
0;{ALICE};Alice
1;{BOB};Bob
#group;row_offense_score;Offense
#row;dmg;1;3;<damage_dealt>;DESC
{ALICE};250
{BOB};100
{{#color(1)}}Grunt{{#reset()}} [BOT];75
#row;kills;2;2;<enemies_killed>;DESC;;true;;;nil;;melee:ranged
{ALICE};12
{BOB};9
#row;melee;3;1;Melee;DESC;;false;;;nil;;nil
{ALICE};7
#row;ranged;4;1;Ranged;DESC;;false;;;nil;;nil
{ALICE};5
"""


def make_log(mission="#mission;cm_habs;2;nil;won;1500", players=(ALICE,), rows=None):
    """Build a small log file text with one damage row."""
    lines = [mission, f"#players;{len(players)}"]
    for slot, player_id in enumerate(players):
        lines.append(f"{slot};{player_id};Player{slot}")
    if rows is None:
        rows = [("dmg", "<damage_dealt>", {player_id: 100 + i for i, player_id in enumerate(players)})]
    for order, (row_id, name, values) in enumerate(rows, start=1):
        lines.append(f"#row;{row_id};{order};{len(values)};{name};DESC")
        lines.extend(f"{player_id};{value}" for player_id, value in values.items())
    return "\n".join(lines) + "\n"


@pytest.fixture
def test_data_dir():
    """Create a temporary directory for test data."""
    temp_dir = tempfile.TemporaryDirectory()
    yield Path(temp_dir.name)
    temp_dir.cleanup()


@pytest.fixture
def sample_log_text():
    return SAMPLE_LOG


@pytest.fixture
def config():
    return TrackerConfig(batch_size=2, show_progress=False)


@pytest.fixture
def parser(config):
    return ScoreboardParser(config)


@pytest.fixture
def blob_store():
    return MemoryBlobStore()


@pytest.fixture
def store(blob_store):
    """An opened in-memory store backed by a dictionary blob store."""
    store = SchemaStore(blob_store).open()
    yield store
    store.close()


@pytest.fixture
def repository(store, config):
    return ScoreRepository(store, config)


@pytest.fixture
def log_dir(test_data_dir):
    """Directory pre-filled with three valid log files."""
    directory = test_data_dir / "logs"
    directory.mkdir()
    (directory / "1700000000.lua").write_text(SAMPLE_LOG, encoding="utf-8")
    (directory / "1700000100.lua").write_text(
        make_log("#mission;lm_rails;3;default;lost;1800", players=(ALICE, CAROL)), encoding="utf-8")
    (directory / "1700000200.lua").write_text(
        make_log("#mission;cm_habs;4;havoc;lost;600", players=(ALICE,)), encoding="utf-8")
    return directory
