"""Command-line interface for the Scoreboard Tracker."""
import logging
import datetime
import click
from tqdm import tqdm

from .config.config import TrackerConfig, configure_logging
from .ingest import DirectorySource, IngestionCoordinator
from .repository import GameQuery, RESULT_FILTERS, ScoreRepository
from .store import FileBlobStore, SchemaStore
from .errors import PersistenceError
from . import __version__

logger = logging.getLogger(__name__)


def _open_repository(config: TrackerConfig) -> ScoreRepository:
    store = SchemaStore(FileBlobStore(config.data_dir)).open()
    return ScoreRepository(store, config)


def _format_time(timestamp: int) -> str:
    return datetime.datetime.fromtimestamp(timestamp).strftime("%Y-%m-%d %H:%M")


@click.group()
@click.version_option(version=__version__)
@click.option("--data-dir", "-d", help="Directory holding the database snapshot", default=None)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.pass_context
def main(ctx, data_dir, verbose):
    """Darktide Scoreboard Tracker CLI."""
    config = TrackerConfig.from_env(data_dir=data_dir)
    if verbose:
        config.log_level = logging.DEBUG
    configure_logging(config)
    ctx.obj = config


@main.command()
@click.argument("directory", type=click.Path(exists=True, file_okay=False), required=False)
@click.option("--batch-size", "-b", help="Files per committed batch", type=int, default=None)
@click.option("--quiet", "-q", is_flag=True, help="Suppress progress display")
@click.pass_obj
def ingest(config, directory, batch_size, quiet):
    """Ingest new scoreboard files from DIRECTORY (default: the last one used)."""
    if batch_size:
        config.batch_size = batch_size
    repository = _open_repository(config)
    store = repository.store

    if directory is None:
        directory = store.load_source()
        if directory is None:
            raise click.UsageError("No directory given and none remembered from a previous run")
        logger.info(f"Using remembered directory: {directory}")

    source = DirectorySource(directory, config.file_extension)
    coordinator = IngestionCoordinator(repository, config=config)

    progress_bar = None
    if config.show_progress and not quiet:
        progress_bar = tqdm(unit="file", desc="Ingesting")

    def on_progress(progress):
        if progress_bar is None:
            logger.info(progress.message)
            return
        progress_bar.total = progress.total
        progress_bar.n = progress.processed
        progress_bar.set_postfix_str(progress.message)
        progress_bar.refresh()

    try:
        summary = coordinator.ingest(source, progress_callback=on_progress)
    finally:
        if progress_bar is not None:
            progress_bar.close()

    try:
        store.remember_source(source.handle)
        if summary.ingested:
            repository.auto_setup_default_player()
    except PersistenceError as e:
        logger.error(str(e))

    click.echo(f"Ingested {summary.ingested} of {summary.total} files ({summary.errors} errors)")
    if summary.persistence_failures:
        click.echo(f"Warning: {summary.persistence_failures} snapshot writes failed", err=True)


@main.command()
@click.pass_obj
def info(config):
    """Display information about the stored games."""
    repository = _open_repository(config)
    count = repository.get_game_count()
    if not count:
        click.echo("No games found in database")
        return

    filters = repository.get_filters()
    players = repository.get_players()
    main_player = repository.get_main_player()
    start, end = filters.time_range

    click.echo(f"Games: {count}")
    click.echo(f"Period: {_format_time(start)} - {_format_time(end)}")
    click.echo(f"Players: {sum(1 for p in players if not p.is_bot)} humans, "
               f"{sum(1 for p in players if p.is_bot)} bots")
    click.echo(f"Missions: {len(filters.missions)}")
    click.echo(f"Difficulties: {', '.join(name for _, name in filters.difficulties)}")
    if filters.modifiers:
        click.echo(f"Modifiers: {', '.join(filters.modifiers)}")
    if main_player:
        click.echo(f"Main player: {main_player}")


@main.command()
@click.pass_obj
def properties(config):
    """List the scoreboard properties by group."""
    repository = _open_repository(config)
    for group in repository.get_properties():
        click.echo(f"{group.group_name} [{group.group_id}]")
        depth = {}
        for prop in group.properties:
            depth[prop.id] = depth.get(prop.parent_id, -1) + 1 if prop.parent_id else 0
            marker = "" if prop.visible else " (hidden)"
            click.echo(f"  {'  ' * depth[prop.id]}{prop.display_name} [{prop.id}]{marker}")


@main.command()
@click.pass_obj
def players(config):
    """List known players."""
    repository = _open_repository(config)
    click.echo("  Player                                 Games  Names")
    click.echo("  -----------------------------------------------------------")
    for player in repository.get_players():
        flags = " *" if player.is_main else ""
        label = player.custom_name or player.id
        click.echo(f"  {label:<38} {player.game_count:5}  {', '.join(player.names)}{flags}")


@main.command()
@click.option("--property", "-p", "property_ids", multiple=True, required=True,
              help="Property id to include (repeatable)")
@click.option("--result", type=click.Choice(RESULT_FILTERS), default="all")
@click.option("--difficulty", type=int, multiple=True)
@click.option("--mission", multiple=True)
@click.option("--modifier", multiple=True)
@click.option("--since", type=int, default=None, help="Unix timestamp lower bound")
@click.option("--until", type=int, default=None, help="Unix timestamp upper bound")
@click.option("--last-n", type=int, default=None, help="Only the N most recent games")
@click.pass_obj
def games(config, property_ids, result, difficulty, mission, modifier, since, until, last_n):
    """Show games with the selected property values per player."""
    repository = _open_repository(config)
    records = repository.get_games(GameQuery(
        property_ids=property_ids,
        result_filter=result,
        difficulties=difficulty,
        missions=mission,
        modifiers=modifier,
        start_time=since,
        end_time=until,
        last_n_games=last_n,
    ))
    if not records:
        click.echo("Query returned no games")
        return

    for record in records:
        click.echo(f"\n{_format_time(record.timestamp)}  {record.mission_name}  "
                   f"difficulty {record.difficulty}  {record.result}  {record.duration_seconds}s")
        for player_id, scores in record.scores.items():
            name = record.players.get(player_id, player_id)
            quitter = " (left)" if player_id in record.quitters else ""
            values = "  ".join(f"{pid}={scores[pid]:g}" for pid in property_ids if pid in scores)
            click.echo(f"  {name + quitter:<24} {values}")
    click.echo(f"\nReturned {len(records)} games")


@main.command("set-player")
@click.argument("player_id")
@click.option("--name", default=None, help="Custom display name")
@click.option("--color", default=None, help="Display color, e.g. #e94560")
@click.pass_obj
def set_player(config, player_id, name, color):
    """Customize a player's display name and color (no options clears them)."""
    repository = _open_repository(config)
    repository.save_player_settings(player_id, name, color)
    click.echo(f"Updated settings for {player_id}")


@main.command("set-main")
@click.argument("player_id")
@click.pass_obj
def set_main(config, player_id):
    """Designate the main player."""
    repository = _open_repository(config)
    repository.save_main_player(player_id)
    click.echo(f"{player_id} is now the main player")


@main.command()
@click.argument("key")
@click.argument("value", required=False)
@click.pass_obj
def setting(config, key, value):
    """Read a setting, or write it when VALUE is given."""
    repository = _open_repository(config)
    if value is None:
        stored = repository.get_app_setting(key)
        click.echo(stored if stored is not None else "")
    else:
        repository.save_app_setting(key, value)


@main.command()
@click.option("--settings", "settings_only", is_flag=True, help="Only clear the app settings")
@click.confirmation_option(prompt="This deletes stored data. Continue?")
@click.pass_obj
def clear(config, settings_only):
    """Delete all ingested games, or only the app settings."""
    repository = _open_repository(config)
    if settings_only:
        repository.clear_app_settings()
        click.echo("App settings cleared")
    else:
        repository.clear_database()
        click.echo("Database cleared")


if __name__ == "__main__":
    main()
