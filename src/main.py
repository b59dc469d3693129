"""
Guild Chronicle - Main Entry Point

Command-line front end for the guild timeline core: roll dice, resolve
range tables, do calendar arithmetic and run a seeded simulation of a
guild's contract lifecycle.
"""

import argparse
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from src.data_models import (
    DiceNotationError,
    DiceRoller,
    ScheduledEventType,
    seeded_random_source,
)
from src.generators import (
    CONTRACT_DEADLINE_TABLE,
    CONTRACT_QUANTITY_TABLE,
    STAFF_CONDITION_MODIFIERS,
    ContractBatchGenerator,
)
from src.observability import RunLog
from src.tables import RollModifier, TableResolver
from src.timeline import (
    DateValidationError,
    GameDate,
    ModuleEventConfig,
    ScheduledEvent,
    TimeAdvanceResult,
    TimelineModule,
    TimelineScheduler,
    TimelineSnapshotStore,
    add_days,
    days_difference,
    default_start_date,
    format_game_date,
    format_short_game_date,
    parse_short_game_date,
)


# Configure logging
def setup_logging(verbose: bool = False) -> None:
    """Configure logging based on verbosity level."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


logger = logging.getLogger(__name__)


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass
class GuildConfig:
    """Configuration for a guild simulation."""

    guild_id: str = "guild"
    start_date: Union[GameDate, str, None] = None
    seed: Optional[int] = None

    # Simulation
    days: int = 30
    staff_condition: str = "normal"
    new_contracts_every: str = "1d6 dias"

    # Output
    save_path: Optional[Path] = None
    run_log_path: Optional[Path] = None

    # Runtime options
    verbose: bool = False

    def __post_init__(self):
        """Normalize dates and paths."""
        if self.start_date is None:
            self.start_date = default_start_date()
        elif isinstance(self.start_date, str):
            self.start_date = parse_short_game_date(self.start_date)
        if isinstance(self.save_path, str):
            self.save_path = Path(self.save_path)
        if isinstance(self.run_log_path, str):
            self.run_log_path = Path(self.run_log_path)


# Tables the `table` subcommand can roll on
BUILTIN_TABLES = {
    CONTRACT_QUANTITY_TABLE.table_id: CONTRACT_QUANTITY_TABLE,
    CONTRACT_DEADLINE_TABLE.table_id: CONTRACT_DEADLINE_TABLE,
}


# =============================================================================
# GUILD CHRONICLE
# =============================================================================

class GuildChronicle:
    """
    Wires the core services together for one guild.

    Contracts are the only module attached: each NEW_CONTRACTS event posts
    a generated batch and schedules an expiration per contract with a
    deadline; the module then keeps one NEW_CONTRACTS event queued.
    """

    def __init__(self, config: GuildConfig):
        self.config = config
        self.run_log = RunLog()
        if config.seed is not None:
            self.run_log.set_seed(config.seed)
            source = seeded_random_source(config.seed)
        else:
            source = None

        self.dice_roller = DiceRoller(random_source=source, run_log=self.run_log)
        self.resolver = TableResolver(dice_roller=self.dice_roller, run_log=self.run_log)
        for table in BUILTIN_TABLES.values():
            self.resolver.register_table(table)

        self.scheduler = TimelineScheduler(run_log=self.run_log)
        self.snapshot_store: Optional[TimelineSnapshotStore] = None
        if config.save_path is not None:
            self.snapshot_store = TimelineSnapshotStore(config.save_path, self.scheduler)

        self.open_contracts = 0
        self.expired_contracts = 0

        self.contracts = TimelineModule(
            self.scheduler,
            "contracts",
            handlers={
                ScheduledEventType.NEW_CONTRACTS: self._on_new_contracts,
                ScheduledEventType.CONTRACT_EXPIRATION: self._on_contract_expiration,
            },
            reschedule=self._reschedule_contracts,
            dice_roller=self.dice_roller,
        )

    def _contract_configs(self) -> list[ModuleEventConfig]:
        return [
            ModuleEventConfig(
                event_type=ScheduledEventType.NEW_CONTRACTS,
                source="contracts",
                description="New contracts posted",
                roll_days=self.config.new_contracts_every,
            )
        ]

    def _reschedule_contracts(self, guild_id: str) -> None:
        self.contracts.schedule_module_events(guild_id, self._contract_configs())

    def _on_new_contracts(self, event: ScheduledEvent) -> None:
        generator = ContractBatchGenerator(
            staff_condition=self.config.staff_condition,
            resolver=self.resolver,
        )
        batch = generator.generate()
        self.open_contracts += batch.quantity

        for number, days in enumerate(batch.deadlines, start=1):
            if days is None:
                continue
            self.scheduler.schedule_event(
                event.guild_id,
                ScheduledEventType.CONTRACT_EXPIRATION,
                add_days(event.date, days),
                f"Contract {number} from {format_short_game_date(event.date)} expires",
                {"source": "contracts", "posted": event.date.to_dict()},
            )

        print(f"  {format_game_date(event.date)}: {batch.quantity} contracts posted")

    def _on_contract_expiration(self, event: ScheduledEvent) -> None:
        self.open_contracts = max(self.open_contracts - 1, 0)
        self.expired_contracts += 1

    def start(self) -> None:
        """Initialize the guild timeline and attach the modules."""
        self.scheduler.initialize_timeline(self.config.guild_id, self.config.start_date)
        self.contracts.attach()
        if self.snapshot_store is not None:
            self.snapshot_store.attach()
        self._reschedule_contracts(self.config.guild_id)

    def simulate(self, days: Optional[int] = None) -> list[TimeAdvanceResult]:
        """Advance one day at a time, returning every advance."""
        days = self.config.days if days is None else days
        results = [self.scheduler.advance_day(self.config.guild_id) for _ in range(days)]
        logger.info(f"Simulated {days} days for {self.config.guild_id}")
        if self.snapshot_store is not None:
            self.snapshot_store.flush()
        if self.config.run_log_path is not None:
            self.run_log.save(str(self.config.run_log_path))
        return results

    def status(self) -> str:
        """Get a one-screen summary of the guild."""
        stats = self.scheduler.get_stats(self.config.guild_id)
        lines = [
            f"Guild: {self.config.guild_id}",
            f"Date: {stats['current_date']}",
            f"Open contracts: {self.open_contracts}",
            f"Expired contracts: {self.expired_contracts}",
            f"Pending events: {stats['total_events']}",
        ]
        if stats["next_event_date"]:
            lines.append(f"Next event: {stats['next_event_date']} (in {stats['days_until_next_event']} days)")
        return "\n".join(lines)


# =============================================================================
# SUBCOMMANDS
# =============================================================================

def _make_roller(seed: Optional[int]) -> DiceRoller:
    return DiceRoller(random_source=seeded_random_source(seed) if seed is not None else None)


def cmd_roll(args: argparse.Namespace) -> int:
    """Roll each notation given."""
    roller = _make_roller(args.seed)
    for notation in args.notation:
        print(roller.roll(notation, "cli"))
    return 0


def cmd_table(args: argparse.Namespace) -> int:
    """Validate a built-in table, or roll on it."""
    table = BUILTIN_TABLES[args.table_id]
    resolver = TableResolver(dice_roller=_make_roller(args.seed))

    if args.validate:
        report = resolver.validate(table)
        print(f"{table.name}: {'valid' if report.is_valid else 'invalid'}")
        for error in report.errors:
            print(f"  error: {error}")
        for warning in report.warnings:
            print(f"  warning: {warning}")
        return 0 if report.is_valid else 1

    modifiers = [RollModifier(name=f"cli_{i}", value=v) for i, v in enumerate(args.modifier)]
    for _ in range(args.times):
        result = resolver.resolve(table, modifiers=modifiers)
        adjusted = f" -> {result.adjusted_roll}" if result.modifiers else ""
        clamped = " (clamped)" if result.clamped else ""
        print(f"{table.name} [{result.roll}{adjusted}]: {result.result}{clamped}")
    return 0


def cmd_date(args: argparse.Namespace) -> int:
    """Calendar arithmetic on a DD/MM/YYYY date."""
    date = parse_short_game_date(args.date) if args.date else default_start_date()
    print(format_game_date(date))

    if args.add is not None:
        print(f"+{args.add} days: {format_game_date(add_days(date, args.add))}")
    if args.diff is not None:
        other = parse_short_game_date(args.diff)
        print(f"Days until {format_game_date(other)}: {days_difference(date, other)}")
    return 0


def cmd_simulate(args: argparse.Namespace) -> int:
    """Run a guild simulation and print the outcome."""
    config = create_config_from_args(args)
    chronicle = GuildChronicle(config)
    chronicle.start()

    print(f"Simulating {config.days} days for {config.guild_id}...")
    results = chronicle.simulate()
    triggered = sum(len(r.triggered_events) for r in results)

    print()
    print(chronicle.status())
    print(f"Events triggered: {triggered}")
    if config.save_path is not None:
        print(f"Snapshot saved to: {config.save_path}")
    return 0


# =============================================================================
# ARGUMENTS
# =============================================================================

def parse_arguments(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Guild Chronicle - dice, tables and timelines for guild simulations",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m src.main roll 1d20 2d6+3               # Roll dice
  python -m src.main table contract_quantity -m 2  # Roll on a table with a modifier
  python -m src.main table contract_deadline --validate
  python -m src.main date 25/06/1000 --add 10      # Calendar arithmetic
  python -m src.main simulate --days 60 --seed 42  # Simulate a guild
        """
    )

    # General options
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Seed for reproducible rolls",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    roll_parser = subparsers.add_parser("roll", help="Roll dice notation")
    roll_parser.add_argument("notation", nargs="+", help="Dice notation, e.g. 2d6+3")
    roll_parser.set_defaults(handler=cmd_roll)

    table_parser = subparsers.add_parser("table", help="Roll on or validate a built-in table")
    table_parser.add_argument("table_id", choices=sorted(BUILTIN_TABLES), help="Table to use")
    table_parser.add_argument(
        "-m", "--modifier",
        type=int,
        action="append",
        default=[],
        help="Modifier added to the roll (repeatable)",
    )
    table_parser.add_argument(
        "-n", "--times",
        type=int,
        default=1,
        help="Number of rolls (default: 1)",
    )
    table_parser.add_argument(
        "--validate",
        action="store_true",
        help="Report structural problems instead of rolling",
    )
    table_parser.set_defaults(handler=cmd_table)

    date_parser = subparsers.add_parser("date", help="Calendar arithmetic")
    date_parser.add_argument("date", nargs="?", help="Date as DD/MM/YYYY (default: 01/01/1000)")
    date_parser.add_argument("--add", type=int, help="Days to add")
    date_parser.add_argument("--diff", type=str, help="Second date; prints days between")
    date_parser.set_defaults(handler=cmd_date)

    sim_parser = subparsers.add_parser("simulate", help="Simulate a guild timeline")
    sim_parser.add_argument("--guild", type=str, default="guild", help="Guild id (default: guild)")
    sim_parser.add_argument("--start", type=str, default=None, help="Start date as DD/MM/YYYY")
    sim_parser.add_argument("--days", type=int, default=30, help="Days to simulate (default: 30)")
    sim_parser.add_argument(
        "--staff",
        type=str,
        default="normal",
        choices=sorted(STAFF_CONDITION_MODIFIERS),
        help="Staff condition (default: normal)",
    )
    sim_parser.add_argument("--save", type=Path, default=None, help="Write a timeline snapshot here")
    sim_parser.add_argument("--run-log", type=Path, default=None, help="Write the run log here")
    sim_parser.set_defaults(handler=cmd_simulate)

    return parser.parse_args(argv)


def create_config_from_args(args: argparse.Namespace) -> GuildConfig:
    """Create GuildConfig from parsed `simulate` arguments."""
    return GuildConfig(
        guild_id=args.guild,
        start_date=args.start,
        seed=args.seed,
        days=args.days,
        staff_condition=args.staff,
        save_path=args.save,
        run_log_path=args.run_log,
        verbose=args.verbose,
    )


# =============================================================================
# MAIN ENTRY POINT
# =============================================================================

def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for CLI usage."""
    args = parse_arguments(argv)
    setup_logging(args.verbose)

    try:
        return args.handler(args)
    except (DiceNotationError, DateValidationError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
