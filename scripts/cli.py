"""CLI entry point for the stay ledger.

Usage:
    pms init
    pms property add "Beach House"
    pms booking add --guest "Ana Diaz" --property "Beach House" \\
        --platform Booking.com --amount 0 --check-in 2025-03-01 --check-out 2025-03-04
    pms booking list --date 2025-03-02
    pms reconcile payouts.csv --start 2025-03-01 --end 2025-03-31 -o report.xlsx
    pms serve
"""

import logging
import sys
from contextlib import contextmanager
from dataclasses import replace
from datetime import date
from pathlib import Path
from typing import Iterator

import click
import duckdb
from dotenv import find_dotenv, load_dotenv

# Load .env by walking upward from the CWD.
_dotenv_path = find_dotenv(usecwd=True)
if _dotenv_path:
    load_dotenv(_dotenv_path)

from pms.bulk_import import import_bookings, resolve_property_id, resolve_rules
from pms.catalog import (
    booking_status_counts,
    count_rows_display,
    list_tables,
    missing_tables,
)
from pms.config import MATCH_MODES, Settings, load_settings
from pms.errors import PmsError, ValidationError
from pms.filters import DateRange
from pms.income import income_summary, income_window, platform_income
from pms.infra import SCHEMA_TABLES, connect
from pms.ingest import parse_file_string, read_file_input
from pms.ledger import parse_ledger_records
from pms.models import Booking, NewBooking, to_date
from pms.queries import (
    bookings_checking_in,
    bookings_checking_out,
    bookings_for_day,
    unassigned_for_day,
)
from pms.reconcile import run_reconciliation
from pms.report import write_report
from pms.store import BookingStore

log = logging.getLogger(__name__)


def _settings(ctx: click.Context) -> Settings:
    return ctx.obj["settings"]


@contextmanager
def _open_store(ctx: click.Context) -> Iterator[BookingStore]:
    """Open the configured database; domain errors become ClickExceptions."""
    settings = _settings(ctx)
    try:
        conn = connect(settings.db_path)
    except duckdb.Error as e:
        raise click.ClickException(f"Cannot open {settings.db_path}: {e}")
    try:
        yield BookingStore(conn)
    except (PmsError, FileNotFoundError) as e:
        raise click.ClickException(str(e)) from e
    finally:
        conn.close()


def _range(start: str | None, end: str | None) -> DateRange:
    if not start or not end:
        raise ValidationError("--start and --end are required")
    return DateRange.parse(start, end)


def _money(value) -> str:
    return "-" if value is None else f"{value:,.2f}"


def _booking_line(b: Booking, tag: str | None = None) -> str:
    where = b.property_name or f"#{b.property_id}"
    if b.room_name:
        where += f"/{b.room_name}"
    parts = [
        f"{b.id:>4}",
        f"{b.reservation_id:<24}",
        f"{b.guest_name[:24]:<24}",
        f"{b.check_in_date}..{b.check_out_date}",
        f"{b.platform.value:<11}",
        f"{where:<20}",
        f"{_money(b.amount):>10}",
        b.status.value,
    ]
    if tag:
        parts.insert(1, f"{tag:<8}")
    return "  ".join(parts)


@click.group()
@click.option(
    "--db",
    "db_path",
    type=click.Path(path_type=Path),
    default=None,
    help="Database path (default: PMS_DB_PATH, [tool.pms].db_path, else pms.db)",
)
@click.option("--quiet", "-q", is_flag=True, help="Suppress verbose output")
@click.pass_context
def main(ctx: click.Context, db_path: Path | None, quiet: bool):
    """Stay ledger — bookings, occupancy, income and payout reconciliation."""
    try:
        settings = load_settings(dotenv=False)
    except ValidationError as e:
        raise click.ClickException(str(e))
    if db_path is not None:
        settings = replace(settings, db_path=str(db_path))

    level = (
        logging.WARNING
        if quiet
        else getattr(logging, settings.log_level.upper(), logging.INFO)
    )
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )
    ctx.obj = {"settings": settings}


# --- Database ---


@main.command()
@click.pass_context
def init(ctx: click.Context):
    """Create the database and its tables (idempotent)."""
    with _open_store(ctx) as store:
        missing = missing_tables(store.conn)
    click.echo(f"Database: {_settings(ctx).db_path}")
    for name in SCHEMA_TABLES:
        click.echo(f"  {'MISSING' if name in missing else 'ok':<8} {name}")


@main.command()
@click.pass_context
def status(ctx: click.Context):
    """Show table row counts and bookings per status."""
    with _open_store(ctx) as store:
        click.echo(f"Database: {_settings(ctx).db_path}\n")
        click.echo("Tables:")
        for name in list_tables(store.conn):
            click.echo(f"  {name:<20} {count_rows_display(store.conn, name):>8}")
        counts = booking_status_counts(store.conn)
    if counts:
        click.echo("\nBookings:")
        for name, n in counts.items():
            click.echo(f"  {name:<20} {n:>8}")


# --- Catalogue ---


@main.group(name="property")
def property_group():
    """Manage properties."""


@property_group.command(name="add")
@click.argument("name")
@click.pass_context
def property_add(ctx: click.Context, name: str):
    with _open_store(ctx) as store:
        prop = store.add_property(name)
    click.echo(f"Added property {prop.id}: {prop.name}")


@property_group.command(name="list")
@click.pass_context
def property_list(ctx: click.Context):
    with _open_store(ctx) as store:
        props = store.list_properties()
    if not props:
        click.echo("No properties.")
    for p in props:
        click.echo(f"{p.id:>4}  {p.name}")


@main.group(name="room")
def room_group():
    """Manage rooms."""


@room_group.command(name="add")
@click.argument("property_ref")
@click.argument("name")
@click.pass_context
def room_add(ctx: click.Context, property_ref: str, name: str):
    """Add room NAME to PROPERTY_REF (an id or a name keyword)."""
    with _open_store(ctx) as store:
        room = store.add_room(resolve_property_id(store, property_ref), name)
    click.echo(f"Added room {room.id}: {room.name} (property {room.property_id})")


@room_group.command(name="list")
@click.option("--property", "property_ref", default=None, help="Property id or name")
@click.pass_context
def room_list(ctx: click.Context, property_ref: str | None):
    with _open_store(ctx) as store:
        property_id = resolve_property_id(store, property_ref) if property_ref else None
        rooms = store.list_rooms(property_id)
    if not rooms:
        click.echo("No rooms.")
    for r in rooms:
        click.echo(f"{r.id:>4}  {r.name:<20} property {r.property_id}")


# --- Bookings ---


@main.group(name="booking")
def booking_group():
    """Create, list and update bookings."""


@booking_group.command(name="add")
@click.option("--guest", required=True, help="Guest name")
@click.option("--property", "property_ref", required=True, help="Property id or name")
@click.option("--platform", default="Direct", show_default=True)
@click.option("--payment", "payment_method", default="online", show_default=True)
@click.option("--amount", default="0", show_default=True, help="Collected amount")
@click.option("--check-in", required=True, help="YYYY-MM-DD")
@click.option("--check-out", required=True, help="YYYY-MM-DD")
@click.option("--reference", default="", help="Reservation reference (default: generated)")
@click.option("--room", "room_id", type=int, default=None, help="Room id")
@click.option("--expected", default=None, help="Expected payout (net of commission)")
@click.option("--payment-date", default=None, help="YYYY-MM-DD")
@click.option("--email", default=None)
@click.option("--phone", default=None)
@click.option("--id-number", default=None)
@click.option("--unit-type", default=None)
@click.pass_context
def booking_add(ctx: click.Context, property_ref: str, **opts):
    """Create a booking."""
    with _open_store(ctx) as store:
        new = NewBooking.from_dict(
            {
                "guestName": opts["guest"],
                "propertyId": resolve_property_id(store, property_ref),
                "roomId": opts["room_id"],
                "platform": opts["platform"],
                "paymentMethod": opts["payment_method"],
                "amount": opts["amount"],
                "checkInDate": opts["check_in"],
                "checkOutDate": opts["check_out"],
                "reservationId": opts["reference"],
                "expectedPayment": opts["expected"],
                "paymentDate": opts["payment_date"],
                "email": opts["email"],
                "phone": opts["phone"],
                "idNumber": opts["id_number"],
                "unitType": opts["unit_type"],
            }
        )
        booking = store.create_booking(new)
    click.echo(f"Created booking {booking.id} ({booking.reservation_id})")


@booking_group.command(name="list")
@click.option("--date", "day", default=None, help="Day view (default: today)")
@click.option("--start", default=None, help="Range start (YYYY-MM-DD)")
@click.option("--end", default=None, help="Range end (YYYY-MM-DD)")
@click.option(
    "--by",
    type=click.Choice(["checkin", "checkout"]),
    default="checkin",
    show_default=True,
    help="Date the --start/--end range applies to",
)
@click.option("--unassigned", is_flag=True, help="Arrivals on --date without a room")
@click.option("--property", "property_ref", default=None, help="Property id or name")
@click.pass_context
def booking_list(
    ctx: click.Context,
    day: str | None,
    start: str | None,
    end: str | None,
    by: str,
    unassigned: bool,
    property_ref: str | None,
):
    """List bookings for a day, a date range, or unassigned arrivals."""
    with _open_store(ctx) as store:
        property_id = resolve_property_id(store, property_ref) if property_ref else None
        if unassigned:
            if not day:
                raise ValidationError("--date is required with --unassigned")
            lines = [_booking_line(b) for b in unassigned_for_day(store, to_date(day))]
        elif start or end:
            rng = _range(start, end)
            if by == "checkout":
                found = bookings_checking_out(store, rng, property_id=property_id)
            else:
                found = bookings_checking_in(store, rng, property_id)
            lines = [_booking_line(b) for b in found]
        else:
            the_day = to_date(day) if day else date.today()
            lines = [
                _booking_line(e.booking, e.type)
                for e in bookings_for_day(store, the_day, property_id)
            ]
    if not lines:
        click.echo("No bookings.")
    for line in lines:
        click.echo(line)


@booking_group.command(name="checkin")
@click.argument("booking_id", type=int)
@click.pass_context
def booking_checkin(ctx: click.Context, booking_id: int):
    with _open_store(ctx) as store:
        b = store.check_in(booking_id)
    click.echo(f"Booking {b.id} is {b.status.value}")


@booking_group.command(name="checkout")
@click.argument("booking_id", type=int)
@click.pass_context
def booking_checkout(ctx: click.Context, booking_id: int):
    with _open_store(ctx) as store:
        b = store.check_out(booking_id)
    click.echo(f"Booking {b.id} is {b.status.value}")


@booking_group.command(name="assign")
@click.argument("booking_id", type=int)
@click.argument("room_id", type=int)
@click.pass_context
def booking_assign(ctx: click.Context, booking_id: int, room_id: int):
    with _open_store(ctx) as store:
        b = store.assign_room(booking_id, room_id)
    click.echo(f"Booking {b.id} assigned to room {b.room_name}")


@booking_group.command(name="cancel")
@click.argument("booking_id", type=int)
@click.pass_context
def booking_cancel(ctx: click.Context, booking_id: int):
    """Cancel a booking and release its reservation reference."""
    with _open_store(ctx) as store:
        b = store.cancel(booking_id)
    click.echo(f"Booking {b.id} is {b.status.value}")


@booking_group.command(name="delete")
@click.argument("booking_id", type=int)
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def booking_delete(ctx: click.Context, booking_id: int, yes: bool):
    """Permanently delete a booking."""
    if not yes:
        click.confirm(f"Permanently delete booking {booking_id}?", abort=True)
    with _open_store(ctx) as store:
        store.delete_permanently(booking_id)
    click.echo(f"Deleted booking {booking_id}")


# --- Workflows ---


@main.command(name="import")
@click.argument("file")
@click.option("--property", "property_ref", default=None, help="Default property id or name")
@click.option(
    "--rule",
    "rules",
    multiple=True,
    help="keyword=property: unit types containing keyword go to that property",
)
@click.option("--start", default=None, help="Flag references checking out from this day")
@click.option("--end", default=None, help="... to this day")
@click.option("--save", is_flag=True, help="Create bookings (default: dry run)")
@click.pass_context
def import_cmd(
    ctx: click.Context,
    file: str,
    property_ref: str | None,
    rules: tuple[str, ...],
    start: str | None,
    end: str | None,
    save: bool,
):
    """Import a reservation export (CSV/XLSX, sheet as file.xlsx#Sheet)."""
    with _open_store(ctx) as store:
        records = read_file_input(parse_file_string(file))
        report = import_bookings(
            store,
            records,
            default_property_id=(
                resolve_property_id(store, property_ref) if property_ref else None
            ),
            rules=resolve_rules(store, rules),
            window=_range(start, end) if (start or end) else None,
            save=save,
        )
    for row in report.rows:
        note = row.error_message or ""
        if row.existing_booking_id is not None:
            note = f"booking {row.existing_booking_id}"
        click.echo(
            f"{row.row:>4}  {row.status:<8} {row.reservation_id:<20} "
            f"{row.guest_name[:24]:<24} {_money(row.expected_payment):>10}  {note}"
        )
    click.echo(
        "\n" + ", ".join(f"{k}: {v}" for k, v in report.counts.items())
        + ("" if save else "  (dry run, use --save to create bookings)")
    )


@main.command()
@click.argument("file")
@click.option("--start", required=True, help="Check-out window start (YYYY-MM-DD)")
@click.option("--end", required=True, help="Check-out window end (YYYY-MM-DD)")
@click.option("--platform", default="Booking.com", show_default=True)
@click.option(
    "--match",
    "match_mode",
    type=click.Choice(list(MATCH_MODES)),
    default=None,
    help="Reference matching (default: [tool.pms].match_mode, else substring)",
)
@click.option(
    "--output",
    "-o",
    type=click.Path(path_type=Path),
    default=None,
    help="Write the report to a .csv or .xlsx file",
)
@click.pass_context
def reconcile(
    ctx: click.Context,
    file: str,
    start: str,
    end: str,
    platform: str,
    match_mode: str | None,
    output: Path | None,
):
    """Reconcile a payout ledger against stored bookings."""
    settings = _settings(ctx)
    with _open_store(ctx) as store:
        parsed = parse_ledger_records(
            read_file_input(parse_file_string(file)), settings.min_reference_length
        )
        result = run_reconciliation(
            store,
            parsed.rows,
            _range(start, end),
            platform=platform,
            mode=match_mode or settings.match_mode,
            tolerance=settings.amount_tolerance,
            dropped=parsed.dropped,
            rejected=parsed.rejected,
        )
        if output is not None:
            write_report(result, output)

    for group in result.groups.values():
        click.echo(
            f"\n{group.property}  csv {_money(group.csv_total)}  "
            f"db {_money(group.db_total)}  safe {_money(group.safe_total)}"
        )
        for r in group.rows:
            guests = ", ".join(b.guest_name for b in r.matches) or (
                r.ledger.guest if r.ledger else ""
            )
            click.echo(
                f"  {r.status.value:<25} {r.reference:<20} "
                f"{_money(r.csv_net):>10} {_money(r.db_total):>10}  {guests}"
            )
    counts = ", ".join(f"{k}: {v}" for k, v in result.counts.items() if v)
    click.echo(f"\n{counts or 'No rows.'}")
    if result.dropped or result.rejected:
        click.echo(
            f"Ledger lines skipped: {result.dropped} without reference, "
            f"{result.rejected} with a too-short reference"
        )
    if output is not None:
        click.echo(f"Report: {output}")


@main.command()
@click.option(
    "--type",
    "kind",
    type=click.Choice(["daily", "monthly", "range"]),
    default="daily",
    show_default=True,
)
@click.option("--date", "day", default=None, help="Day for --type daily")
@click.option("--month", default=None, help="YYYY-MM for --type monthly")
@click.option("--from", "start", default=None, help="Start for --type range")
@click.option("--to", "end", default=None, help="End for --type range")
@click.option("--platform", default=None, help="Platform, directBank or directCash")
@click.option("--property", "property_ref", default=None, help="Property id or name")
@click.option(
    "--by-platform",
    is_flag=True,
    help="Per-platform view: Direct by payment date, OTAs by check-out (needs --from/--to)",
)
@click.pass_context
def income(
    ctx: click.Context,
    kind: str,
    day: str | None,
    month: str | None,
    start: str | None,
    end: str | None,
    platform: str | None,
    property_ref: str | None,
    by_platform: bool,
):
    """Income totals per platform."""
    with _open_store(ctx) as store:
        property_id = resolve_property_id(store, property_ref) if property_ref else None
        if by_platform:
            groups = platform_income(store, _range(start, end), property_id)
        else:
            window = income_window(kind, day=day, month=month, start=start, end=end)
            summary = income_summary(store, window, platform, property_id)

    if by_platform:
        if not groups:
            click.echo("No bookings.")
        for name, g in groups.items():
            methods = "  ".join(f"{m} {_money(v)}" for m, v in g.by_method.items() if v)
            click.echo(f"{name:<12} {len(g.bookings):>4} booking(s)  {_money(g.total):>12}  {methods}")
        return

    for key, value in summary.totals.to_dict().items():
        click.echo(f"{key:<12} {value:>12,.2f}")
    click.echo(f"\n{len(summary.records)} record(s)")


@main.command()
@click.option("--host", default=None, help="Bind address (default: [tool.pms].host)")
@click.option("--port", type=int, default=None, help="Port (default: [tool.pms].port)")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None):
    """Run the web API with uvicorn."""
    import uvicorn

    from web.app import create_app

    settings = _settings(ctx)
    uvicorn.run(
        create_app(settings),
        host=host or settings.host,
        port=port or settings.port,
    )


if __name__ == "__main__":
    main()
