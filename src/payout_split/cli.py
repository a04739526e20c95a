"""CLI for PayoutSplit using Typer."""

import logging
import sys
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .colors import OVERDRAW_COLOR, SURPLUS_COLOR
from .config import load_settings
from .formatting import format_currency, format_money, format_number
from .models import Recipient, RecipientKind
from .service import PayoutSession

app = typer.Typer(
    name="payout-split",
    help="Distribute a total payout across recipients and groups",
)

console = Console()
err_console = Console(stderr=True)


def setup_logging(verbose: bool = False):
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


def load_session(file: Path, total: float | None) -> PayoutSession:
    """Build a session from a CSV file, optionally overriding its total."""
    session = PayoutSession(load_settings())
    proposal = session.propose_import_file(file)
    session.confirm_import(proposal)
    if total is not None:
        session.set_total_amount(total)

    if proposal.skipped_rows:
        err_console.print(
            f"[yellow]⚠️  {proposal.skipped_rows} recipient rows beyond the import "
            f"limit were ignored[/yellow]"
        )
    return session


def print_notices(session: PayoutSession):
    for notice in session.drain_notices():
        err_console.print(f"[yellow]⚠️  {escape(notice.message)}[/yellow]")


def describe_value(recipient: Recipient) -> str:
    if recipient.is_fixed_amount:
        return f"Fixed: {format_currency(recipient.value)}"
    if recipient.kind == RecipientKind.PERCENTAGE:
        return f"{format_number(recipient.value)}%"
    return f"{recipient.value:g} shares"


def display_summary(session: PayoutSession):
    """Display the distribution, individual payouts and group totals."""
    distribution = session.distribution

    console.print("\n[bold]Payout Summary:[/bold]")
    if distribution.total_amount <= 0:
        console.print(
            "  [dim]Enter a total payout amount to see the distribution[/dim]\n"
        )
        return

    console.print(f"  Total Payout:      {format_money(distribution.total_amount)}")
    console.print(f"  Fixed Amounts:     {format_money(distribution.fixed_sum)}")
    console.print(f"  Amount for Shares: {format_money(distribution.remaining_amount)}")
    console.print(f"  Total Shares:      {format_number(distribution.total_shares)}")
    console.print(f"  Value Per Share:   {format_money(distribution.value_per_share)}")
    console.print()

    table = Table(
        title="Individual Payouts", show_header=True, header_style="bold magenta"
    )
    table.add_column("Name", style="cyan")
    table.add_column("Type", justify="center", width=6)
    table.add_column("Value", justify="right")
    table.add_column("Payout", justify="right", width=16)
    table.add_column("%", justify="right", width=8)

    # Fixed amounts first, then highest payout
    ordered = sorted(
        session.recipients, key=lambda r: (not r.is_fixed_amount, -r.payout)
    )
    for recipient in ordered:
        table.add_row(
            escape(recipient.name),
            recipient.kind.value,
            describe_value(recipient),
            format_money(recipient.payout),
            format_number(recipient.payout / distribution.total_amount * 100),
        )

    console.print(table)

    totals = session.group_totals()
    if totals:
        group_table = Table(
            title="Groups", show_header=True, header_style="bold magenta"
        )
        group_table.add_column("Group", style="yellow")
        group_table.add_column("Members", justify="right")
        group_table.add_column("Fixed", justify="right")
        group_table.add_column("Percent", justify="right")
        group_table.add_column("Shares", justify="right")
        group_table.add_column("Total", justify="right", width=16)

        for group_total in totals:
            group_table.add_row(
                escape(group_total.group.name),
                str(group_total.recipient_count),
                format_currency(group_total.dollar_total),
                format_currency(group_total.percent_total),
                format_currency(group_total.shares_total),
                format_money(group_total.total_payout),
            )

        console.print(group_table)

    console.print()
    if distribution.overdrawn:
        console.print(
            f"  [{OVERDRAW_COLOR}]✗ Payouts total {format_currency(distribution.total_paid)}, "
            f"exceeding the total payout by "
            f"{format_currency(distribution.total_paid - distribution.total_amount)}[/]"
        )
    elif distribution.total_shares <= 0 and distribution.remaining_amount > 0:
        console.print(
            f"  [{SURPLUS_COLOR}]{format_currency(distribution.remaining_amount)} "
            f"is undistributed (no shares)[/]"
        )
    else:
        console.print("  [green]✓ Payouts match the total[/green]")


def emit_csv(session: PayoutSession, output: Path | None):
    if output is None:
        typer.echo(session.export_csv(), nl=False)
        return
    session.export_csv_file(output)
    console.print(
        f"[bold green]✓ Wrote {len(session.recipients)} recipients to {output}[/bold green]"
    )


@app.command()
def summary(
    file: Path = typer.Argument(..., help="Payout CSV file to read"),
    total: float | None = typer.Option(
        None, "--total", "-t", help="Override the total payout from the file"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    Show how a payout CSV distributes its total.

    Payouts are recomputed from the recipients' types and values; the payout
    column in the file is ignored.
    """
    setup_logging(verbose)

    try:
        session = load_session(file, total)
        print_notices(session)
        display_summary(session)
    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {escape(str(e))}")
        if verbose:
            raise
        sys.exit(1)


@app.command()
def rebalance(
    file: Path = typer.Argument(..., help="Payout CSV file to read"),
    total: float = typer.Option(..., "--total", "-t", help="New total payout"),
    output: Path | None = typer.Option(
        None, "--output", "-o", help="Write the CSV here instead of stdout"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Recompute a payout CSV for a new total and export it again."""
    setup_logging(verbose)

    try:
        session = load_session(file, total)
        print_notices(session)
        emit_csv(session, output)
    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {escape(str(e))}")
        if verbose:
            raise
        sys.exit(1)


@app.command()
def new(
    count: int = typer.Argument(..., help="Number of recipients to create"),
    total: float = typer.Option(0.0, "--total", "-t", help="Total payout"),
    output: Path | None = typer.Option(
        None, "--output", "-o", help="Write the CSV here instead of stdout"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Create a payout CSV with default share recipients."""
    setup_logging(verbose)

    try:
        session = PayoutSession(load_settings())
        session.set_total_amount(total)

        # Each add is capped per call; keep adding until done or full
        remaining = count
        while remaining > 0:
            added = session.add_recipients(
                min(remaining, session.settings.max_add_per_call)
            )
            if added == 0:
                break
            remaining -= added

        print_notices(session)
        emit_csv(session, output)
    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {escape(str(e))}")
        if verbose:
            raise
        sys.exit(1)


if __name__ == "__main__":
    app()
