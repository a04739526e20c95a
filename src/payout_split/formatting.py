"""Display formatting for amounts."""


def format_currency(value: float) -> str:
    """
    Format a number as US dollars.

    Example: 1234.5 -> "$1,234.50", -3 -> "-$3.00"
    """
    sign = "-" if value < 0 else ""
    return f"{sign}${abs(value):,.2f}"


def format_number(value: float, decimals: int = 2) -> str:
    """Format a number with a fixed number of decimal places."""
    return f"{value:.{decimals}f}"


def format_money(amount: float, use_color: bool = True) -> str:
    """
    Format money in accounting style with alignment.

    Negative amounts use parentheses: ($85.02)
    Positive amounts have spaces:      $85.02
    The spaces ensure decimal points align in tables.
    """
    abs_amount = abs(amount)
    if amount < 0:
        if use_color:
            return f"($[red]{abs_amount:,.2f}[/red])"
        return f"(${abs_amount:,.2f})"

    if use_color:
        return f" [green]${abs_amount:,.2f}[/green] "
    return f" ${abs_amount:,.2f} "
