"""HTML formatting for price-change alert emails."""

from datetime import datetime
from html import escape
from typing import Optional, Sequence

from pricetracker.detect.price_change import PriceChange

INCREASE_COLOR = "#dc2626"
DECREASE_COLOR = "#16a34a"

CELL_STYLE = "padding: 8px; border-bottom: 1px solid #e5e7eb;"

STYLE = """
    body { font-family: Arial, sans-serif; color: #111827; }
    h1 { color: #1f2937; }
    table { border-collapse: collapse; width: 100%; margin-bottom: 24px; }
    th { text-align: left; padding: 8px; background: #f3f4f6; border-bottom: 2px solid #d1d5db; }
    .summary { background: #f9fafb; padding: 16px; border-radius: 8px; margin-bottom: 24px; }
"""

COLUMNS = ("Competitor", "Product", "City", "Old Price", "New Price", "Change")


def _format_threshold(threshold_percent: float) -> str:
    return f"{threshold_percent:g}"


def format_subject(changes: Sequence[PriceChange], threshold_percent: float = 10.0) -> str:
    """Subject line, e.g. 'Price Alert: 3 competitor SKU(s) changed by >10%'."""
    return (
        f"Price Alert: {len(changes)} competitor SKU(s) changed by "
        f">{_format_threshold(threshold_percent)}%"
    )


def _format_row(change: PriceChange) -> str:
    color = INCREASE_COLOR if change.change_percent > 0 else DECREASE_COLOR
    cells = [
        escape(change.competitor),
        escape(change.product_name),
        escape(change.city_name),
        f"${change.old_price:.2f}",
        f"${change.new_price:.2f}",
    ]
    row = "".join(f'<td style="{CELL_STYLE}">{cell}</td>' for cell in cells)
    row += (
        f'<td style="{CELL_STYLE} color: {color}; font-weight: bold;">'
        f"{change.change_percent:+.1f}%</td>"
    )
    return f"<tr>{row}</tr>"


def _format_table(title: str, changes: Sequence[PriceChange]) -> str:
    header = "".join(f"<th>{column}</th>" for column in COLUMNS)
    rows = "\n".join(_format_row(change) for change in changes)
    return (
        f"<h2>{title}</h2>\n"
        f"<table>\n<thead><tr>{header}</tr></thead>\n"
        f"<tbody>\n{rows}\n</tbody>\n</table>"
    )


def format_price_change_email(
    changes: Sequence[PriceChange],
    threshold_percent: float = 10.0,
    generated_at: Optional[datetime] = None,
) -> str:
    """
    Build the alert email body.

    Increases and decreases are listed in separate tables, each sorted by
    the size of the move. A table is omitted when it would be empty.

    Args:
        changes: Significant price changes
        threshold_percent: Threshold the changes were detected with
        generated_at: Timestamp for the footer (defaults to now, UTC)

    Returns:
        HTML document
    """
    generated_at = generated_at or datetime.utcnow()
    increases = sorted(
        (c for c in changes if c.change_percent > 0), key=lambda c: -c.change_percent
    )
    decreases = sorted(
        (c for c in changes if c.change_percent < 0), key=lambda c: c.change_percent
    )
    threshold = _format_threshold(threshold_percent)

    summary_items = []
    if increases:
        summary_items.append(f"<li><strong>{len(increases)}</strong> price increase(s)</li>")
    if decreases:
        summary_items.append(f"<li><strong>{len(decreases)}</strong> price decrease(s)</li>")

    sections = []
    if increases:
        sections.append(_format_table("Price Increases", increases))
    if decreases:
        sections.append(_format_table("Price Decreases", decreases))

    return f"""<!DOCTYPE html>
<html>
<head>
<style>{STYLE}</style>
</head>
<body>
<h1>Competitor Price Alert</h1>
<div class="summary">
<p><strong>{len(changes)}</strong> competitor SKU(s) changed price by more than {threshold}%:</p>
<ul>
{"".join(summary_items)}
</ul>
</div>
{chr(10).join(sections)}
<p style="color: #6b7280; font-size: 14px; margin-top: 32px;">
Generated by the daily competitive pricing update at {generated_at.strftime("%Y-%m-%d %H:%M UTC")}.
</p>
</body>
</html>
"""
