"""HTML report generation with SVG charts."""

import html
import logging
from datetime import datetime

from .types import PackageStats, StatsPayload

logger = logging.getLogger("pkgstats")

# -----------------------------------------------------------------------------
# Theme and Chart Constants
# -----------------------------------------------------------------------------

# Primary theme color (used for links, accents, chart elements)
THEME_PRIMARY_COLOR = "#4a90a4"

# Chart dimensions
DEFAULT_LINE_CHART_WIDTH = 700
DEFAULT_LINE_CHART_HEIGHT = 300

# Maximum number of series drawn in the line chart
LINE_CHART_MAX_SERIES = 8


# -----------------------------------------------------------------------------
# CSS Styles
# -----------------------------------------------------------------------------


def _get_common_styles() -> str:
    """Return CSS styles shared by all reports."""
    return f"""
        body {{
            font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
            max-width: 1200px;
            margin: 0 auto;
            padding: 20px;
            background: #f5f5f5;
        }}
        h1, h2, h3 {{
            color: #333;
        }}
        .chart-container {{
            background: white;
            border-radius: 8px;
            padding: 20px;
            margin: 20px 0;
            box-shadow: 0 2px 4px rgba(0,0,0,0.1);
            overflow-x: auto;
        }}
        table {{
            width: 100%;
            border-collapse: collapse;
            background: white;
            border-radius: 8px;
            overflow: hidden;
            box-shadow: 0 2px 4px rgba(0,0,0,0.1);
        }}
        th, td {{
            padding: 12px;
            text-align: left;
            border-bottom: 1px solid #eee;
        }}
        th {{
            background: {THEME_PRIMARY_COLOR};
            color: white;
        }}
        .number {{
            text-align: right;
            font-family: monospace;
        }}
        .generated {{
            color: #666;
            font-size: 0.9em;
            margin-top: 20px;
        }}
        .stats-grid {{
            display: grid;
            grid-template-columns: repeat(auto-fit, minmax(150px, 1fr));
            gap: 20px;
            margin: 20px 0;
        }}
        .stat-card {{
            background: white;
            border-radius: 8px;
            padding: 20px;
            box-shadow: 0 2px 4px rgba(0,0,0,0.1);
            text-align: center;
        }}
        .stat-value {{
            font-size: 24px;
            font-weight: bold;
            color: {THEME_PRIMARY_COLOR};
        }}
        .stat-label {{
            color: #666;
            margin-top: 5px;
        }}
"""


# -----------------------------------------------------------------------------
# HTML Template
# -----------------------------------------------------------------------------


def _render_html_document(title: str, body_content: str) -> str:
    """Render a complete HTML document."""
    timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{html.escape(title)}</title>
    <style>{_get_common_styles()}</style>
</head>
<body>
{body_content}
    <p class="generated">Generated on {timestamp}</p>
</body>
</html>
"""


# -----------------------------------------------------------------------------
# SVG Chart Components
# -----------------------------------------------------------------------------


def make_svg_line_chart(
    labels: list[str],
    series: dict[str, list[int]],
    chart_id: str,
    max_lines: int = LINE_CHART_MAX_SERIES,
) -> str:
    """Generate an SVG line chart with one line per series.

    Args:
        labels: Bucket labels for the x-axis.
        series: Series name mapped to one value per label.
        chart_id: SVG element ID.
        max_lines: Maximum number of series to draw, in payload order.

    Returns:
        SVG string, or message if there are fewer than two points.
    """
    if not series:
        return ""
    if len(labels) < 2:
        return "<p>Not enough data points for time-series chart.</p>"

    chart_width = DEFAULT_LINE_CHART_WIDTH
    chart_height = DEFAULT_LINE_CHART_HEIGHT
    margin = {"top": 20, "right": 120, "bottom": 40, "left": 80}
    plot_width = chart_width - margin["left"] - margin["right"]
    plot_height = chart_height - margin["top"] - margin["bottom"]

    drawn = list(series.items())[:max_lines]
    max_val = max((max(values) for _, values in drawn if values), default=0) or 1

    svg_parts = [
        f'<svg id="{chart_id}" viewBox="0 0 {chart_width} {chart_height}" '
        f'style="width:100%;max-width:{chart_width}px;height:auto;font-family:system-ui,sans-serif;font-size:11px;">'
    ]

    # Axes
    svg_parts.append(
        f'<line x1="{margin["left"]}" y1="{margin["top"]}" '
        f'x2="{margin["left"]}" y2="{chart_height - margin["bottom"]}" '
        f'stroke="#ccc" stroke-width="1"/>'
    )
    svg_parts.append(
        f'<line x1="{margin["left"]}" y1="{chart_height - margin["bottom"]}" '
        f'x2="{chart_width - margin["right"]}" y2="{chart_height - margin["bottom"]}" '
        f'stroke="#ccc" stroke-width="1"/>'
    )

    # Y-axis labels and grid lines
    for i in range(5):
        y_val = max_val * (4 - i) / 4
        y_pos = margin["top"] + (i * plot_height / 4)
        svg_parts.append(
            f'<text x="{margin["left"] - 8}" y="{y_pos + 4}" '
            f'text-anchor="end" fill="#666">{int(y_val):,}</text>'
        )
        svg_parts.append(
            f'<line x1="{margin["left"]}" y1="{y_pos}" '
            f'x2="{chart_width - margin["right"]}" y2="{y_pos}" '
            f'stroke="#eee" stroke-width="1"/>'
        )

    # X-axis labels (first, middle, last)
    last_idx = len(labels) - 1
    for idx in sorted({0, len(labels) // 2, last_idx}):
        x_pos = margin["left"] + (idx / last_idx) * plot_width
        svg_parts.append(
            f'<text x="{x_pos:.1f}" y="{chart_height - margin["bottom"] + 16}" '
            f'text-anchor="middle" fill="#666">{html.escape(labels[idx])}</text>'
        )

    for series_idx, (name, values) in enumerate(drawn):
        hue = (series_idx * 360 // len(drawn)) % 360
        color = f"hsl({hue}, 70%, 50%)"

        points = []
        for i, val in enumerate(values):
            x = margin["left"] + (i / last_idx) * plot_width
            y = margin["top"] + plot_height - (val / max_val) * plot_height
            points.append((x, y))

        svg_parts.append(
            f'<polyline points="{" ".join(f"{x:.1f},{y:.1f}" for x, y in points)}" '
            f'fill="none" stroke="{color}" stroke-width="2"/>'
        )
        # Series name at the end of its line
        last_x, last_y = points[-1]
        svg_parts.append(
            f'<text x="{last_x + 8:.1f}" y="{last_y + 4:.1f}" fill="{color}">{html.escape(name)}</text>'
        )

    svg_parts.append("</svg>")
    return "\n".join(svg_parts)


def _make_stat_cards(stats: PackageStats) -> str:
    cards = [
        ("Total", stats["total"]),
        ("Last Month", stats["last_month"]),
        ("Last Week", stats["last_week"]),
        ("Last Day", stats["last_day"]),
    ]
    return "\n".join(
        f"""        <div class="stat-card">
            <div class="stat-value">{value:,}</div>
            <div class="stat-label">{label}</div>
        </div>"""
        for label, value in cards
    )


# -----------------------------------------------------------------------------
# Public Report Generation Functions
# -----------------------------------------------------------------------------


def generate_stats_html_report(
    package: str,
    payload: StatsPayload,
    output_file: str,
    title: str | None = None,
    stats: PackageStats | None = None,
) -> None:
    """Generate a self-contained HTML report of a stats payload.

    Args:
        package: Package name.
        payload: Stats payload to chart and tabulate.
        output_file: Path to write HTML file.
        title: Chart heading (default: "Downloads").
        stats: Optional download totals shown above the chart.
    """
    title = title or "Downloads"
    values = payload["values"] if isinstance(payload["values"], dict) else {}
    labels = payload["labels"]

    chart = make_svg_line_chart(labels, values, "stats-chart")
    if not chart:
        chart = "<p>No data available.</p>"

    header_cells = "".join(
        f'<th class="number">{html.escape(name)}</th>' for name in values
    )
    table_rows = ""
    for i, label in enumerate(labels):
        cells = "".join(
            f'<td class="number">{data[i]:,}</td>' for data in values.values()
        )
        table_rows += f"""            <tr>
                <td>{html.escape(label)}</td>{cells}
            </tr>
"""

    cards = f'<div class="stats-grid">\n{_make_stat_cards(stats)}\n    </div>' if stats else ""

    body_content = f"""    <h1>{html.escape(package)}</h1>

    {cards}

    <div class="chart-container">
        <h2>{html.escape(title)} ({payload["average"]} average)</h2>
        {chart}
    </div>

    <h2>Data Points</h2>
    <table>
        <thead>
            <tr>
                <th>Date</th>{header_cells}
            </tr>
        </thead>
        <tbody>
{table_rows}        </tbody>
    </table>
"""

    document = _render_html_document(f"{package} - {title}", body_content)

    with open(output_file, "w") as f:
        f.write(document)
    logger.info("Report generated: %s", output_file)
