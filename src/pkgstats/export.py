"""Export functions for stats payloads in various formats."""

import csv
import io
import json
from datetime import datetime

from .types import StatsPayload


def _series(payload: StatsPayload) -> dict[str, list[int]]:
    values = payload["values"]
    if isinstance(values, dict):
        return values
    # Placeholder payload: a single unnamed zero series
    return {"": list(values)}


def export_csv(payload: StatsPayload, output: io.StringIO | None = None) -> str:
    """Export a payload to CSV, one row per bucket and one column per series."""
    if output is None:
        output = io.StringIO()

    series = _series(payload)
    writer = csv.writer(output)
    writer.writerow(["date", *series])

    for i, label in enumerate(payload["labels"]):
        writer.writerow([label, *(data[i] for data in series.values())])

    return output.getvalue()


def export_json(payload: StatsPayload, package: str | None = None) -> str:
    """Export a payload to JSON format."""
    export_data: dict = {}
    if package is not None:
        export_data["package"] = package
        export_data["generated"] = datetime.now().isoformat()
    export_data.update(payload)
    return json.dumps(export_data, indent=2)


def export_markdown(payload: StatsPayload) -> str:
    """Export a payload to Markdown table format."""
    series = _series(payload)
    names = [name or "value" for name in series]
    lines = [
        "| Date | " + " | ".join(names) + " |",
        "|------|" + "|".join("-" * (len(name) + 1) + ":" for name in names) + "|",
    ]

    for i, label in enumerate(payload["labels"]):
        cells = " | ".join(f"{data[i]:,}" for data in series.values())
        lines.append(f"| {label} | {cells} |")

    return "\n".join(lines)
