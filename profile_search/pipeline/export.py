"""Export stored profiles as JSON or CSV."""

import csv
import io
import json

from profile_search.core.schemas import ProfileRecord

CSV_COLUMNS = ("name", "title", "company", "location", "profile_url", "email", "phone")


def export_profiles_json(profiles: list[ProfileRecord]) -> str:
    """Export profiles as a JSON array string."""
    data = [p.model_dump(mode="json") for p in profiles]
    return json.dumps(data, indent=2)


def export_profiles_csv(profiles: list[ProfileRecord]) -> str:
    """Export profiles as CSV with a header row. Missing values are empty."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_COLUMNS)
    for p in profiles:
        writer.writerow([getattr(p, col) or "" for col in CSV_COLUMNS])
    return buffer.getvalue()
