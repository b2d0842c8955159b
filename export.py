"""CSV export of measurement history."""

import csv
import io
from collections.abc import Iterable
from datetime import date

from config import EXPORT_FILENAME_PREFIX
from decode import bmi_category

# Excel only detects UTF-8 with a byte-order mark
BOM = "\ufeff"
HEADER = ["Date", "Weight (kg)", "BMI", "Category"]


def measurements_to_csv(records: Iterable[dict]) -> str:
    """Render records (as returned by db.get_measurements) to CSV text."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(HEADER)
    for record in records:
        bmi = record["bmi"] or 0
        writer.writerow([
            str(record["created_at"])[:10],
            f"{record['weight']:.1f}",
            f"{bmi:.1f}",
            bmi_category(bmi).label,
        ])
    return BOM + buffer.getvalue()


def export_filename(day: date | None = None) -> str:
    return f"{EXPORT_FILENAME_PREFIX}_{(day or date.today()).isoformat()}.csv"
