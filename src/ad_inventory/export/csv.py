from __future__ import annotations

import csv
from pathlib import Path

from ..normalize.schema import Dataset


def write_dataset_csv(dataset: Dataset, path: Path) -> Path:
    """
    Write one dataset as a delimited file: a header row with the dataset's
    field names, then one row per record in collection order.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(dataset.fields)
        for row in dataset.rows:
            writer.writerow([row.get(field, "") for field in dataset.fields])
    return path
