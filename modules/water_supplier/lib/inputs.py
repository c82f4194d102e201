from __future__ import annotations

import csv
import glob
import os


def list_input_files(input_dir: str) -> list[str]:
    """
    All *.csv files in `input_dir`, sorted by file name so resume positions
    are deterministic across runs. A missing directory yields no files.
    """
    paths = glob.glob(os.path.join(input_dir, "*.csv"))
    return sorted(paths, key=lambda p: os.path.basename(p))


def read_postcodes(path: str) -> list[str]:
    """
    First column of each row, with surrounding double quotes stripped.
    Blank rows/cells are ignored. Raises OSError/csv.Error on unreadable input.
    """
    out: list[str] = []
    with open(path, encoding="utf-8-sig", newline="") as f:
        for row in csv.reader(f):
            if not row:
                continue
            postcode = row[0].strip().strip('"').strip()
            if postcode:
                out.append(postcode)
    return out
