# loader.py
import csv
import io
import os
from typing import Dict, List, Optional

import requests
from PIL import Image

from logging_config import get_logger

logger = get_logger("loader")

USER_AGENT = "mapboard-viewer/0.1"


def _is_http(ref: str) -> bool:
    return ref.lower().startswith(("http://", "https://"))


def _get_bytes(ref: str, session: Optional[requests.Session], timeout: float) -> bytes:
    if _is_http(ref):
        getter = session if session is not None else requests
        response = getter.get(ref, timeout=timeout, headers={"User-Agent": USER_AGENT})
        response.raise_for_status()
        return response.content

    path = ref[len("file://"):] if ref.startswith("file://") else ref
    with open(os.path.expanduser(path), "rb") as f:
        return f.read()


# -----------------------------
# Tabular feeds
# -----------------------------

def parse_csv_rows(data: bytes) -> List[Dict[str, str]]:
    """
    Header-keyed rows from CSV bytes. Keys and values are stripped;
    fully empty lines are dropped.
    """
    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise ValueError(f"Feed is not UTF-8 text: {e}") from e

    reader = csv.DictReader(io.StringIO(text, newline=""))
    if reader.fieldnames is None:
        return []

    rows: List[Dict[str, str]] = []
    for raw in reader:
        row = {}
        for k, v in raw.items():
            if k is None:
                # extra cells beyond the header
                continue
            row[k.strip()] = v.strip() if isinstance(v, str) else ""
        if any(row.values()):
            rows.append(row)
    return rows


def fetch_rows(ref: str, session: Optional[requests.Session] = None, timeout: float = 15.0) -> List[Dict[str, str]]:
    """
    Fetch a CSV feed (URL or local path) and return its rows.

    Network errors, HTTP error statuses and undecodable feeds raise.
    """
    logger.info("Fetching feed %s", ref)
    data = _get_bytes(ref, session, timeout)
    rows = parse_csv_rows(data)
    logger.info("Fetched %d row(s) from %s", len(rows), ref)
    return rows


# -----------------------------
# Image resources
# -----------------------------

def load_image(ref: str, session: Optional[requests.Session] = None, timeout: float = 15.0) -> Image.Image:
    data = _get_bytes(ref, session, timeout)
    with Image.open(io.BytesIO(data)) as im:
        im.load()
        return im.convert("RGBA")
