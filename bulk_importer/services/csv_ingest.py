"""Fetch uploaded CSV files and parse them into keyed rows."""

from __future__ import annotations

import csv
import logging
import re
from collections.abc import Iterable, Iterator
from pathlib import Path
from urllib.parse import unquote, urlparse

import httpx

from bulk_importer.services.errors import FetchError

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")

# A single cell may be as large as an upload; the csv default caps fields at 128 KiB
MAX_FIELD_SIZE = 128 * 1024 * 1024
csv.field_size_limit(max(csv.field_size_limit(), MAX_FIELD_SIZE))

# Header aliases per import type, keyed by the normalized header text
COLUMN_ALIASES: dict[str, dict[str, str]] = {
    "products": {
        "productname": "name",
        "title": "name",
        "sellingprice": "price",
        "unitprice": "price",
        "longdescription": "description",
        "shortdescription": "short_description",
        "summary": "short_description",
        "productcode": "sku",
        "itemcode": "sku",
        "compareprice": "compare_price",
        "originalprice": "compare_price",
        "mrp": "compare_price",
        "costprice": "cost_price",
        "purchaseprice": "cost_price",
        "wholesaleprice": "cost_price",
        "productweight": "weight",
        "stockquantity": "stock_quantity",
        "quantity": "stock_quantity",
        "initialstock": "stock_quantity",
        "stockqty": "stock_quantity",
    },
    "users": {
        "fullname": "name",
        "username": "name",
        "emailaddress": "email",
        "buyerntnorcnic": "buyer_ntn_cnic",
        "buyerntn/cnic": "buyer_ntn_cnic",
        "ntn": "buyer_ntn_cnic",
        "cnic": "buyer_ntn_cnic",
        "buyerbusinessname": "buyer_business_name",
        "businessname": "buyer_business_name",
        "buyerprovince": "buyer_province",
        "province": "buyer_province",
        "buyeraddress": "buyer_address",
        "address": "buyer_address",
        "buyerregistrationtype": "buyer_registration_type",
        "registrationtype": "buyer_registration_type",
    },
}


def normalize_header(cell: str) -> str:
    """Lower-case a header cell and drop quotes and all whitespace.

    ``"Price Each"`` becomes ``priceeach``.
    """
    return _WHITESPACE.sub("", cell.replace('"', "")).lower()


def _clean_value(value: str) -> str:
    return value.replace('"', "").strip()


def split_line(line: str) -> list[str] | None:
    """Split one physical line into fields, or None when it cannot be read.

    Balanced quotes may wrap a field containing the delimiter. A line with an
    unbalanced quote is split naively after its quotes are stripped, so a
    stray quote never reaches past its own line.
    """
    if line.count('"') % 2:
        return line.replace('"', "").split(",")
    try:
        return next(csv.reader([line]), [])
    except csv.Error:
        return None


def iter_csv_rows(
    lines: Iterable[str], aliases: dict[str, str] | None = None
) -> Iterator[dict[str, str]]:
    """Yield one dict per data line, keyed by normalized header.

    Every line is parsed on its own. Lines whose field count differs from
    the header's are dropped without being reported; blank lines are skipped.
    """
    lines = (line.rstrip("\r") for line in lines)
    content = (line for line in lines if line.strip())
    header = split_line(next(content, ""))
    if not header:
        return
    aliases = aliases or {}
    keys = [aliases.get(key, key) for key in map(normalize_header, header)]
    width = len(keys)

    dropped = 0
    for line in content:
        values = split_line(line)
        if values is None or len(values) != width:
            dropped += 1
            continue
        yield {key: _clean_value(value) for key, value in zip(keys, values)}

    if dropped:
        logger.debug(f"Dropped {dropped} line(s) with a field count other than {width}")


def parse_csv(text: str, import_type: str | None = None) -> list[dict[str, str]]:
    """Parse the whole CSV text into a materialized list of rows."""
    aliases = COLUMN_ALIASES.get(import_type or "", {})
    return list(iter_csv_rows(text.split("\n"), aliases))


class CsvIngestor:
    """Retrieve a stored upload by URL and turn it into rows."""

    def __init__(self, client: httpx.Client | None = None, timeout: float = 30.0):
        self._client = client
        self._timeout = timeout

    def fetch(self, url: str) -> str:
        """Return the decoded text behind ``url``; raise FetchError otherwise."""
        parsed = urlparse(url)
        if parsed.scheme == "file":
            return self._read_local(Path(unquote(parsed.path)))
        if parsed.scheme not in ("http", "https"):
            raise FetchError(f"Unsupported file URL scheme: {parsed.scheme or url}")
        return self._download(url)

    def ingest(self, url: str, import_type: str | None = None) -> list[dict[str, str]]:
        text = self.fetch(url)
        rows = parse_csv(text, import_type)
        logger.info(f"Parsed {len(rows)} row(s) from {url}")
        return rows

    def _download(self, url: str) -> str:
        client = self._client or httpx.Client(timeout=self._timeout)
        try:
            response = client.get(url, follow_redirects=True)
        except httpx.HTTPError as e:
            raise FetchError(f"Failed to download file: {e}") from e
        finally:
            if self._client is None:
                client.close()

        if not response.is_success:
            raise FetchError(f"Failed to download file: {response.reason_phrase}")
        try:
            return response.content.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise FetchError(f"File encoding error: {e}") from e

    def _read_local(self, path: Path) -> str:
        try:
            return path.read_text(encoding="utf-8-sig")
        except FileNotFoundError as e:
            raise FetchError(f"CSV file not found: {path}") from e
        except PermissionError as e:
            raise FetchError(f"Permission denied reading file: {path}") from e
        except UnicodeDecodeError as e:
            raise FetchError(f"File encoding error: {e}") from e
        except OSError as e:
            raise FetchError(f"Error reading CSV file: {e}") from e
