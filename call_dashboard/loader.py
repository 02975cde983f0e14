"""
loader.py: CSV source loading for call-dashboard

Public API:
    report = load_sources(store, settings)                 every configured source
    report = load_sources(store, settings, {"fcr": path})  explicit locations

Per source:
    fetch (requests for http/https, filesystem otherwise)
    -> decode (chardet, line-by-line fallback, BOM stripped)
    -> tokenize (delimiter sniffed among , TAB ; |, pandas, all cells as str)
    -> normalise + validate (call_dashboard.sources)
    -> SourceStore.load

A source that fails to fetch or parse is installed empty with its error; the
other sources are unaffected.
"""

from __future__ import annotations

import csv
import io
import logging
from collections import Counter
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Sequence

import chardet
import pandas as pd
import requests

from call_dashboard.config import Settings
from call_dashboard.errors import RowProcessingError, SourceLoadError
from call_dashboard.headers import clean_header
from call_dashboard.records import CanonicalRecord
from call_dashboard.sources import get_profile
from call_dashboard.store import SourceStore

logger = logging.getLogger(__name__)

DELIMITERS = [",", "\t", ";", "|"]


@dataclass
class ParsedSource:
    source_type: str
    records: list[CanonicalRecord]
    skipped_rows: int
    headers: list[str]
    encoding: str
    delimiter: str


@dataclass
class LoadReport:
    loaded: dict[str, int] = field(default_factory=dict)
    skipped: dict[str, int] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def partial(self) -> bool:
        return bool(self.errors) and bool(self.loaded)

    def to_dict(self) -> dict[str, Any]:
        return {"loaded": dict(self.loaded), "skipped": dict(self.skipped), "errors": dict(self.errors)}


# ══════════════════════════════════════════════════════════════════════════════
# ENCODING
# ══════════════════════════════════════════════════════════════════════════════

def _detect_encoding(raw: bytes) -> tuple[str, float]:
    result = chardet.detect(raw[:200_000])
    detected = result.get("encoding") or "utf-8"
    confidence = round(result.get("confidence") or 0.0, 2)
    return detected, confidence


def _read_text_safely(raw: bytes, preferred_encoding: str) -> str:
    """
    Decode raw bytes line-by-line.

    Strategy per line:
      1. Try UTF-8
      2. Try preferred_encoding (chardet result)
      3. Try latin-1
      4. CP1252 with replace (never crashes)

    Embedded null bytes are stripped so the tokenizer does not choke.
    """
    decoded_lines: list[str] = []
    for raw_line in raw.split(b"\n"):
        decoded: str | None = None
        for enc in ("utf-8", preferred_encoding, "latin-1"):
            if not enc:
                continue
            try:
                decoded = raw_line.decode(enc)
                break
            except (LookupError, UnicodeDecodeError):
                continue
        if decoded is None:
            decoded = raw_line.decode("cp1252", errors="replace")
        decoded_lines.append(decoded.replace("\x00", ""))
    return "\n".join(decoded_lines)


def decode_csv_bytes(raw: bytes) -> tuple[str, str]:
    """Return (text, detected encoding). The byte-order mark is removed."""
    encoding, confidence = _detect_encoding(raw)
    logger.debug("Detected encoding %s (confidence %.2f)", encoding, confidence)
    if raw.startswith(b"\xef\xbb\xbf"):
        raw = raw[3:]
    text = _read_text_safely(raw, encoding)
    return text.lstrip("\ufeff"), encoding


# ══════════════════════════════════════════════════════════════════════════════
# TOKENIZING
# ══════════════════════════════════════════════════════════════════════════════

def detect_delimiter(text: str) -> str:
    """
    Infer the delimiter from sample lines.

    csv.Sniffer first; when it cannot decide, score each candidate by how
    consistently it splits rows into the same number of columns.
    """
    sample_lines = [line for line in text.splitlines() if line.strip()][:50]
    sample = "\n".join(sample_lines[:25])
    if sample:
        try:
            return csv.Sniffer().sniff(sample, delimiters="".join(DELIMITERS)).delimiter
        except csv.Error:
            pass

    best_delim = ","
    best_score = float("-inf")
    for delim in DELIMITERS:
        rows = [
            row
            for row in csv.reader(io.StringIO("\n".join(sample_lines)), delimiter=delim)
            if any(cell.strip() for cell in row)
        ]
        if not rows:
            continue
        widths = Counter(len(row) for row in rows)
        mode_width, mode_count = widths.most_common(1)[0]
        score = mode_width * 2.0 + (mode_count / len(rows)) * mode_width
        if mode_width == 1:
            score -= 10.0
        if score > best_score:
            best_score = score
            best_delim = delim
    return best_delim


def tokenize_csv(
    text: str,
    source_type: str = "source",
    delimiter: str | None = None,
) -> tuple[list[str], list[dict[str, str]]]:
    """
    Split decoded CSV text into (headers, rows).

    Every cell stays a string ("" for empty); blank lines are skipped. A
    document with no header row raises SourceLoadError.
    """
    if not text.strip():
        raise SourceLoadError(source_type, "file is empty")

    delimiter = delimiter or detect_delimiter(text)
    sep = r"\|" if delimiter == "|" else delimiter
    try:
        df = pd.read_csv(
            io.StringIO(text),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            on_bad_lines="skip",
            sep=sep,
            engine="python",
        )
    except pd.errors.EmptyDataError as exc:
        raise SourceLoadError(source_type, "file is empty") from exc
    except (pd.errors.ParserError, ValueError) as exc:
        raise SourceLoadError(source_type, f"could not parse CSV: {exc}") from exc

    headers = [clean_header(column) for column in df.columns]
    df.columns = headers
    rows = df.to_dict(orient="records")
    return headers, rows


# ══════════════════════════════════════════════════════════════════════════════
# FETCHING
# ══════════════════════════════════════════════════════════════════════════════

def _is_url(location: str) -> bool:
    return location.lower().startswith(("http://", "https://"))


def fetch_source_bytes(
    source_type: str,
    location: str,
    settings: Settings,
    session: Optional[requests.Session] = None,
) -> bytes:
    if not location:
        raise SourceLoadError(source_type, "no location configured")

    if _is_url(location):
        http = session or requests
        try:
            response = http.get(location, timeout=settings.fetch_timeout_seconds)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise SourceLoadError(source_type, f"could not fetch {location}: {exc}") from exc
        raw = response.content
    else:
        path = Path(location).expanduser()
        if not path.is_file():
            raise SourceLoadError(source_type, f"file not found: {path}")
        try:
            size = path.stat().st_size
            if size > settings.max_file_bytes:
                raise SourceLoadError(
                    source_type,
                    f"{path.name} is {size / (1024 * 1024):.1f} MB; the limit is "
                    f"{settings.max_file_bytes // (1024 * 1024)} MB",
                )
            raw = path.read_bytes()
        except OSError as exc:
            raise SourceLoadError(source_type, f"could not read {path}: {exc}") from exc

    if len(raw) > settings.max_file_bytes:
        raise SourceLoadError(source_type, f"response from {location} exceeds the size limit")
    if not raw.strip():
        raise SourceLoadError(source_type, "file is empty")
    return raw


# ══════════════════════════════════════════════════════════════════════════════
# NORMALISING
# ══════════════════════════════════════════════════════════════════════════════

def process_rows(
    source_type: str,
    headers: Sequence[str],
    rows: Sequence[Mapping[str, Any]],
    settings: Settings,
) -> tuple[list[CanonicalRecord], int]:
    """
    Normalise and validate rows. Returns (kept records, skipped row count).

    A row whose normalisation blows up is logged and skipped; invalid rows
    are dropped silently and also counted as skipped.
    """
    profile = get_profile(source_type)
    roles = profile.roles(list(headers), settings)
    if "date" not in roles and "year" not in roles:
        logger.warning("%s: no date column found; date filters will not apply", source_type)

    records: list[CanonicalRecord] = []
    skipped = 0
    for row_number, row in enumerate(rows, start=2):
        try:
            record = profile.build(row, settings, roles)
        except (TypeError, ValueError, ArithmeticError, AttributeError, KeyError) as exc:
            logger.warning("%s", RowProcessingError(source_type, row_number, str(exc)))
            skipped += 1
            continue
        if not profile.accepts(record, settings):
            skipped += 1
            continue
        records.append(record)
    return records, skipped


def parse_source(source_type: str, raw: bytes, settings: Settings) -> ParsedSource:
    text, encoding = decode_csv_bytes(raw)
    delimiter = detect_delimiter(text)
    headers, rows = tokenize_csv(text, source_type, delimiter)
    records, skipped = process_rows(source_type, headers, rows, settings)
    return ParsedSource(
        source_type=source_type,
        records=records,
        skipped_rows=skipped,
        headers=headers,
        encoding=encoding,
        delimiter=delimiter,
    )


def load_source(
    source_type: str,
    location: str,
    settings: Settings,
    session: Optional[requests.Session] = None,
) -> ParsedSource:
    raw = fetch_source_bytes(source_type, location, settings, session)
    return parse_source(source_type, raw, settings)


def load_sources(
    store: SourceStore,
    settings: Settings,
    locations: Optional[Mapping[str, str]] = None,
    session: Optional[requests.Session] = None,
    progress_callback: Optional[Callable[[int, int, int], None]] = None,
) -> LoadReport:
    """
    Fetch and parse every source in parallel, then install each into ``store``.

    ``locations`` maps source type to URL or path and, when given, names
    exactly the sources to load; otherwise every configured source is loaded.
    A source that fails is installed empty with its error message recorded in
    its metadata and in the returned report.
    """
    if locations is None:
        targets = {key: source.url for key, source in settings.sources.items()}
    else:
        targets = dict(locations)

    report = LoadReport()
    total = len(targets)
    with ThreadPoolExecutor(max_workers=settings.max_workers) as executor:
        future_to_source = {
            executor.submit(load_source, source_type, location, settings, session): source_type
            for source_type, location in targets.items()
        }

        processed = 0
        for future in as_completed(future_to_source):
            source_type = future_to_source[future]
            try:
                parsed = future.result()
            except SourceLoadError as exc:
                logger.error("Failed to load %s: %s", source_type, exc.reason)
                store.load(source_type, [], error=exc.reason)
                report.errors[source_type] = exc.reason
            except Exception as exc:
                reason = f"Could not process {source_type}: {exc}"
                logger.exception("Failed to process %s", source_type)
                store.load(source_type, [], error=reason)
                report.errors[source_type] = reason
            else:
                store.load(source_type, parsed.records, skipped_rows=parsed.skipped_rows)
                report.loaded[source_type] = len(parsed.records)
                report.skipped[source_type] = parsed.skipped_rows

            processed += 1
            if progress_callback:
                progress_callback(processed, total, len(report.errors))

    return report
