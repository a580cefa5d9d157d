"""
CSV codec - header + row tuples in, RFC-4180 bytes out.

Reading uses the standard library tokenizer so that a row whose width
disagrees with the header surfaces as that row's own error instead of
failing the whole frame. Writing is polars-based:
- write_csv(include_header=True, separator=',', quote_style='necessary', line_terminator='\n')
- Every column is Utf8, nulls become empty strings
"""
import csv
import io
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Iterable, Iterator, List, Optional, Sequence, Union
import polars as pl

from bulkio.core.exceptions import StructuralParseError, MalformedRowError

# Large free-text cells (notes, descriptions) exceed the stdlib default
csv.field_size_limit(16 * 1024 * 1024)


@dataclass
class CsvRow:
    """One data row. ``number`` is 1-based and excludes the header."""

    number: int
    values: List[str]
    expected_width: int

    @property
    def malformed(self) -> bool:
        return len(self.values) != self.expected_width

    def check(self) -> None:
        """Raise MalformedRowError when the row's width does not match the header."""
        if self.malformed:
            raise MalformedRowError(
                f"Row {self.number} has {len(self.values)} fields, expected {self.expected_width}"
            )

    def as_dict(self, headers: Sequence[str]) -> dict:
        """Raw values keyed by header; extra fields are kept under positional names."""
        raw = {}
        for idx, value in enumerate(self.values):
            key = headers[idx] if idx < len(headers) else f"_extra_{idx - len(headers) + 1}"
            raw[key] = value
        return raw


@dataclass
class ParsedCsv:
    headers: List[str]
    rows: Iterator[CsvRow] = field(repr=False)


def _reader(text: io.TextIOBase):
    return csv.reader(text, delimiter=",", quotechar='"', doublequote=True, strict=True)


def _rows(reader, text: io.TextIOBase, width: int) -> Iterator[CsvRow]:
    number = 0
    try:
        for values in reader:
            if not values or (len(values) == 1 and values[0] == "" and width > 1):
                continue  # Blank line
            number += 1
            yield CsvRow(number=number, values=values, expected_width=width)
    except csv.Error as e:
        raise StructuralParseError(f"CSV parse error near line {reader.line_num}: {e}")
    except UnicodeDecodeError as e:
        raise StructuralParseError(f"File is not valid UTF-8: {e}")
    finally:
        text.close()


def parse(data: Union[bytes, BinaryIO]) -> ParsedCsv:
    """
    Parse UTF-8 CSV bytes into headers and a lazy row stream.

    Tolerates a UTF-8 BOM, CRLF or LF line endings and quoted fields that
    contain delimiters or newlines. Header names are trimmed.

    Raises:
        StructuralParseError: No header row, blank or duplicate header names,
            invalid encoding or broken quoting. Errors discovered while the
            row stream is consumed are raised from the iterator.
    """
    stream = io.BytesIO(data) if isinstance(data, (bytes, bytearray)) else data
    text = io.TextIOWrapper(stream, encoding="utf-8-sig", errors="strict", newline="")
    reader = _reader(text)

    try:
        header_row = next(reader, None)
    except csv.Error as e:
        text.close()
        raise StructuralParseError(f"CSV parse error in header: {e}")
    except UnicodeDecodeError as e:
        text.close()
        raise StructuralParseError(f"File is not valid UTF-8: {e}")

    if not header_row or all(not h.strip() for h in header_row):
        text.close()
        raise StructuralParseError("CSV file has no header row")

    headers = [h.strip() for h in header_row]
    if any(not h for h in headers):
        text.close()
        raise StructuralParseError("CSV header contains an empty column name")

    lowered = [h.lower() for h in headers]
    if len(lowered) != len(set(lowered)):
        duplicates = sorted({h for h in headers if lowered.count(h.lower()) > 1})
        text.close()
        raise StructuralParseError(f"CSV header has duplicate columns: {', '.join(duplicates)}")

    return ParsedCsv(headers=headers, rows=_rows(reader, text, len(headers)))


def parse_file(path: Union[str, Path]) -> ParsedCsv:
    """Parse a stored CSV file. The handle is closed once the rows are exhausted."""
    try:
        handle = open(path, "rb")
    except OSError as e:
        raise StructuralParseError(f"Cannot open file {path}: {e}")
    return parse(handle)


def count_rows(path: Union[str, Path]) -> int:
    """Full structural pass over a stored file; returns the number of data rows."""
    parsed = parse_file(path)
    return sum(1 for _ in parsed.rows)


def _frame(headers: Sequence[str], rows: Sequence[Sequence[Optional[str]]]) -> pl.DataFrame:
    schema = [(h, pl.Utf8) for h in headers]
    if not rows:
        return pl.DataFrame(schema=schema)
    df = pl.DataFrame([list(r) for r in rows], schema=schema, orient="row")
    return df.fill_null("")


def serialize(headers: Sequence[str], rows: Iterable[Sequence[Optional[str]]]) -> bytes:
    """
    Serialize headers and rows to CSV bytes.

    Fields containing a comma, quote or newline are quoted; embedded quotes
    are doubled.
    """
    buffer = io.BytesIO()
    write_csv(buffer, headers, rows)
    return buffer.getvalue()


def write_csv(
    sink: BinaryIO,
    headers: Sequence[str],
    rows: Iterable[Sequence[Optional[str]]],
    batch_size: int = 1000,
) -> int:
    """
    Stream rows into ``sink`` in batches; returns the number of data rows written.

    The header is written exactly once, even when there are no rows.
    """
    written = 0
    batch: List[Sequence[Optional[str]]] = []
    header_pending = True

    def flush() -> None:
        nonlocal header_pending
        _frame(headers, batch).write_csv(
            sink,
            include_header=header_pending,
            separator=",",
            quote_style="necessary",
            line_terminator="\n",
        )
        header_pending = False

    for row in rows:
        if len(row) != len(headers):
            raise MalformedRowError(f"Row {written + 1} has {len(row)} fields, expected {len(headers)}")
        batch.append(row)
        written += 1
        if len(batch) >= batch_size:
            flush()
            batch = []

    if batch or header_pending:
        flush()

    return written
