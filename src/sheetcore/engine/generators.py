"""Synthetic data for GENERATE_DATA intents.

Two entry points feed the same per-cell generators:

- explicit ``patterns`` keyed by column letter or header, applied to a
  target row span;
- a free-text "fill to row N" description, parsed by ``parse_fill_target``,
  with each column's generator inferred from its header.

Every generator is a pure function of the row index, so the same intent
always produces the same rows.
"""

from __future__ import annotations

import random
import re
from typing import Callable, NamedTuple, Sequence

from sheetcore.contracts.intents import PatternSpec
from sheetcore.contracts.table import CellValue

INDONESIAN_NAMES = (
    "Ahmad", "Budi", "Citra", "Dewi", "Eko", "Fitri", "Gita", "Hadi", "Indra", "Joko",
)
ENGLISH_NAMES = (
    "John Doe", "Jane Smith", "Bob Wilson", "Alice Johnson", "Charlie Brown",
    "Diana Prince", "Ethan Hunt", "Fiona Gallagher", "George Miller", "Hannah Montana",
)
STREETS = (
    "Sudirman", "Thamrin", "Gatot Subroto", "Rasuna Said",
    "Diponegoro", "Ahmad Yani", "Merdeka", "Pahlawan",
)
CITIES = (
    "Jakarta", "Surabaya", "Bandung", "Medan",
    "Semarang", "Makassar", "Palembang", "Yogyakarta",
)
PRODUCTS = (
    "Laptop", "Mouse", "Keyboard", "Monitor", "Printer",
    "Scanner", "Webcam", "Headset", "Speaker", "Microphone",
)
DEFAULT_STATUSES = ("Active", "Pending", "Completed")
PAYMENT_STATUSES = ("Lunas", "Belum Lunas")

PHONE_PREFIX = "0812345678"
RANDOM_SEED = 42

Generator = Callable[[int, int], CellValue]
"""(data_row, offset_within_target) -> value"""


class FillTarget(NamedTuple):
    """Data-row span to generate: ``start`` inclusive, ``end`` exclusive."""

    start: int
    end: int


# ---------------------------------------------------------------------------
# Natural-language targets
# ---------------------------------------------------------------------------
_RANGE_PATTERNS = (
    re.compile(r"\b(?:fill|generate)\b.*?\brows?\s+(\d+)\s*(?:-|to|until|through)\s*(\d+)", re.IGNORECASE),
    re.compile(r"\bisi\b.*?\bbaris\s+(\d+)\s*(?:-|sampai|hingga|s/d)\s*(\d+)", re.IGNORECASE),
)
_SINGLE_PATTERNS = (
    re.compile(r"\b(?:fill|generate)\b.*?\b(?:to|until|up to|through)\s+row\s+(\d+)", re.IGNORECASE),
    re.compile(r"\bisi\b.*?\b(?:hingga|sampai|ke)\s+baris\s+(\d+)", re.IGNORECASE),
)


def parse_fill_target(description: str, current_rows: int) -> FillTarget | None:
    """Read "fill to row N" / "fill rows A-B" (English or Indonesian).

    Row numbers in these phrases count data rows, so "fill to row 5" leaves
    five data rows.  A range starts at ``max(current_rows, A - 1)``.
    Returns None when no phrase matches or nothing would be added.
    """
    if not description:
        return None
    for pattern in _RANGE_PATTERNS:
        m = pattern.search(description)
        if m:
            first, last = sorted((int(m.group(1)), int(m.group(2))))
            target = FillTarget(max(current_rows, first - 1), last)
            return target if target.end > current_rows else None
    for pattern in _SINGLE_PATTERNS:
        m = pattern.search(description)
        if m:
            last = int(m.group(1))
            return FillTarget(current_rows, last) if last > current_rows else None
    return None


# ---------------------------------------------------------------------------
# Generators
# ---------------------------------------------------------------------------
def _cycle(values: Sequence[CellValue]) -> Generator:
    return lambda row, offset: values[row % len(values)]


def _address(row: int, offset: int) -> str:
    street = STREETS[row % len(STREETS)]
    city = CITIES[row % len(CITIES)]
    return f"Jl. {street} No. {(row + 1) * 10}, {city}"


def _phone(row: int, offset: int) -> str:
    return PHONE_PREFIX + str(row).zfill(2)


def _email(row: int, offset: int) -> str:
    return f"user{row + 1}@example.com"


def _numbers(low: float, high: float, seed_key: str) -> Generator:
    integral = float(low).is_integer() and float(high).is_integer()

    def _gen(row: int, offset: int) -> CellValue:
        rng = random.Random(f"{RANDOM_SEED}:{seed_key}:{row}")
        if integral:
            return rng.randint(int(low), int(high))
        return round(rng.uniform(low, high), 2)

    return _gen


def generator_for_pattern(spec: PatternSpec, seed_key: str = "") -> Generator:
    """Build the generator for an explicit pattern spec."""
    kind = spec.type.lower()
    if kind == "sequence":
        start, step = spec.start, spec.increment
        return lambda row, offset: start + offset * step
    if kind == "names":
        names = ENGLISH_NAMES if spec.style.lower() == "english" else INDONESIAN_NAMES
        return _cycle(names)
    if kind == "addresses":
        return _address
    if kind == "phone":
        return _phone
    if kind == "email":
        return _email
    if kind == "status":
        return _cycle(spec.values or DEFAULT_STATUSES)
    if kind == "numbers":
        low = spec.min if spec.min is not None else 0
        high = spec.max if spec.max is not None else 1_000_000
        return _numbers(min(low, high), max(low, high), seed_key)
    if kind == "products":
        return _cycle(PRODUCTS)
    if kind == "text":
        if spec.values:
            return _cycle(spec.values)
        return lambda row, offset: f"Value {offset + 1}"
    raise ValueError(f"Unknown pattern type: {spec.type}")


_HEADER_RULES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("nama", "name"), "names"),
    (("alamat", "address"), "addresses"),
    (("telepon", "telp", "phone", "hp"), "phone"),
    (("email", "e-mail"), "email"),
    (("pembayaran", "payment"), "payment"),
    (("status",), "status"),
    (("produk", "product", "barang", "item"), "products"),
    (("harga", "price"), "price"),
    (("qty", "quantity", "jumlah"), "quantity"),
)


def _header_kind(header: str) -> str | None:
    words = re.findall(r"[a-z0-9\-]+", header.lower())
    if words == ["no"] or header.strip().lower() in ("no.", "nomor", "#"):
        return "sequence"
    for keywords, kind in _HEADER_RULES:
        if any(k in words for k in keywords):
            return kind
    return None


def generator_for_header(
    header: str, existing: Sequence[CellValue], seed_key: str = ""
) -> Generator:
    """Infer a generator from header text, then existing values, then a placeholder."""
    kind = _header_kind(header)
    if kind == "sequence":
        return lambda row, offset: row + 1
    if kind == "names":
        return _cycle(INDONESIAN_NAMES)
    if kind == "addresses":
        return _address
    if kind == "phone":
        return _phone
    if kind == "email":
        return _email
    if kind == "payment":
        return _cycle(PAYMENT_STATUSES)
    if kind == "status":
        return _cycle(DEFAULT_STATUSES)
    if kind == "products":
        return _cycle(PRODUCTS)
    if kind == "price":
        return _numbers(100_000, 10_000_000, seed_key)
    if kind == "quantity":
        return _numbers(1, 100, seed_key)

    present = [v for v in existing if v is not None and v != ""]
    if present:
        return _cycle(present)
    label = header or "Value"
    return lambda row, offset: f"{label} {row + 1}"
