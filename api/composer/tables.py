"""
Plain-text table reflow for completion output.

Models often answer budget or inventory questions with column-aligned plain
text. ``reflow_tables`` finds runs of such lines and rewrites them as
Markdown pipe tables; everything else passes through untouched. The
transform is cosmetic, so any failure returns the input unchanged.
"""

import re
from typing import List

import structlog

logger = structlog.get_logger(__name__)

MIN_LINE_LENGTH = 15
MIN_COLUMNS = 3
MAX_TABLE_ROWS = 15
MAX_HEADER_CELL_LENGTH = 25
ITEM_TABLE_COLUMNS = 6
EMPTY_CELL = "—"

COLUMN_SPLIT = re.compile(r"\s{2,}")
HEADER_WORDS = re.compile(r"ÍTEM|ITEM|DESCRIPCIÓN|DESCRIPCION|UNIDAD|CANTIDAD|V/UNITARIO|V/TOTAL|TOTAL", re.IGNORECASE)
NUMERIC_CELL = re.compile(r"^\d+")
MONEY_CELL = re.compile(r"^\$")
UNIT_CELL = re.compile(r"m²|m2|unidad", re.IGNORECASE)
NUMBERED_LINE = re.compile(r"^\d+\s+[A-ZÁÉÍÓÚÜÑ]")
PIPE_ROW = "|"
SEPARATOR_LINE = re.compile(r"^[\s\-:]+$")
TOTAL_LINE = re.compile(r"^TOTAL", re.IGNORECASE)
ITEM_CELL = re.compile(r"ÍTEM|ITEM", re.IGNORECASE)


def split_columns(line: str) -> List[str]:
    return [part for part in COLUMN_SPLIT.split(line) if part.strip()]


def is_header_like(line: str, parts: List[str]) -> bool:
    if len(parts) < MIN_COLUMNS:
        return False
    return all(len(p) < MAX_HEADER_CELL_LENGTH for p in parts) or bool(HEADER_WORDS.search(line))


def is_data_row(line: str, parts: List[str]) -> bool:
    if len(parts) < MIN_COLUMNS:
        return False
    if any(NUMERIC_CELL.match(p) or MONEY_CELL.match(p) or UNIT_CELL.search(p) for p in parts):
        return True
    return bool(NUMBERED_LINE.match(line))


def _most_common(counts: List[int]) -> int:
    # Earlier values win ties.
    best = counts[0]
    for value in counts[1:]:
        if counts.count(best) < counts.count(value):
            best = value
    return best


def _render(rows: List[List[str]]) -> List[str]:
    columns = max(
        _most_common([len(r) for r in rows]),
        ITEM_TABLE_COLUMNS if any(ITEM_CELL.search(c) for c in rows[0]) else MIN_COLUMNS,
    )

    normalized = []
    for index, row in enumerate(rows):
        if index > 0 and TOTAL_LINE.match(row[0]):
            cells = ["TOTAL"] + [row[k] if k < len(row) else "" for k in range(1, columns)]
        else:
            cells = (row + [""] * columns)[:columns]
        normalized.append([cell.strip() or EMPTY_CELL for cell in cells])

    lines = ["| " + " | ".join(normalized[0]) + " |", "|" + "|".join("---" for _ in normalized[0]) + "|"]
    lines.extend("| " + " | ".join(row) + " |" for row in normalized[1:])
    lines.append("")
    return lines


def _reflow(text: str) -> str:
    lines = text.split("\n")
    result: List[str] = []
    i = 0
    while i < len(lines):
        line = lines[i].strip()
        if len(line) > MIN_LINE_LENGTH and not line.startswith(PIPE_ROW):
            parts = split_columns(line)
            if is_header_like(line, parts) or is_data_row(line, parts):
                rows = [parts]
                j = i + 1
                while j < len(lines) and len(rows) < MAX_TABLE_ROWS:
                    next_line = lines[j].strip()
                    if not next_line or next_line.startswith(PIPE_ROW):
                        break
                    if SEPARATOR_LINE.match(next_line):
                        j += 1
                        continue
                    next_parts = split_columns(next_line)
                    if TOTAL_LINE.match(next_line):
                        rows.append(["TOTAL"] + next_parts[1:])
                    elif len(next_parts) >= 2 and abs(len(next_parts) - len(parts)) <= 1:
                        rows.append(next_parts)
                    else:
                        break
                    j += 1

                if len(rows) >= 2:
                    result.extend(_render(rows))
                    i = j
                    continue

        result.append(lines[i])
        i += 1
    return "\n".join(result)


def reflow_tables(text: str) -> str:
    """Rewrite plain-text tables in ``text`` as Markdown; idempotent on Markdown tables."""
    if not text or not isinstance(text, str):
        return text
    try:
        return _reflow(text)
    except Exception as e:
        logger.warning("Table reflow failed, keeping original text", error=str(e))
        return text
