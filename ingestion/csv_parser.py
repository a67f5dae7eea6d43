"""Quote-aware CSV parsing for ledger imports.

Handles quoted fields containing commas and line breaks, doubled quotes
("" inside a quoted field is a literal quote), and both \\n and \\r\\n line
endings. Cells are trimmed and rows whose cells are all empty are dropped.
"""

from typing import List


def parse_csv(text: str) -> List[List[str]]:
    """Split CSV text into rows of trimmed cells.

    Args:
        text: Full CSV payload.

    Returns:
        Non-blank rows, in file order, header included.
    """
    rows = []
    row = []
    cell = []
    in_quotes = False
    i = 0
    length = len(text)

    def end_row():
        row.append("".join(cell).strip())
        if any(row):
            rows.append(list(row))
        row.clear()
        cell.clear()

    while i < length:
        char = text[i]
        next_char = text[i + 1] if i + 1 < length else ""

        if char == '"' and in_quotes and next_char == '"':
            cell.append('"')
            i += 1
        elif char == '"':
            in_quotes = not in_quotes
        elif char == "," and not in_quotes:
            row.append("".join(cell).strip())
            cell.clear()
        elif char == "\n" and not in_quotes:
            end_row()
        elif char == "\r" and next_char == "\n" and not in_quotes:
            end_row()
            i += 1
        else:
            cell.append(char)
        i += 1

    if cell or row:
        end_row()

    return rows
