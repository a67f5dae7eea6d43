from ingestion.csv_parser import parse_csv
from ingestion.ledger_csv import (
    CSV_HEADER,
    RowRejected,
    TransactionRow,
    TransferRow,
    decode_row,
    export_csv,
)

__all__ = [
    "CSV_HEADER",
    "RowRejected",
    "TransactionRow",
    "TransferRow",
    "decode_row",
    "export_csv",
    "parse_csv",
]
