"""
CSV adapters around the transaction processor.

``read_transactions`` pulls records lazily from any readable stream, so an
input never has to fit in memory. ``write_accounts`` renders the final
snapshot.
"""

import csv
import io
from typing import IO, Iterable, Iterator, List, Optional, Union

import structlog
from pydantic import ValidationError

from amount import Amount
from errors import InvalidAmount, IoFailure, MalformedRecord
from models import Account, AccountSnapshot, TransactionRecord, TransactionType

logger = structlog.get_logger()

REQUIRED_COLUMNS = ("type", "client", "tx")
OUTPUT_COLUMNS = ("client", "available", "held", "total", "locked")


def _as_text(source: Union[IO[str], IO[bytes]]) -> IO[str]:
    if isinstance(source, io.TextIOBase):
        return source
    return io.TextIOWrapper(source, encoding="utf-8-sig", newline="")


def _rows(source: Union[IO[str], IO[bytes]]) -> Iterator[List[str]]:
    reader = csv.reader(_as_text(source))
    while True:
        try:
            row = next(reader)
        except StopIteration:
            return
        except csv.Error as exc:
            raise MalformedRecord(str(exc), reader.line_num) from exc
        except UnicodeDecodeError as exc:
            raise MalformedRecord(f"input is not valid UTF-8: {exc.reason}") from exc
        except OSError as exc:
            raise IoFailure(f"failed to read transactions: {exc}") from exc
        yield row


def parse_row(header: List[str], row: List[str], line: Optional[int] = None) -> TransactionRecord:
    """Build a record from one CSV row. Raises MalformedRecord."""
    if len(row) > len(header):
        raise MalformedRecord(f"expected at most {len(header)} fields, got {len(row)}", line)
    fields = dict(zip(header, row))

    raw_type = fields.get("type", "")
    try:
        kind = TransactionType(raw_type.strip())
    except ValueError:
        raise MalformedRecord(f"unknown transaction type {raw_type!r}", line) from None

    amount = None
    raw_amount = (fields.get("amount") or "").strip()
    if kind.is_monetary and raw_amount:
        try:
            amount = Amount.parse(raw_amount)
        except InvalidAmount as exc:
            raise InvalidAmount(exc.text, line) from None

    try:
        return TransactionRecord(
            type=kind,
            client=fields.get("client", "").strip(),
            tx=fields.get("tx", "").strip(),
            amount=amount,
        )
    except ValidationError as exc:
        error = exc.errors()[0]
        location = ".".join(str(part) for part in error["loc"])
        message = f"{location}: {error['msg']}" if location else error["msg"]
        raise MalformedRecord(message, line) from None


def read_transactions(
    source: Union[IO[str], IO[bytes]],
    skip_malformed: bool = False,
) -> Iterator[TransactionRecord]:
    """
    Yield transaction records from a CSV stream with a header row.

    Header names and every field are trimmed, so ``" deposit, 1, 2, 3.5"``
    is a valid row. Type names stay case sensitive.

    With ``skip_malformed`` a bad row is logged and dropped; otherwise the
    MalformedRecord propagates and ends the iteration.
    """
    rows = _rows(source)
    first = next(rows, None)
    if first is None:
        return
    header = [name.strip() for name in first]
    missing = [column for column in REQUIRED_COLUMNS if column not in header]
    if missing:
        raise MalformedRecord(f"header is missing columns: {', '.join(missing)}", 1)

    # The header is line 1.
    for line, row in enumerate(rows, start=2):
        if not row:
            continue
        try:
            yield parse_row(header, row, line)
        except MalformedRecord as exc:
            if not skip_malformed:
                raise
            logger.warning("Skipping malformed record", line=exc.line, error=exc.message)


def write_accounts(accounts: Iterable[Account], stream: IO[str]) -> None:
    """Write one CSV row per account, ordered by client ID."""
    writer = csv.writer(stream, lineterminator="\n")
    writer.writerow(OUTPUT_COLUMNS)
    for account in sorted(accounts, key=lambda account: account.client):
        snapshot = AccountSnapshot.from_account(account)
        writer.writerow([
            snapshot.client,
            snapshot.available,
            snapshot.held,
            snapshot.total,
            "true" if snapshot.locked else "false",
        ])
