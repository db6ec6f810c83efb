from collections import Counter
from typing import IO, Dict, Iterable, Optional, Set, Union

import structlog

from config import Settings, get_settings
from csv_io import read_transactions
from errors import AmountOverflow
from logging_config import configure_logging
from models import Account, LedgerEntry, ProcessingOutcome, TransactionRecord, TransactionType
from repositories import (
    AccountRepository,
    InMemoryAccountRepository,
    InMemoryTransactionLedger,
    TransactionLedger,
)

logger = structlog.get_logger()


class TransactionProcessor:
    """
    Applies transaction records to client accounts, strictly in input order.

    Deposits and withdrawals are recorded in the ledger once accepted and their
    IDs can never be reused. Disputes, resolves and chargebacks only refer to
    deposits already in the ledger. Rejected records leave every balance
    untouched and are reported through their ProcessingOutcome.
    """

    def __init__(
        self,
        ledger: TransactionLedger,
        accounts: AccountRepository,
        remember_ignored_ids: bool = False,
    ):
        self.ledger = ledger
        self.accounts = accounts
        self.remember_ignored_ids = remember_ignored_ids
        self.ignored_ids: Set[int] = set()
        self.outcomes: Counter = Counter()

    def apply(self, record: TransactionRecord) -> ProcessingOutcome:
        """Apply a single record and report what happened to it."""
        logger.debug(
            "Processing transaction",
            type=record.type.value,
            client=record.client,
            tx=record.tx,
            amount=str(record.amount) if record.amount is not None else None,
        )

        known_client = self.accounts.get(record.client) is not None
        account = self.accounts.get_or_create(record.client)

        if record.type == TransactionType.deposit:
            outcome = self._deposit(record, account)
        elif record.type == TransactionType.withdrawal:
            outcome = self._withdraw(record, account, known_client)
        elif record.type == TransactionType.dispute:
            outcome = self._dispute(record, account)
        elif record.type == TransactionType.resolve:
            outcome = self._resolve(record, account)
        else:
            outcome = self._chargeback(record, account)

        self.outcomes[outcome] += 1
        return outcome

    def run(self, records: Iterable[TransactionRecord]) -> Dict[int, Account]:
        """Apply every record and return the final accounts keyed by client."""
        for record in records:
            self.apply(record)

        logger.info(
            "Transactions processed",
            records=sum(self.outcomes.values()),
            accounts=len(self.accounts),
            ledger_entries=len(self.ledger),
            outcomes={outcome.value: count for outcome, count in self.outcomes.items()},
        )
        return self.snapshot()

    def snapshot(self) -> Dict[int, Account]:
        return {account.client: account for account in self.accounts}

    def _is_duplicate(self, tx: int) -> bool:
        return self.ledger.contains(tx) or tx in self.ignored_ids

    def _ignore_monetary(self, record: TransactionRecord, outcome: ProcessingOutcome) -> ProcessingOutcome:
        if self.remember_ignored_ids:
            self.ignored_ids.add(record.tx)
        return outcome

    def _check_monetary(self, record: TransactionRecord, account: Account) -> Optional[ProcessingOutcome]:
        """Rejections shared by deposits and withdrawals."""
        if self._is_duplicate(record.tx):
            logger.info("Duplicate transaction ID ignored", client=record.client, tx=record.tx)
            return ProcessingOutcome.duplicate_transaction

        if record.amount.is_negative():
            logger.warning(
                "Negative amount ignored",
                type=record.type.value,
                client=record.client,
                tx=record.tx,
                amount=str(record.amount),
            )
            return self._ignore_monetary(record, ProcessingOutcome.negative_amount)

        if account.locked:
            logger.info(
                "Account is locked",
                type=record.type.value,
                client=record.client,
                tx=record.tx,
            )
            return self._ignore_monetary(record, ProcessingOutcome.account_locked)

        return None

    def _deposit(self, record: TransactionRecord, account: Account) -> ProcessingOutcome:
        rejection = self._check_monetary(record, account)
        if rejection is not None:
            return rejection

        # held is never negative, so a total that fits means available fits too.
        try:
            account.total + record.amount
        except AmountOverflow:
            logger.warning(
                "Deposit would overflow the account total",
                client=record.client,
                tx=record.tx,
                total=str(account.total),
                amount=str(record.amount),
            )
            return self._ignore_monetary(record, ProcessingOutcome.amount_overflow)

        account.credit(record.amount)
        self.ledger.insert(LedgerEntry(
            tx=record.tx,
            client=record.client,
            amount=record.amount,
            type=TransactionType.deposit,
        ))
        return ProcessingOutcome.applied

    def _withdraw(self, record: TransactionRecord, account: Account, known_client: bool) -> ProcessingOutcome:
        rejection = self._check_monetary(record, account)
        if rejection is not None:
            return rejection

        if not known_client:
            logger.info("Withdrawal from unknown client ignored", client=record.client, tx=record.tx)
            return self._ignore_monetary(record, ProcessingOutcome.unknown_account)

        if account.available < record.amount:
            logger.info(
                "Insufficient funds for withdrawal",
                client=record.client,
                tx=record.tx,
                available=str(account.available),
                requested_amount=str(record.amount),
            )
            return self._ignore_monetary(record, ProcessingOutcome.insufficient_funds)

        account.debit(record.amount)
        self.ledger.insert(LedgerEntry(
            tx=record.tx,
            client=record.client,
            amount=record.amount,
            type=TransactionType.withdrawal,
        ))
        return ProcessingOutcome.applied

    def _find_deposit(self, record: TransactionRecord) -> Optional[LedgerEntry]:
        """Look up the deposit a dispute-family record refers to."""
        entry = self.ledger.get(record.tx)
        if entry is None or entry.type != TransactionType.deposit or entry.client != record.client:
            logger.warning(
                "Referenced deposit not found",
                type=record.type.value,
                client=record.client,
                tx=record.tx,
            )
            return None
        return entry

    def _dispute(self, record: TransactionRecord, account: Account) -> ProcessingOutcome:
        entry = self._find_deposit(record)
        if entry is None:
            return ProcessingOutcome.unknown_transaction
        if entry.charged_back:
            logger.debug("Transaction already charged back", type="dispute", client=record.client, tx=record.tx)
            return ProcessingOutcome.charged_back
        if entry.disputed:
            logger.debug("Transaction already under dispute", client=record.client, tx=record.tx)
            return ProcessingOutcome.already_disputed

        account.hold(entry.amount)
        entry.disputed = True
        return ProcessingOutcome.applied

    def _settle(self, record: TransactionRecord) -> Union[LedgerEntry, ProcessingOutcome]:
        """Find the open dispute a resolve or chargeback settles."""
        entry = self._find_deposit(record)
        if entry is None:
            return ProcessingOutcome.unknown_transaction
        if entry.charged_back:
            logger.debug(
                "Transaction already charged back",
                type=record.type.value,
                client=record.client,
                tx=record.tx,
            )
            return ProcessingOutcome.charged_back
        if not entry.disputed:
            logger.debug(
                "Transaction is not under dispute",
                type=record.type.value,
                client=record.client,
                tx=record.tx,
            )
            return ProcessingOutcome.not_disputed
        return entry

    def _resolve(self, record: TransactionRecord, account: Account) -> ProcessingOutcome:
        entry = self._settle(record)
        if isinstance(entry, ProcessingOutcome):
            return entry

        account.release(entry.amount)
        entry.disputed = False
        return ProcessingOutcome.applied

    def _chargeback(self, record: TransactionRecord, account: Account) -> ProcessingOutcome:
        entry = self._settle(record)
        if isinstance(entry, ProcessingOutcome):
            return entry

        account.reverse(entry.amount)
        entry.disputed = False
        entry.charged_back = True
        logger.info(
            "Chargeback applied, account locked",
            client=record.client,
            tx=record.tx,
            amount=str(entry.amount),
        )
        return ProcessingOutcome.applied


# Factory function, one processor per input stream
def get_transaction_processor(settings: Optional[Settings] = None) -> TransactionProcessor:
    settings = settings or get_settings()
    return TransactionProcessor(
        InMemoryTransactionLedger(),
        InMemoryAccountRepository(),
        remember_ignored_ids=settings.remember_ignored_ids,
    )


def process_records(
    source: Union[IO[str], IO[bytes]],
    settings: Optional[Settings] = None,
) -> Dict[int, Account]:
    """
    Run a whole CSV stream through a fresh processor.

    Raises MalformedRecord (under the default abort policy) or IoFailure.
    """
    settings = settings or get_settings()
    # Unconfigured structlog prints to stdout, where the snapshot goes.
    if not structlog.is_configured():
        configure_logging(settings)
    processor = get_transaction_processor(settings)
    return processor.run(read_transactions(source, skip_malformed=settings.skip_malformed))
