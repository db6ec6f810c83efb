from abc import ABC, abstractmethod
from typing import Dict, Iterator, Optional

from models import Account, LedgerEntry


class TransactionLedger(ABC):
    @abstractmethod
    def contains(self, tx: int) -> bool:
        """Check whether a transaction ID was ever recorded."""
        pass

    @abstractmethod
    def insert(self, entry: LedgerEntry) -> None:
        """Record an accepted deposit or withdrawal. Raises ValueError on a reused ID."""
        pass

    @abstractmethod
    def get(self, tx: int) -> Optional[LedgerEntry]:
        """Get the stored entry. Returns None if the ID was never recorded."""
        pass

    @abstractmethod
    def __len__(self) -> int:
        pass


class AccountRepository(ABC):
    @abstractmethod
    def get(self, client: int) -> Optional[Account]:
        """Get account. Returns None if the client was never seen."""
        pass

    @abstractmethod
    def get_or_create(self, client: int) -> Account:
        """Get account, opening an empty one on first reference."""
        pass

    @abstractmethod
    def __iter__(self) -> Iterator[Account]:
        pass

    @abstractmethod
    def __len__(self) -> int:
        pass


class InMemoryTransactionLedger(TransactionLedger):
    def __init__(self):
        self.entries: Dict[int, LedgerEntry] = {}

    def contains(self, tx: int) -> bool:
        return tx in self.entries

    def insert(self, entry: LedgerEntry) -> None:
        if entry.tx in self.entries:
            raise ValueError(f"Transaction {entry.tx} is already recorded")
        self.entries[entry.tx] = entry

    def get(self, tx: int) -> Optional[LedgerEntry]:
        return self.entries.get(tx)

    def __len__(self) -> int:
        return len(self.entries)


class InMemoryAccountRepository(AccountRepository):
    def __init__(self):
        self.accounts: Dict[int, Account] = {}

    def get(self, client: int) -> Optional[Account]:
        return self.accounts.get(client)

    def get_or_create(self, client: int) -> Account:
        account = self.accounts.get(client)
        if account is None:
            account = self.accounts[client] = Account(client=client)
        return account

    def __iter__(self) -> Iterator[Account]:
        return iter(self.accounts.values())

    def __len__(self) -> int:
        return len(self.accounts)
