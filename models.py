from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from amount import Amount

U16_MAX = 2**16 - 1
U32_MAX = 2**32 - 1


class TransactionType(str, Enum):
    deposit = "deposit"
    withdrawal = "withdrawal"
    dispute = "dispute"
    resolve = "resolve"
    chargeback = "chargeback"

    @property
    def is_monetary(self) -> bool:
        return self in (TransactionType.deposit, TransactionType.withdrawal)


class ProcessingOutcome(str, Enum):
    applied = "applied"
    duplicate_transaction = "duplicate_transaction"
    negative_amount = "negative_amount"
    account_locked = "account_locked"
    insufficient_funds = "insufficient_funds"
    unknown_account = "unknown_account"
    amount_overflow = "amount_overflow"
    unknown_transaction = "unknown_transaction"
    already_disputed = "already_disputed"
    not_disputed = "not_disputed"
    charged_back = "charged_back"


class TransactionRecord(BaseModel):
    """One row of the input stream."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    type: TransactionType
    client: int = Field(..., ge=0, le=U16_MAX, description="Client identifier")
    tx: int = Field(..., ge=0, le=U32_MAX, description="Globally unique transaction ID")
    amount: Optional[Amount] = Field(None, description="Present for deposits and withdrawals only")

    @model_validator(mode="after")
    def validate_amount_presence(self):
        if self.type.is_monetary and self.amount is None:
            raise ValueError(f"{self.type.value} requires an amount")
        return self


@dataclass
class LedgerEntry:
    """An accepted deposit or withdrawal and its dispute state."""

    tx: int
    client: int
    amount: Amount
    type: TransactionType
    disputed: bool = False
    charged_back: bool = False


@dataclass
class Account:
    """
    Running balance of a single client.

    ``total`` is always derived from ``available`` and ``held``.
    """

    client: int
    available: Amount = field(default_factory=Amount.zero)
    held: Amount = field(default_factory=Amount.zero)
    locked: bool = False

    @property
    def total(self) -> Amount:
        return self.available + self.held

    def credit(self, amount: Amount) -> None:
        self.available = self.available + amount

    def debit(self, amount: Amount) -> None:
        self.available = self.available - amount

    def hold(self, amount: Amount) -> None:
        """Move funds from available to held."""
        self.available = self.available - amount
        self.held = self.held + amount

    def release(self, amount: Amount) -> None:
        """Move funds from held back to available."""
        self.held = self.held - amount
        self.available = self.available + amount

    def reverse(self, amount: Amount) -> None:
        """Withdraw held funds and freeze the account."""
        self.held = self.held - amount
        self.locked = True


class AccountSnapshot(BaseModel):
    client: int = Field(..., description="Client identifier")
    available: str = Field(..., description="Funds available for withdrawal")
    held: str = Field(..., description="Funds held by open disputes")
    total: str = Field(..., description="available + held")
    locked: bool = Field(..., description="Whether a chargeback froze the account")

    @classmethod
    def from_account(cls, account: Account) -> "AccountSnapshot":
        return cls(
            client=account.client,
            available=str(account.available),
            held=str(account.held),
            total=str(account.total),
            locked=account.locked,
        )


class ProcessResponse(BaseModel):
    accounts: List[AccountSnapshot] = Field(..., description="Final state of every account, ordered by client")
    records_processed: int = Field(..., description="Number of well-formed records applied or ignored")
    outcomes: Dict[ProcessingOutcome, int] = Field(..., description="Record count per processing outcome")


class ErrorResponse(BaseModel):
    detail: str = Field(..., description="Error description")
    error_code: str = Field(..., description="Machine-readable error code")
    timestamp: datetime = Field(default_factory=datetime.now, description="Error timestamp")


class HealthResponse(BaseModel):
    status: str = Field(..., description="Service health status")
    version: str = Field(..., description="Application version")
    timestamp: datetime = Field(default_factory=datetime.now)
