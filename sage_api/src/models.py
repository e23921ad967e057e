"""Pydantic models for Sage Accounting API data."""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field


class Account(BaseModel):
    """A ledger account (chart-of-accounts entry)."""

    id: str
    name: str | None = None
    code: str | None = Field(None, alias="nominal_code")  # Provider calls it nominal_code

    model_config = ConfigDict(extra="ignore", populate_by_name=True, coerce_numbers_to_str=True)


class JournalLine(BaseModel):
    """One line of a journal.

    The sign of ``amount`` is the only debit/credit marker:
    positive = credit, negative = debit.
    """

    account_code: str
    amount: float
    description: str | None = None

    model_config = ConfigDict(extra="ignore")

    @property
    def debit(self) -> float:
        """Debit side of the line (magnitude of a negative amount)."""
        return abs(self.amount) if self.amount < 0 else 0

    @property
    def credit(self) -> float:
        """Credit side of the line."""
        return self.amount if self.amount > 0 else 0

    def to_api(self) -> dict:
        """Convert to the provider's journal_lines entry."""
        return {
            "details": self.description,
            "debit": self.debit,
            "credit": self.credit,
            "ledger_account_id": self.account_code,
        }


class JournalData(BaseModel):
    """A journal to be created.

    ``status`` is kept for callers but is not sent to the API.
    """

    status: str | None = None
    date: str  # YYYY-MM-DD
    narration: str
    journal_lines: list[JournalLine]

    model_config = ConfigDict(extra="ignore")

    @classmethod
    def load(cls, path: str | Path) -> "JournalData":
        """Load from JSON file."""
        return cls.model_validate_json(Path(path).read_text())
