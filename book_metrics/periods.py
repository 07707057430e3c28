"""Calendar month windows used by every book section."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional

MONTH_LABELS = {
    1: "Janeiro",
    2: "Fevereiro",
    3: "Março",
    4: "Abril",
    5: "Maio",
    6: "Junho",
    7: "Julho",
    8: "Agosto",
    9: "Setembro",
    10: "Outubro",
    11: "Novembro",
    12: "Dezembro",
}

MONTH_ABBREVIATIONS = {
    1: "JAN",
    2: "FEV",
    3: "MAR",
    4: "ABR",
    5: "MAI",
    6: "JUN",
    7: "JUL",
    8: "AGO",
    9: "SET",
    10: "OUT",
    11: "NOV",
    12: "DEZ",
}


def as_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime; naive values are read as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class DateWindow:
    """A ``[start, end)`` or ``[start, end]`` range over one timestamp field.

    Inclusive ends are compared at whole-second resolution, so a timestamp inside
    the final second still belongs to the window.
    """

    start: datetime
    end: datetime
    end_inclusive: bool = False

    def contains(self, value: Optional[datetime]) -> bool:
        if value is None:
            return False
        moment = as_utc(value)
        if moment < self.start:
            return False
        if self.end_inclusive:
            return moment.replace(microsecond=0) <= self.end
        return moment < self.end

    @classmethod
    def spanning(cls, first: "DateWindow", last: "DateWindow") -> "DateWindow":
        """Window covering ``first`` through ``last`` keeping ``last``'s end semantics."""
        return cls(start=first.start, end=last.end, end_inclusive=last.end_inclusive)

    def describe(self) -> str:
        closing = "]" if self.end_inclusive else ")"
        return f"[{self.start.isoformat()}, {self.end.isoformat()}{closing}"


@dataclass(frozen=True, order=True)
class PeriodWindow:
    """One calendar month of a book."""

    year: int
    month: int

    def __post_init__(self) -> None:
        if not 1 <= int(self.month) <= 12:
            raise ValueError(f"Month must be between 1 and 12, got {self.month!r}")
        if int(self.year) < 1:
            raise ValueError(f"Year must be positive, got {self.year!r}")

    @classmethod
    def of(cls, month: int, year: int) -> "PeriodWindow":
        return cls(year=int(year), month=int(month))

    @classmethod
    def containing(cls, value: datetime) -> "PeriodWindow":
        moment = as_utc(value)
        return cls(year=moment.year, month=moment.month)

    @property
    def start(self) -> datetime:
        return datetime(self.year, self.month, 1, tzinfo=timezone.utc)

    @property
    def next_start(self) -> datetime:
        return self.shift(1).start

    @property
    def end(self) -> datetime:
        """Last whole second of the month (23:59:59 on its final day)."""
        return self.next_start - timedelta(seconds=1)

    def shift(self, months: int) -> "PeriodWindow":
        """Move ``months`` periods forward (negative values go back), rolling years."""
        index = self.year * 12 + (self.month - 1) + months
        year, month_index = divmod(index, 12)
        return PeriodWindow(year=year, month=month_index + 1)

    def range_back(self, count: int) -> List["PeriodWindow"]:
        """Return ``[self - count + 1 .. self]`` in chronological order."""
        if count < 1:
            return []
        return [self.shift(offset) for offset in range(-(count - 1), 1)]

    def opened_window(self) -> DateWindow:
        return DateWindow(start=self.start, end=self.end, end_inclusive=True)

    def closed_window(self) -> DateWindow:
        return DateWindow(start=self.start, end=self.next_start, end_inclusive=False)

    @property
    def label(self) -> str:
        return f"{MONTH_LABELS[self.month]} {self.year}"

    @property
    def short_label(self) -> str:
        return MONTH_ABBREVIATIONS[self.month]

    @property
    def billing_key(self) -> str:
        """``MM/YYYY`` key used by the billing records store."""
        return f"{self.month:02d}/{self.year}"

    def __str__(self) -> str:
        return f"{self.month:02d}/{self.year}"
