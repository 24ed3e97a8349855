"""Domain Value Objects"""
from pydantic import BaseModel, Field, validator
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterator

from domain.exceptions import ValidationError


class Interval(BaseModel):
    """Half-open stay range [check_in, check_out)

    A guest leaving on day D and another arriving on day D do not overlap,
    so same-day turnover is legal.
    """
    check_in: date
    check_out: date

    @validator('check_out')
    def check_out_after_check_in(cls, v, values):
        if 'check_in' in values and v <= values['check_in']:
            raise ValidationError(
                'Check-out must be after check-in',
                {"check_in": values['check_in'].isoformat(), "check_out": v.isoformat()}
            )
        return v

    def overlaps(self, other: "Interval") -> bool:
        """Check if two stays share at least one night"""
        return self.check_in < other.check_out and other.check_in < self.check_out

    def nights(self) -> int:
        """Calculate number of nights"""
        return (self.check_out - self.check_in).days

    def each_night(self) -> Iterator[date]:
        day = self.check_in
        while day < self.check_out:
            yield day
            day += timedelta(days=1)

    class Config:
        frozen = True


class UnitRef(BaseModel):
    """Derived identity of one interchangeable unit within a room type

    Never stored on its own: it is computed from the room type and an index
    in [0, qty), and rendered as ``room_type_id#index``.
    """
    room_type_id: str
    index: int

    @validator('index')
    def index_not_negative(cls, v):
        if v < 0:
            raise ValidationError('Unit index must be zero or greater', {"index": v})
        return v

    @property
    def key(self) -> str:
        return f"{self.room_type_id}#{self.index}"

    def __str__(self) -> str:
        return self.key

    class Config:
        frozen = True


class Money(BaseModel):
    """Value Object for monetary amounts"""
    amount: Decimal = Field(ge=0)
    currency: str = "IDR"

    class Config:
        frozen = True
