from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator


def iso_z(dt: datetime) -> str:
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ExchangeRateSnapshot(BaseModel):
    # Unknown upstream fields (result, time_last_update_utc, ...) are kept as-is.
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    base_code: str | None = None
    conversion_rates: dict[str, float]
    fetched_at: int | None = Field(default=None, alias="fetchedAt")
    fetched_date: str | None = Field(default=None, alias="fetchedDate")

    @field_validator("conversion_rates")
    @classmethod
    def _check_rates(cls, value: dict[str, float]) -> dict[str, float]:
        if not value:
            raise ValueError("conversion_rates must not be empty")
        out: dict[str, float] = {}
        for code, rate in value.items():
            if rate <= 0:
                raise ValueError(f"Non-positive rate for {code}")
            out[code.strip().upper()] = rate
        return out

    @field_validator("base_code")
    @classmethod
    def _upper_base(cls, value: str | None) -> str | None:
        return value.strip().upper() if value else value

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class CurrencyRateOut(BaseModel):
    currency: str
    rate: float
    timestamp: str


class RatesHashOut(BaseModel):
    rates: dict[str, float]
    count: int
    timestamp: str

