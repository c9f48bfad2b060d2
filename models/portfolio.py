"""Portfolio state models."""

from pydantic import BaseModel, Field, field_validator

from models.market import Ticker, full_ticker_map


class Portfolio(BaseModel):
    """Cash and holdings (ticker -> shares) for one agent.

    ``holdings`` always carries every ticker; missing entries are filled with
    zero and unknown tickers are rejected.
    """

    cash: float
    holdings: dict[Ticker, int] = Field(default_factory=dict, validate_default=True)

    @field_validator("holdings", mode="before")
    @classmethod
    def _full_holdings(cls, value: dict) -> dict:
        holdings = full_ticker_map(value or {}, fill=0, name="holdings")
        for ticker, qty in holdings.items():
            if qty < 0:
                raise ValueError(f"Holdings for {ticker.value} cannot be negative, got {qty}.")
        return holdings

    def snapshot(self) -> "Portfolio":
        """Return an independent copy safe to hand to observers."""
        return self.model_copy(deep=True)
