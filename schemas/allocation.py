# schemas/allocation.py
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, Iterator, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, RootModel, ValidationError

from services.errors import InvalidInput


class AssetClass(str, Enum):
    stocks_us = "stocks_us"
    stocks_international = "stocks_international"
    bonds = "bonds"
    real_estate = "real_estate"
    commodities = "commodities"
    cash = "cash"


ASSET_CLASS_ORDER: List[AssetClass] = list(AssetClass)

ASSET_CLASS_LABELS: Dict[AssetClass, str] = {
    AssetClass.stocks_us: "US Stocks",
    AssetClass.stocks_international: "International Stocks",
    AssetClass.bonds: "Bonds",
    AssetClass.real_estate: "Real Estate",
    AssetClass.commodities: "Commodities",
    AssetClass.cash: "Cash",
}

# a single class can hold at most the whole portfolio
Percentage = Annotated[float, Field(ge=0, le=100, allow_inf_nan=False)]

DriftClassification = Literal["overweight", "underweight", "drift"]
AlertType = Literal["overweight", "underweight", "drift", "opportunity"]
Urgency = Literal["high", "medium", "low"]


class AllocationMix(RootModel[Dict[AssetClass, Percentage]]):
    """
    Percentage breakdown across the closed set of asset classes.
    Missing classes read as 0%. Totals are not forced to 100 (drift is expected).
    """

    def get(self, asset_class: Union[AssetClass, str]) -> float:
        return float(self.root.get(AssetClass(asset_class), 0.0))

    def __iter__(self) -> Iterator[AssetClass]:  # type: ignore[override]
        return iter(self.root)

    def __contains__(self, asset_class: object) -> bool:
        try:
            return AssetClass(asset_class) in self.root
        except ValueError:
            return False

    def total(self) -> float:
        return float(sum(self.root.values()))

    def as_dict(self) -> Dict[str, float]:
        return {k.value: float(v) for k, v in self.root.items()}

    def fractions(self) -> List[float]:
        """Weights as fractions (pct / 100) in ASSET_CLASS_ORDER."""
        return [self.get(a) / 100.0 for a in ASSET_CLASS_ORDER]

    def is_balanced(self, tolerance: float = 1.0) -> bool:
        return abs(self.total() - 100.0) <= tolerance


MixInput = Union[AllocationMix, Mapping[str, Any]]


def coerce_mix(value: MixInput, field: str = "allocation") -> AllocationMix:
    """Accept an AllocationMix or a plain mapping; raise InvalidInput on bad keys/values."""
    if isinstance(value, AllocationMix):
        return value
    if not isinstance(value, Mapping):
        raise InvalidInput(field, "must be a mapping of asset class to percentage", value)
    try:
        return AllocationMix.model_validate(dict(value))
    except ValidationError as exc:
        raise InvalidInput.from_validation_error(exc, prefix=field) from exc


class DriftResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    asset_class: AssetClass
    current_pct: float
    target_pct: float
    deviation: float                 # signed, percentage points (current - target)
    abs_deviation: float
    threshold: float
    # None only for within-band rows returned on request
    classification: Optional[DriftClassification] = None

    @property
    def is_within_band(self) -> bool:
        return self.classification is None


class RebalancingAlert(BaseModel):
    """
    One asset class's deviation, ready for display or narration.
    Everything is frozen except `dismissed`, which belongs to the caller.
    """

    model_config = ConfigDict(validate_assignment=True)

    alert_key: str = Field(..., frozen=True)
    alert_type: AlertType = Field(..., frozen=True)
    asset_class: AssetClass = Field(..., frozen=True)
    current_allocation: float = Field(..., frozen=True)
    target_allocation: float = Field(..., frozen=True)
    deviation_percentage: float = Field(..., frozen=True)  # signed
    urgency: Urgency = Field(..., frozen=True)
    suggested_action: str = Field(..., frozen=True)
    potential_impact: str = Field(..., frozen=True)
    created_date: datetime = Field(..., frozen=True)
    dismissed: bool = False
