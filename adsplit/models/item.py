from typing import Any, Hashable, Optional

from pydantic import BaseModel, ConfigDict, Field


class OutcomeCounts(BaseModel):
    """Raw delivery counts for one ad."""

    model_config = ConfigDict(frozen=True)

    impressions: int = Field(default=0, ge=0)
    clicks: int = Field(default=0, ge=0)
    conversions: int = Field(default=0, ge=0)
    trials: Optional[int] = Field(default=None, ge=0)


class Item(BaseModel):
    """One candidate in an experiment.

    ``handle`` is whatever the caller needs to apply a classification later
    (an ad object, an id).  It is carried through untouched.
    """

    model_config = ConfigDict(frozen=True)

    cohort_key: Hashable
    counts: OutcomeCounts
    handle: Any = None
    campaign: Optional[str] = None
    cohort_label: Optional[str] = None

    @property
    def impressions(self) -> int:
        return self.counts.impressions
