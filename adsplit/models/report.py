from typing import Hashable, Optional

from pydantic import BaseModel, ConfigDict

REPORT_COLUMNS = ("Campaign", "Ad Group", "Probability", "Expected Loss")


def format_percent(value: float) -> str:
    """Render a probability as a percentage with two decimals, e.g. ``97.13%``."""
    return f"{value * 100:.2f}%"


class ReportRow(BaseModel):
    model_config = ConfigDict(frozen=True)

    campaign: Optional[str] = None
    cohort: Hashable
    classification: str
    probability: str
    expected_loss: str

    def as_list(self) -> list[str]:
        """Cells in ``REPORT_COLUMNS`` order."""
        return [
            self.campaign or "",
            str(self.cohort),
            self.probability,
            self.expected_loss,
        ]
