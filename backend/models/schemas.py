from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class Transaction(BaseModel):
    date: str = Field(description="Transaction date in YYYY-MM-DD format")
    description: str = Field(description="Cleaned transaction description")
    amount: float = Field(description="Transaction amount (negative for expense, positive for income)")
    category: str = Field(description="Categorized type of transaction")
    notes: Optional[str] = Field(default=None, description="Any extra notes or reference numbers")


class IdleState(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: Literal["idle"] = "idle"

    @property
    def filename(self) -> Optional[str]:
        return None

    @property
    def data(self) -> list[Transaction]:
        return []

    @property
    def error(self) -> Optional[str]:
        return None


class ProcessingInFlight(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: Literal["processing"] = "processing"
    filename: str

    @property
    def data(self) -> list[Transaction]:
        return []

    @property
    def error(self) -> Optional[str]:
        return None


class SuccessState(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: Literal["success"] = "success"
    filename: str
    data: list[Transaction]

    @property
    def error(self) -> Optional[str]:
        return None


class ErrorState(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: Literal["error"] = "error"
    filename: str
    error: str

    @property
    def data(self) -> list[Transaction]:
        return []


# One value per session, replaced wholesale on every transition.
ProcessingState = Annotated[
    Union[IdleState, ProcessingInFlight, SuccessState, ErrorState],
    Field(discriminator="status"),
]


class CategorySummary(BaseModel):
    category: str
    total: float


class TableSummary(BaseModel):
    count: int
    net_total: float
    net_total_display: str
    summary_by_category: list[CategorySummary]


class StateResponse(BaseModel):
    status: Literal["idle", "processing", "success", "error"]
    filename: Optional[str] = None
    data: list[Transaction]
    error: Optional[str] = None
    summary: Optional[TableSummary] = None


class CsvTextResponse(BaseModel):
    csv: str
