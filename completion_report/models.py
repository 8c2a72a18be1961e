"""Data models for the Completion Report application."""

from typing import List

from pydantic import BaseModel, ConfigDict, Field


class FinalReportRow(BaseModel):
    """One reconciled pharmacist row of the completion report."""
    model_config = ConfigDict(populate_by_name=True)

    district: str = Field("", alias="District")
    city: str = Field("", alias="City")
    supervisor_name: str = Field("", alias="Supervisor Name")
    pharmacy_no: str = Field("", alias="Pharmacy No.")
    employee_id: str = Field("", alias="User/Employee ID")
    email: str = Field("", alias="Username (Email)")
    display_name: str = Field("", alias="Display Name (Pharmacist name)")
    phone: str = Field("", alias="Phone number (Whatsapp)")
    scfhs: str = Field("", alias="SCFHS")
    completion_rate: float = Field(0.0, alias="Completion Rate", ge=0.0, le=1.0)


class GroupStats(BaseModel):
    """Completion counts for one pivot group (district, supervisor or city)."""
    name: str
    total: int
    completed: int
    in_progress: int
    not_started: int
    completion_rate: float


class StatusCount(BaseModel):
    """Number of pharmacists in one completion status."""
    name: str
    value: int


class SummaryStats(BaseModel):
    """Overall counts and percentages for the dashboard summary table."""
    total: int
    completed: int
    in_progress: int
    not_started: int
    completion_percentage: float
    in_progress_percentage: float
    not_started_percentage: float


class ProcessedStats(BaseModel):
    """Dashboard statistics computed over the final report."""
    summary: SummaryStats
    by_district: List[GroupStats]
    by_supervisor: List[GroupStats]
    by_city: List[GroupStats]
    by_status: List[StatusCount]


class ProcessResponse(BaseModel):
    """Response from the process endpoint."""
    success: bool
    message: str
    results: List[FinalReportRow]
    stats: ProcessedStats
