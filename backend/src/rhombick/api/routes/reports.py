"""
Dashboard report endpoints.
"""

from fastapi import APIRouter

from rhombick.api.dependencies import ReportServiceDep
from rhombick.api.schemas import Envelope, SummaryResponse

router = APIRouter(prefix="/reports", tags=["reports"])


@router.get("/summary", response_model=Envelope[SummaryResponse])
async def revenue_summary(service: ReportServiceDep) -> Envelope[SummaryResponse]:
    """
    Totals for the dashboard.

    Returns customer and invoice counts, total revenue and revenue
    per invoice month.
    """
    summary = await service.summary()
    return Envelope(data=SummaryResponse.from_domain(summary))
