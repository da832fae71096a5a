"""
Lead Management API Routes for the Insurance Sales Assistant.
"""

import logging
from typing import List, Dict, Any, Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from lead_scoring.lead_store import InMemoryLeadStore, LeadStatus, UrgencyLevel

from ..services import get_services

logger = logging.getLogger(__name__)

router = APIRouter()


# Models
class LeadCreate(BaseModel):
    """Lead creation request."""
    name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    source: str = "web_form"
    interests: List[str] = []
    urgency_level: UrgencyLevel = UrgencyLevel.MEDIUM
    user_id: Optional[str] = None
    metadata: Dict[str, Any] = {}


class Lead(BaseModel):
    """Lead model."""
    lead_id: str
    user_id: Optional[str]
    name: Optional[str]
    email: Optional[str]
    phone: Optional[str]
    source: str
    interests: List[str]
    urgency_level: UrgencyLevel
    score: int
    status: LeadStatus
    next_steps: List[str] = []
    metadata: Dict[str, Any] = {}
    created_at: str
    updated_at: str


class LeadUpdate(BaseModel):
    """Lead update request."""
    status: Optional[LeadStatus] = None
    name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    interests: Optional[List[str]] = None
    urgency_level: Optional[UrgencyLevel] = None
    score: Optional[int] = Field(None, ge=0, le=100)
    next_steps: Optional[List[str]] = None


class LeadStats(BaseModel):
    """Lead statistics."""
    total: int
    by_status: Dict[str, int]
    average_score: float
    high_priority_leads: int


class LeadList(BaseModel):
    """Paginated lead list."""
    leads: List[Lead]
    total: int
    page: int
    page_size: int
    has_next: bool


def _lead_store() -> InMemoryLeadStore:
    services = get_services()
    if services.lead_store is None:
        raise HTTPException(status_code=503, detail="Lead store is not ready")
    return services.lead_store


@router.post("/leads", response_model=Lead)
async def create_lead(request: LeadCreate):
    """Create a lead from a form or campaign submission."""
    lead = await _lead_store().create_lead(request.model_dump(mode="json"))
    return Lead(**lead.to_dict())


@router.get("/leads", response_model=LeadList)
async def list_leads(
    status: Optional[LeadStatus] = None,
    source: Optional[str] = None,
    min_score: Optional[int] = Query(None, ge=0, le=100),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100)
):
    """
    List leads with filtering and pagination.

    Highest score first; newer leads first on equal scores.
    """
    filtered = await _lead_store().get_leads(
        status=status.value if status else None,
        source=source,
        min_score=min_score,
    )

    # Paginate
    total = len(filtered)
    start = (page - 1) * page_size
    end = start + page_size

    return LeadList(
        leads=[Lead(**lead.to_dict()) for lead in filtered[start:end]],
        total=total,
        page=page,
        page_size=page_size,
        has_next=end < total
    )


@router.get("/leads/stats/summary", response_model=LeadStats)
async def get_lead_stats():
    """Get lead statistics summary."""
    return LeadStats(**_lead_store().get_stats())


@router.get("/leads/{lead_id}", response_model=Lead)
async def get_lead(lead_id: str):
    """Get a specific lead."""
    lead = await _lead_store().get_lead(lead_id)
    if lead is None:
        raise HTTPException(status_code=404, detail="Lead not found")

    return Lead(**lead.to_dict())


@router.patch("/leads/{lead_id}", response_model=Lead)
async def update_lead(lead_id: str, update: LeadUpdate):
    """Update a lead."""
    lead = await _lead_store().update_lead(lead_id, update.model_dump(mode="json", exclude_none=True))
    if lead is None:
        raise HTTPException(status_code=404, detail="Lead not found")

    return Lead(**lead.to_dict())
