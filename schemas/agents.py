"""
Schemas for marketplace agents
"""
from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any


class AgentItem(BaseModel):
    """Agent price card"""
    id: str
    slug: str
    name: str
    description: str
    category: str
    price: float = Field(..., description="Price per run in AED")
    currency: str
    price_display: str = Field(..., description="Formatted price, e.g. 5.00 AED")
    features: List[str] = Field(default_factory=list)
    estimated_time: str
    available: bool = Field(..., description="Whether a workflow is configured")


class AgentList(BaseModel):
    agents: List[AgentItem]
    total: int


class RunAgentRequest(BaseModel):
    """Input forwarded to the agent workflow"""
    input: Dict[str, Any] = Field(default_factory=dict, description="Agent specific fields")


class RunAgentResponse(BaseModel):
    """Result of a paid agent run"""
    success: bool = Field(True)
    agent_slug: str
    charged: float = Field(..., description="AED deducted")
    new_balance: float = Field(..., description="Wallet balance after the charge")
    result: Dict[str, Any] = Field(..., description="Workflow output (data, googleSheetsId, resultUrl)")
    google_sheets_id: Optional[str] = None
    result_url: Optional[str] = None
