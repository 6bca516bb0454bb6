"""
Router for marketplace agents
"""
import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, status

from core.exceptions import WalletError, PaymentConfigurationError
from core.pricing import AgentPrice, get_agent_price, get_agents_by_category, get_all_agent_pricing
from dependencies import CurrentUserDepends, DbDepends, SettingsDepends
from routers.utils import http_error
from schemas.agents import AgentItem, AgentList, RunAgentRequest, RunAgentResponse
from services.agents import AgentService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/agents",
    tags=["agents"]
)


def _agent_item(agent: AgentPrice, available: bool) -> AgentItem:
    return AgentItem(
        **agent.model_dump(),
        price_display=agent.price_display,
        available=available
    )


@router.get("", response_model=AgentList)
async def list_agents(
    settings: SettingsDepends,
    category: Optional[str] = None
):
    """Agents with prices, cheapest first"""
    agents = get_agents_by_category(category) if category else get_all_agent_pricing()
    configured = settings.n8n.webhook_urls()
    return AgentList(
        agents=[_agent_item(agent, agent.slug in configured) for agent in agents],
        total=len(agents)
    )


@router.get("/{slug}", response_model=AgentItem)
async def get_agent(slug: str, settings: SettingsDepends):
    agent = get_agent_price(slug)
    if agent is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown agent: {slug}"
        )
    return _agent_item(agent, slug in settings.n8n.webhook_urls())


@router.post("/{slug}/run", response_model=RunAgentResponse)
async def run_agent(
    slug: str,
    request: RunAgentRequest,
    user_id: CurrentUserDepends,
    db: DbDepends,
    settings: SettingsDepends
):
    """
    Run an agent, paying its price from the wallet

    The charge is refunded when the workflow fails.
    """
    try:
        result = await AgentService.run_agent(user_id, slug, request.input, settings, db)
    except PaymentConfigurationError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e)
        )
    except WalletError as e:
        raise http_error(e)
    except Exception as e:
        await db.rollback()
        logger.exception("Error running agent %s", slug)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error running agent: {str(e)}"
        )

    workflow = result["result"]
    return RunAgentResponse(
        success=True,
        agent_slug=slug,
        charged=result["charged"],
        new_balance=result["new_balance"],
        result=workflow,
        google_sheets_id=workflow.get("googleSheetsId"),
        result_url=workflow.get("resultUrl")
    )
