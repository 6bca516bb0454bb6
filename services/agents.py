"""
n8n workflow client and paid agent runs
"""
import asyncio
import logging
from typing import Optional, Dict, Any, Iterable

import aiohttp
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import (
    AgentWorkflowError,
    PaymentConfigurationError,
    UnknownAgentError,
)
from core.pricing import get_agent_price
from core.security import sanitize_for_logging, validate_webhook_url
from services.ledger import LedgerService
from settings import Settings

logger = logging.getLogger(__name__)


class N8NClient:
    """
    Async client for n8n webhook workflows
    """

    def __init__(
        self,
        timeout: int = 120,
        allowed_domains: Optional[Iterable[str]] = None,
        production: bool = False
    ):
        """
        Initialize n8n client

        Args:
            timeout: Total request timeout in seconds
            allowed_domains: Hosts accepted as workflow endpoints (None disables the check)
            production: Enforce HTTPS and reject localhost
        """
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.allowed_domains = list(allowed_domains) if allowed_domains is not None else None
        self.production = production
        self.session = None

    async def __aenter__(self):
        """Context manager entry"""
        self.session = aiohttp.ClientSession(timeout=self.timeout)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit"""
        if self.session:
            await self.session.close()

    def _check_url(self, agent_slug: str, url: str) -> None:
        if self.allowed_domains is None:
            return
        is_valid, error = validate_webhook_url(url, self.allowed_domains, self.production)
        if not is_valid:
            raise AgentWorkflowError(agent_slug, f"Webhook URL rejected: {error}")

    async def send(
        self,
        agent_slug: str,
        webhook_url: str,
        payload: Dict[str, Any],
        user_id: str
    ) -> Dict[str, Any]:
        """
        Send input to an agent workflow

        Args:
            agent_slug: Agent slug
            webhook_url: Workflow webhook URL
            payload: Agent input
            user_id: Calling user

        Returns:
            Dict with data, googleSheetsId and resultUrl

        Raises:
            AgentWorkflowError: Transport error, non-2xx response or non-JSON body
        """
        if not self.session:
            raise RuntimeError("Use N8NClient as async context manager")

        self._check_url(agent_slug, webhook_url)

        headers = {
            "X-User-ID": user_id,
            "X-Agent-ID": agent_slug,
            "X-Agent-Slug": agent_slug,
        }
        body = {
            **payload,
            "userId": user_id,
            "agentId": agent_slug,
            "agentSlug": agent_slug,
        }

        logger.info("Sending data to workflow: %s", sanitize_for_logging({
            "agent_slug": agent_slug,
            "user_id": user_id,
            "fields": sorted(payload.keys()),
        }))

        try:
            async with self.session.post(webhook_url, json=body, headers=headers) as response:
                if response.status < 200 or response.status >= 300:
                    raise AgentWorkflowError(
                        agent_slug,
                        f"Webhook request failed: {response.status} {response.reason}",
                        status=response.status,
                    )
                try:
                    result = await response.json(content_type=None)
                except ValueError:
                    logger.error("n8n workflow %s answered %s with a non-JSON body", agent_slug, response.status)
                    raise AgentWorkflowError(agent_slug, "Invalid workflow response", status=response.status)
        except aiohttp.ClientError as e:
            logger.error("n8n webhook error for %s: %s", agent_slug, e)
            raise AgentWorkflowError(agent_slug, f"Webhook request failed: {e}")
        except asyncio.TimeoutError:
            logger.error("n8n webhook timeout for %s", agent_slug)
            raise AgentWorkflowError(agent_slug, "Webhook request timed out")

        if not isinstance(result, dict):
            result = {"data": result}

        return {
            "data": result,
            "googleSheetsId": result.get("googleSheetsId"),
            "resultUrl": result.get("resultUrl"),
        }

    async def poll_for_results(
        self,
        result_url: str,
        max_attempts: int = 30,
        interval: float = 2.0,
        agent_slug: Optional[str] = None
    ) -> Any:
        """
        Poll an async workflow until it reports completion

        Returns:
            The ``results`` field of the completed response

        Raises:
            AgentWorkflowError: Results not ready after max_attempts (tagged with agent_slug)
        """
        if not self.session:
            raise RuntimeError("Use N8NClient as async context manager")

        for attempt in range(1, max_attempts + 1):
            try:
                async with self.session.get(result_url) as response:
                    if response.status == 200:
                        data = await response.json(content_type=None)
                        if isinstance(data, dict) and data.get("status") == "completed":
                            return data.get("results")
            except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
                logger.warning("Poll attempt %d/%d failed: %s", attempt, max_attempts, e)

            if attempt < max_attempts:
                await asyncio.sleep(interval)

        raise AgentWorkflowError(agent_slug, "Polling timeout - results not ready")

    async def check_health(self, webhook_url: Optional[str]) -> bool:
        """Whether the workflow endpoint answers an OPTIONS request"""
        if not webhook_url or not self.session:
            return False
        try:
            async with self.session.options(webhook_url) as response:
                return 200 <= response.status < 300
        except (aiohttp.ClientError, asyncio.TimeoutError):
            return False


class AgentService:
    """Service for paid agent runs"""

    @staticmethod
    def create_client(settings: Settings) -> N8NClient:
        return N8NClient(
            timeout=settings.n8n.timeout,
            allowed_domains=settings.n8n.allowed_domains,
            production=settings.is_production,
        )

    @staticmethod
    async def run_agent(
        user_id: str,
        agent_slug: str,
        payload: Dict[str, Any],
        settings: Settings,
        db: AsyncSession
    ) -> Dict[str, Any]:
        """
        Charge the agent price and run its workflow

        Args:
            user_id: Calling user
            agent_slug: Agent slug
            payload: Agent input
            settings: Application settings
            db: Database session

        Returns:
            Dict with charged amount, new balance and the workflow result

        Raises:
            UnknownAgentError: No pricing for the slug
            PaymentConfigurationError: No webhook configured for the agent
            UserNotFoundError: Unknown user
            InsufficientBalanceError: Balance below the agent price
            AgentWorkflowError: Workflow failed (the charge is refunded; a failed refund is logged and chained as the cause)
        """
        agent = get_agent_price(agent_slug)
        if agent is None:
            raise UnknownAgentError(agent_slug)

        webhook_url = settings.n8n.webhook_urls().get(agent_slug)
        if not webhook_url:
            raise PaymentConfigurationError(f"No webhook configured for agent: {agent_slug}")

        user, charge = await LedgerService.charge_agent_usage(user_id, agent_slug, db)
        charged = -charge.amount

        try:
            async with AgentService.create_client(settings) as client:
                result = await client.send(agent_slug, webhook_url, payload, user_id)
        except AgentWorkflowError as e:
            logger.error("Agent %s failed for user %s, refunding: %s", agent_slug, user_id, e)
            try:
                await LedgerService.refund(
                    user_id,
                    charged,
                    f"{agent.name} failed",
                    db,
                    agent_slug=agent_slug,
                )
            except Exception as refund_error:
                await db.rollback()
                logger.exception(
                    "Refund of %s AED to user %s failed after %s failure",
                    charged, user_id, agent_slug
                )
                raise e from refund_error
            raise

        logger.info("Agent run completed: %s", {
            "user_id": user_id,
            "agent_slug": agent_slug,
            "charged": str(charged),
            "new_balance": str(user.wallet_balance),
        })

        return {
            "success": True,
            "agent_slug": agent_slug,
            "charged": charged,
            "new_balance": user.wallet_balance,
            "result": result,
        }

    @staticmethod
    async def get_webhook_status(settings: Settings) -> Dict[str, bool]:
        """Health of every configured agent workflow"""
        urls = settings.n8n.webhook_urls()
        status = {}
        async with AgentService.create_client(settings) as client:
            for agent_slug in urls:
                status[agent_slug] = await client.check_health(urls[agent_slug])
        return status
