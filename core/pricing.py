"""
Per-use pricing of marketplace agents (AED)
"""
from decimal import Decimal
from typing import Optional, List, Dict, Iterable

from pydantic import BaseModel, Field

from core.wallet import CURRENCY, Number, to_decimal


class AgentPrice(BaseModel):
    """Price card of a single agent"""
    id: str = Field(..., description="Agent ID")
    name: str = Field(..., description="Display name")
    price: Decimal = Field(..., description="Price per run in AED")
    currency: str = Field(CURRENCY, description="Currency code")
    description: str = Field(..., description="What the agent does")
    category: str = Field(..., description="Marketplace category")
    slug: str = Field(..., description="URL slug")
    features: List[str] = Field(default_factory=list)
    estimated_time: str = Field(..., description="Typical run duration")

    @property
    def price_display(self) -> str:
        return format_price(self.price)


def _agent(slug: str, name: str, price: str, category: str, description: str,
           features: List[str], estimated_time: str) -> AgentPrice:
    return AgentPrice(
        id=slug,
        slug=slug,
        name=name,
        price=Decimal(price),
        category=category,
        description=description,
        features=features,
        estimated_time=estimated_time,
    )


AGENT_PRICING: Dict[str, AgentPrice] = {
    agent.slug: agent for agent in [
        _agent(
            "weather-reporter", "Weather Reporter Agent", "2.00", "utilities",
            "Get comprehensive weather reports and forecasts for any location worldwide",
            ["Current weather conditions", "5-day forecast", "Weather alerts", "Multiple locations"],
            "10 seconds",
        ),
        _agent(
            "job-posting-generator", "Job Posting Generator Agent", "4.00", "content",
            "Create professional job postings with detailed requirements and company culture",
            ["Professional job descriptions", "Requirements analysis", "Company culture integration", "SEO optimization"],
            "30 seconds",
        ),
        _agent(
            "data-analyzer", "Data Analysis Agent", "5.00", "analytics",
            "Analyze your data files (PDF, CSV, Excel) and generate comprehensive insights",
            ["File analysis (PDF, CSV, Excel)", "Statistical insights", "Data visualization", "Trend analysis"],
            "45 seconds",
        ),
        _agent(
            "faq-generator", "FAQ Generator Agent", "6.00", "content",
            "Generate comprehensive FAQ content from documents or website content",
            ["Document analysis", "Question generation", "Answer creation", "SEO-friendly format"],
            "40 seconds",
        ),
        _agent(
            "social-ads-generator", "Social Ads Generator Agent", "7.00", "marketing",
            "Create compelling social media advertisements with copy and targeting suggestions",
            ["Ad copy generation", "Platform optimization", "Audience targeting", "A/B test variants"],
            "35 seconds",
        ),
        _agent(
            "five-whys", "5 Whys Analysis Agent", "8.00", "analytics",
            "Conduct systematic root cause analysis using the proven 5 Whys methodology",
            ["Interactive chat analysis", "Root cause identification", "Professional report generation", "Implementation roadmap"],
            "2-5 minutes",
        ),
    ]
}

# Legacy credit cost -> AED price of the same agent
CREDIT_TO_PRICE_MAPPING: Dict[int, Decimal] = {
    15: Decimal("2.00"),
    20: Decimal("4.00"),
    45: Decimal("5.00"),
    25: Decimal("6.00"),
    35: Decimal("7.00"),
    30: Decimal("8.00"),
}


def get_agent_price(agent_slug: str) -> Optional[AgentPrice]:
    return AGENT_PRICING.get(agent_slug)


def get_all_agent_pricing() -> List[AgentPrice]:
    """All agents, cheapest first"""
    return sorted(AGENT_PRICING.values(), key=lambda agent: agent.price)


def get_agents_by_category(category: str) -> List[AgentPrice]:
    return [agent for agent in get_all_agent_pricing() if agent.category == category]


def calculate_total_price(agent_slugs: Iterable[str]) -> Decimal:
    """Sum of prices; unknown slugs count as zero"""
    total = Decimal("0")
    for slug in agent_slugs:
        agent = get_agent_price(slug)
        if agent is not None:
            total += agent.price
    return total


def format_price(price: Number, currency: str = CURRENCY) -> str:
    return f"{to_decimal(price)} {currency}"


def get_price_tiers() -> Dict[str, List[AgentPrice]]:
    agents = get_all_agent_pricing()
    return {
        "low": [agent for agent in agents if agent.price <= 3],
        "medium": [agent for agent in agents if 3 < agent.price <= 6],
        "high": [agent for agent in agents if agent.price > 6],
    }


def get_price_comparison_text(price: Number) -> str:
    price = Decimal(str(price))
    if price <= 3:
        return "Quick & Affordable"
    if price <= 6:
        return "Great Value"
    return "Premium Analysis"
