"""
Keyword classifier for demand type.

A demand is a "system" when its text talks about building something
reusable (framework, platform, dashboard, process, ...); anything else is a
"task". Purely local: substring match on the lower-cased title and
description.
"""

from app.models.domain import DemandType

SYSTEM_KEYWORDS = (
    "system",
    "systematiz",
    "framework",
    "model",
    "methodolog",
    "governance",
    "process",
    "workflow",
    "flow",
    "pipeline",
    "standardiz",
    "simulator",
    "tool",
    "platform",
    "dashboard",
    "panel",
    "template",
    "manual",
    "guide",
    "documentation",
    "playbook",
    "architecture",
    "structuring",
    "strategy",
    "roadmap",
)


def classify_demand_type(title: str | None, description: str | None = None) -> str:
    text = f"{title or ''} {description or ''}".lower()
    if any(keyword in text for keyword in SYSTEM_KEYWORDS):
        return DemandType.SYSTEM
    return DemandType.TASK
