"""
Next Steps Advisor — engagement recommendations for a single entity.

Behavioral Contract:
- The text generator is an injected collaborator behind a protocol
- The generator is called at most once per request
- The first JSON object in the reply is validated into a NextStepsPlan
- A missing generator, a generator exception, or an unparseable reply
  produces a deterministic local plan marked fallback=True
"""

import json
import logging
from datetime import datetime
from typing import List, Literal, Optional, Protocol

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from irisrank.models.entity import Entity, to_naive_utc
from irisrank.models.result import MomentumMetrics, Trend
from irisrank.ranking.config_store import ConfigStore
from irisrank.scoring.momentum import NO_ACTIVITY_DAYS, compute_momentum

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are IRIS, an expert sales assistant specializing in CRM optimization and sales strategy.
Your task is to analyze a CRM entity and provide specific, actionable next steps for engagement.

Guidelines:
- Be specific and actionable, avoid generic advice
- Consider the entity's current status, activity history, and momentum
- Prioritize actions that will have the highest impact
- Include timing recommendations (immediate, this week, this month)
- Provide brief reasoning for each recommendation
- Limit to 3-5 most impactful actions

Output Format:
Return a JSON object with this exact structure:
{
  "summary": "Brief 1-2 sentence executive summary",
  "next_steps": [
    {
      "priority": "high|medium|low",
      "action": "Specific action to take",
      "reasoning": "Why this action matters",
      "timing": "When to do this"
    }
  ]
}"""

# Property keys surfaced in the entity description, in display order
DESCRIBED_PROPERTIES = [
    ("email", "Email"),
    ("phone", "Phone"),
    ("company", "Company"),
    ("title", "Title"),
    ("status", "Status"),
    ("rating", "Rating"),
    ("industry", "Industry"),
    ("leadSource", "Lead Source"),
    ("amount", "Deal Amount"),
    ("stageName", "Stage"),
]


class TextGenerator(Protocol):
    """Protocol for text generation — pluggable language-model backend."""

    def generate(self, system_prompt: str, user_prompt: str) -> str: ...


class NextStepsContext(BaseModel):
    """Optional caller-supplied context appended to the entity description."""

    recent_activities: List[str] = []
    deal_stage: Optional[str] = None
    last_contact_date: Optional[str] = None
    notes: Optional[str] = None


class NextStep(BaseModel):
    priority: Literal["high", "medium", "low"]
    action: str = Field(min_length=1)
    reasoning: str = ""
    timing: str = ""


class GeneratedPlan(BaseModel):
    """Shape expected from the generator's JSON reply."""

    summary: str = ""
    next_steps: List[NextStep] = Field(default=[], max_length=10)


class NextStepsPlan(BaseModel):
    entity_id: str
    entity_name: str
    entity_type: str
    summary: str
    next_steps: List[NextStep]
    trend: Trend
    fallback: bool = False
    generated_at: datetime = Field(default_factory=datetime.utcnow)


def extract_json_object(text: str) -> Optional[dict]:
    """The outermost {...} span in `text`, parsed. None if absent or invalid."""
    start = text.find("{")
    end = text.rfind("}")
    if start < 0 or end <= start:
        return None
    try:
        parsed = json.loads(text[start:end + 1])
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


class NextStepsAdvisor:
    """
    Turns an entity snapshot into a short, prioritized action plan.
    Uses the generator when one is configured, otherwise local rules.
    """

    def __init__(
        self,
        generator: Optional[TextGenerator] = None,
        config_store: Optional[ConfigStore] = None,
    ):
        self.generator = generator
        self.config_store = config_store or ConfigStore()

    def describe(
        self,
        entity: Entity,
        metrics: MomentumMetrics,
        context: Optional[NextStepsContext] = None,
    ) -> str:
        """Plain-text description of the entity for the generator prompt."""
        lines = [f"**{entity.type}: {entity.name}**", f"ID: {entity.id}"]

        props = entity.properties
        for key, label in DESCRIBED_PROPERTIES:
            value = props.get(key)
            if value in (None, ""):
                value = props.get(key[0].upper() + key[1:])
            if value not in (None, ""):
                lines.append(f"{label}: {value}")

        if entity.created_at:
            lines.append(f"Created: {entity.created_at.isoformat()}")
        if entity.last_modified_at:
            lines.append(f"Last Modified: {entity.last_modified_at.isoformat()}")

        lines.append(f"Engagement trend: {metrics.trend.value}")
        if metrics.days_since_last_activity != NO_ACTIVITY_DAYS:
            lines.append(f"Days since last activity: {metrics.days_since_last_activity}")

        if entity.activities:
            lines.append("\n**Recent Activities:**")
            recent = sorted(entity.activities, key=lambda a: a.occurred_at, reverse=True)[:5]
            for a in recent:
                lines.append(f"- {a.type} on {a.occurred_at.date().isoformat()} ({a.outcome.value})")

        if context:
            if context.recent_activities:
                lines.append("\n**Additional Context:**")
                lines.extend(f"- {a}" for a in context.recent_activities)
            if context.deal_stage:
                lines.append(f"\nDeal Stage: {context.deal_stage}")
            if context.last_contact_date:
                lines.append(f"Last Contact: {context.last_contact_date}")
            if context.notes:
                lines.append(f"\nNotes: {context.notes}")

        return "\n".join(lines)

    def user_prompt(self, entity: Entity, description: str) -> str:
        return (
            f"Analyze this {entity.type} and provide next steps for engagement:\n\n"
            f"{description}\n\n"
            f"Generate 3-5 specific, actionable next steps to effectively engage with this "
            f"{entity.type.lower()} and move them forward in the sales process."
        )

    def advise(
        self,
        entity: Entity,
        context: Optional[NextStepsContext] = None,
        now: Optional[datetime] = None,
    ) -> NextStepsPlan:
        metrics = compute_momentum(
            entity, self.config_store.current, to_naive_utc(now) if now else datetime.utcnow()
        )

        if self.generator is None:
            return self.fallback_plan(entity, metrics)

        prompt = self.user_prompt(entity, self.describe(entity, metrics, context))
        try:
            reply = self.generator.generate(SYSTEM_PROMPT, prompt)
        except Exception as e:
            logger.warning(
                "Text generator failed, using local plan: %s", e,
                extra={"entity_id": entity.id},
            )
            return self.fallback_plan(entity, metrics)

        parsed = extract_json_object(reply or "")
        if parsed is None:
            logger.warning("No JSON object in generator reply", extra={"entity_id": entity.id})
            return self.fallback_plan(entity, metrics)
        if "next_steps" not in parsed and "nextSteps" in parsed:
            parsed["next_steps"] = parsed.pop("nextSteps")

        try:
            plan = GeneratedPlan.model_validate(parsed)
        except PydanticValidationError as e:
            logger.warning(
                "Generator reply failed validation: %d errors", e.error_count(),
                extra={"entity_id": entity.id},
            )
            return self.fallback_plan(entity, metrics)
        if not plan.next_steps:
            return self.fallback_plan(entity, metrics)

        return NextStepsPlan(
            entity_id=entity.id,
            entity_name=entity.name,
            entity_type=entity.type,
            summary=plan.summary,
            next_steps=plan.next_steps,
            trend=metrics.trend,
        )

    def fallback_plan(self, entity: Entity, metrics: MomentumMetrics) -> NextStepsPlan:
        """Deterministic plan keyed on the entity's engagement trend."""
        name = entity.name
        trend = metrics.trend
        steps: List[NextStep]

        if trend == Trend.CHURNING:
            summary = f"{name} has gone quiet for {metrics.days_since_last_activity} days."
            steps = [
                NextStep(priority="high", action=f"Reach out to {name} personally",
                         reasoning="Engagement has stopped", timing="Immediately"),
                NextStep(priority="medium", action="Review the last interaction for open issues",
                         reasoning="Understand why engagement dropped", timing="This week"),
            ]
        elif trend == Trend.AT_RISK:
            summary = f"Engagement with {name} is declining."
            steps = [
                NextStep(priority="high", action=f"Schedule a check-in with {name}",
                         reasoning="Recover momentum before it turns into churn", timing="This week"),
            ]
        elif trend == Trend.ACCELERATING:
            summary = f"{name} is showing accelerating engagement."
            steps = [
                NextStep(priority="high", action=f"Propose a concrete next step to {name}",
                         reasoning="Engagement is rising quickly", timing="Immediately"),
                NextStep(priority="medium", action="Involve a senior stakeholder",
                         reasoning="Capitalize on the current interest", timing="This week"),
            ]
        elif trend == Trend.UNKNOWN:
            summary = f"No engagement history for {name} yet."
            steps = [
                NextStep(priority="medium", action=f"Send an introductory message to {name}",
                         reasoning="Establish a first touchpoint", timing="This week"),
            ]
        else:
            summary = f"Engagement with {name} is steady."
            steps = [
                NextStep(priority="high", action=f"Follow up with {name}",
                         reasoning="Maintain engagement momentum", timing="This week"),
            ]

        return NextStepsPlan(
            entity_id=entity.id,
            entity_name=entity.name,
            entity_type=entity.type,
            summary=summary,
            next_steps=steps,
            trend=trend,
            fallback=True,
        )
