"""
Intelligence Value Objects
==========================

Prompt builders, the complexity calculator and the escalation evaluator.
"""

from typing import Dict, Iterable, List, Optional, Tuple

from helpdesk_intel.ai_settings.domain import AISettings, EscalationRule
from helpdesk_intel.config import ComplexityLevel, TicketPriority
from helpdesk_intel.intelligence.domain.entities import (
    EscalationDecision,
    KnowledgeSnippet,
    TicketAnalysis,
    TicketInput,
)


class AnalysisPromptBuilder:
    """
    Builds prompts for ticket analysis.

    All analysis prompt text lives here.
    """

    SYSTEM_PROMPT = """You are the ticket analysis engine of a helpdesk.

Analyze the support ticket and report:
1. Complexity: low, medium, high or critical (or a score from 0 to 100)
2. Category: bug, feature, support, enhancement, incident or request
3. Priority: low, medium, high or urgent
4. Confidence: how sure you are that a standard answer resolves it (0.0 to 1.0)
5. Tags: up to five short keywords
6. Estimated resolution time in hours

Respond ONLY in JSON format:
{
    "complexity": "medium",
    "category": "support",
    "priority": "medium",
    "confidence": 0.85,
    "tags": ["login", "password"],
    "estimatedResolutionHours": 2,
    "reasoning": "brief explanation"
}"""

    @classmethod
    def build_prompt(cls, ticket: TicketInput) -> str:
        return f"""Title: {ticket.title.strip()}
Reported category: {ticket.category.strip()}
Reported priority: {ticket.priority.strip()}

Description:
{ticket.description.strip()}

Analyze this ticket (respond with JSON only):"""


class ResponsePromptBuilder:
    """Builds prompts for drafting the reply to a ticket."""

    SYSTEM_PROMPT = """You write the first support response for helpdesk tickets.

Guidelines:
1. Address the customer's problem directly with concrete steps
2. Use the knowledge articles provided when they apply
3. Be polite, concise and professional
4. Never promise actions a support agent has not taken

Respond ONLY in JSON format:
{
    "response": "the reply to send to the customer"
}"""

    @classmethod
    def build_prompt(
        cls,
        ticket: TicketInput,
        analysis: TicketAnalysis,
        articles: Iterable[KnowledgeSnippet] = ()
    ) -> str:
        articles = list(articles)
        knowledge = "\n\n".join(
            f"[{a.id}] {a.title}\n{a.content[:800]}" for a in articles
        ) or "None"

        return f"""Ticket: {ticket.title.strip()}

{ticket.description.strip()}

Category: {analysis.category.value}
Priority: {analysis.priority.value}
Tags: {", ".join(analysis.tags) or "none"}

Relevant knowledge articles:
{knowledge}

Write the response (respond with JSON only):"""


class ComplexityCalculator:
    """
    Converts a coarse complexity level into a 0-100 score.

    Points are additive and capped at 100.
    """

    LEVEL_POINTS: Dict[ComplexityLevel, int] = {
        ComplexityLevel.LOW: 10,
        ComplexityLevel.MEDIUM: 30,
        ComplexityLevel.HIGH: 60,
        ComplexityLevel.CRITICAL: 90,
    }

    PRIORITY_POINTS: Dict[TicketPriority, int] = {
        TicketPriority.LOW: 5,
        TicketPriority.MEDIUM: 15,
        TicketPriority.HIGH: 25,
        TicketPriority.URGENT: 40,
    }

    @classmethod
    def calculate(
        cls,
        level: ComplexityLevel,
        priority: TicketPriority,
        estimated_hours: float,
        confidence: float
    ) -> Tuple[int, Dict[str, float]]:
        """Return (score, factors)."""
        factors: Dict[str, float] = {
            "level": float(cls.LEVEL_POINTS[level]),
            "priority": float(cls.PRIORITY_POINTS[priority]),
        }

        if estimated_hours > 24:
            factors["estimated_hours"] = 20.0
        elif estimated_hours > 8:
            factors["estimated_hours"] = 10.0

        if confidence < 0.5:
            factors["low_confidence"] = 15.0
        elif confidence < 0.7:
            factors["low_confidence"] = 10.0

        return min(100, int(sum(factors.values()))), factors


class EscalationEvaluator:
    """
    Pure escalation decision over a complexity score.

    Escalates only when the score is strictly above the threshold and an
    enabled rule matches (rule threshold <= score). The highest-priority
    rule wins; ties go to the lowest rule id.
    """

    @staticmethod
    def evaluate(
        score: int,
        rules: Iterable[EscalationRule],
        threshold: int
    ) -> EscalationDecision:
        if score <= threshold:
            return EscalationDecision(
                should_escalate=False,
                reason=f"complexity {score} does not exceed threshold {threshold}"
            )

        matching: List[EscalationRule] = [
            r for r in rules if r.enabled and r.complexity_threshold <= score
        ]
        if not matching:
            return EscalationDecision(
                should_escalate=False,
                reason=f"no enabled escalation rule matches complexity {score}"
            )

        rule = min(matching, key=lambda r: (-r.priority, r.id))
        return EscalationDecision(
            should_escalate=True,
            team_id=rule.team_id,
            rule_id=rule.id,
            reason=f"complexity {score} exceeds threshold {threshold}; rule {rule.id} matched"
        )

    @classmethod
    def evaluate_with_settings(
        cls,
        score: int,
        ai_settings: AISettings,
        rules: Optional[Iterable[EscalationRule]] = None
    ) -> EscalationDecision:
        """Evaluate against a settings snapshot (implicit team rule included)."""
        if not ai_settings.escalation_enabled:
            return EscalationDecision(should_escalate=False, reason="escalation disabled")

        if rules is None:
            rules = ai_settings.effective_escalation_rules()
        return cls.evaluate(score, rules, ai_settings.complexity_threshold)
