"""
Learning Value Objects
======================

Resolution quality scoring, knowledge matching and the learning prompts.
"""

from typing import Iterable, List, Sequence

from helpdesk_intel.faq.domain import normalize_question
from helpdesk_intel.infrastructure.ticket_store import TicketComment, TicketRecord
from helpdesk_intel.learning.domain.entities import KnowledgeArticle, ResolutionPattern

RESOLVED_STATUSES = {"resolved", "closed", "completed", "done"}

SOLUTION_KEYWORDS = (
    "fixed", "resolved", "solution", "workaround", "steps", "reset",
    "updated", "configured", "reinstalled", "restarted", "replaced",
)

_STOPWORDS = {
    "the", "and", "for", "with", "that", "this", "from", "have", "does", "what",
    "when", "where", "which", "your", "about", "cannot", "into", "there",
}


def resolution_text(comments: Sequence[TicketComment]) -> str:
    """The last three human comments, which usually hold the solution."""
    human = [c.content.strip() for c in comments if not c.is_system and c.content.strip()]
    text = "\n\n".join(human[-3:]).strip()
    return text or "Issue resolved"


def resolution_hours(ticket: TicketRecord) -> float:
    if ticket.created_at is None or ticket.resolved_at is None:
        return 4.0
    return max(1.0, round((ticket.resolved_at - ticket.created_at).total_seconds() / 3600))


class ResolutionQualityScorer:
    """
    Heuristic 0..1 score of how well a resolved ticket documents its fix.

    Components:
        resolved status           gate (0 otherwise)
        resolution text >= 40     +0.4, >= 150 another +0.1
        a human participated      +0.2
        resolved within 72 hours  +0.2
        solution vocabulary       +0.1
    """

    @staticmethod
    def score(ticket: TicketRecord, comments: Sequence[TicketComment]) -> float:
        if ticket.status.lower() not in RESOLVED_STATUSES and ticket.resolved_at is None:
            return 0.0

        human = [c for c in comments if not c.is_system and c.content.strip()]
        text = "\n".join(c.content for c in human[-3:])

        score = 0.0
        if len(text) >= 40:
            score += 0.4
        if len(text) >= 150:
            score += 0.1
        if human:
            score += 0.2
        if resolution_hours(ticket) <= 72:
            score += 0.2
        if any(word in text.lower() for word in SOLUTION_KEYWORDS):
            score += 0.1
        return round(min(score, 1.0), 2)


class KnowledgeMatcher:
    """Keyword relevance between a query and knowledge articles."""

    @staticmethod
    def terms(query: str) -> List[str]:
        return [
            word for word in dict.fromkeys(normalize_question(query).split())
            if len(word) >= 4 and word not in _STOPWORDS
        ]

    @classmethod
    def rank(
        cls,
        query: str,
        articles: Iterable[KnowledgeArticle],
        limit: int
    ) -> List[KnowledgeArticle]:
        """Matching articles, best first; title hits weigh double."""
        terms = cls.terms(query)
        if not terms:
            return []

        scored = []
        for article in articles:
            title = normalize_question(article.title)
            body = normalize_question(article.content)
            relevance = sum(2 * title.count(t) + body.count(t) for t in terms)
            if relevance > 0:
                scored.append((relevance, article.effectiveness_score, article))

        scored.sort(key=lambda s: (-s[0], -s[1], s[2].id or 0))
        return [article for _, _, article in scored[:limit]]


class PatternPromptBuilder:
    """Prompt for extracting a resolution pattern from one ticket."""

    SYSTEM_PROMPT = """You extract a resolution pattern from a resolved helpdesk ticket.

Identify the type of problem, the solutions that worked, how it could be
prevented, and estimate how reliably the solution resolves this kind of
problem as a success rate from 0 to 100.

Respond ONLY in JSON format:
{
    "problemType": "short name of the problem",
    "commonSolutions": ["solution step"],
    "preventiveMeasures": ["preventive measure"],
    "successRate": 85
}"""

    @classmethod
    def build_prompt(cls, ticket: TicketRecord, resolution: str, hours: float) -> str:
        return f"""Ticket: {ticket.title}
Category: {ticket.category}
Priority: {ticket.priority}

Description:
{ticket.description}

Resolution:
{resolution}

Time to resolve: {hours:g} hours

Extract the pattern (respond with JSON only):"""


class ArticlePromptBuilder:
    """Prompt for turning a pattern into a knowledge article."""

    SYSTEM_PROMPT = """You write knowledge article drafts for a helpdesk knowledge base.

Write a clear, step-by-step article that lets an agent or customer solve
the described problem without help. Use plain language.

Respond ONLY in JSON format:
{
    "title": "How to ...",
    "content": "full article text",
    "category": "support",
    "tags": ["keyword"]
}"""

    @classmethod
    def build_prompt(cls, pattern: ResolutionPattern, category: str) -> str:
        solutions = "\n".join(f"- {s}" for s in pattern.common_solutions) or "- none recorded"
        prevention = "\n".join(f"- {p}" for p in pattern.preventive_measures) or "- none recorded"
        return f"""Problem type: {pattern.problem_type}
Category: {category}
Success rate: {pattern.success_rate}%

Solutions that worked:
{solutions}

Preventive measures:
{prevention}

Write the article (respond with JSON only):"""


class ImprovementPromptBuilder:
    """Prompt for revising an article with a new resolution."""

    SYSTEM_PROMPT = """You review helpdesk articles for article improvement.

Given an existing article and a newly resolved case, decide whether the
article should be updated. Only update when the new case adds information.

Respond ONLY in JSON format:
{
    "shouldUpdate": true,
    "improvedContent": "the full revised article",
    "improvementReason": "what changed",
    "confidence": 80
}"""

    @classmethod
    def build_prompt(cls, article: KnowledgeArticle, resolution: str, hours: float, success: bool) -> str:
        return f"""Current article: {article.title}

{article.content}

New case resolution ({'successful' if success else 'unsuccessful'}, {hours:g} hours):
{resolution}

Review the article (respond with JSON only):"""


