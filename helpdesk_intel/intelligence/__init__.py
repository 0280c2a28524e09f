"""
Ticket Intelligence Module
==========================

Bounded Context for AI analysis of tickets as they are created or updated.

Responsibilities:
- Analyze tickets (complexity, category, priority, confidence, tags)
- Generate confidence-gated auto-responses and apply them as system comments
- Decide escalation from complexity and configured rules
- Run the best-effort analyze, respond, escalate, notify pipeline
"""

__version__ = "1.0.0"
