"""
Helpdesk Intelligence
=====================

AI ticket intelligence pipeline for a helpdesk: ticket analysis,
confidence-gated auto-responses, complexity escalation, FAQ answer cache,
cost/rate governance and a self-improving knowledge-learning loop.
"""

__version__ = "1.0.0"
