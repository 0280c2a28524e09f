"""
Knowledge Learning Module
=========================

Bounded Context for turning resolved tickets into knowledge articles.

Responsibilities:
- Queue resolved tickets (idempotently) for learning
- Run single-flight learning passes with per-item isolation and bounded retries
- Draft, approve and improve knowledge articles
- Record helpfulness feedback as running effectiveness scores
"""

__version__ = "1.0.0"
