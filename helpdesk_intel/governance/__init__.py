"""
Governance Module
=================

Bounded Context for the cost/rate governor guarding the shared inference service.

Responsibilities:
- Admit or reject inference calls against per-minute/hour/day windows
- Enforce max tokens per request and daily/monthly dollar ceilings
- Price calls per model and keep the append-only usage ledger
- Expose usage statistics and limit presets
"""

__version__ = "1.0.0"
