"""
FAQ Cache Module
================

Bounded Context for the question/answer cache in front of paid inference.

Responsibilities:
- Normalize and hash questions into content addresses
- Serve cached answers and count hits
- Coalesce concurrent identical questions into one inference call
- Pluggable eviction, popular questions, cache clearing
"""

__version__ = "1.0.0"
