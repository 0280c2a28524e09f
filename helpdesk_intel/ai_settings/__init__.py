"""
AI Settings Module
==================

Bounded Context owning the operator AI settings snapshot.

Responsibilities:
- Strongly typed, versioned settings with explicit defaults
- Rate/cost limit presets with derived "Custom" detection
- YAML settings store with hot reload via watchdog
"""

__version__ = "1.0.0"
