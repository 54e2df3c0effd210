"""
Completion notifications: rendering and delivery of call summaries.

Keep import side-effect free.
"""

__all__: list[str] = []
