"""
Group and member directory used to route and attribute call notifications.

Do not import SQLAlchemy models here.
"""

__all__: list[str] = []
