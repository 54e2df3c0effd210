"""
Background workers owned by the application lifespan.
"""

__all__: list[str] = []
