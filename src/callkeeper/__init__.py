"""
callkeeper: voice-call lifecycle and notification reconciliation service.

Keep this module import side-effect free.
"""

__version__ = "0.1.0"
