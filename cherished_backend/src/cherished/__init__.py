"""
Cherished Dates backend package.

The recurrence engine lives in ``recurrence`` and has no web dependencies;
the FastAPI app is assembled in ``main``.
"""

__version__ = "0.1.0"
