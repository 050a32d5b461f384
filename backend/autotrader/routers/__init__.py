"""
API Routers
"""

from autotrader.routers import cycle_router

__all__ = ["cycle_router"]
