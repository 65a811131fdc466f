"""
orderhistory/api/routers package marker.
"""

from orderhistory.api.routers.scrape_control import router as scrape_control_router

__all__ = ["scrape_control_router"]
