"""
Tailor Ops Package

Backend services for a tailoring shop:
- Customer and order records with balance bookkeeping
- Order status notifications over SMS
- Realtime order events for connected clients
- Pickup and fitting reminders
"""

__version__ = "1.0.0"
__author__ = "Tailor Ops Team"

# Submodules are imported on demand to keep FastAPI out of service-only imports
