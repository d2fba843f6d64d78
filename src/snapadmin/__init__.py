"""
SnapTrade Admin Panel

Backend proxy for the SnapTrade aggregation API, an admin console client
and the development supervisor that runs the backend and frontend together.
"""

__version__ = "1.2.0"
