"""
API Module
==========

JSON HTTP API exposing the market desk components.
"""

from dashboard.server import create_app

__all__ = ["create_app"]
