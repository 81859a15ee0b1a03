"""
API Module - FastAPI admin interface.
====================================

- app: Application factory and error mapping
- routes: /api endpoints
"""

from ziyuanbao.api.app import create_app

__all__ = ["create_app"]
