"""
Service module: the DataService consumed by every adapter.
"""

from evstore.service.data_service import DataService, ServiceError

__all__ = ["DataService", "ServiceError"]
