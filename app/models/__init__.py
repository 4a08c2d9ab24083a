from app.models.base import Base
from app.models.catalog import Category, Service, Specialty
from app.models.technician import Technician
from app.models.service_request import ServiceRequest
from app.models.review import Review
from app.models.notification import Notification
from app.models.platform_setting import PlatformSetting

__all__ = [
    "Base",
    "Category",
    "Service",
    "Specialty",
    "Technician",
    "ServiceRequest",
    "Review",
    "Notification",
    "PlatformSetting",
]
