from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base for wire schemas: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


def reject_null(value: Any) -> Any:
    """Partial updates may omit a required column but not clear it.

    Omitted fields keep their default and are never validated, so only an
    explicit ``null`` reaches this check.
    """
    if value is None:
        raise ValueError("Field cannot be null")
    return value


class Role(str, Enum):
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    TEAM = "team"
    USER = "user"

    @classmethod
    def normalize(cls, value: Optional[str]) -> "Role":
        """Map a role claim to a known role; anything unrecognised is a member."""
        try:
            return cls(value)
        except ValueError:
            return cls.USER


class TicketStatus(str, Enum):
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"


class TicketPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"
    URGENT = "URGENT"


class TicketType(str, Enum):
    BUG = "bug"
    FEATURE = "feature"
    TASK = "task"
    IMPROVEMENT = "improvement"
    SUPPORT = "support"
    REQUIREMENT = "requirement"


class TicketCategory(str, Enum):
    TECHNICAL = "technical"
    BUSINESS = "business"
    INFRASTRUCTURE = "infrastructure"
    SECURITY = "security"
    PERFORMANCE = "performance"
    UI_UX = "ui/ux"
    DATABASE = "database"
    API = "api"


class Department(str, Enum):
    IT = "IT"
    HR = "HR"
    FINANCE = "Finance"
    MARKETING = "Marketing"
    SALES = "Sales"
    OPERATIONS = "Operations"
    ENGINEERING = "Engineering"
    DESIGN = "Design"


class Level(str, Enum):
    """Lower-case priority scale shared by projects, resources and notifications."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ProjectStatus(str, Enum):
    ACTIVE = "active"
    ON_HOLD = "on-hold"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ResourceType(str, Enum):
    HARDWARE = "hardware"
    SOFTWARE = "software"
    HUMAN = "human"
    BUDGET = "budget"
    TIME = "time"
    EQUIPMENT = "equipment"
    SPACE = "space"


class ResourceCategory(str, Enum):
    DEVELOPMENT = "development"
    TESTING = "testing"
    DEPLOYMENT = "deployment"
    INFRASTRUCTURE = "infrastructure"
    SUPPORT = "support"
    TRAINING = "training"


class ResourceUnit(str, Enum):
    HOURS = "hours"
    DAYS = "days"
    WEEKS = "weeks"
    MONTHS = "months"
    PIECES = "pieces"
    LICENSES = "licenses"
    USERS = "users"
    GB = "gb"
    MB = "mb"


class ResourceStatus(str, Enum):
    AVAILABLE = "available"
    ALLOCATED = "allocated"
    MAINTENANCE = "maintenance"
    OUT_OF_STOCK = "out_of_stock"
    DISCONTINUED = "discontinued"


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"


class NotificationType(str, Enum):
    TICKET_CREATED = "TICKET_CREATED"
    TICKET_ASSIGNED = "TICKET_ASSIGNED"
    TICKET_APPROVED = "TICKET_APPROVED"
    TICKET_REJECTED = "TICKET_REJECTED"
    TICKET_COMPLETED = "TICKET_COMPLETED"
    RESOURCE_REQUEST = "RESOURCE_REQUEST"
    PROJECT_UPDATE = "PROJECT_UPDATE"
    SYSTEM_ANNOUNCEMENT = "SYSTEM_ANNOUNCEMENT"


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class MessageResponse(BaseModel):
    message: str
