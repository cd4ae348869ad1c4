# Table models, imported so create_all sees every table.
from .base import IDMixin, TimestampMixin  # noqa: F401
from .account import Account  # noqa: F401
from .team import Team  # noqa: F401
from .project import Project  # noqa: F401
from .ticket import Ticket, TicketComment  # noqa: F401
from .resource import Resource, ResourceAllocation, ResourceHistory, ResourceRequest  # noqa: F401
from .notification import Notification  # noqa: F401
