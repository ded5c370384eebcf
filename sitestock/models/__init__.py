from .account import Account
from .user import User
from .crew import Crew
from .team_member import TeamMember
from .inventory_location import InventoryLocation
from .material import Material
from .stock_movement import StockMovement
from .relocation import InventoryRelocation
from .delivery import Delivery, DeliveryItem
from .task import ProjectPlace, Task
from .daily_report import DailyReport, DailyReportItem
from .inventory_session import InventorySession, InventorySessionItem
from .designer_plan import DesignerPlan
from .email_log import EmailLog

from .team_member import (
    ROLE_OWNER,
    ROLE_MANAGER,
    ROLE_STOREMAN,
    ROLE_FOREMAN,
    ROLE_WORKER,
    ROLE_CHOICES,
)

__all__ = [
    "Account",
    "User",
    "Crew",
    "TeamMember",
    "InventoryLocation",
    "Material",
    "StockMovement",
    "InventoryRelocation",
    "Delivery",
    "DeliveryItem",
    "ProjectPlace",
    "Task",
    "DailyReport",
    "DailyReportItem",
    "InventorySession",
    "InventorySessionItem",
    "DesignerPlan",
    "EmailLog",
    "ROLE_OWNER",
    "ROLE_MANAGER",
    "ROLE_STOREMAN",
    "ROLE_FOREMAN",
    "ROLE_WORKER",
    "ROLE_CHOICES",
]
