from datetime import datetime
from church_admin.extensions import db
import enum

class DeactivateMixin:
    """Records are deactivated instead of deleted so history stays valid."""
    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)
    deactivated_at = db.Column(db.DateTime)

    def deactivate(self):
        self.is_active = False
        self.deactivated_at = datetime.utcnow()

    def reactivate(self):
        self.is_active = True
        self.deactivated_at = None

class ClassGroupEnum(enum.Enum):
    nursery = "nursery"
    toddlers = "toddlers"
    preschool = "preschool"
    elementary = "elementary"
    teens = "teens"

class AttendanceStatusEnum(enum.Enum):
    dropped_off = "dropped_off"
    picked_up = "picked_up"
    no_show = "no_show"

class RoleEnum(enum.Enum):
    super_admin = "super_admin"
    admin = "admin"
    junior_church_staff = "junior_church_staff"
    team_leader = "team_leader"
    member = "member"
