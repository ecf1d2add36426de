from .User import User, Role, TokenBlocklist
from .Child import Child
from .AttendanceEvent import AttendanceEvent
from .AuditLog import AuditLog
from .base import DeactivateMixin, ClassGroupEnum, AttendanceStatusEnum, RoleEnum
