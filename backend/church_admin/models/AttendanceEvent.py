from datetime import datetime
from church_admin.extensions import db
from .base import AttendanceStatusEnum

class AttendanceEvent(db.Model):
    __tablename__ = 'attendance_events'

    id = db.Column(db.Integer, primary_key=True)
    child_id = db.Column(db.Integer, db.ForeignKey('children.id'), nullable=False, index=True)
    date = db.Column(db.Date, nullable=False, index=True)
    status = db.Column(db.Enum(AttendanceStatusEnum), nullable=False, index=True)

    dropoff_time = db.Column(db.DateTime, nullable=True)
    dropoff_by = db.Column(db.String(160), nullable=True)
    checked_in_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)

    pickup_time = db.Column(db.DateTime, nullable=True)
    picked_up_by = db.Column(db.String(160), nullable=True)
    override_used = db.Column(db.Boolean, default=False, nullable=False)
    verified_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    notes = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    child = db.relationship('Child', back_populates='attendance_events')
    verifier = db.relationship('User', foreign_keys=[verified_by])

    # One event per child per day; concurrent drop-offs collide here.
    __table_args__ = (
        db.UniqueConstraint('child_id', 'date', name='uq_attendance_child_date'),
    )

    @property
    def is_open(self):
        return self.status == AttendanceStatusEnum.dropped_off

    def to_dict(self, include_child=False):
        data = {
            "id": self.id,
            "child_id": self.child_id,
            "date": self.date.isoformat() if self.date else None,
            "status": self.status.value if self.status else None,
            "dropoff_time": self.dropoff_time.isoformat() if self.dropoff_time else None,
            "dropoff_by": self.dropoff_by,
            "checked_in_by": self.checked_in_by,
            "pickup_time": self.pickup_time.isoformat() if self.pickup_time else None,
            "picked_up_by": self.picked_up_by,
            "override_used": self.override_used,
            "verified_by": self.verified_by,
            "notes": self.notes,
        }
        if include_child and self.child:
            data["child"] = self.child.summary()
        if include_child and self.verifier:
            data["verifier"] = {
                "id": self.verifier.id,
                "first_name": self.verifier.first_name,
                "last_name": self.verifier.last_name,
            }
        return data
