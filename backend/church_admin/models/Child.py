from datetime import datetime
from church_admin.extensions import db
from .base import DeactivateMixin, ClassGroupEnum
from utils.dates import calculate_age

class Child(db.Model, DeactivateMixin):
    __tablename__ = 'children'

    id = db.Column(db.Integer, primary_key=True)
    barcode_id = db.Column(db.String(32), unique=True, nullable=False, index=True)
    first_name = db.Column(db.String(80), nullable=False)
    last_name = db.Column(db.String(80), nullable=False)
    date_of_birth = db.Column(db.Date, nullable=False)
    class_group = db.Column(db.Enum(ClassGroupEnum), nullable=False, index=True)

    # Ordered list of full names allowed to pick the child up
    authorized_releasers = db.Column(db.JSON, nullable=False, default=list)
    allergies = db.Column(db.Text, nullable=True)
    medical_notes = db.Column(db.Text, nullable=True)

    parent_name = db.Column(db.String(160), nullable=True)
    parent_phone = db.Column(db.String(40), nullable=True, index=True)
    parent_email = db.Column(db.String(120), nullable=True)
    emergency_contact_name = db.Column(db.String(160), nullable=True)
    emergency_contact_phone = db.Column(db.String(40), nullable=True)
    emergency_contact_relationship = db.Column(db.String(60), nullable=True)

    registered_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    attendance_events = db.relationship(
        'AttendanceEvent', back_populates='child', lazy=True,
        order_by='AttendanceEvent.date'
    )

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"

    @property
    def age(self):
        return calculate_age(self.date_of_birth)

    def to_dict(self):
        return {
            "id": self.id,
            "barcode_id": self.barcode_id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "date_of_birth": self.date_of_birth.isoformat() if self.date_of_birth else None,
            "age": self.age,
            "class": self.class_group.value if self.class_group else None,
            "authorized_releasers": list(self.authorized_releasers or []),
            "allergies": self.allergies,
            "medical_notes": self.medical_notes,
            "parent_name": self.parent_name,
            "parent_phone": self.parent_phone,
            "parent_email": self.parent_email,
            "emergency_contact": {
                "name": self.emergency_contact_name,
                "phone": self.emergency_contact_phone,
                "relationship": self.emergency_contact_relationship,
            },
            "is_active": self.is_active,
            "registered_at": self.registered_at.isoformat() if self.registered_at else None,
        }

    def summary(self):
        return {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "class": self.class_group.value if self.class_group else None,
            "barcode_id": self.barcode_id,
        }
