from datetime import datetime
from presence_api.extensions import db

class Employee(db.Model):
    __tablename__ = "employees"

    id = db.Column(db.Integer, primary_key=True)
    office_id = db.Column(db.Integer, db.ForeignKey("offices.id", ondelete="RESTRICT"), nullable=True, index=True)

    code  = db.Column(db.String(32), nullable=False, unique=True)
    email = db.Column(db.String(255), unique=True, nullable=False)
    full_name = db.Column(db.String(160), nullable=False)
    status = db.Column(db.String(16), default="active", nullable=False)   # active/inactive

    # face enrolment (identity record)
    face_registered = db.Column(db.Boolean, default=False, nullable=False)
    face_template_id = db.Column(db.Integer, nullable=True)             # active EmployeeFaceProfile.id
    face_registered_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    office = db.relationship("Office", lazy="joined")

    def to_dict(self):
        return {
            "id": self.id,
            "code": self.code,
            "email": self.email,
            "full_name": self.full_name,
            "office_id": self.office_id,
            "status": self.status,
            "face_registered": self.face_registered,
        }
