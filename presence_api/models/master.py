# presence_api/models/master.py
from datetime import datetime

from presence_api.extensions import db


class Office(db.Model):
    """
    A physical workplace employees are assigned to.

      geo_lat, geo_lon   -> registered center point of the office
      geo_radius_m       -> radius the office advertises for its premises;
                            the attendance policy ceiling decides the location factor
    """

    __tablename__ = "offices"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    address = db.Column(db.String(255), nullable=True)

    geo_lat = db.Column(db.Float, nullable=False)
    geo_lon = db.Column(db.Float, nullable=False)
    geo_radius_m = db.Column(db.Integer, nullable=False, default=80)

    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "geo_lat": self.geo_lat,
            "geo_lon": self.geo_lon,
            "geo_radius_m": self.geo_radius_m,
            "is_active": self.is_active,
        }
