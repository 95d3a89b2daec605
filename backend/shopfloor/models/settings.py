from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class StoreSettings(db.Model):
    """
    Single-row store configuration.

    WHY one row: the service runs one shop. get_settings() creates the row
    on first use so every code path can assume it exists.

    SECURITY: admin_pin_hash is never serialized. setup_deadline bounds how
    long the seeded admin PIN keeps working before it must be changed.
    """
    __tablename__ = "store_settings"

    id = db.Column(db.Integer, primary_key=True)

    store_name = db.Column(db.String(255), nullable=False, default="Repair Shop")
    store_phone = db.Column(db.String(50), nullable=True)
    store_address = db.Column(db.Text, nullable=True)

    ticket_prefix = db.Column(db.String(10), nullable=False, default="JR")
    next_ticket_number = db.Column(db.Integer, nullable=False, default=1)
    currency = db.Column(db.String(10), nullable=False, default="USD")
    max_photos_per_ticket = db.Column(db.Integer, nullable=False, default=10)

    admin_pin_hash = db.Column(db.String(255), nullable=True)
    min_pin_length = db.Column(db.Integer, nullable=False, default=6)
    setup_complete = db.Column(db.Boolean, nullable=False, default=False)
    setup_deadline = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "store_name": self.store_name,
            "store_phone": self.store_phone,
            "store_address": self.store_address,
            "ticket_prefix": self.ticket_prefix,
            "currency": self.currency,
            "max_photos_per_ticket": self.max_photos_per_ticket,
            "min_pin_length": self.min_pin_length,
            "setup_complete": self.setup_complete,
            "setup_deadline": to_utc_z(self.setup_deadline),
            "updated_at": to_utc_z(self.updated_at),
        }


class StorageLocation(db.Model):
    """Shelf / bin where a ticketed item is kept while in the shop."""
    __tablename__ = "storage_locations"

    location_id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, unique=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "location_id": self.location_id,
            "name": self.name,
            "is_active": self.is_active,
            "sort_order": self.sort_order,
        }
