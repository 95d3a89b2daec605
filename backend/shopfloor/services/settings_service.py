# Overview: Store settings, admin PIN setup, storage locations and ticket numbering.

from __future__ import annotations

from datetime import timedelta
from typing import Any

from flask import current_app, has_app_context
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import StorageLocation, StoreSettings
from ..time_utils import utcnow
from ..validation import (
    MAX_ADDRESS_LENGTH,
    MAX_CURRENCY_LENGTH,
    MAX_LOCATION_NAME_LENGTH,
    MAX_NAME_LENGTH,
    MAX_PHONE_LENGTH,
    MAX_TICKET_PREFIX_LENGTH,
    ValidationError,
    parse_bool,
    parse_int,
    validate_optional,
    validate_required,
)
from .pin_service import hash_pin, validate_pin_complexity


DEFAULT_ADMIN_PIN = "changeme"
DEFAULT_SETUP_WINDOW_HOURS = 24
MAX_PHOTOS_LIMIT = 50


class SettingsError(ValueError):
    pass


class SettingsValidationError(SettingsError, ValidationError):
    pass


class SettingsConflictError(SettingsError):
    pass


def _setup_window() -> timedelta:
    hours = DEFAULT_SETUP_WINDOW_HOURS
    if has_app_context():
        hours = int(current_app.config.get("SETUP_WINDOW_HOURS", DEFAULT_SETUP_WINDOW_HOURS))
    return timedelta(hours=hours)


def get_settings() -> StoreSettings:
    """
    Return the single settings row, creating it on first use.

    A freshly created row carries the default admin PIN, setup_complete=False
    and a setup_deadline SETUP_WINDOW_HOURS from now.
    """
    settings = db.session.query(StoreSettings).order_by(StoreSettings.id.asc()).first()
    if settings is not None:
        return settings

    settings = StoreSettings(
        admin_pin_hash=hash_pin(DEFAULT_ADMIN_PIN),
        setup_complete=False,
        setup_deadline=utcnow() + _setup_window(),
    )
    db.session.add(settings)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        settings = db.session.query(StoreSettings).order_by(StoreSettings.id.asc()).first()
    return settings


def is_setup_expired(settings: StoreSettings | None = None) -> bool:
    """True when the default PIN was never replaced and the deadline has passed."""
    settings = settings or get_settings()
    if settings.setup_complete or settings.setup_deadline is None:
        return False
    return utcnow() > settings.setup_deadline


def set_admin_pin(new_pin: str, *, complete_setup: bool = False) -> StoreSettings:
    """
    Validate and store a new admin PIN.

    Raises SettingsValidationError when the PIN is too weak.
    """
    settings = get_settings()
    if not new_pin:
        raise SettingsValidationError("New PIN is required")
    try:
        validate_pin_complexity(new_pin, settings.min_pin_length)
    except ValueError as exc:
        raise SettingsValidationError(str(exc))

    settings.admin_pin_hash = hash_pin(new_pin)
    if complete_setup:
        settings.setup_complete = True
    settings.updated_at = utcnow()
    db.session.commit()
    return settings


def update_settings(data: dict[str, Any]) -> StoreSettings:
    """
    Partial update of the public settings fields.

    The admin PIN, setup flags and ticket counter are not writable here.
    """
    settings = get_settings()
    try:
        if "store_name" in data:
            settings.store_name = validate_required(data["store_name"], "store_name", MAX_NAME_LENGTH)
        if "store_phone" in data:
            settings.store_phone = validate_optional(data["store_phone"], "store_phone", MAX_PHONE_LENGTH)
        if "store_address" in data:
            settings.store_address = validate_optional(data["store_address"], "store_address", MAX_ADDRESS_LENGTH)
        if "ticket_prefix" in data:
            prefix = validate_required(data["ticket_prefix"], "ticket_prefix", MAX_TICKET_PREFIX_LENGTH)
            if not prefix.isalnum():
                raise ValidationError("ticket_prefix must be letters and digits only")
            settings.ticket_prefix = prefix.upper()
        if "currency" in data:
            settings.currency = validate_required(data["currency"], "currency", MAX_CURRENCY_LENGTH).upper()
        if "max_photos_per_ticket" in data:
            settings.max_photos_per_ticket = parse_int(
                data["max_photos_per_ticket"], "max_photos_per_ticket", minimum=0, maximum=MAX_PHOTOS_LIMIT
            )
        if "min_pin_length" in data:
            settings.min_pin_length = parse_int(data["min_pin_length"], "min_pin_length", minimum=4, maximum=32)
    except ValidationError as exc:
        db.session.rollback()
        raise SettingsValidationError(str(exc))

    settings.updated_at = utcnow()
    db.session.commit()
    return settings


def allocate_friendly_code() -> str:
    """
    Atomically take the next ticket number, e.g. "JR-0042".

    Single UPDATE ... RETURNING so two concurrent intakes never get the same
    number. Runs inside the caller's transaction (no commit).
    """
    settings = get_settings()
    stmt = (
        update(StoreSettings)
        .where(StoreSettings.id == settings.id)
        .values(next_ticket_number=StoreSettings.next_ticket_number + 1)
        .returning(StoreSettings.ticket_prefix, StoreSettings.next_ticket_number)
        .execution_options(synchronize_session=False)
    )
    prefix, next_number = db.session.execute(stmt).one()
    return f"{prefix}-{next_number - 1:04d}"


# -- Storage locations --

def list_locations(include_inactive: bool = False) -> list[StorageLocation]:
    query = db.session.query(StorageLocation)
    if not include_inactive:
        query = query.filter(StorageLocation.is_active.is_(True))
    return query.order_by(StorageLocation.sort_order.asc(), StorageLocation.name.asc()).all()


def create_location(data: dict[str, Any]) -> StorageLocation:
    try:
        name = validate_required(data.get("name"), "name", MAX_LOCATION_NAME_LENGTH)
        sort_order = parse_int(data.get("sort_order", 0), "sort_order", minimum=0)
    except ValidationError as exc:
        raise SettingsValidationError(str(exc))

    location = StorageLocation(name=name, sort_order=sort_order, is_active=True)
    db.session.add(location)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise SettingsConflictError(f"Storage location '{name}' already exists")
    return location


def update_location(location_id: int, data: dict[str, Any]) -> StorageLocation | None:
    location = db.session.get(StorageLocation, location_id)
    if location is None:
        return None
    try:
        if "name" in data:
            location.name = validate_required(data["name"], "name", MAX_LOCATION_NAME_LENGTH)
        if "sort_order" in data:
            location.sort_order = parse_int(data["sort_order"], "sort_order", minimum=0)
        if "is_active" in data:
            location.is_active = parse_bool(data["is_active"], "is_active")
    except ValidationError as exc:
        db.session.rollback()
        raise SettingsValidationError(str(exc))

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise SettingsConflictError(f"Storage location '{data.get('name')}' already exists")
    return location


def get_active_location(location_id: Any) -> StorageLocation | None:
    if isinstance(location_id, bool) or not isinstance(location_id, int):
        return None
    location = db.session.get(StorageLocation, location_id)
    if location is None or not location.is_active:
        return None
    return location
