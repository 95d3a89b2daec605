# Overview: Ticket photo validation gate and local file storage.

"""
Photo Service

Uploads are trusted for nothing: the declared content type must agree with
the file's magic bytes, the body must be non-empty and at most
MAX_PHOTO_BYTES, and a ticket holds at most settings.max_photos_per_ticket
photos.

Accepted formats:
    image/jpeg   FF D8 FF
    image/png    89 50 4E 47 0D 0A 1A 0A
    image/webp   "RIFF" ???? "WEBP"

Files are stored under UPLOAD_FOLDER/tickets/<ticket_id>/ with a random
name; the original filename is never used on disk.
"""

from __future__ import annotations

import os
import uuid

from flask import current_app

from ..errors import Reason, Rejection, validation_error
from ..extensions import db
from ..models import Ticket, TicketPhoto
from ..time_utils import utcnow
from . import settings_service
from .concurrency import LockStripes, lock_for_update, run_with_retry
from .session_service import Principal


MAX_PHOTO_BYTES = 10 * 1024 * 1024
MIN_BYTES_FOR_DETECTION = 12

JPEG_MAGIC = b"\xff\xd8\xff"
PNG_MAGIC = b"\x89PNG\r\n\x1a\n"
WEBP_RIFF = b"RIFF"
WEBP_TAG = b"WEBP"

EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
}


def detect_image_type(data: bytes) -> str | None:
    """MIME type from magic bytes, or None if unrecognized / too short."""
    if len(data) < MIN_BYTES_FOR_DETECTION:
        return None
    if data.startswith(JPEG_MAGIC):
        return "image/jpeg"
    if data.startswith(PNG_MAGIC):
        return "image/png"
    if data.startswith(WEBP_RIFF) and data[8:12] == WEBP_TAG:
        return "image/webp"
    return None


def validate_photo(data: bytes, declared_type: str | None) -> Rejection | str:
    """Return the verified MIME type, or a Rejection."""
    if not data:
        return validation_error("Photo file is empty")
    if len(data) > MAX_PHOTO_BYTES:
        return validation_error(f"Photo exceeds maximum size of {MAX_PHOTO_BYTES // (1024 * 1024)} MB")

    detected = detect_image_type(data)
    if detected is None:
        return validation_error("Photo must be a JPEG, PNG or WebP image")

    declared = (declared_type or "").split(";")[0].strip().lower()
    if declared != detected:
        return validation_error("Photo content does not match its declared type")
    return detected


def _upload_root() -> str:
    root = current_app.config.get("UPLOAD_FOLDER", "uploads")
    if not os.path.isabs(root):
        root = os.path.join(current_app.instance_path, root)
    return root


def _path_for(storage_key: str) -> str:
    return os.path.join(_upload_root(), *storage_key.split("/"))


def delete_stored_file(storage_key: str) -> None:
    path = _path_for(storage_key)
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError:
        current_app.logger.exception("Failed to remove photo file %s", storage_key)


_ticket_locks = LockStripes()


def add_photo(principal: Principal, ticket: Ticket, data: bytes, declared_type: str | None) -> TicketPhoto | Rejection:
    """
    Validate and store one photo.

    The limit is counted after the new row is flushed, with the ticket row
    locked, so concurrent uploads to one ticket cannot overshoot it. The file
    is written only once the row is known to fit.
    """
    verified = validate_photo(data, declared_type)
    if isinstance(verified, Rejection):
        return verified

    ticket_id = ticket.ticket_id

    def _op() -> TicketPhoto | Rejection:
        limit = settings_service.get_settings().max_photos_per_ticket
        lock_for_update(db.session.query(Ticket).filter(Ticket.ticket_id == ticket_id)).first()

        storage_key = f"tickets/{ticket_id}/{uuid.uuid4().hex}.{EXTENSIONS[verified]}"
        photo = TicketPhoto(
            ticket_id=ticket_id,
            storage_key=storage_key,
            content_type=verified,
            size_bytes=len(data),
            uploaded_by=principal.employee_id,
            uploaded_at=utcnow(),
        )
        db.session.add(photo)
        db.session.flush()

        count = db.session.query(TicketPhoto).filter(TicketPhoto.ticket_id == ticket_id).count()
        if count > limit:
            db.session.rollback()
            return Rejection(Reason.PHOTO_LIMIT, f"Ticket already has the maximum of {limit} photos")

        path = _path_for(storage_key)
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, "wb") as fh:
                fh.write(data)
            db.session.commit()
        except Exception:
            db.session.rollback()
            delete_stored_file(storage_key)
            raise
        return photo

    with _ticket_locks.for_key(ticket_id):
        return run_with_retry(_op)


def delete_photo(ticket: Ticket, photo_id: int) -> Rejection | None:
    photo = db.session.get(TicketPhoto, photo_id)
    if photo is None or photo.ticket_id != ticket.ticket_id:
        return Rejection(Reason.ENTITY_NOT_FOUND)

    storage_key = photo.storage_key
    db.session.delete(photo)
    db.session.commit()
    delete_stored_file(storage_key)
    return None


def photo_path(photo: TicketPhoto) -> str:
    return _path_for(photo.storage_key)
