# presence_api/common/uploads.py
import logging
import os
import uuid

from flask import current_app
from werkzeug.utils import secure_filename

log = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp"}


def upload_dir() -> str:
    folder = current_app.config.get("UPLOAD_FOLDER") or "static/uploads/attendance"
    if os.path.isabs(folder):
        return folder
    return os.path.join(current_app.root_path, folder)


def save_image(file_storage, employee_id, prefix: str = "") -> str:
    """Store an uploaded image under UPLOAD_FOLDER and return its absolute path."""
    base_dir = upload_dir()
    os.makedirs(base_dir, exist_ok=True)

    ext = os.path.splitext(secure_filename(file_storage.filename or ""))[1].lower()
    if ext not in ALLOWED_EXTENSIONS:
        ext = ".jpg"  # Default
    filename = f"{prefix}{employee_id}_{uuid.uuid4().hex}{ext}"
    path = os.path.join(base_dir, filename)
    file_storage.save(path)
    return path


def discard(path) -> None:
    if not path:
        return
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        log.warning("Could not remove upload %s: %s", path, e)
