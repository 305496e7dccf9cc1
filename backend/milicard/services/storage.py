"""File storage behind a provider switch (``STORAGE_PROVIDER``); only local disk ships.

Whatever the configured provider, the returned storage both writes uploads and serves
them back under ``/uploads/``, so every URL it hands out stays reachable.
"""
from __future__ import annotations
import logging
import os
import uuid
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from flask import abort, current_app, send_from_directory
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {'png', 'jpg', 'jpeg', 'gif', 'webp'}
URL_PREFIX = '/uploads/'


def _extension(filename: str) -> str:
    return filename.rsplit('.', 1)[1].lower() if '.' in filename else ''


def check_uploads(files: Iterable[FileStorage], max_files: Optional[int] = None) -> List[FileStorage]:
    """Validate a batch of uploads before anything is written."""
    files = [f for f in files if f and f.filename]
    if max_files is not None and len(files) > max_files:
        abort(400, description=f'at most {max_files} images per upload')
    for f in files:
        ext = _extension(secure_filename(f.filename))
        if ext not in ALLOWED_EXTENSIONS:
            abort(400, description=f'file type .{ext or "?"} not allowed')
    return files


class LocalStorage:
    def __init__(self, root: str, base_url: str):
        self.root = os.path.abspath(root)
        self.base_url = base_url.rstrip('/')

    def save(self, file: FileStorage, folder: str = 'misc') -> str:
        check_uploads([file])
        ext = _extension(secure_filename(file.filename))
        day = datetime.now(timezone.utc).strftime('%Y%m%d')
        rel_dir = os.path.join(secure_filename(folder) or 'misc', day)
        os.makedirs(os.path.join(self.root, rel_dir), exist_ok=True)
        rel_path = os.path.join(rel_dir, f'{uuid.uuid4().hex}.{ext}')
        file.save(os.path.join(self.root, rel_path))
        logger.info('stored upload %s', rel_path)
        return f"{self.base_url}{URL_PREFIX}{rel_path.replace(os.sep, '/')}"

    def save_all(self, files: List[FileStorage], folder: str = 'misc') -> List[str]:
        """Save every file or none: on failure the already written ones are removed."""
        urls: List[str] = []
        try:
            for f in files:
                urls.append(self.save(f, folder))
        except Exception:
            self.delete_all(urls)
            raise
        return urls

    def path_for(self, url: str) -> Optional[str]:
        marker = url.find(URL_PREFIX)
        if marker < 0:
            return None
        rel = url[marker + len(URL_PREFIX):]
        full = os.path.abspath(os.path.join(self.root, rel))
        if not full.startswith(self.root + os.sep):
            return None
        return full

    def delete(self, url: str) -> bool:
        path = self.path_for(url or '')
        if not path or not os.path.isfile(path):
            logger.debug('nothing to delete for %s', url)
            return False
        os.remove(path)
        return True

    def delete_all(self, urls: Iterable[str]) -> int:
        return sum(1 for url in urls if self.delete(url))

    def send(self, filename: str):
        return send_from_directory(self.root, filename)


def get_storage() -> LocalStorage:
    provider = current_app.config.get('STORAGE_PROVIDER', 'local')
    if provider != 'local':
        logger.warning('storage provider %s unavailable, using local storage', provider)
    return LocalStorage(current_app.config['UPLOAD_PATH'], current_app.config['BASE_URL'])
