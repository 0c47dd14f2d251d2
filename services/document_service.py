"""
Сохранение фотографий документов к броням.
Содержимое файлов не проверяется, только количество и размер.
"""
import os
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from loguru import logger

from config.settings import settings
from services.exceptions import ValidationError, DependencyError


ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp", ".heic", ".pdf"}


@dataclass
class UploadedFile:
    filename: str
    content: bytes
    content_type: Optional[str] = None


class DocumentStorage:
    """Локальное хранилище загруженных документов"""

    def __init__(self, upload_path: str = None, public_url: str = None):
        self.upload_path = upload_path or settings.upload_path
        self.public_url = (public_url or settings.public_upload_url).rstrip("/")

    def get_upload_dir(self) -> Path:
        """Получить абсолютный путь к директории загрузок"""
        if os.path.isabs(self.upload_path):
            upload_dir = Path(self.upload_path)
        else:
            # Получаем абсолютный путь от корня проекта
            project_root = Path(__file__).parent.parent
            upload_dir = project_root / self.upload_path

        # Создаем директорию, если её нет
        upload_dir.mkdir(parents=True, exist_ok=True)
        return upload_dir

    def validate(self, files: List[UploadedFile]) -> None:
        if len(files) > settings.max_document_images:
            raise ValidationError(
                f"Maximum {settings.max_document_images} document images allowed",
                field="documents"
            )
        for file in files:
            if len(file.content) > settings.max_file_size:
                raise ValidationError(
                    f"File size too large. Maximum size is {settings.max_file_size // (1024 * 1024)}MB per file.",
                    field="documents"
                )

    def store_images(self, files: List[UploadedFile]) -> List[str]:
        """
        Сохранить файлы и вернуть их URL в том же порядке.

        Если запись одного из файлов не удалась, уже записанные удаляются.
        """
        self.validate(files)
        upload_dir = self.get_upload_dir()

        saved: List[Path] = []
        urls: List[str] = []
        try:
            for file in files:
                extension = Path(file.filename or "").suffix.lower()
                if extension not in ALLOWED_EXTENSIONS:
                    extension = ".jpg"
                name = f"document_{uuid.uuid4().hex}{extension}"
                path = upload_dir / name
                path.write_bytes(file.content)
                saved.append(path)
                urls.append(f"{self.public_url}/{name}")
        except OSError as e:
            logger.error(f"❌ Error saving documents: {e}")
            for path in saved:
                try:
                    path.unlink(missing_ok=True)
                except OSError as cleanup_error:
                    logger.warning(f"⚠️ Failed to delete {path.name}: {cleanup_error}")
            raise DependencyError("Could not store document images")

        logger.info(f"✅ Stored {len(urls)} document(s)")
        return urls

    def discard(self, urls: List[str]) -> None:
        """Удалить файлы, если бронь так и не была создана"""
        upload_dir = self.get_upload_dir()
        for url in urls:
            path = upload_dir / url.rsplit("/", 1)[-1]
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning(f"⚠️ Failed to delete {path.name}: {e}")
