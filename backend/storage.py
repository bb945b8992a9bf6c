"""
Blob Storage Service
SAS URL issuance, proxied uploads and deletes against Azure Blob Storage.
"""
import logging
import mimetypes
import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from azure.core.exceptions import AzureError, ResourceNotFoundError
from azure.storage.blob import BlobSasPermissions, BlobServiceClient, ContentSettings, generate_blob_sas

import config

logger = logging.getLogger(__name__)

AUDIO_CONTENT_TYPES = ['audio/mpeg']

EXTENSIONS = {
    'image/jpeg': 'jpg',
    'image/png': 'png',
    'image/gif': 'gif',
    'image/webp': 'webp',
    'video/mp4': 'mp4',
    'video/webm': 'webm',
    'audio/mpeg': 'mp3',
}


class StorageError(Exception):
    """Raised when blob storage is unavailable or rejects a request"""

    def __init__(self, message, status=500):
        super().__init__(message)
        self.status = status


def parse_connection_string(conn_str: str) -> Dict[str, str]:
    """
    Split 'AccountName=x;AccountKey=y;...' into a dict.
    Values may contain '=' (base64 keys), so only the first one splits.
    """
    parts = {}
    for segment in (conn_str or '').split(';'):
        if '=' not in segment:
            continue
        key, value = segment.split('=', 1)
        parts[key.strip()] = value.strip()
    return parts


class BlobStorage:
    def __init__(self, connection_string: str = None, container: str = None, public_url: str = None):
        self.connection_string = connection_string if connection_string is not None else config.AZURE_STORAGE_CONNECTION_STRING
        self.container = container or config.AZURE_STORAGE_CONTAINER
        parts = parse_connection_string(self.connection_string)
        self.account_name = parts.get('AccountName', '')
        self.account_key = parts.get('AccountKey', '')
        protocol = parts.get('DefaultEndpointsProtocol', 'https')
        suffix = parts.get('EndpointSuffix', 'core.windows.net')
        self.base_url = (public_url or config.AZURE_STORAGE_URL or
                         f"{protocol}://{self.account_name}.blob.{suffix}").rstrip('/')
        self._service = None

    @property
    def configured(self) -> bool:
        return bool(self.account_name and self.account_key)

    def _require_configured(self):
        if not self.configured:
            raise StorageError('Blob storage is not configured', status=503)

    @property
    def service(self) -> BlobServiceClient:
        self._require_configured()
        if self._service is None:
            self._service = BlobServiceClient.from_connection_string(self.connection_string)
        return self._service

    def blob_url(self, blob_name: str) -> str:
        return f"{self.base_url}/{self.container}/{blob_name}"

    def generate_sas(self, blob_name: str, permission: str, minutes: int) -> str:
        """
        Build a blob-scoped SAS token.

        Args:
            permission: 'cw' for create+write uploads, 'r' for reads
            minutes: Validity window
        """
        self._require_configured()
        expiry = datetime.now(timezone.utc) + timedelta(minutes=minutes)
        return generate_blob_sas(
            account_name=self.account_name,
            container_name=self.container,
            blob_name=blob_name,
            account_key=self.account_key,
            permission=BlobSasPermissions.from_string(permission),
            expiry=expiry,
            protocol='https',
        )

    def get_upload_url(self, file_name: str, content_type: str) -> Dict:
        blob_name = make_blob_name(file_name, content_type)
        sas = self.generate_sas(blob_name, 'cw', config.UPLOAD_SAS_MINUTES)
        url = self.blob_url(blob_name)
        return {
            'upload_url': f"{url}?{sas}",
            'blob_url': url,
            'blob_name': blob_name,
            'expires_in': config.UPLOAD_SAS_MINUTES * 60,
        }

    def get_read_url(self, blob_name: str, minutes: int = 60) -> str:
        sas = self.generate_sas(blob_name, 'r', minutes)
        return f"{self.blob_url(blob_name)}?{sas}"

    def upload_bytes(self, blob_name: str, data: bytes, content_type: str) -> str:
        try:
            client = self.service.get_blob_client(container=self.container, blob=blob_name)
            client.upload_blob(data, overwrite=True, content_settings=ContentSettings(content_type=content_type))
        except AzureError as e:
            logger.error(f"❌ Blob upload failed for {blob_name}: {e}")
            raise StorageError('Failed to upload file') from e
        logger.info(f"☁️  Uploaded {blob_name} ({len(data)} bytes)")
        return self.blob_url(blob_name)

    def delete_blob(self, blob_name: str) -> bool:
        """
        Returns:
            bool: False if the blob did not exist
        """
        try:
            client = self.service.get_blob_client(container=self.container, blob=blob_name)
            client.delete_blob()
        except ResourceNotFoundError:
            return False
        except AzureError as e:
            logger.error(f"❌ Blob delete failed for {blob_name}: {e}")
            raise StorageError('Failed to delete file') from e
        return True


def is_allowed_type(content_type: Optional[str], allow_audio=False) -> bool:
    allowed = list(config.ALLOWED_UPLOAD_TYPES)
    if allow_audio:
        allowed += AUDIO_CONTENT_TYPES
    return content_type in allowed


def make_blob_name(file_name: str, content_type: str) -> str:
    """<images|videos|audio>/<uuid>.<ext>"""
    if content_type.startswith('image/'):
        folder = 'images'
    elif content_type.startswith('video/'):
        folder = 'videos'
    else:
        folder = 'audio'
    ext = EXTENSIONS.get(content_type)
    if not ext and file_name and '.' in file_name:
        ext = file_name.rsplit('.', 1)[1].lower()
    if not ext:
        ext = (mimetypes.guess_extension(content_type) or '.bin').lstrip('.')
    return f"{folder}/{uuid.uuid4()}.{ext}"


_storage = None


def get_storage() -> BlobStorage:
    global _storage
    if _storage is None:
        _storage = BlobStorage()
    return _storage


def set_storage(storage):
    """Swap the storage backend (tests)"""
    global _storage
    _storage = storage
