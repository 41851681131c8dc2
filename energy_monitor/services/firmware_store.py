"""
Firmware storage

Firmware images live under ``{prefix}/{device_id}/{version}_{name}.bin``.
The version token is the upload time in epoch milliseconds, so the newest
upload always carries the largest token.
"""
from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from energy_monitor.core.config import Settings, settings
from energy_monitor.core.timeutils import utcnow
from energy_monitor.errors import NotFoundError, TransportError, ValidationError

logger = logging.getLogger(__name__)

FIRMWARE_EXTENSION = ".bin"
_SAFE_SEGMENT = re.compile(r"^[A-Za-z0-9._-]+$")
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass(slots=True, frozen=True)
class FirmwareObject:
    device_id: str
    filename: str
    version: str | None
    size: int
    uploaded_at: datetime | None
    url: str


def version_token(filename: str) -> str | None:
    """Return the epoch-millisecond prefix of a stored firmware filename."""

    head, sep, _ = filename.partition("_")
    if not sep or not head.isdecimal():
        return None
    return head


def build_firmware_filename(original_name: str, now: datetime | None = None) -> str:
    name = Path(original_name or "").name
    if not name.lower().endswith(FIRMWARE_EXTENSION):
        raise ValidationError("Firmware must be a .bin file")
    stem = _UNSAFE_CHARS.sub("_", name[: -len(FIRMWARE_EXTENSION)]).strip("_") or "firmware"
    millis = int((now or utcnow()).timestamp() * 1000)
    return f"{millis}_{stem}{FIRMWARE_EXTENSION}"


def _check_segment(value: str) -> str:
    if not value or not _SAFE_SEGMENT.match(value) or value in {".", ".."}:
        raise NotFoundError("Firmware not found")
    return value


def _newest(objects: list[FirmwareObject]) -> FirmwareObject | None:
    def sort_key(obj: FirmwareObject) -> tuple[int, float, str]:
        token = int(obj.version) if obj.version else -1
        uploaded = obj.uploaded_at.timestamp() if obj.uploaded_at else 0.0
        return (token, uploaded, obj.filename)

    return max(objects, key=sort_key, default=None)


class FirmwareStore:
    """Interface shared by firmware backends."""

    async def latest(self, device_id: str) -> FirmwareObject | None:
        raise NotImplementedError

    async def upload(self, device_id: str, filename: str, data: bytes) -> FirmwareObject:
        raise NotImplementedError

    async def open(self, device_id: str, filename: str) -> bytes:
        raise NotImplementedError


class LocalFirmwareStore(FirmwareStore):
    """Stores firmware on local disk; served by ``GET /api/ota/files/...``."""

    def __init__(self, root: str | Path, public_base_url: str | None = None) -> None:
        self._root = Path(root)
        self._public_base_url = (public_base_url or "").rstrip("/")

    def url_for(self, device_id: str, filename: str) -> str:
        return f"{self._public_base_url}/api/ota/files/{device_id}/{filename}"

    def _describe(self, device_id: str, path: Path) -> FirmwareObject:
        stat = path.stat()
        return FirmwareObject(
            device_id=device_id,
            filename=path.name,
            version=version_token(path.name),
            size=stat.st_size,
            uploaded_at=datetime.fromtimestamp(stat.st_mtime, tz=UTC),
            url=self.url_for(device_id, path.name),
        )

    async def latest(self, device_id: str) -> FirmwareObject | None:
        directory = self._root / _check_segment(device_id)
        if not directory.is_dir():
            return None
        objects = [
            self._describe(device_id, path)
            for path in directory.iterdir()
            if path.is_file() and path.name.endswith(FIRMWARE_EXTENSION)
        ]
        return _newest(objects)

    async def upload(self, device_id: str, filename: str, data: bytes) -> FirmwareObject:
        stored_name = build_firmware_filename(filename)
        directory = self._root / _check_segment(device_id)
        try:
            directory.mkdir(parents=True, exist_ok=True)
            path = directory / stored_name
            await asyncio.to_thread(path.write_bytes, data)
        except OSError as exc:
            raise TransportError(f"Failed to store firmware: {exc}") from exc
        logger.info("Stored firmware locally", extra={"device_id": device_id, "path": str(path)})
        return self._describe(device_id, path)

    async def open(self, device_id: str, filename: str) -> bytes:
        path = self._root / _check_segment(device_id) / _check_segment(filename)
        if not path.is_file():
            raise NotFoundError("Firmware not found")
        try:
            return await asyncio.to_thread(path.read_bytes)
        except OSError as exc:
            raise TransportError(f"Failed to read firmware: {exc}") from exc


class S3FirmwareStore(FirmwareStore):
    """Stores firmware in an S3 bucket; devices download by public or presigned URL."""

    def __init__(
        self,
        bucket: str,
        prefix: str = "firmware",
        *,
        client=None,
        region: str | None = None,
        public_base_url: str | None = None,
        url_expiry_s: int = 3600,
    ) -> None:
        if not bucket:
            raise ValueError("FIRMWARE_BUCKET must be configured for the s3 backend")
        self._bucket = bucket
        self._prefix = prefix.strip("/")
        self._client = client or boto3.client("s3", region_name=region)
        self._public_base_url = (public_base_url or "").rstrip("/")
        self._url_expiry_s = url_expiry_s

    def key_for(self, device_id: str, filename: str) -> str:
        parts = [self._prefix, device_id, filename] if self._prefix else [device_id, filename]
        return "/".join(parts)

    def _url_for(self, key: str) -> str:
        if self._public_base_url:
            return f"{self._public_base_url}/{key}"
        return self._client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self._bucket, "Key": key},
            ExpiresIn=self._url_expiry_s,
        )

    async def latest(self, device_id: str) -> FirmwareObject | None:
        prefix = self.key_for(_check_segment(device_id), "")
        try:
            response = await asyncio.to_thread(
                self._client.list_objects_v2, Bucket=self._bucket, Prefix=prefix
            )
            objects = [
                FirmwareObject(
                    device_id=device_id,
                    filename=item["Key"].rsplit("/", 1)[-1],
                    version=version_token(item["Key"].rsplit("/", 1)[-1]),
                    size=int(item.get("Size", 0)),
                    uploaded_at=item.get("LastModified"),
                    url="",
                )
                for item in response.get("Contents", [])
                if item["Key"].endswith(FIRMWARE_EXTENSION)
            ]
            newest = _newest(objects)
            if newest is None:
                return None
            url = await asyncio.to_thread(self._url_for, self.key_for(device_id, newest.filename))
        except (ClientError, BotoCoreError) as exc:
            raise TransportError(f"Failed to list firmware: {exc}") from exc

        return FirmwareObject(
            device_id=newest.device_id,
            filename=newest.filename,
            version=newest.version,
            size=newest.size,
            uploaded_at=newest.uploaded_at,
            url=url,
        )

    async def upload(self, device_id: str, filename: str, data: bytes) -> FirmwareObject:
        stored_name = build_firmware_filename(filename)
        key = self.key_for(_check_segment(device_id), stored_name)
        try:
            await asyncio.to_thread(
                self._client.put_object,
                Bucket=self._bucket,
                Key=key,
                Body=data,
                ContentType="application/octet-stream",
            )
            url = await asyncio.to_thread(self._url_for, key)
        except (ClientError, BotoCoreError) as exc:
            raise TransportError(f"Failed to upload firmware: {exc}") from exc

        logger.info("Uploaded firmware to S3", extra={"bucket": self._bucket, "key": key})
        return FirmwareObject(
            device_id=device_id,
            filename=stored_name,
            version=version_token(stored_name),
            size=len(data),
            uploaded_at=utcnow(),
            url=url,
        )

    async def open(self, device_id: str, filename: str) -> bytes:
        key = self.key_for(_check_segment(device_id), _check_segment(filename))
        try:
            response = await asyncio.to_thread(self._client.get_object, Bucket=self._bucket, Key=key)
            return await asyncio.to_thread(response["Body"].read)
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in {"NoSuchKey", "404"}:
                raise NotFoundError("Firmware not found") from exc
            raise TransportError(f"Failed to read firmware: {exc}") from exc
        except BotoCoreError as exc:
            raise TransportError(f"Failed to read firmware: {exc}") from exc


def build_firmware_store(config: Settings | None = None) -> FirmwareStore:
    config = config or settings
    if config.firmware_backend == "s3":
        return S3FirmwareStore(
            bucket=config.firmware_bucket or "",
            prefix=config.firmware_prefix,
            region=config.aws_region,
            public_base_url=config.firmware_public_base_url,
            url_expiry_s=config.firmware_url_expiry_s,
        )
    return LocalFirmwareStore(config.firmware_local_dir, public_base_url=config.firmware_public_base_url)
