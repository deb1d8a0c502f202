import logging
import os
import uuid
from pathlib import Path
from typing import Optional, List, Dict

from fastapi import HTTPException, status, UploadFile
from sqlalchemy.orm import Session
import boto3
from botocore.config import Config

from models import AdminLog, User

logger = logging.getLogger(__name__)

AWS_REGION = os.environ.get("AWS_REGION")
S3_BUCKET_NAME = os.environ.get("S3_BUCKET_NAME")
S3_ENDPOINT_URL = os.environ.get("S3_ENDPOINT_URL")
S3_PUBLIC_BASE_URL = os.environ.get("S3_PUBLIC_BASE_URL")
S3_ACCESS_KEY = os.environ.get("S3_ACCESS_KEY") or os.environ.get("AWS_ACCESS_KEY_ID")
S3_SECRET_KEY = os.environ.get("S3_SECRET_KEY") or os.environ.get("AWS_SECRET_ACCESS_KEY")

EVENT_IMAGE_PREFIX = "events"
EVENT_IMAGE_TYPES = ["image/jpeg", "image/png", "image/webp", "image/gif"]

S3_CLIENT = None
if AWS_REGION and S3_BUCKET_NAME and S3_ACCESS_KEY and S3_SECRET_KEY:
    s3_config = Config(signature_version="s3v4", s3={"addressing_style": "virtual"})
    S3_CLIENT = boto3.client(
        "s3",
        region_name=AWS_REGION,
        aws_access_key_id=S3_ACCESS_KEY,
        aws_secret_access_key=S3_SECRET_KEY,
        endpoint_url=S3_ENDPOINT_URL or f"https://s3.{AWS_REGION}.amazonaws.com",
        config=s3_config,
    )


def log_admin_action(
    db: Session,
    admin: Optional[User],
    action: str,
    method: Optional[str] = None,
    path: Optional[str] = None,
    meta: Optional[dict] = None,
    commit: bool = True,
):
    db.add(AdminLog(
        admin_id=admin.id if admin else None,
        admin_email=admin.email if admin else "",
        action=action,
        method=method,
        path=path,
        meta=meta
    ))
    if commit:
        db.commit()


def _build_s3_url(key: str) -> str:
    if S3_PUBLIC_BASE_URL:
        return f"{S3_PUBLIC_BASE_URL.rstrip('/')}/{key}"
    if not S3_BUCKET_NAME or not AWS_REGION:
        raise RuntimeError("S3 configuration missing")
    return f"https://{S3_BUCKET_NAME}.s3.{AWS_REGION}.amazonaws.com/{key}"


def _object_key(key_prefix: str, filename: str) -> str:
    extension = Path(filename or "").suffix.lower()
    return f"{key_prefix.rstrip('/')}/{uuid.uuid4().hex}{extension}"


def _upload_to_s3(file: UploadFile, key_prefix: str, allowed_types: Optional[List[str]] = None) -> str:
    if not S3_CLIENT or not S3_BUCKET_NAME:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="S3 not configured")
    if not file.content_type:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing file content type")
    if allowed_types and file.content_type not in allowed_types:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid file type")

    key = _object_key(key_prefix, file.filename)
    try:
        S3_CLIENT.upload_fileobj(
            file.file,
            S3_BUCKET_NAME,
            key,
            ExtraArgs={"ContentType": file.content_type}
        )
    except Exception as exc:
        logger.error(f"S3 upload failed: {exc}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Upload failed") from exc

    return _build_s3_url(key)


def _generate_presigned_put_url(
    key_prefix: str,
    filename: str,
    content_type: str,
    allowed_types: Optional[List[str]] = None,
    expires_in: int = 600
) -> Dict[str, str]:
    if not S3_CLIENT or not S3_BUCKET_NAME:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="S3 not configured")
    if not filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing filename")
    if not content_type:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing content type")
    if allowed_types and content_type not in allowed_types:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid file type")

    key = _object_key(key_prefix, filename)
    try:
        upload_url = S3_CLIENT.generate_presigned_url(
            "put_object",
            Params={
                "Bucket": S3_BUCKET_NAME,
                "Key": key,
                "ContentType": content_type
            },
            ExpiresIn=expires_in
        )
    except Exception as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to create presigned URL") from exc

    return {
        "upload_url": upload_url,
        "public_url": _build_s3_url(key),
        "key": key,
        "content_type": content_type
    }


def upload_event_image(file: UploadFile) -> str:
    return _upload_to_s3(file, EVENT_IMAGE_PREFIX, allowed_types=EVENT_IMAGE_TYPES)


def presign_event_image(filename: str, content_type: str) -> Dict[str, str]:
    return _generate_presigned_put_url(EVENT_IMAGE_PREFIX, filename, content_type, allowed_types=EVENT_IMAGE_TYPES)
