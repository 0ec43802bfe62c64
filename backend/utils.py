import os
import uuid
from pathlib import Path
from typing import Optional, List, Dict
from fastapi import HTTPException, status
from sqlalchemy.orm import Session
from models import AdminLog, UserAccount
import boto3
from botocore.config import Config

AWS_REGION = os.environ.get("AWS_REGION")
S3_BUCKET_NAME = os.environ.get("S3_BUCKET_NAME")
S3_ACCESS_KEY = os.environ.get("S3_ACCESS_KEY") or os.environ.get("AWS_ACCESS_KEY_ID")
S3_SECRET_KEY = os.environ.get("S3_SECRET_KEY") or os.environ.get("AWS_SECRET_ACCESS_KEY")

ALLOWED_AVATAR_TYPES = ["image/png", "image/jpeg", "image/webp"]

S3_CLIENT = None
if AWS_REGION and S3_BUCKET_NAME and S3_ACCESS_KEY and S3_SECRET_KEY:
    s3_config = Config(signature_version="s3v4", s3={"addressing_style": "virtual"})
    S3_CLIENT = boto3.client(
        "s3",
        region_name=AWS_REGION,
        aws_access_key_id=S3_ACCESS_KEY,
        aws_secret_access_key=S3_SECRET_KEY,
        endpoint_url=f"https://s3.{AWS_REGION}.amazonaws.com",
        config=s3_config,
    )


def log_admin_action(db: Session, admin: UserAccount, action: str, method: Optional[str] = None, path: Optional[str] = None, meta: Optional[dict] = None):
    admin_name = admin.profile.full_name if admin and admin.profile else ""
    db.add(AdminLog(
        admin_id=admin.id if admin else None,
        admin_email=admin.email if admin else "",
        admin_name=admin_name,
        action=action,
        method=method,
        path=path,
        meta=meta
    ))
    db.commit()


def _build_s3_url(key: str) -> str:
    if not S3_BUCKET_NAME or not AWS_REGION:
        raise RuntimeError("S3 configuration missing")
    return f"https://{S3_BUCKET_NAME}.s3.{AWS_REGION}.amazonaws.com/{key}"


def _generate_presigned_put_url(
    key_prefix: str,
    filename: str,
    content_type: str,
    allowed_types: Optional[List[str]] = None,
    expires_in: int = 600
) -> Dict[str, str]:
    if not S3_CLIENT or not S3_BUCKET_NAME or not AWS_REGION:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="S3 not configured")
    if not filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing filename")
    if not content_type:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing content type")
    if allowed_types and content_type not in allowed_types:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid file type")

    extension = Path(filename).suffix.lower()
    unique_name = f"{uuid.uuid4().hex}{extension}"
    key = f"{key_prefix.rstrip('/')}/{unique_name}"

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
