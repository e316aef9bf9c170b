import uuid
from urllib.parse import quote, urlparse

import boto3
from botocore.exceptions import ClientError

from config import ENV, Settings

ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp", ".pdf"}


class PaymentProofStorage:
    """S3-compatible bucket holding customers' payment-proof uploads."""

    def __init__(self, client=None):
        self.settings = ENV()
        self.bucket = self.settings.s3_bucket
        self.public_base = Settings().public_storage_base()
        self.s3 = client or boto3.client(
            "s3",
            endpoint_url=self.settings.s3_endpoint_url,
            aws_access_key_id=self.settings.s3_access_key_id,
            aws_secret_access_key=self.settings.s3_secret_access_key,
        )

    def ensure_bucket(self) -> None:
        try:
            self.s3.head_bucket(Bucket=self.bucket)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code in ("404", "NoSuchBucket", "NotFound"):
                self.s3.create_bucket(Bucket=self.bucket)
            else:
                raise

    def save(self, file_bytes: bytes, extension: str, *, prefix: str = "payment-proofs/", content_type: str | None = None) -> str:
        # extension with or without the dot
        if extension and not extension.startswith("."):
            extension = f".{extension}"
        extension = (extension or "").lower()
        if extension not in ALLOWED_EXTENSIONS:
            raise ValueError(f"Unsupported file type {extension or '(none)'}")

        key = f"{prefix}{uuid.uuid4()}{extension}"
        params = {"Bucket": self.bucket, "Key": key, "Body": file_bytes}
        if content_type:
            params["ContentType"] = content_type
        self.s3.put_object(**params)
        return f"{self.public_base}/{quote(key)}"

    def presign(self, key_or_url: str, *, expires_in: int = 3600) -> str:
        """Temporary link for private buckets."""
        key = self._extract_key(key_or_url)
        try:
            return self.s3.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=expires_in,
            )
        except ClientError as e:
            raise RuntimeError(f"Cannot presign URL for {key}: {e}") from e

    def _extract_key(self, key_or_url: str) -> str:
        if key_or_url.startswith("http://") or key_or_url.startswith("https://"):
            if key_or_url.startswith(self.public_base + "/"):
                return key_or_url[len(self.public_base) + 1:]
            path = urlparse(key_or_url).path.lstrip("/")
            if path.startswith(f"{self.bucket}/"):
                return path[len(self.bucket) + 1:]
            return path
        return key_or_url


_storage: PaymentProofStorage | None = None


def get_storage() -> PaymentProofStorage:
    global _storage
    if _storage is None:
        _storage = PaymentProofStorage()
    return _storage
