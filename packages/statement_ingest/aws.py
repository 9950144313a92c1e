"""AWS adapters: Textract OCR and S3 object storage.

Multi-page PDFs go through the asynchronous Textract API, which reads the
document from S3: the OCR parser uploads first and passes the ``s3://`` URI as
``location``. Without a location the synchronous ``detect_document_text`` call
is used (single-page documents only) and its result is served by ``poll``.
"""

from __future__ import annotations

import uuid
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .collaborators import OcrPage, OcrStatus
from .errors import OcrError, StorageError
from .logging_setup import get_logger

_logger = get_logger("statement_ingest.aws")

_SYNC_PREFIX = "sync-"


def _split_s3_uri(uri: str) -> tuple[str, str]:
    if not uri.startswith("s3://"):
        raise OcrError(f"expected an s3:// location, got {uri!r}")
    bucket, _, key = uri[len("s3://") :].partition("/")
    if not bucket or not key:
        raise OcrError(f"malformed s3 location {uri!r}")
    return bucket, key


def _line_texts(blocks: list[dict[str, Any]] | None) -> tuple[str, ...]:
    return tuple(
        b["Text"] for b in (blocks or []) if b.get("BlockType") == "LINE" and b.get("Text")
    )


class TextractOcrClient:
    """``OcrClient`` on Amazon Textract text detection."""

    def __init__(self, region: str | None = None, *, client: Any | None = None) -> None:
        self._client = client or boto3.client("textract", region_name=region)
        self._sync_results: dict[str, tuple[str, ...]] = {}

    def submit(self, content: bytes, filename: str, *, location: str | None = None) -> str:
        try:
            if location is None:
                resp = self._client.detect_document_text(Document={"Bytes": content})
                job_id = f"{_SYNC_PREFIX}{uuid.uuid4().hex}"
                self._sync_results[job_id] = _line_texts(resp.get("Blocks"))
                _logger.info("textract:sync_done file=%s job=%s", filename, job_id)
                return job_id
            bucket, key = _split_s3_uri(location)
            resp = self._client.start_document_text_detection(
                DocumentLocation={"S3Object": {"Bucket": bucket, "Name": key}}
            )
        except (ClientError, BotoCoreError) as e:
            raise OcrError(f"text detection could not start for {filename}: {e}") from e
        job_id = resp.get("JobId")
        if not job_id:
            raise OcrError(f"text detection returned no job id for {filename}")
        return job_id

    def poll(self, job_id: str, continuation_token: str | None = None) -> OcrPage:
        if job_id in self._sync_results:
            return OcrPage(status=OcrStatus.SUCCEEDED, lines=self._sync_results.pop(job_id))
        kwargs: dict[str, Any] = {"JobId": job_id}
        if continuation_token:
            kwargs["NextToken"] = continuation_token
        try:
            resp = self._client.get_document_text_detection(**kwargs)
        except (ClientError, BotoCoreError) as e:
            raise OcrError(f"polling job {job_id} failed: {e}") from e
        status = OcrStatus(resp.get("JobStatus", OcrStatus.IN_PROGRESS))
        if status is OcrStatus.PARTIAL_SUCCESS:
            _logger.warning("textract:partial_success job=%s", job_id)
        return OcrPage(
            status=status,
            lines=_line_texts(resp.get("Blocks")),
            continuation_token=resp.get("NextToken"),
            message=resp.get("StatusMessage"),
        )


class S3ObjectStorage:
    """``ObjectStorage`` on one S3 bucket."""

    def __init__(
        self, bucket: str, region: str | None = None, *, client: Any | None = None
    ) -> None:
        if not bucket:
            raise StorageError("no bucket configured (S3_BUCKET_NAME)")
        self.bucket = bucket
        self._client = client or boto3.client("s3", region_name=region)

    def put(self, key: str, content: bytes, *, content_type: str | None = None) -> str:
        extra: dict[str, Any] = {"ContentType": content_type} if content_type else {}
        try:
            self._client.put_object(Bucket=self.bucket, Key=key, Body=content, **extra)
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"upload of {key} failed: {e}") from e
        return f"s3://{self.bucket}/{key}"

    def delete(self, key: str) -> None:
        try:
            self._client.delete_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"delete of {key} failed: {e}") from e


__all__ = ["TextractOcrClient", "S3ObjectStorage"]
