from __future__ import annotations

from typing import Any

import pytest
from botocore.exceptions import ClientError

from statement_ingest.aws import S3ObjectStorage, TextractOcrClient
from statement_ingest.collaborators import OcrStatus
from statement_ingest.errors import OcrError, StorageError


def _client_error(op: str) -> ClientError:
    return ClientError({"Error": {"Code": "AccessDenied", "Message": "denied"}}, op)


def _line(text: str) -> dict[str, Any]:
    return {"BlockType": "LINE", "Text": text}


class FakeTextract:
    def __init__(self, pages: list[dict[str, Any]] | None = None, *, fail: bool = False) -> None:
        self.pages = list(pages or [])
        self.fail = fail
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def detect_document_text(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("detect_document_text", kwargs))
        if self.fail:
            raise _client_error("DetectDocumentText")
        return {"Blocks": [{"BlockType": "PAGE"}, _line("Kontoauszug"), _line("05.03.2024 X -1,00")]}

    def start_document_text_detection(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("start_document_text_detection", kwargs))
        return {"JobId": "job-42"}

    def get_document_text_detection(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("get_document_text_detection", kwargs))
        return self.pages.pop(0)


class FakeS3:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def put_object(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("put_object", kwargs))
        if self.fail:
            raise _client_error("PutObject")
        return {}

    def delete_object(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("delete_object", kwargs))
        if self.fail:
            raise _client_error("DeleteObject")
        return {}


def test_sync_detection_without_location():
    fake = FakeTextract()
    ocr = TextractOcrClient(client=fake)

    job = ocr.submit(b"%PDF", "scan.pdf")
    page = ocr.poll(job)

    assert job.startswith("sync-")
    assert page.status is OcrStatus.SUCCEEDED
    assert page.lines == ("Kontoauszug", "05.03.2024 X -1,00")
    assert fake.calls[0] == ("detect_document_text", {"Document": {"Bytes": b"%PDF"}})


def test_async_detection_reads_from_s3_and_pages():
    fake = FakeTextract(
        [
            {"JobStatus": "IN_PROGRESS"},
            {"JobStatus": "SUCCEEDED", "Blocks": [_line("a")], "NextToken": "n1"},
            {"JobStatus": "SUCCEEDED", "Blocks": [_line("b")]},
        ]
    )
    ocr = TextractOcrClient(client=fake)

    job = ocr.submit(b"%PDF", "scan.pdf", location="s3://bucket/temp/1-scan.pdf")
    assert job == "job-42"
    assert fake.calls[0][1] == {
        "DocumentLocation": {"S3Object": {"Bucket": "bucket", "Name": "temp/1-scan.pdf"}}
    }

    assert ocr.poll(job).status is OcrStatus.IN_PROGRESS
    first = ocr.poll(job)
    assert (first.lines, first.continuation_token) == (("a",), "n1")
    last = ocr.poll(job, "n1")
    assert last.continuation_token is None
    assert fake.calls[-1][1] == {"JobId": "job-42", "NextToken": "n1"}


def test_textract_errors_are_wrapped():
    with pytest.raises(OcrError, match="scan.pdf"):
        TextractOcrClient(client=FakeTextract(fail=True)).submit(b"%PDF", "scan.pdf")
    with pytest.raises(OcrError):
        TextractOcrClient(client=FakeTextract()).submit(b"%PDF", "scan.pdf", location="bucket/key")


def test_s3_put_and_delete():
    fake = FakeS3()
    storage = S3ObjectStorage("statements", client=fake)

    uri = storage.put("temp/1-scan.pdf", b"%PDF", content_type="application/pdf")
    storage.delete("temp/1-scan.pdf")

    assert uri == "s3://statements/temp/1-scan.pdf"
    assert fake.calls == [
        (
            "put_object",
            {
                "Bucket": "statements",
                "Key": "temp/1-scan.pdf",
                "Body": b"%PDF",
                "ContentType": "application/pdf",
            },
        ),
        ("delete_object", {"Bucket": "statements", "Key": "temp/1-scan.pdf"}),
    ]


def test_s3_errors_are_wrapped():
    storage = S3ObjectStorage("statements", client=FakeS3(fail=True))
    with pytest.raises(StorageError):
        storage.put("k", b"x")
    with pytest.raises(StorageError):
        storage.delete("k")


def test_s3_requires_bucket():
    with pytest.raises(StorageError):
        S3ObjectStorage("", client=FakeS3())
