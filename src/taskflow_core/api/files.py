"""Upload reading and download responses."""
from typing import BinaryIO, Iterator, Optional
from urllib.parse import quote

from fastapi import UploadFile
from fastapi.responses import StreamingResponse

from taskflow_core import blobstore
from taskflow_core.errors import ValidationError

CHUNK_SIZE = 64 * 1024


def read_upload(upload: Optional[UploadFile], max_bytes: int, label: str = "File") -> bytes:
    """
    Read an uploaded file fully, enforcing a size limit.

    Returns:
        File content; empty bytes when nothing was uploaded

    Raises:
        ValidationError: Content exceeds ``max_bytes``
    """
    if upload is None:
        return b""
    data = upload.file.read(max_bytes + 1)
    if len(data) > max_bytes:
        raise ValidationError(f"{label} exceeds the {max_bytes // (1024 * 1024)} MB limit")
    return data


def _iter_blob(stream: BinaryIO) -> Iterator[bytes]:
    with stream:
        for chunk in iter(lambda: stream.read(CHUNK_SIZE), b""):
            yield chunk


def content_disposition(file_name: str, disposition: str = "attachment") -> str:
    return f"{disposition}; filename*=utf-8''{quote(file_name)}"


def blob_response(path: str, file_name: str, disposition: str = "attachment") -> StreamingResponse:
    """
    Stream a stored blob back to the client.

    The file is opened before the response starts, so a missing blob
    surfaces as a 404 rather than a broken stream.
    """
    stream = blobstore.open_blob(path)
    return StreamingResponse(
        _iter_blob(stream),
        media_type="application/octet-stream",
        headers={"Content-Disposition": content_disposition(file_name, disposition)},
    )
