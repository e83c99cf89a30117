from typing import List, Tuple

import aiohttp
from aiohttp import hdrs


class _BufferWriter:
    """Collects what aiohttp would stream onto the connection"""

    def __init__(self):
        self._chunks: List[bytes] = []

    async def write(self, chunk) -> None:
        self._chunks.append(bytes(chunk))

    def getvalue(self) -> bytes:
        return b"".join(self._chunks)


async def encode_file_upload(
    data: bytes,
    file_name: str,
    content_type: str = "application/octet-stream",
    field_name: str = "file",
) -> Tuple[bytes, str]:
    """Encode one file as a multipart/form-data body.

    Returns ``(body, content_type_header)``. The body is rendered to plain
    bytes once so it can be resent unchanged on every retry.
    """
    writer = aiohttp.MultipartWriter("form-data")
    part = writer.append(bytes(data), {hdrs.CONTENT_TYPE: content_type})
    part.set_content_disposition("form-data", name=field_name, filename=file_name)

    buffer = _BufferWriter()
    await writer.write(buffer)
    return buffer.getvalue(), writer.headers[hdrs.CONTENT_TYPE]
