"""
Photo payload encoding.

Queued photos live inside JSON records, so their bytes are stored as a tagged
base64 payload and only turned back into binary when the upload is replayed.
Browser-style data URLs (``data:image/jpeg;base64,...``) are accepted too.
"""

import base64
import binascii
import mimetypes
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Any, Tuple, Union

import aiofiles

from inspection_sync.exceptions import PayloadDecodeError

BASE64_ENCODING = "base64"
DEFAULT_MIME_TYPE = "image/jpeg"

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[^;,]*)(?:;[^,]*)?,(?P<data>.*)$", re.DOTALL)


@dataclass
class EncodedImage:
    """Binary image kept as text inside a queued record"""
    data: str
    mime_type: str = DEFAULT_MIME_TYPE
    size: int = 0
    encoding: str = BASE64_ENCODING

    @classmethod
    def from_bytes(cls, content: bytes, mime_type: str = DEFAULT_MIME_TYPE) -> "EncodedImage":
        return cls(
            data=base64.b64encode(content).decode("ascii"),
            mime_type=mime_type or DEFAULT_MIME_TYPE,
            size=len(content),
        )

    @classmethod
    def from_data_url(cls, data_url: str) -> "EncodedImage":
        content, mime_type = decode_data_url(data_url)
        return cls.from_bytes(content, mime_type)

    def decode(self) -> bytes:
        """Re-materialise the binary payload"""
        if self.encoding != BASE64_ENCODING:
            raise PayloadDecodeError(f"unsupported encoding '{self.encoding}'")

        try:
            content = base64.b64decode(self.data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise PayloadDecodeError(str(e)) from e

        if self.size and len(content) != self.size:
            raise PayloadDecodeError(
                f"expected {self.size} bytes, decoded {len(content)}"
            )
        return content

    def to_data_url(self) -> str:
        return f"data:{self.mime_type};{self.encoding},{self.data}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "encoding": self.encoding,
            "mime_type": self.mime_type,
            "data": self.data,
            "size": self.size,
        }

    @classmethod
    def from_dict(cls, data: Union[Dict[str, Any], str]) -> "EncodedImage":
        if isinstance(data, str):
            return cls.from_data_url(data)
        if not isinstance(data, dict) or "data" not in data:
            raise PayloadDecodeError("missing image data")
        return cls(
            data=data["data"],
            mime_type=data.get("mime_type") or DEFAULT_MIME_TYPE,
            size=int(data.get("size", 0)),
            encoding=data.get("encoding", BASE64_ENCODING),
        )


def decode_data_url(data_url: str) -> Tuple[bytes, str]:
    """Split a base64 data URL into (bytes, mime type)"""
    match = _DATA_URL_RE.match(data_url or "")
    if not match:
        raise PayloadDecodeError("not a data URL")

    mime_type = match.group("mime") or DEFAULT_MIME_TYPE
    try:
        content = base64.b64decode(match.group("data"), validate=True)
    except (binascii.Error, ValueError) as e:
        raise PayloadDecodeError(str(e)) from e
    return content, mime_type


async def encode_file(path: Union[str, Path]) -> EncodedImage:
    """Read an image from disk into an encoded payload"""
    path = Path(path)
    mime_type, _ = mimetypes.guess_type(path.name)

    async with aiofiles.open(path, "rb") as f:
        content = await f.read()

    return EncodedImage.from_bytes(content, mime_type or DEFAULT_MIME_TYPE)
