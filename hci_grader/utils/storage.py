"""文件存储与上传读取工具。"""

from pathlib import Path
from typing import Optional

from fastapi import UploadFile


def ensure_directory(path: Path) -> None:
    """确保目录存在。"""

    path.mkdir(parents=True, exist_ok=True)


async def read_upload_file(upload: UploadFile, max_bytes: Optional[int] = None) -> bytes:
    """读取上传文件的全部内容。

    ``UploadFile`` 在 FastAPI 中是异步文件对象，这里一次性读入内存，
    读取后把指针复位，方便调用方再次读取。超过 ``max_bytes`` 时抛出
    ``ValueError``。
    """

    data = await upload.read()
    await upload.seek(0)
    if max_bytes is not None and len(data) > max_bytes:
        raise ValueError(f"{upload.filename} exceeds {max_bytes} bytes")
    return data
