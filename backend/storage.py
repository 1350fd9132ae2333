# backend/storage.py
import os
import tempfile
from typing import Dict

import settings
from errors import NotFoundError


def get_dirs(data_dir: str = None) -> Dict[str, str]:
    root = data_dir or settings.DATA_DIR
    return {
        "uploads": os.path.join(root, "uploads"),
        "signed": os.path.join(root, "signed"),
    }

def ensure_dirs(paths: Dict[str, str]) -> None:
    for d in paths.values():
        os.makedirs(d, exist_ok=True)

def get_doc_paths(doc_id: str, data_dir: str = None) -> Dict[str, str]:
    dirs = get_dirs(data_dir)
    return {
        "pdf": os.path.join(dirs["uploads"], f"{doc_id}.pdf"),
        "signed": os.path.join(dirs["signed"], f"{doc_id}_signed.pdf"),
    }

def write_once(path: str, data: bytes) -> None:
    """Write `data` to `path` so readers see either nothing or the whole file.

    The bytes go to a temp file in the same directory and are then linked into
    place. Raises FileExistsError if `path` already exists.
    """
    d = os.path.dirname(path) or "."
    os.makedirs(d, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=d, prefix=".tmp-", suffix=".pdf")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.link(tmp, path)
    finally:
        os.unlink(tmp)

def read_bytes(path: str) -> bytes:
    try:
        with open(path, "rb") as f:
            return f.read()
    except FileNotFoundError:
        raise NotFoundError("File missing")

def discard(path: str) -> None:
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass
