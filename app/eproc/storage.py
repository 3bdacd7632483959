"""On-disk blob store with signed, expiring download URLs."""
from __future__ import annotations

import os
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from itsdangerous import BadSignature, URLSafeTimedSerializer

from . import config
from .errors import StoreFailure
from .utils import log_line

_SIGNING_SALT = "eproc-documents"


class BlobStore:
    """Blobs addressed by relative ``/``-separated paths under ``root``."""

    def __init__(
        self,
        root: Path | None = None,
        *,
        secret: str | None = None,
        public_base_url: str | None = None,
    ) -> None:
        self.root = Path(root or config.STORAGE_DIR)
        self.public_base_url = (public_base_url or config.PUBLIC_BASE_URL).rstrip("/")
        self._serializer = URLSafeTimedSerializer(secret or config.SIGNING_SECRET, salt=_SIGNING_SALT)

    def _resolve(self, path: str) -> Path:
        relative = (path or "").strip().lstrip("/")
        if not relative:
            raise ValueError("Empty storage path")
        root = self.root.resolve()
        target = (root / relative).resolve()
        if target != root and root not in target.parents:
            raise ValueError(f"Storage path escapes the store: {path!r}")
        return target

    def exists(self, path: str) -> bool:
        return self._resolve(path).is_file()

    def upload(self, path: str, data: bytes, content_kind: str | None = None, *, overwrite: bool = True) -> int:
        """Write ``data`` at ``path`` and return its size in bytes."""

        target = self._resolve(path)
        if target.exists() and not overwrite:
            raise StoreFailure(f"Blob already exists: {path}")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = target.with_name(target.name + ".part")
            tmp_path.write_bytes(data)
            os.replace(tmp_path, target)
        except OSError as exc:
            raise StoreFailure(f"Failed to upload {path}: {exc}") from exc
        log_line(f"[STORAGE] Uploaded {path} ({len(data)} bytes, {content_kind or 'unknown'})")
        return len(data)

    def open(self, path: str) -> Path:
        target = self._resolve(path)
        if not target.is_file():
            raise FileNotFoundError(path)
        return target

    def delete(self, path: str) -> bool:
        """Remove a blob. Best-effort: failures are logged and reported as ``False``."""

        try:
            target = self._resolve(path)
            if not target.exists():
                return False
            target.unlink()
        except (OSError, ValueError) as exc:
            log_line(f"[STORAGE] Failed to delete {path}: {exc}")
            return False
        return True

    def list(self, prefix: str = "") -> List[str]:
        """Return stored paths starting with ``prefix``, sorted."""

        root = self.root.resolve()
        if not root.exists():
            return []
        paths = []
        for item in root.rglob("*"):
            if not item.is_file() or item.name.endswith(".part"):
                continue
            relative = item.relative_to(root).as_posix()
            if relative.startswith(prefix):
                paths.append(relative)
        return sorted(paths)

    # -- signing -----------------------------------------------------------

    def sign(self, path: str, ttl_seconds: int | None = None) -> str:
        ttl = int(ttl_seconds or config.SIGNED_URL_TTL_SECONDS)
        return self._serializer.dumps({"p": path, "ttl": ttl})

    def signed_url(self, path: str, ttl_seconds: int | None = None) -> str:
        """Return a URL that serves ``path`` until ``ttl_seconds`` elapse."""

        token = self.sign(path, ttl_seconds)
        return f"{self.public_base_url}/documents/{path}?token={token}"

    def verify_token(self, token: str, path: str, *, now: Optional[datetime] = None) -> bool:
        """Return ``True`` when ``token`` was issued for ``path`` and has not expired."""

        try:
            payload, issued_at = self._serializer.loads(token, return_timestamp=True)
        except BadSignature:
            return False
        if not isinstance(payload, dict) or payload.get("p") != path:
            return False
        current = now or datetime.now(timezone.utc)
        if issued_at.tzinfo is None:
            issued_at = issued_at.replace(tzinfo=timezone.utc)
        age = (current - issued_at).total_seconds()
        return age <= int(payload.get("ttl", 0))


_DEFAULT_STORE: BlobStore | None = None


def get_store() -> BlobStore:
    """Return the process-wide store rooted at ``config.STORAGE_DIR``."""

    global _DEFAULT_STORE
    if _DEFAULT_STORE is None or _DEFAULT_STORE.root != Path(config.STORAGE_DIR):
        _DEFAULT_STORE = BlobStore()
    return _DEFAULT_STORE


__all__ = ["BlobStore", "get_store"]
