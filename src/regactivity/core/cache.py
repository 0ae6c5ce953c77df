"""
Fitted-model caching layer.

Cross-validated ridge fits are stored on disk, one pickle per
(signature, sample) pair, keyed by a content hash of the data and fit
options. Repeated pipeline runs on unchanged inputs skip the fits.
"""

from __future__ import annotations

import hashlib
import json
import logging
import pickle
import time
from pathlib import Path
from typing import Any, Optional

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)


def _hash_into(digest, value: Any) -> None:
    if isinstance(value, pd.DataFrame):
        digest.update(b"frame")
        _hash_into(digest, value.index.to_numpy())
        _hash_into(digest, value.columns.to_numpy())
        _hash_into(digest, value.to_numpy())
    elif isinstance(value, pd.Series):
        digest.update(b"series")
        _hash_into(digest, value.index.to_numpy())
        _hash_into(digest, value.to_numpy())
    elif isinstance(value, np.ndarray):
        if value.dtype == object:
            digest.update(json.dumps([str(v) for v in value.ravel()]).encode())
        else:
            digest.update(str((value.shape, value.dtype.str)).encode())
            digest.update(np.ascontiguousarray(value).tobytes())
    elif isinstance(value, (dict, list, tuple)):
        digest.update(json.dumps(value, sort_keys=True, default=str).encode())
    else:
        digest.update(repr(value).encode())


class ModelCache:
    """
    Disk store of fitted models, with expiry and a total size cap.

    Entries are recorded in ``manifest.json`` alongside the signature and
    sample they were fit for, so a signature can be dropped as a whole.

    Example:
        >>> cache = ModelCache("/path/to/cache", ttl_hours=168)
        >>> key = cache.make_key("remap", "24hr_rep1", x, y, offset, nfolds=10)
        >>> model = cache.get(key)
        >>> if model is None:
        ...     model = solver.fit(x, y, offset)
        ...     cache.put(key, model, signature="remap", sample="24hr_rep1")
    """

    def __init__(
        self,
        cache_dir: Path | str,
        max_size_gb: float = 10.0,
        ttl_hours: float = 24.0,
    ):
        """
        Args:
            cache_dir: Directory for cached models.
            max_size_gb: Oldest models are evicted beyond this total size.
            ttl_hours: Models older than this are treated as missing.
        """
        self.cache_dir = Path(cache_dir)
        self.max_size_bytes = int(max_size_gb * 1024**3)
        self.ttl_seconds = ttl_hours * 3600
        self.cache_dir.mkdir(parents=True, exist_ok=True)

        self.manifest_path = self.cache_dir / "manifest.json"
        self._manifest: dict[str, dict[str, Any]] = {}
        if self.manifest_path.exists():
            try:
                self._manifest = json.loads(self.manifest_path.read_text())
            except json.JSONDecodeError:
                logger.warning("Unreadable cache manifest at %s, starting empty", self.manifest_path)

    @staticmethod
    def make_key(*args, **kwargs) -> str:
        """
        MD5 key over the content of ``args`` and ``kwargs``.

        DataFrames, Series and arrays are hashed by labels and values, so
        keys are stable across processes and sessions.
        """
        digest = hashlib.md5()
        for arg in args:
            _hash_into(digest, arg)
        for name, value in sorted(kwargs.items()):
            digest.update(name.encode())
            _hash_into(digest, value)
        return digest.hexdigest()

    def _model_path(self, key: str) -> Path:
        return self.cache_dir / key[:2] / f"{key}.pkl"

    def _write_manifest(self) -> None:
        self.manifest_path.write_text(json.dumps(self._manifest, indent=2))

    def _drop(self, keys: list[str]) -> None:
        for key in keys:
            self._model_path(key).unlink(missing_ok=True)
            del self._manifest[key]
        if keys:
            self._write_manifest()

    def get(self, key: str) -> Optional[Any]:
        """Cached model for ``key``, or None if absent, expired or unreadable."""
        entry = self._manifest.get(key)
        if entry is None:
            return None
        if time.time() - entry["stored_at"] > self.ttl_seconds:
            self._drop([key])
            return None

        try:
            with open(self._model_path(key), "rb") as f:
                return pickle.load(f)
        except (OSError, pickle.UnpicklingError, EOFError):
            logger.warning("Dropping unreadable cached model %s", key)
            self._drop([key])
            return None

    def put(
        self,
        key: str,
        model: Any,
        signature: Optional[str] = None,
        sample: Optional[str] = None,
    ) -> None:
        """Store a fitted model, evicting the oldest entries beyond the size cap."""
        path = self._model_path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "wb") as f:
            pickle.dump(model, f, protocol=pickle.HIGHEST_PROTOCOL)

        self._manifest[key] = {
            "signature": signature,
            "sample": sample,
            "stored_at": time.time(),
            "size_bytes": path.stat().st_size,
        }

        by_age = sorted(self._manifest, key=lambda k: self._manifest[k]["stored_at"])
        total = sum(e["size_bytes"] for e in self._manifest.values())
        evict = []
        for old in by_age:
            if total <= self.max_size_bytes or old == key:
                break
            total -= self._manifest[old]["size_bytes"]
            evict.append(old)
        for old in evict:
            self._model_path(old).unlink(missing_ok=True)
            del self._manifest[old]
        self._write_manifest()

    def invalidate_signature(self, signature: str) -> int:
        """Drop every model fit for ``signature``; returns the number dropped."""
        keys = [k for k, e in self._manifest.items() if e["signature"] == signature]
        self._drop(keys)
        return len(keys)

    def clear(self) -> None:
        """Drop all cached models."""
        self._drop(list(self._manifest))

    def __len__(self) -> int:
        return len(self._manifest)

    def __contains__(self, key: object) -> bool:
        return key in self._manifest
