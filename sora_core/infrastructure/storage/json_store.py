import contextlib
import json
import os
from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import quote, unquote
from uuid import uuid4

from sora_core.config.settings import settings
from sora_core.domain.conversation import KeyValueStore
from sora_core.domain.exceptions import BusinessError


class JsonFileKeyValueStore(KeyValueStore):
    """每个 key 一个 JSON 文件的键值存储。

    ``<namespace>:<name>`` 形式的 key 存放在 ``kv/<namespace>/<name>.json``，
    保存聊天记录时不会重写已缓存的音频。写入先落临时文件，再 os.replace。
    """

    SUFFIX = ".json"

    def __init__(self, root: str | Path | None = None):
        self._root = Path(root or settings.storage_root).resolve()
        self._kv_root = self._root / "kv"
        self._kv_root.mkdir(parents=True, exist_ok=True)

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            value = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise BusinessError(code="STORE_READ_ERROR", message=f"{key}: {e}")
        if not isinstance(value, str):
            raise BusinessError(code="STORE_READ_ERROR", message=f"{key}: not a string entry")
        return value

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        tmp_path = path.parent / f"{path.name}.{uuid4().hex}.tmp"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(value, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as e:
            with contextlib.suppress(OSError):
                tmp_path.unlink()
            raise BusinessError(code="STORE_WRITE_ERROR", message=str(e))

    def delete(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as e:
            raise BusinessError(code="STORE_DELETE_ERROR", message=str(e))

    def keys(self, prefix: str = "") -> List[str]:
        found = [self._name(p) for p in self._kv_root.glob(f"*{self.SUFFIX}")]
        for ns_dir in self._kv_root.iterdir():
            if not ns_dir.is_dir():
                continue
            namespace = unquote(ns_dir.name)
            found.extend(f"{namespace}:{self._name(p)}" for p in ns_dir.glob(f"*{self.SUFFIX}"))
        return sorted(k for k in found if k.startswith(prefix))

    def _path(self, key: str) -> Path:
        namespace, sep, name = key.partition(":")
        if not sep:
            return self._kv_root / (quote(key, safe="") + self.SUFFIX)
        return self._kv_root / quote(namespace, safe="") / (quote(name, safe="") + self.SUFFIX)

    def _name(self, path: Path) -> str:
        return unquote(path.name[: -len(self.SUFFIX)])


class MemoryKeyValueStore(KeyValueStore):
    """进程内存储，用于测试和短生命周期会话。"""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self, prefix: str = "") -> List[str]:
        return sorted(k for k in self._data if k.startswith(prefix))
