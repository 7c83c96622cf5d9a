"""
Local keyed storage.

Each namespace maps composite tuple keys to UTF-8 JSON strings. Two backends:
- InMemoryKeyValueStore: hermetic, for tests and ephemeral sessions
- JsonFileKeyValueStore: one file per namespace, optionally encrypted,
  replaced atomically on every flush

batch() groups writes: either every write inside the block lands or, when the
block raises, the namespace is rolled back to its previous contents.
"""

import json
import os
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import structlog

from core.config import SecurityConfig, StorageConfig
from core.domain.errors import DataIntegrityError
from core.security import TextCipher

logger = structlog.get_logger(__name__)

StorageKey = tuple[str, ...]


class KeyValueStore(Protocol):
    """Protocol every storage namespace implements."""

    namespace: str

    def get(self, key: StorageKey) -> str | None: ...

    def set(self, key: StorageKey, value: str) -> None: ...

    def delete(self, key: StorageKey) -> None: ...

    def keys(self, prefix: StorageKey = ()) -> list[StorageKey]: ...

    def batch(self) -> AbstractContextManager["KeyValueStore"]: ...


class InMemoryKeyValueStore:
    """Dictionary-backed namespace."""

    def __init__(self, namespace: str) -> None:
        self.namespace = namespace
        self._entries: dict[StorageKey, str] = {}
        self._batch_depth = 0
        self.logger = logger.bind(namespace=namespace)

    def get(self, key: StorageKey) -> str | None:
        return self._entries.get(key)

    def set(self, key: StorageKey, value: str) -> None:
        self._entries[tuple(key)] = value
        self._changed()

    def delete(self, key: StorageKey) -> None:
        if self._entries.pop(tuple(key), None) is not None:
            self._changed()

    def keys(self, prefix: StorageKey = ()) -> list[StorageKey]:
        size = len(prefix)
        return [key for key in self._entries if key[:size] == tuple(prefix)]

    @contextmanager
    def batch(self) -> Iterator["InMemoryKeyValueStore"]:
        before = dict(self._entries)
        self._batch_depth += 1
        try:
            yield self
        except BaseException:
            self._entries = before
            self.logger.warning("storage_batch_rolled_back")
            raise
        finally:
            self._batch_depth -= 1
        self._changed()

    def _changed(self) -> None:
        """Hook for persistent subclasses; called after writes outside a batch."""


class JsonFileKeyValueStore(InMemoryKeyValueStore):
    """
    Namespace persisted to a single JSON file.

    When a cipher is given, the file holds TextCipher ciphertext instead of
    plain JSON. The salt is kept stable for the life of the file so key
    derivation happens once per process.
    """

    def __init__(self, namespace: str, path: Path, cipher: TextCipher | None = None) -> None:
        super().__init__(namespace)
        self.path = path
        self._cipher = cipher
        self._salt: bytes | None = None
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        raw = self.path.read_text(encoding="utf-8")
        if self._cipher is not None:
            self._salt = TextCipher.salt_of(raw)
            raw = self._cipher.decrypt(raw)
        try:
            document = json.loads(raw)
            self._entries = {tuple(key): value for key, value in document["entries"]}
        except (ValueError, KeyError, TypeError) as e:
            raise DataIntegrityError(f"Storage file {self.path} is corrupted") from e
        self.logger.info("storage_namespace_loaded", entries=len(self._entries))

    def _changed(self) -> None:
        if self._batch_depth:
            return
        self.flush()

    def flush(self) -> None:
        entries = [[list(key), value] for key, value in self._entries.items()]
        document = json.dumps({"entries": entries})
        if self._cipher is not None:
            self._salt = self._salt or TextCipher.new_salt()
            document = self._cipher.encrypt(document, salt=self._salt)

        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(document, encoding="utf-8")
        os.replace(tmp_path, self.path)


@dataclass
class LocalStorage:
    """
    The two storage namespaces, constructed once and passed to every component.

    credentials: accounts and the active session
    medications: medication lists and adherence records
    """

    credentials: KeyValueStore
    medications: KeyValueStore

    @classmethod
    def in_memory(cls) -> "LocalStorage":
        return cls(
            credentials=InMemoryKeyValueStore("credentials"),
            medications=InMemoryKeyValueStore("medications"),
        )

    @classmethod
    def from_config(cls, config: StorageConfig, security: SecurityConfig) -> "LocalStorage":
        if config.backend == "memory":
            return cls.in_memory()

        data_dir = Path(config.data_dir)

        def _cipher(passphrase: str | None) -> TextCipher | None:
            return TextCipher(passphrase, security.kdf_iterations) if passphrase else None

        return cls(
            credentials=JsonFileKeyValueStore(
                "credentials",
                data_dir / "user-storage.json",
                _cipher(config.credentials_encryption_key),
            ),
            medications=JsonFileKeyValueStore(
                "medications",
                data_dir / "medication-storage.json",
                _cipher(config.medications_encryption_key),
            ),
        )
