"""Ledger document store.

The store is the single seam through which ledger collections are persisted.
``load`` reads a whole collection and ``save`` rewrites a whole collection;
there are no partial updates. Writes made inside ``transaction()`` are staged
and committed together when the outermost transaction exits cleanly, so a
settlement never leaves a source decremented without its mirrored document
update.
"""

import copy
import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from sqlalchemy.orm import Session

from settlement_ledger.core.exceptions import NotFoundError
from settlement_ledger.repositories.ledger_document_repository import LedgerDocumentRepository

logger = logging.getLogger(__name__)

Document = dict[str, Any]


def _collection_name(collection: Any) -> str:
    return str(getattr(collection, "value", collection))


class _TransactionState(threading.local):
    def __init__(self) -> None:
        self.depth = 0
        self.staged: dict[str, list[Document]] = {}
        self.callbacks: list[Callable[[], None]] = []


class LedgerStore(ABC):
    """Collection-level document store with staged, all-or-nothing commits."""

    def __init__(self) -> None:
        self._tx = _TransactionState()

    @abstractmethod
    def _read(self, collection: str) -> list[Document]:
        """Read a collection from the backing storage."""

    @abstractmethod
    def _write(self, collections: dict[str, list[Document]]) -> None:
        """Persist every collection in ``collections`` as one unit, in order."""

    def _discard(self) -> None:
        """Hook for backends holding uncommitted state outside the stage."""

    @property
    def in_transaction(self) -> bool:
        return self._tx.depth > 0

    def load(self, collection: Any) -> list[Document]:
        name = _collection_name(collection)
        if name in self._tx.staged:
            return copy.deepcopy(self._tx.staged[name])
        return self._read(name)

    def save(self, collection: Any, documents: Iterable[Document]) -> None:
        name = _collection_name(collection)
        docs = copy.deepcopy(list(documents))
        if self._tx.depth:
            self._tx.staged[name] = docs
        else:
            self._write({name: docs})

    def get(self, collection: Any, document_id: str) -> Document:
        """Get one document by id.

        Raises:
            NotFoundError: If the id is absent from the collection.
        """
        for document in self.load(collection):
            if document.get("id") == document_id:
                return document
        raise NotFoundError(_collection_name(collection), document_id)

    def after_commit(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` once the outermost transaction has committed."""
        if self._tx.depth:
            self._tx.callbacks.append(callback)
        else:
            callback()

    @contextmanager
    def transaction(self) -> Iterator["LedgerStore"]:
        """Stage every save in the block and commit them together.

        Nested transactions join the outermost one. Any exception discards
        all staged writes and pending after-commit callbacks.
        """
        state = self._tx
        state.depth += 1
        try:
            yield self
        except BaseException:
            state.depth -= 1
            if state.depth == 0:
                state.staged = {}
                state.callbacks = []
                self._discard()
            raise
        state.depth -= 1
        if state.depth:
            return

        staged, state.staged = state.staged, {}
        callbacks, state.callbacks = state.callbacks, []
        if staged:
            self._write(staged)
        for callback in callbacks:
            callback()


class InMemoryLedgerStore(LedgerStore):
    """Dictionary-backed store for tests and scripts."""

    def __init__(self, collections: dict[str, list[Document]] | None = None) -> None:
        super().__init__()
        self._collections: dict[str, list[Document]] = {
            _collection_name(name): copy.deepcopy(docs)
            for name, docs in (collections or {}).items()
        }
        self._lock = threading.Lock()

    def _read(self, collection: str) -> list[Document]:
        with self._lock:
            return copy.deepcopy(self._collections.get(collection, []))

    def _write(self, collections: dict[str, list[Document]]) -> None:
        with self._lock:
            for name, docs in collections.items():
                self._collections[name] = copy.deepcopy(docs)


class JsonFileLedgerStore(LedgerStore):
    """Flat-file store: one ``<collection>.json`` file per collection.

    Each file holds ``{"<collection>": [...]}``. Files are replaced through a
    temporary file and an atomic rename, in the order the collections were
    first staged (documents before their settlement sources).
    """

    def __init__(self, directory: str | Path) -> None:
        super().__init__()
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, collection: str) -> Path:
        return self.directory / f"{collection}.json"

    def _read(self, collection: str) -> list[Document]:
        path = self._path(collection)
        if not path.exists():
            return []
        with path.open(encoding="utf-8") as fh:
            data = json.load(fh)
        return list(data.get(collection, []))

    def _write(self, collections: dict[str, list[Document]]) -> None:
        for name, docs in collections.items():
            path = self._path(name)
            fd, tmp_path = tempfile.mkstemp(prefix=f".{name}.", suffix=".tmp", dir=self.directory)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump({name: docs}, fh, indent=2)
                os.replace(tmp_path, path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
            logger.debug("Wrote %d documents to %s", len(docs), path)


class SqlLedgerStore(LedgerStore):
    """Store backed by the ``ledger_documents`` table.

    A transaction maps onto one database commit, so every collection written
    by a settlement lands together or not at all.
    """

    def __init__(self, db: Session) -> None:
        super().__init__()
        self.db = db
        self.repo = LedgerDocumentRepository(db)

    def _read(self, collection: str) -> list[Document]:
        return [copy.deepcopy(dict(row.body)) for row in self.repo.get_all(collection)]

    def _write(self, collections: dict[str, list[Document]]) -> None:
        try:
            for name, docs in collections.items():
                self.repo.replace_collection(name, docs)
            self.repo.commit()
        except Exception:
            logger.exception("Failed to commit ledger collections %s", list(collections))
            self.repo.rollback()
            raise

    def _discard(self) -> None:
        self.repo.rollback()
