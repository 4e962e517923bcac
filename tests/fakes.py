"""In-memory test doubles for the Motor database and the model providers."""

import asyncio
import copy
from types import SimpleNamespace

from bson import ObjectId

from connectors.providers import Completion, Fragment, IncrementalModelProvider, ModelProvider


def _matches(doc: dict, query: dict) -> bool:
    return all(doc.get(key) == value for key, value in query.items())


class FakeCursor:
    """Subset of ``AsyncIOMotorCursor`` used by the services."""

    def __init__(self, docs: list[dict]):
        self._docs = docs
        self._skip = 0
        self._limit = 0

    def sort(self, key_or_list, direction: int = 1):
        keys = [(key_or_list, direction)] if isinstance(key_or_list, str) else list(key_or_list)
        # Stable sorts applied from the least significant key
        for key, order in reversed(keys):
            self._docs.sort(key=lambda d: d.get(key), reverse=order < 0)
        return self

    def skip(self, count: int):
        self._skip = count
        return self

    def limit(self, count: int):
        self._limit = count
        return self

    def __aiter__(self):
        docs = self._docs[self._skip:]
        if self._limit:
            docs = docs[: self._limit]
        return self._iterate(docs)

    async def _iterate(self, docs):
        for doc in docs:
            yield copy.deepcopy(doc)


class FakeCollection:
    """Subset of ``AsyncIOMotorCollection`` used by the services.

    Set ``fail_with`` to a ``PyMongoError`` to make every call raise it.
    """

    def __init__(self):
        self.docs: list[dict] = []
        self.fail_with: Exception | None = None
        self.indexes: list = []

    def _check(self):
        if self.fail_with is not None:
            raise self.fail_with

    def _store(self, doc: dict) -> ObjectId:
        doc.setdefault("_id", ObjectId())
        self.docs.append(copy.deepcopy(doc))
        return doc["_id"]

    async def insert_one(self, doc: dict):
        self._check()
        return SimpleNamespace(inserted_id=self._store(doc))

    async def insert_many(self, docs: list[dict], ordered: bool = True):
        self._check()
        return SimpleNamespace(inserted_ids=[self._store(doc) for doc in docs])

    async def find_one(self, query: dict):
        self._check()
        for doc in self.docs:
            if _matches(doc, query):
                return copy.deepcopy(doc)
        return None

    def find(self, query: dict):
        self._check()
        return FakeCursor([doc for doc in self.docs if _matches(doc, query)])

    async def create_index(self, keys, **kwargs):
        self.indexes.append(keys)
        return str(keys)


class FakeDatabase:
    """Dictionary of lazily created collections."""

    def __init__(self):
        self.collections: dict[str, FakeCollection] = {}

    def __getitem__(self, name: str) -> FakeCollection:
        return self.collections.setdefault(name, FakeCollection())

    async def list_collection_names(self):
        return list(self.collections)

    async def create_collection(self, name: str):
        return self[name]


class ScriptedStreamingProvider(IncrementalModelProvider):
    """Incremental provider replaying a fixed list of fragments.

    ``fail_after`` raises after that many fragments, ``delay`` sleeps before
    each fragment, ``final`` controls whether the end marker is sent.
    """

    def __init__(
        self,
        fragments: list[str],
        model_name: str = "fake-model",
        final: bool = True,
        fail_after: int | None = None,
        delay: float = 0.0,
        trailing: list[str] | None = None,
    ):
        self.fragments = fragments
        self.model_name = model_name
        self.final = final
        self.fail_after = fail_after
        self.delay = delay
        self.trailing = trailing or []
        self.calls: list[list[dict]] = []
        self.produced = 0
        self.closed = False

    async def complete(self, messages, config):
        self.calls.append(messages)
        return Completion(text="".join(self.fragments), model_name=self.model_name)

    async def stream(self, messages, config):
        self.calls.append(messages)
        try:
            for index, text in enumerate(self.fragments):
                if self.fail_after is not None and index >= self.fail_after:
                    raise RuntimeError("provider exploded")
                if self.delay:
                    await asyncio.sleep(self.delay)
                self.produced += 1
                yield Fragment(text=text, model_name=self.model_name)
            if self.final:
                yield Fragment(final=True, model_name=self.model_name)
            # Anything after the end marker must never be consumed
            for text in self.trailing:
                self.produced += 1
                yield Fragment(text=text, model_name=self.model_name)
        finally:
            self.closed = True


class FakeBatchProvider(ModelProvider):
    """Batch provider returning one canned response or raising ``error``."""

    def __init__(self, text: str = "Hello there", model_name: str = "fake-batch", error: Exception | None = None):
        self.text = text
        self.model_name = model_name
        self.error = error
        self.calls: list[list[dict]] = []

    async def complete(self, messages, config):
        self.calls.append(messages)
        if self.error is not None:
            raise self.error
        return Completion(text=self.text, model_name=self.model_name, prompt_tokens=5, completion_tokens=3)
