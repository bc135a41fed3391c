import json
import typing as tp

from typing_extensions import TypeAlias

from .exceptions import StorageError
from .types import Metadata

# Response body together with the metadata it was stored with
StoredResponse: TypeAlias = tp.Tuple[bytes, Metadata]


class BaseSerializer:
    def dumps(self, content: bytes, metadata: Metadata) -> tp.Union[str, bytes]:
        raise NotImplementedError()

    def loads(self, data: tp.Union[str, bytes]) -> StoredResponse:
        raise NotImplementedError()


class JSONSerializer(BaseSerializer):
    """Stores the response body as text inside a small JSON envelope.

    Cached responses are JSON documents, so the body is kept as a UTF-8
    string and can be read with any Redis client.
    """

    def dumps(self, content: bytes, metadata: Metadata) -> str:
        try:
            text = content.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise StorageError(f"Response body is not UTF-8 text: {exc}") from exc

        try:
            return json.dumps({"content": text, "metadata": metadata})
        except (TypeError, ValueError) as exc:
            raise StorageError(f"Metadata is not JSON serializable: {exc}") from exc

    def loads(self, data: tp.Union[str, bytes]) -> StoredResponse:
        if isinstance(data, bytes):
            data = data.decode("utf-8", errors="replace")

        try:
            parsed = json.loads(data)
            content = parsed["content"].encode("utf-8")
            metadata = dict(parsed.get("metadata") or {})
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            raise StorageError(f"Malformed cache entry: {exc}") from exc

        return content, metadata
