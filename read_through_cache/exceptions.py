import typing as tp


class ReadThroughCacheError(Exception):
    pass


class StorageError(ReadThroughCacheError):
    pass


class StorageUnavailableError(StorageError):
    """The cache backend could not be reached at all."""


class KeyDerivationError(ReadThroughCacheError):
    pass


class QueryValidationError(ReadThroughCacheError, ValueError):
    def __init__(
        self,
        message: str,
        index: tp.Optional[int] = None,
        field: tp.Optional[str] = None,
        op: tp.Optional[str] = None,
    ) -> None:
        self.message = message
        self.index = index
        self.field = field
        self.op = op
        super().__init__(self._describe())

    def _describe(self) -> str:
        where = []
        if self.index is not None:
            where.append(f"filter #{self.index}")
        if self.field is not None:
            where.append(f"field {self.field!r}")
        if self.op is not None:
            where.append(f"operator {self.op!r}")
        if not where:
            return self.message
        return f"{self.message} ({', '.join(where)})"

    def as_detail(self) -> tp.Dict[str, tp.Any]:
        return {
            "message": self.message,
            "index": self.index,
            "field": self.field,
            "op": self.op,
        }
