"""
Generic filter / sort / pagination translation for list endpoints.

List endpoints accept the same declarative query parameters::

    ?filters=[{"field": "status", "op": "in", "value": ["SUDAH", "BELUM"]}]
    &page=2&limit=20&sortBy=nama&sortOrder=ASC&search=ahmad

``FilterTranslator`` validates and normalizes them into an immutable
``QueryDescriptor``. It knows nothing about how a data source executes the
descriptor.
"""
import json
import logging
import math
import typing as tp
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .exceptions import QueryValidationError

logger = logging.getLogger(__name__)


class FilterOperator(str, Enum):
    EQ = "eq"
    NE = "ne"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    LIKE = "like"
    ILIKE = "ilike"
    IN = "in"
    NOTIN = "notin"
    BETWEEN = "between"
    NOTBETWEEN = "notbetween"
    ISNULL = "isnull"
    ISNOTNULL = "isnotnull"


OPERATOR_ALIASES: tp.Dict[str, FilterOperator] = {
    "=": FilterOperator.EQ,
    "!=": FilterOperator.NE,
    ">": FilterOperator.GT,
    ">=": FilterOperator.GTE,
    "<": FilterOperator.LT,
    "<=": FilterOperator.LTE,
    "not_in": FilterOperator.NOTIN,
    "not_between": FilterOperator.NOTBETWEEN,
    "is_null": FilterOperator.ISNULL,
    "is_not_null": FilterOperator.ISNOTNULL,
}

ORDERING_OPERATORS = frozenset(
    {FilterOperator.GT, FilterOperator.GTE, FilterOperator.LT, FilterOperator.LTE}
)
PATTERN_OPERATORS = frozenset({FilterOperator.LIKE, FilterOperator.ILIKE})
SET_OPERATORS = frozenset({FilterOperator.IN, FilterOperator.NOTIN})
RANGE_OPERATORS = frozenset({FilterOperator.BETWEEN, FilterOperator.NOTBETWEEN})
NULL_OPERATORS = frozenset({FilterOperator.ISNULL, FilterOperator.ISNOTNULL})


class FieldType(str, Enum):
    TEXT = "text"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"

    @property
    def orderable(self) -> bool:
        return self in (FieldType.NUMBER, FieldType.DATE)


class SortDirection(str, Enum):
    ASC = "ASC"
    DESC = "DESC"


def parse_operator(op: tp.Any) -> tp.Optional[FilterOperator]:
    if not isinstance(op, str):
        return None
    name = op.strip().lower()
    if name in OPERATOR_ALIASES:
        return OPERATOR_ALIASES[name]
    try:
        return FilterOperator(name)
    except ValueError:
        return None


class FilterClause(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    op: FilterOperator
    value: tp.Any = None


class QueryDescriptor(BaseModel):
    """Normalized filter, sort and paging intent for one list request.

    ``page`` and ``page_size`` are ``None`` when pagination is disabled:
    the data source must return every matching row.
    """

    model_config = ConfigDict(frozen=True)

    filters: tp.Tuple[FilterClause, ...] = ()
    page: tp.Optional[int] = Field(default=1, ge=1)
    page_size: tp.Optional[int] = Field(default=10, ge=1)
    sort_field: str = "createdAt"
    sort_direction: SortDirection = SortDirection.DESC
    search: tp.Optional[str] = None
    paginate: bool = True

    @model_validator(mode="after")
    def paging_matches_mode(self) -> "QueryDescriptor":
        if self.paginate and (self.page is None or self.page_size is None):
            raise ValueError("page and page_size are required when paginating")
        if not self.paginate and (self.page is not None or self.page_size is not None):
            raise ValueError("page and page_size must be unset without pagination")
        return self

    @property
    def offset(self) -> int:
        if not self.paginate:
            return 0
        return (self.page - 1) * self.page_size  # type: ignore[operator]


class ListQuerySpec(BaseModel):
    """What one list endpoint allows clients to filter and sort on."""

    model_config = ConfigDict(frozen=True)

    filterable_fields: tp.Dict[str, FieldType] = Field(default_factory=dict)
    sortable_fields: tp.FrozenSet[str] = frozenset()
    default_sort_field: str = "createdAt"
    default_sort_direction: SortDirection = SortDirection.DESC
    default_page_size: int = Field(default=10, ge=1)
    max_page_size: int = Field(default=100, ge=1)

    @model_validator(mode="after")
    def default_page_size_fits(self) -> "ListQuerySpec":
        if self.default_page_size > self.max_page_size:
            raise ValueError("default_page_size must not exceed max_page_size")
        return self


def _to_int(value: tp.Any) -> tp.Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _first(value: tp.Any) -> tp.Any:
    """Query parameters repeated in the query string arrive as lists."""
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


class FilterTranslator:
    """Turns list query parameters into a QueryDescriptor.

    Well-formed but invalid filter clauses raise ``QueryValidationError``.
    Filter input that cannot even be parsed is logged and ignored, so an
    optional ``filters`` parameter can never fail a list request on its own.
    Paging and sorting problems are never errors: they fall back to defaults.

    Args:
        spec: Allow-lists and defaults of the endpoint
    """

    def __init__(self, spec: ListQuerySpec) -> None:
        self.spec = spec

    def parse_filters(self, raw: tp.Any) -> tp.List[tp.Any]:
        """Decodes the filters parameter; unparsable input yields no filters."""
        if raw is None or raw == "":
            return []

        if isinstance(raw, (bytes, str)):
            try:
                raw = json.loads(raw)
            except ValueError as exc:
                logger.warning("Ignoring unparsable filters %r: %s", raw, exc)
                return []

        if isinstance(raw, tuple):
            raw = list(raw)
        if not isinstance(raw, list):
            logger.warning(
                "Ignoring filters of type %s, expected a list", type(raw).__name__
            )
            return []
        return raw

    def translate_clause(self, index: int, item: tp.Any) -> FilterClause:
        if not isinstance(item, dict):
            raise QueryValidationError("Filter must be an object", index=index)

        field = item.get("field")
        raw_op = item.get("op")
        if not isinstance(field, str) or not field:
            raise QueryValidationError(
                "Filter field is required",
                index=index,
                op=None if raw_op is None else str(raw_op),
            )
        if raw_op is None or raw_op == "":
            raise QueryValidationError(
                "Filter operator is required", index=index, field=field
            )

        op = parse_operator(raw_op)
        if op is None:
            raise QueryValidationError(
                "Unknown filter operator", index=index, field=field, op=str(raw_op)
            )

        field_type = self.spec.filterable_fields.get(field)
        if field_type is None:
            raise QueryValidationError(
                "Field is not filterable", index=index, field=field, op=op.value
            )

        value = item.get("value")

        if op in NULL_OPERATORS:
            return FilterClause(field=field, op=op, value=None)

        if op in SET_OPERATORS:
            if not isinstance(value, (list, tuple)):
                raise QueryValidationError(
                    "Value must be an array", index=index, field=field, op=op.value
                )
            return FilterClause(field=field, op=op, value=tuple(value))

        if op in RANGE_OPERATORS:
            if not isinstance(value, (list, tuple)) or len(value) != 2:
                raise QueryValidationError(
                    "Value must be a two-element array",
                    index=index,
                    field=field,
                    op=op.value,
                )
            if not field_type.orderable:
                raise QueryValidationError(
                    f"Range operator is not valid on {field_type.value} fields",
                    index=index,
                    field=field,
                    op=op.value,
                )
            return FilterClause(field=field, op=op, value=tuple(value))

        if value is None or value == "" or isinstance(value, (list, tuple, dict)):
            raise QueryValidationError(
                "Value must be a scalar", index=index, field=field, op=op.value
            )

        if op in ORDERING_OPERATORS and not field_type.orderable:
            raise QueryValidationError(
                f"Ordering operator is not valid on {field_type.value} fields",
                index=index,
                field=field,
                op=op.value,
            )

        if op in PATTERN_OPERATORS:
            if field_type is not FieldType.TEXT or not isinstance(value, str):
                raise QueryValidationError(
                    "Pattern operator requires a text field and a string value",
                    index=index,
                    field=field,
                    op=op.value,
                )
            if "%" not in value:
                value = f"%{value}%"

        return FilterClause(field=field, op=op, value=value)

    def translate_filters(self, raw: tp.Any) -> tp.Tuple[FilterClause, ...]:
        return tuple(
            self.translate_clause(index, item)
            for index, item in enumerate(self.parse_filters(raw))
        )

    def normalize_page(self, page: tp.Any) -> int:
        number = _to_int(_first(page))
        if number is None or number < 1:
            return 1
        return number

    def normalize_page_size(self, limit: tp.Any) -> int:
        size = _to_int(_first(limit))
        if size is None or size < 1:
            return self.spec.default_page_size
        return min(size, self.spec.max_page_size)

    def normalize_sort(
        self, sort_by: tp.Any, sort_order: tp.Any
    ) -> tp.Tuple[str, SortDirection]:
        sort_by = _first(sort_by)
        sort_order = _first(sort_order)

        field = self.spec.default_sort_field
        if isinstance(sort_by, str) and sort_by in self.spec.sortable_fields:
            field = sort_by

        direction = self.spec.default_sort_direction
        if isinstance(sort_order, str):
            try:
                direction = SortDirection(sort_order.strip().upper())
            except ValueError:
                pass

        return field, direction

    def translate(
        self,
        filters: tp.Any = None,
        page: tp.Any = None,
        limit: tp.Any = None,
        sort_by: tp.Any = None,
        sort_order: tp.Any = None,
        search: tp.Any = None,
        paginate: bool = True,
    ) -> QueryDescriptor:
        """Builds the descriptor handed to the data source.

        Args:
            filters: JSON string or already decoded list of filter objects
            page: Requested page, 1-based
            limit: Requested page size
            sort_by: Requested sort field
            sort_order: ``ASC`` or ``DESC``, case-insensitive
            search: Free-text search term
            paginate: ``False`` returns every matching row (no page slicing)

        Raises:
            QueryValidationError: A filter clause is well-formed but invalid
        """
        clauses = self.translate_filters(filters)
        sort_field, sort_direction = self.normalize_sort(sort_by, sort_order)

        search = _first(search)
        search = search.strip() if isinstance(search, str) and search.strip() else None

        if not paginate:
            return QueryDescriptor(
                filters=clauses,
                page=None,
                page_size=None,
                sort_field=sort_field,
                sort_direction=sort_direction,
                search=search,
                paginate=False,
            )

        return QueryDescriptor(
            filters=clauses,
            page=self.normalize_page(page),
            page_size=self.normalize_page_size(limit),
            sort_field=sort_field,
            sort_direction=sort_direction,
            search=search,
        )

    def from_query_params(
        self, params: tp.Mapping[str, tp.Any], paginate: bool = True
    ) -> QueryDescriptor:
        """Reads the standard wire parameters (``limit`` wins over ``pageSize``)."""
        limit = params.get("limit")
        if limit is None:
            limit = params.get("pageSize")
        return self.translate(
            filters=params.get("filters"),
            page=params.get("page"),
            limit=limit,
            sort_by=params.get("sortBy"),
            sort_order=params.get("sortOrder"),
            search=params.get("search"),
            paginate=paginate,
        )


def build_pagination(descriptor: QueryDescriptor, total: int) -> tp.Dict[str, int]:
    """Pagination block returned next to a page of rows."""
    if not descriptor.paginate:
        return {
            "current_page": 1,
            "per_page": total,
            "total": total,
            "total_pages": 1 if total else 0,
        }
    per_page = descriptor.page_size or 1
    return {
        "current_page": descriptor.page or 1,
        "per_page": per_page,
        "total": total,
        "total_pages": math.ceil(total / per_page),
    }
