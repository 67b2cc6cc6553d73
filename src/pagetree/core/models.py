"""Value objects of the node model."""

from datetime import datetime
from typing import Any, Iterator

from pydantic import BaseModel, ConfigDict, Field

# Format of the dates stored in node properties
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Prefix of a property key which flags the property as inherited
INHERIT_PREFIX = "_"

# Prefix of a stored key which starts with one of the prefixes itself
ESCAPE_PREFIX = "\\"

# Separator of list values like widget ids and locales
LIST_SEPARATOR = ","


def parse_date(value: str | None) -> datetime | None:
    """Parse a property date. Returns None if empty or invalid."""
    if not value:
        return None
    try:
        return datetime.strptime(value, DATE_FORMAT)
    except (TypeError, ValueError):
        return None


def format_date(value: datetime) -> str:
    return value.strftime(DATE_FORMAT)


def split_list(value: str | None) -> list[str]:
    """Split a list property into its trimmed, non-empty items."""
    if not value:
        return []
    return [item.strip() for item in value.split(LIST_SEPARATOR) if item.strip()]


def join_list(items: list[str]) -> str:
    return LIST_SEPARATOR.join(items)


def to_bool(value: Any) -> bool:
    """Interpret a property value as a boolean flag."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def to_value(value: Any) -> str:
    """Convert a value into its stored string form."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "1" if value else "0"
    return value if isinstance(value, str) else str(value)


def is_publish_window_open(
    publish: Any,
    start: str | None,
    stop: str | None,
    now: datetime | None = None,
) -> bool:
    """Check a publish flag and its optional start and stop dates.

    Unparseable dates are ignored.
    """
    if not to_bool(publish):
        return False

    if now is None:
        now = datetime.now()

    date_start = parse_date(start)
    date_stop = parse_date(stop)

    if date_start and date_stop:
        return date_start <= now < date_stop
    if date_start:
        return date_start <= now
    if date_stop:
        return now < date_stop

    return True


class NodeProperty(BaseModel):
    """A single key/value pair of a node with its inherit flag."""

    key: str = Field(min_length=1)
    value: str = ""
    inherit: bool = False

    @property
    def storage_key(self) -> str:
        """Key as written to storage, with the inherit prefix when inherited."""
        if self.inherit:
            return INHERIT_PREFIX + self.key
        if self.key.startswith((INHERIT_PREFIX, ESCAPE_PREFIX)):
            return ESCAPE_PREFIX + self.key
        return self.key

    @classmethod
    def from_storage(cls, storage_key: str, value: Any) -> "NodeProperty":
        """Create a property from a key and value as read from storage."""
        inherit = False
        if len(storage_key) > 1 and storage_key.startswith(ESCAPE_PREFIX):
            storage_key = storage_key[len(ESCAPE_PREFIX) :]
        elif len(storage_key) > len(INHERIT_PREFIX) and storage_key.startswith(INHERIT_PREFIX):
            storage_key = storage_key[len(INHERIT_PREFIX) :]
            inherit = True

        return cls(key=storage_key, value=to_value(value), inherit=inherit)


class FieldError(BaseModel):
    """Validation error attached to a field of a node."""

    code: str
    message: str
    parameters: dict[str, Any] = Field(default_factory=dict)

    def __str__(self) -> str:
        message = self.message
        for name, value in self.parameters.items():
            message = message.replace(f"%{name}%", str(value))
        return message


class HomePage(BaseModel):
    """A scheduled home page of a home node."""

    node_id: str
    date_start: datetime | None = None
    date_stop: datetime | None = None

    def is_active(self, time: datetime | None = None) -> bool:
        """Check whether this home page is scheduled at the provided time.

        A home page without any date is never active, the default home page
        of the locale is used instead.
        """
        if time is None:
            time = datetime.now()

        if self.date_start and self.date_stop:
            return self.date_start <= time < self.date_stop
        if self.date_start:
            return self.date_start <= time
        if self.date_stop:
            return time < self.date_stop

        return False


class TrashNode(BaseModel):
    """A removed node kept for restoration."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str
    node: Any
    date: datetime = Field(default_factory=datetime.now)


class Content(BaseModel):
    """Generic description of a content item for listings and search."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    type: str = Field(min_length=1)
    title: str = Field(min_length=1)
    url: str | None = None
    teaser: str | None = None
    image: str | None = None
    date: datetime | None = None
    data: Any = None


class ContentResult:
    """A page of content items with the total number of available items."""

    def __init__(self, results: list[Content], total_num_results: int | None = None):
        self.results = list(results)
        self._total_num_results = total_num_results

    @property
    def num_results(self) -> int:
        return len(self.results)

    @property
    def total_num_results(self) -> int:
        if self._total_num_results is not None:
            return self._total_num_results
        return self.num_results

    def __iter__(self) -> Iterator[Content]:
        return iter(self.results)

    def __len__(self) -> int:
        return len(self.results)


class ExpiredRoute(BaseModel):
    """A route a node used to have, kept to redirect old urls."""

    model_config = ConfigDict(frozen=True)

    node: str
    locale: str
    path: str
    base_url: str | None = None
