from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class AppContext(str, Enum):
    """Dataverse app registration used for a call; each has its own secret."""

    MAIN = "main"
    OWNER = "owner"
    ADMIN = "admin"


# ---------------------------------------------------------------------------
# Shared data models
# ---------------------------------------------------------------------------

@dataclass
class DataverseCredentials:
    client_id: str
    client_secret: str
    tenant_id: str
    url: str                             # e.g. https://org.crm3.dynamics.com

    @property
    def is_complete(self) -> bool:
        return all([self.client_id, self.client_secret, self.tenant_id, self.url])


_OPERATORS = {"eq", "ne", "gt", "ge", "lt", "le", "contains"}


@dataclass
class ODataFilter:
    field: str
    value: Any
    op: str = "eq"
    guid: bool = False                   # render value unquoted (lookup / id fields)

    def __post_init__(self) -> None:
        if self.op not in _OPERATORS:
            raise ValueError(f"Unsupported OData operator '{self.op}'")

    def render(self) -> str:
        literal = render_literal(self.value, guid=self.guid)
        if self.op == "contains":
            return f"contains({self.field},{literal})"
        return f"{self.field} {self.op} {literal}"


@dataclass
class ODataQuery:
    filters: List[ODataFilter] = field(default_factory=list)
    select: List[str] = field(default_factory=list)
    orderby: Optional[str] = None
    descending: bool = False
    top: Optional[int] = None
    skip: Optional[int] = None

    def where(self, field_name: str, value: Any, op: str = "eq", *, guid: bool = False) -> "ODataQuery":
        self.filters.append(ODataFilter(field_name, value, op, guid))
        return self

    def to_params(self) -> Dict[str, str]:
        params: Dict[str, str] = {}
        if self.filters:
            params["$filter"] = " and ".join(f.render() for f in self.filters)
        if self.select:
            params["$select"] = ",".join(self.select)
        if self.orderby:
            params["$orderby"] = f"{self.orderby} {'desc' if self.descending else 'asc'}"
        if self.top is not None:
            params["$top"] = str(self.top)
        if self.skip is not None:
            params["$skip"] = str(self.skip)
        return params


def render_literal(value: Any, *, guid: bool = False) -> str:
    if isinstance(value, Enum):
        value = value.value
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if guid or isinstance(value, UUID):
        return str(value)
    escaped = str(value).replace("'", "''")
    return f"'{escaped}'"


def odata_bind(entity_set: str, record_id: str) -> str:
    return f"/{entity_set}({record_id})"


# ---------------------------------------------------------------------------
# Client interface
# ---------------------------------------------------------------------------

class DataverseClient(ABC):
    """Entity-set level access to the Dataverse Web API."""

    @abstractmethod
    async def create(self, entity_set: str, payload: Dict[str, Any], app: AppContext = AppContext.MAIN) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def get(self, entity_set: str, record_id: str, app: AppContext = AppContext.MAIN) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    async def query(self, entity_set: str, query: Optional[ODataQuery] = None, app: AppContext = AppContext.MAIN) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    async def update(self, entity_set: str, record_id: str, payload: Dict[str, Any], app: AppContext = AppContext.MAIN) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def delete(self, entity_set: str, record_id: str, app: AppContext = AppContext.MAIN) -> bool:
        ...

    @abstractmethod
    async def ping(self) -> bool:
        ...
