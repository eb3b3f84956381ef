"""
Synthex Domain Models
=====================

Typed records for everything the remote service returns. The service speaks
camelCase JSON; each model owns a `from_dict` that maps it onto snake_case
attributes and tolerates missing optional fields.

Models are plain dataclasses. Apart from the like/evolution counters on
`Creation`, which only the server changes authoritatively, they are
treated as immutable once fetched.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from .config import AGENT_STATUSES, FALLBACK_STATS, USER_PLANS


def _one_of(value: Any, allowed, default: str) -> str:
    """Map values outside a closed set (including missing ones) to `default`."""
    return value if value in allowed else default


def _parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse the ISO-8601 timestamps the server emits (with a trailing 'Z')."""
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)):
        # Epoch milliseconds
        return datetime.fromtimestamp(value / 1000.0)
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


@dataclass
class User:
    """The signed-in user."""
    id: str
    name: str
    email: str
    avatar: str = ""
    plan: str = "free"
    created_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "User":
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            email=data.get("email", ""),
            avatar=data.get("avatar") or "",
            plan=_one_of(data.get("plan"), USER_PLANS, "free"),
            created_at=data.get("createdAt"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize back to the server's JSON shape (used for persistence)."""
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "avatar": self.avatar,
            "plan": self.plan,
            "createdAt": self.created_at,
        }


@dataclass
class CreativeDNA:
    color: str = ""
    pattern: str = ""
    complexity: int = 0


@dataclass
class AIAgent:
    """An AI agent. Read-only from the client's perspective."""
    id: str
    name: str
    specialty: str = ""
    status: str = "idle"
    avatar: str = ""
    description: str = ""
    style: str = ""
    creative_dna: CreativeDNA = field(default_factory=CreativeDNA)
    creations_count: int = 0
    evolutions_count: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AIAgent":
        dna = data.get("creativeDNA") or {}
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            specialty=data.get("specialty", ""),
            status=_one_of(data.get("status"), AGENT_STATUSES, "idle"),
            avatar=data.get("avatar") or "",
            description=data.get("description") or "",
            style=data.get("style") or "",
            creative_dna=CreativeDNA(
                color=dna.get("color", ""),
                pattern=dna.get("pattern", ""),
                complexity=int(dna.get("complexity") or 0),
            ),
            creations_count=int(data.get("creationsCount") or 0),
            evolutions_count=int(data.get("evolutionsCount") or 0),
        )


@dataclass
class Creation:
    """
    A media creation.

    A creation with a `parent_id` is an evolution of that parent and must sit
    at a strictly higher generation. A creation without one is a lineage
    root (generation 0 by convention).
    """
    id: str
    agent_id: str
    generation: int = 0
    parent_id: Optional[str] = None
    likes: int = 0
    evolutions: int = 0
    tags: List[str] = field(default_factory=list)
    timestamp: Optional[datetime] = None
    title: str = ""
    image: str = ""
    agent_name: str = ""
    style: str = ""
    prompt: Optional[str] = None

    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Creation":
        tags = data.get("tags") or []
        if isinstance(tags, str):
            tags = [t.strip() for t in tags.split(",") if t.strip()]
        parent_id = data.get("parentId")
        return cls(
            id=str(data["id"]),
            agent_id=str(data.get("agentId", "")),
            generation=max(0, int(data.get("generation") or 0)),
            parent_id=str(parent_id) if parent_id else None,
            likes=int(data.get("likes") or 0),
            evolutions=int(data.get("evolutions") or 0),
            tags=list(tags),
            timestamp=_parse_timestamp(data.get("timestamp") or data.get("createdAt")),
            title=data.get("title", ""),
            image=data.get("image", ""),
            agent_name=data.get("agentName", ""),
            style=data.get("style", ""),
            prompt=data.get("prompt"),
        )

    def with_likes(self, likes: int) -> "Creation":
        """Return a copy carrying the server-reported like count."""
        return replace(self, likes=likes)


def lineage_violations(creations: Iterable[Creation]) -> List[str]:
    """
    Return the ids of creations that break the lineage invariant.

    Only parents present in `creations` can be checked; a parent outside the
    loaded window is not a violation.
    """
    by_id = {c.id: c for c in creations}
    violations = []
    for creation in by_id.values():
        if creation.parent_id is None:
            continue
        parent = by_id.get(creation.parent_id)
        if parent is not None and parent.generation >= creation.generation:
            violations.append(creation.id)
    return violations


@dataclass
class FeedItem:
    id: str
    type: str
    agent_id: str
    content: str = ""
    agent_name: str = ""
    agent_avatar: str = ""
    image: Optional[str] = None
    timestamp: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FeedItem":
        return cls(
            id=str(data["id"]),
            type=data.get("type", "creation"),
            agent_id=str(data.get("agentId", "")),
            content=data.get("content", ""),
            agent_name=data.get("agentName", ""),
            agent_avatar=data.get("agentAvatar", ""),
            image=data.get("image"),
            timestamp=_parse_timestamp(data.get("timestamp")),
        )


@dataclass
class PlatformStats:
    total_agents: int = 0
    total_creations: int = 0
    total_evolutions: int = 0
    active_agents: int = 0
    total_users: int = 0
    total_likes: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlatformStats":
        return cls(
            total_agents=int(data.get("totalAgents") or 0),
            total_creations=int(data.get("totalCreations") or 0),
            total_evolutions=int(data.get("totalEvolutions") or 0),
            active_agents=int(data.get("activeAgents") or 0),
            total_users=int(data.get("totalUsers") or 0),
            total_likes=int(data.get("totalLikes") or 0),
        )

    @classmethod
    def fallback(cls) -> "PlatformStats":
        """The record shown when stats cannot be fetched."""
        return cls.from_dict(FALLBACK_STATS)


@dataclass(frozen=True)
class PaginationCursor:
    """One window over a server-side collection."""
    offset: int
    limit: int
    total: int
    has_more: bool

    @classmethod
    def compute(cls, offset: int, limit: int, total: int) -> "PaginationCursor":
        return cls(offset=offset, limit=limit, total=total, has_more=offset + limit < total)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PaginationCursor":
        # has_more is recomputed rather than trusted
        return cls.compute(
            offset=int(data.get("offset") or 0),
            limit=int(data.get("limit") or 0),
            total=int(data.get("total") or 0),
        )

    @property
    def next_offset(self) -> int:
        return self.offset + self.limit


@dataclass
class CreationPage:
    """
    The loaded state of a paginated collection: every item loaded so far and
    the cursor reported by the most recent page.
    """
    items: List[Any] = field(default_factory=list)
    pagination: Optional[PaginationCursor] = None

    @property
    def next_offset(self) -> int:
        return self.pagination.next_offset if self.pagination else 0


@dataclass
class EvolutionNode:
    id: str
    generation: int
    agent_id: str
    title: str = ""
    image: str = ""
    likes: int = 0
    evolutions: int = 0
    agent_name: str = ""
    created_at: Optional[str] = None
    children: List["EvolutionNode"] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EvolutionNode":
        return cls(
            id=str(data["id"]),
            generation=int(data.get("generation") or 0),
            agent_id=str(data.get("agentId", "")),
            title=data.get("title", ""),
            image=data.get("image", ""),
            likes=int(data.get("likes") or 0),
            evolutions=int(data.get("evolutions") or 0),
            agent_name=data.get("agentName", ""),
            created_at=data.get("createdAt"),
            children=[cls.from_dict(child) for child in data.get("children") or []],
        )

    def walk(self):
        """Yield this node and all descendants, depth first."""
        yield self
        for child in self.children:
            yield from child.walk()


@dataclass
class EvolutionTree:
    root: Optional[EvolutionNode]
    total_nodes: int = 0
    max_generation: int = 0
    root_id: Optional[str] = None
    current_node_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EvolutionTree":
        tree = data.get("tree")
        stats = data.get("stats") or {}
        return cls(
            root=EvolutionNode.from_dict(tree) if tree else None,
            total_nodes=int(stats.get("totalNodes") or 0),
            max_generation=int(stats.get("maxGeneration") or 0),
            root_id=stats.get("rootId"),
            current_node_id=stats.get("currentNodeId"),
        )

    def lineage_violations(self) -> List[str]:
        """Ids of nodes whose generation does not exceed their parent's."""
        if self.root is None:
            return []
        violations = []
        for node in self.root.walk():
            for child in node.children:
                if child.generation <= node.generation:
                    violations.append(child.id)
        return violations
