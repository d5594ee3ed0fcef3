"""
Player catalog data models.

Provides immutable data transfer objects for the NBA players offered on the market.
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class CatalogTeam:
    """NBA franchise a catalog player belongs to."""
    id: int
    abbreviation: str
    city: str
    conference: str
    full_name: str
    name: str
    division: str = ''


@dataclass(frozen=True)
class CatalogPlayer:
    """Single active NBA player."""
    id: int
    first_name: str
    last_name: str
    position: str
    team: Optional[CatalogTeam] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CatalogPlayer':
        team = data.get('team')
        return cls(
            id=data['id'],
            first_name=data.get('first_name', ''),
            last_name=data.get('last_name', ''),
            position=data.get('position') or '',
            team=CatalogTeam(**team) if team else None,
        )


@dataclass(frozen=True)
class PlayerCatalog:
    """Players returned by one catalog provider."""
    players: List[CatalogPlayer]
    source: str

    @property
    def total_count(self) -> int:
        return len(self.players)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'source': self.source,
            'data': [asdict(player) for player in self.players],
            'meta': {'total_count': self.total_count},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PlayerCatalog':
        return cls(
            players=[CatalogPlayer.from_dict(item) for item in data.get('data', [])],
            source=data.get('source', 'cache'),
        )
