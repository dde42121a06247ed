"""
Game state model.

Plain dataclasses with explicit defaults; actions in engine.py mutate a Game
in place. Loading older snapshots is handled once, in serialization.py.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from .errors import InvalidTargetError
from .geometry import BoardGraph, Point, board_graph


class ResourceType(Enum):
    """Resource types in the game."""
    WOOD = "wood"
    BRICK = "brick"
    WHEAT = "wheat"
    SHEEP = "sheep"
    ORE = "ore"


DEV_DECK_COMPOSITION = {
    "knight": 14,
    "victory": 5,
    "road_building": 2,
    "year_of_plenty": 2,
    "monopoly": 2,
}

COSTS = {
    "road": {ResourceType.WOOD: 1, ResourceType.BRICK: 1},
    "settlement": {
        ResourceType.WOOD: 1,
        ResourceType.BRICK: 1,
        ResourceType.WHEAT: 1,
        ResourceType.SHEEP: 1,
    },
    "city": {ResourceType.WHEAT: 2, ResourceType.ORE: 3},
    "dev_card": {ResourceType.WHEAT: 1, ResourceType.SHEEP: 1, ResourceType.ORE: 1},
}

PLAYER_COLORS = ["#FF0000", "#00AA00", "#2196F3", "#FF8C00"]  # Red, Green, Blue, Yellow-Orange

GENERIC_PORT = "3:1"
LOG_LIMIT = 200
CHAT_LIMIT = 200
LONGEST_ROAD_MIN = 5
LARGEST_ARMY_MIN = 3
AWARD_POINTS = 2


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def empty_resources() -> Dict[ResourceType, int]:
    return {rt: 0 for rt in ResourceType}


def parse_resource(value) -> ResourceType:
    """Resource from its string value; unknown names are an invalid target."""
    if isinstance(value, ResourceType):
        return value
    try:
        return ResourceType(value)
    except ValueError:
        raise InvalidTargetError(f"Unknown resource: {value!r}.")


@dataclass
class HexTile:
    """A hex tile on the board."""
    id: str
    q: int
    r: int
    resource_type: Optional[ResourceType]  # None for desert
    number_token: Optional[int] = None  # None for desert
    has_robber: bool = False

    @property
    def is_desert(self) -> bool:
        return self.resource_type is None


@dataclass
class Port:
    """A harbour on a shoreline edge."""
    id: str
    kind: str  # "3:1" = generic port, or resource value (e.g. "sheep") for 2:1
    node_a: str
    node_b: str
    mid: Point


@dataclass
class NodePlacement:
    node_id: str
    player_id: str
    kind: str = "settlement"  # "settlement" or "city"


@dataclass
class EdgePlacement:
    edge_id: str
    player_id: str


@dataclass
class PlayerPorts:
    three_to_one: bool = False
    two_to_one: Dict[ResourceType, bool] = field(default_factory=lambda: {rt: False for rt in ResourceType})


@dataclass
class DevCard:
    id: str
    kind: str
    bought_turn: int


@dataclass
class Player:
    """Represents a player in the game."""
    id: str
    name: str
    color: str = PLAYER_COLORS[0]
    victory_points: int = 0  # cached total, kept in sync by every action
    roads: int = 0
    settlements: int = 0
    cities: int = 0
    resources: Dict[ResourceType, int] = field(default_factory=empty_resources)
    ports: PlayerPorts = field(default_factory=PlayerPorts)
    dev_cards: List[DevCard] = field(default_factory=list)
    knights_played: int = 0
    free_roads_to_place: int = 0
    longest_road_award_held: bool = False
    largest_army_award_held: bool = False

    def total_resources(self) -> int:
        return sum(self.resources.values())

    def can_afford(self, cost: Dict[ResourceType, int]) -> bool:
        return all(self.resources.get(rt, 0) >= amount for rt, amount in cost.items())

    def pay(self, cost: Dict[ResourceType, int]):
        for rt, amount in cost.items():
            self.resources[rt] -= amount

    def receive(self, gains: Dict[ResourceType, int]):
        for rt, amount in gains.items():
            self.resources[rt] = self.resources.get(rt, 0) + amount


@dataclass
class GameSettings:
    max_victory_points: int = 10
    max_players: int = 4
    min_players: int = 2


@dataclass
class SetupProgress:
    """Snake-draft bookkeeping for the initial placements."""
    round: int = 1
    direction: str = "forward"  # "forward" or "backward"
    pending_settlement_node_id: Optional[str] = None
    done: Dict[str, int] = field(default_factory=dict)  # player id -> settlement+road pairs placed


@dataclass
class RobberState:
    pending: bool = False
    by_player_id: Optional[str] = None
    reason: Optional[str] = None  # "roll7" or "knight"
    awaiting_steal: bool = False
    candidates: List[str] = field(default_factory=list)


@dataclass
class TradeOffer:
    id: str
    from_player_id: str
    to_player_id: Optional[str]  # None = open to everyone
    give: Dict[ResourceType, int]
    get: Dict[ResourceType, int]
    status: str = "open"  # "open", "accepted", "rejected", "cancelled"
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class DiceRoll:
    player_id: str
    d1: int
    d2: int
    ts: datetime = field(default_factory=utcnow)

    @property
    def total(self) -> int:
        return self.d1 + self.d2


@dataclass
class LogEntry:
    message: str
    ts: datetime = field(default_factory=utcnow)


@dataclass
class ChatMessage:
    player_id: str
    name: str
    text: str
    ts: datetime = field(default_factory=utcnow)


@dataclass
class GameStats:
    roll_counts: Dict[int, int] = field(default_factory=dict)  # dice total -> times rolled
    resource_gains: Dict[str, Dict[ResourceType, int]] = field(default_factory=dict)  # player id -> gains

    def record_roll(self, total: int):
        self.roll_counts[total] = self.roll_counts.get(total, 0) + 1

    def record_gain(self, player_id: str, resource: ResourceType, amount: int):
        gains = self.resource_gains.setdefault(player_id, empty_resources())
        gains[resource] += amount


@dataclass
class Game:
    """Aggregate root for one game."""
    game_id: str
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    map_type: str = "classic"  # "classic", "large", "islands", "world", "custom"
    map_template_id: Optional[str] = None
    custom_hexes: List[Dict[str, int]] = field(default_factory=list)  # [{"q": .., "r": ..}]
    custom_ports: List[Dict] = field(default_factory=list)  # [{"q", "r", "edge", "kind"}]
    settings: GameSettings = field(default_factory=GameSettings)
    phase: str = "lobby"  # "lobby", "setup", "main", "finished"
    setup_step: str = "place_settlement"  # "place_settlement" or "place_road"
    setup: SetupProgress = field(default_factory=SetupProgress)
    players: List[Player] = field(default_factory=list)
    current_player_id: Optional[str] = None
    tiles: List[HexTile] = field(default_factory=list)
    ports: List[Port] = field(default_factory=list)
    nodes: Dict[str, NodePlacement] = field(default_factory=dict)  # node id -> placement
    edges: Dict[str, EdgePlacement] = field(default_factory=dict)  # edge id -> placement
    log: List[LogEntry] = field(default_factory=list)
    chat: List[ChatMessage] = field(default_factory=list)
    trade_offers: List[TradeOffer] = field(default_factory=list)
    last_roll: Optional[DiceRoll] = None
    turn_has_rolled: bool = False
    turn_number: int = 1
    dev_deck: List[str] = field(default_factory=list)  # remaining card kinds, top of deck first
    dev_played_this_turn: bool = False
    largest_army_player_id: Optional[str] = None
    largest_army_size: int = 0
    longest_road_player_id: Optional[str] = None
    longest_road_length: int = 0
    robber: RobberState = field(default_factory=RobberState)
    winner_player_id: Optional[str] = None
    finished_at: Optional[datetime] = None
    stats: GameStats = field(default_factory=GameStats)

    @property
    def graph(self) -> BoardGraph:
        return board_graph(self.tiles)

    def find_player(self, player_id: Optional[str]) -> Optional[Player]:
        for player in self.players:
            if player.id == player_id:
                return player
        return None

    def get_player(self, player_id: Optional[str]) -> Player:
        player = self.find_player(player_id)
        if player is None:
            raise InvalidTargetError(f"Unknown player: {player_id}.")
        return player

    def player_index(self, player_id: Optional[str]) -> int:
        for i, player in enumerate(self.players):
            if player.id == player_id:
                return i
        return -1

    @property
    def current_player(self) -> Optional[Player]:
        return self.find_player(self.current_player_id)

    def get_tile(self, tile_id: str) -> HexTile:
        for tile in self.tiles:
            if tile.id == tile_id:
                return tile
        raise InvalidTargetError(f"Unknown tile: {tile_id}.")

    def robber_tile(self) -> Optional[HexTile]:
        return next((t for t in self.tiles if t.has_robber), None)

    def get_offer(self, offer_id: str) -> TradeOffer:
        for offer in self.trade_offers:
            if offer.id == offer_id:
                return offer
        raise InvalidTargetError(f"Unknown trade offer: {offer_id}.")

    def add_log(self, message: str):
        self.log.append(LogEntry(message))
        if len(self.log) > LOG_LIMIT:
            del self.log[:-LOG_LIMIT]

    def add_chat_message(self, message: ChatMessage):
        self.chat.append(message)
        if len(self.chat) > CHAT_LIMIT:
            del self.chat[:-CHAT_LIMIT]
