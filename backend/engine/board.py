"""
Board generation: tile layouts for the preset map shapes or a custom hex list,
and port placement along the shoreline.

Everything here is seeded from the game id, so regenerating a board for the
same game always gives the same tiles and ports.
"""
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from .errors import BoardError
from .geometry import HEX_SIZE, Point, build_graph_from_tiles, tile_node_ids
from .rng import rng_from_seed, shuffle
from .state import GENERIC_PORT, HexTile, Port, ResourceType, utcnow

MAP_TYPES = ("classic", "large", "islands", "world", "custom")

# One full set of resource tiles, without the desert.
RESOURCE_PATTERN = (
    [ResourceType.WOOD] * 4
    + [ResourceType.BRICK] * 3
    + [ResourceType.WHEAT] * 4
    + [ResourceType.SHEEP] * 4
    + [ResourceType.ORE] * 3
)
NUMBER_TOKENS = [2, 3, 3, 4, 4, 5, 5, 6, 6, 8, 8, 9, 9, 10, 10, 11, 11, 12]
PORT_KINDS = [GENERIC_PORT] * 4 + [rt.value for rt in ResourceType]
PORT_COUNT = 9

TEMPLATE_PORT_KINDS = (GENERIC_PORT, "threeToOne", "random") + tuple(rt.value for rt in ResourceType)
MAX_TEMPLATE_HEXES = 200
MAX_TEMPLATE_PORTS = 30


@dataclass
class MapTemplate:
    """A user-authored board: hex coordinates plus optional fixed ports."""
    id: str
    name: str
    hexes: List[Dict[str, int]]  # [{"q": 0, "r": 0}, ...]
    ports: List[Dict] = field(default_factory=list)  # [{"q", "r", "edge": 0-5, "kind"}]
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


def radius_coords(radius: int) -> List[Tuple[int, int]]:
    """Axial coordinates of a hexagon of the given radius around (0, 0)."""
    coords = []
    for q in range(-radius, radius + 1):
        for r in range(-radius, radius + 1):
            s = -q - r
            if max(abs(q), abs(r), abs(s)) <= radius:
                coords.append((q, r))
    return coords


def _offset(coords: List[Tuple[int, int]], dq: int, dr: int) -> List[Tuple[int, int]]:
    return [(q + dq, r + dr) for q, r in coords]


def _dedupe(coords: Iterable[Tuple[int, int]]) -> List[Tuple[int, int]]:
    seen = set()
    result = []
    for c in coords:
        if c in seen:
            continue
        seen.add(c)
        result.append(c)
    return result


def preset_coords(map_type: str) -> List[Tuple[int, int]]:
    if map_type == "classic":
        return radius_coords(2)
    if map_type == "large":
        return radius_coords(3)
    if map_type == "islands":
        return _dedupe(
            _offset(radius_coords(2), -2, 0)
            + _offset(radius_coords(2), 2, 0)
            + _offset(radius_coords(1), 0, 3)
        )
    if map_type == "world":
        return _dedupe(
            radius_coords(3)
            + _offset(radius_coords(1), -5, 1)
            + _offset(radius_coords(1), 5, -1)
            + _offset(radius_coords(1), 0, 6)
        )
    raise BoardError(f"Unknown map type: {map_type}.")


def _custom_coords(custom_hexes: Optional[List[Dict[str, int]]]) -> List[Tuple[int, int]]:
    if not custom_hexes:
        raise BoardError("A custom map needs at least one hex.")
    return _dedupe((int(h["q"]), int(h["r"])) for h in custom_hexes)


def _desert_count(tile_count: int) -> int:
    return min(tile_count, max(1, int(math.floor(tile_count / 19 + 0.5))))


def _repeat_to(items: list, count: int) -> list:
    result = []
    while len(result) < count:
        result.extend(items)
    return result[:count]


def generate_tiles(game_id: str, map_type: str = "classic",
                   custom_hexes: Optional[List[Dict[str, int]]] = None) -> List[HexTile]:
    """Lay out resources, number tokens and the robber for a map shape."""
    if map_type == "custom":
        coords = _custom_coords(custom_hexes)
    else:
        coords = preset_coords(map_type)

    seed = game_id if map_type == "classic" else f"{game_id}:{map_type}"
    rand = rng_from_seed(seed)

    deserts = _desert_count(len(coords))
    producing = len(coords) - deserts
    bag: List[Optional[ResourceType]] = _repeat_to(RESOURCE_PATTERN, producing) + [None] * deserts
    bag = shuffle(bag, rand)
    tokens = shuffle(_repeat_to(NUMBER_TOKENS, producing), rand)

    tiles = []
    token_idx = 0
    robber_placed = False
    for i, (q, r) in enumerate(coords):
        resource = bag[i]
        if resource is None:
            tiles.append(HexTile(
                id=f"T{i}_{q}_{r}",
                q=q,
                r=r,
                resource_type=None,
                number_token=None,
                has_robber=not robber_placed,
            ))
            robber_placed = True
        else:
            tiles.append(HexTile(
                id=f"T{i}_{q}_{r}",
                q=q,
                r=r,
                resource_type=resource,
                number_token=tokens[token_idx],
            ))
            token_idx += 1
    return tiles


def _midpoint(a: Point, b: Point) -> Point:
    return Point((a.x + b.x) / 2, (a.y + b.y) / 2)


def _resolve_port_kind(kind: str) -> str:
    if kind in (GENERIC_PORT, "threeToOne"):
        return GENERIC_PORT
    try:
        return ResourceType(kind).value
    except ValueError:
        raise BoardError(f"Unknown port kind: {kind}.")


def _custom_ports(game_id: str, tiles: List[HexTile], custom_ports: List[Dict]) -> List[Port]:
    graph = build_graph_from_tiles(tiles, HEX_SIZE)
    points = graph.node_points()
    tile_coords = {(t.q, t.r) for t in tiles}
    pool = shuffle(PORT_KINDS, rng_from_seed(f"{game_id}:ports"))
    random_idx = 0

    ports = []
    for idx, entry in enumerate(custom_ports):
        q, r, edge = int(entry["q"]), int(entry["r"]), int(entry["edge"])
        if (q, r) not in tile_coords:
            raise BoardError(f"Port at ({q}, {r}) is not on the map.")
        if not 0 <= edge <= 5:
            raise BoardError(f"Port edge must be 0-5, got {edge}.")
        kind = entry.get("kind", "random")
        if kind == "random":
            kind = pool[random_idx % len(pool)]
            random_idx += 1
        else:
            kind = _resolve_port_kind(kind)
        corners = tile_node_ids(q, r, HEX_SIZE)
        node_a, node_b = corners[edge], corners[(edge + 1) % 6]
        ports.append(Port(
            id=f"P{idx}",
            kind=kind,
            node_a=node_a,
            node_b=node_b,
            mid=_midpoint(points[node_a], points[node_b]),
        ))
    return ports


def generate_ports(game_id: str, tiles: List[HexTile],
                   custom_ports: Optional[List[Dict]] = None) -> List[Port]:
    """
    Place ports around the shoreline, or exactly where a template asks.

    Shoreline edges are those touching a node with at most two neighbors. They
    are ordered by angle around the board centroid and nine of them are taken
    at evenly spaced indices, stepping forward past edges already used.
    """
    if custom_ports:
        return _custom_ports(game_id, tiles, custom_ports)

    graph = build_graph_from_tiles(tiles, HEX_SIZE)
    if not graph.nodes:
        return []
    points = graph.node_points()
    cx = sum(n.point.x for n in graph.nodes) / len(graph.nodes)
    cy = sum(n.point.y for n in graph.nodes) / len(graph.nodes)

    boundary = {node_id for node_id, nbs in graph.node_neighbors.items() if len(nbs) <= 2}
    candidates = []
    for edge in graph.edges:
        if edge.a not in boundary and edge.b not in boundary:
            continue
        mid = _midpoint(points[edge.a], points[edge.b])
        candidates.append((math.atan2(mid.y - cy, mid.x - cx), edge, mid))
    candidates.sort(key=lambda c: c[0])

    picked = []
    used = set()
    for i in range(PORT_COUNT):
        if len(used) >= len(candidates):
            break
        j = int(i / PORT_COUNT * len(candidates))
        while j < len(candidates) and candidates[j][1].id in used:
            j += 1
        if j >= len(candidates):
            j = 0
            while candidates[j][1].id in used:
                j += 1
        used.add(candidates[j][1].id)
        picked.append(candidates[j])

    kinds = shuffle(PORT_KINDS, rng_from_seed(f"{game_id}:ports"))
    return [
        Port(id=f"P{idx}", kind=kinds[idx], node_a=edge.a, node_b=edge.b, mid=mid)
        for idx, (_, edge, mid) in enumerate(picked)
    ]


def validate_template(hexes: List[Dict], ports: List[Dict]):
    """Reject templates that could not produce a playable board."""
    if not 1 <= len(hexes) <= MAX_TEMPLATE_HEXES:
        raise BoardError(f"A map needs 1-{MAX_TEMPLATE_HEXES} hexes.")
    if len(ports) > MAX_TEMPLATE_PORTS:
        raise BoardError(f"A map can have at most {MAX_TEMPLATE_PORTS} ports.")
    coords = {(int(h["q"]), int(h["r"])) for h in hexes}
    for port in ports:
        if (int(port["q"]), int(port["r"])) not in coords:
            raise BoardError(f"Port at ({port['q']}, {port['r']}) is not on the map.")
        if not 0 <= int(port["edge"]) <= 5:
            raise BoardError(f"Port edge must be 0-5, got {port['edge']}.")
        if port.get("kind", "random") not in TEMPLATE_PORT_KINDS:
            raise BoardError(f"Unknown port kind: {port.get('kind')}.")
