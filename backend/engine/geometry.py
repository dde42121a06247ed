"""
Hex board geometry: pixel projection, corner nodes and the road graph.

Corners shared by adjacent hexes are computed once per hex, so their float
coordinates differ slightly; every corner is quantized to 0.1 px before it is
turned into a node id so that shared corners collapse to one node.
"""
import math
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, Iterable, List, Set, Tuple

HEX_SIZE = 48
ROUND_PRECISION = 10  # 0.1 px


@dataclass(frozen=True)
class Point:
    x: float
    y: float


@dataclass(frozen=True)
class GraphNode:
    id: str
    point: Point


@dataclass(frozen=True)
class GraphEdge:
    id: str
    a: str
    b: str


@dataclass
class BoardGraph:
    """Node/edge graph derived from a tile list. Treat as read-only."""
    nodes: List[GraphNode]
    edges: List[GraphEdge]
    node_neighbors: Dict[str, List[str]]
    edge_nodes: Dict[str, Tuple[str, str]]

    def node_points(self) -> Dict[str, Point]:
        return {n.id: n.point for n in self.nodes}


def axial_to_pixel(q: int, r: int, size: float = HEX_SIZE) -> Point:
    """Pointy-top axial projection."""
    x = size * (math.sqrt(3) * q + (math.sqrt(3) / 2) * r)
    y = size * (1.5 * r)
    return Point(x, y)


def hex_corners(center: Point, size: float = HEX_SIZE) -> List[Point]:
    corners = []
    for i in range(6):
        angle = math.radians(60 * i - 30)
        corners.append(Point(center.x + size * math.cos(angle), center.y + size * math.sin(angle)))
    return corners


def _round_coord(value: float) -> float:
    rounded = math.floor(value * ROUND_PRECISION + 0.5) / ROUND_PRECISION
    if rounded == 0:
        return 0.0  # no "-0"
    return rounded


def _format_coord(value: float) -> str:
    if value.is_integer():
        return str(int(value))
    return repr(value)


def round_point(p: Point) -> Point:
    return Point(_round_coord(p.x), _round_coord(p.y))


def point_to_node_id(p: Point) -> str:
    """Stable node id for a corner point, e.g. N_m41d6_m24."""
    rp = round_point(p)
    key = f"{_format_coord(rp.x)}_{_format_coord(rp.y)}"
    return "N_" + key.replace("-", "m").replace(".", "d")


def edge_id_for(a: str, b: str) -> str:
    first, second = sorted((a, b))
    return f"E_{first}__{second}"


def tile_node_ids(q: int, r: int, size: float = HEX_SIZE) -> List[str]:
    """The six corner node ids of the hex at (q, r), in corner order."""
    return [point_to_node_id(p) for p in hex_corners(axial_to_pixel(q, r, size), size)]


def build_graph_from_tiles(tiles: Iterable, size: float = HEX_SIZE) -> BoardGraph:
    """
    Build the deduplicated node/edge graph for tiles carrying `q` and `r`.

    Nodes and edges keep first-seen order, which keeps port placement and
    longest-road traversal stable for a given tile list.
    """
    coords = [(t.q, t.r) for t in tiles]
    return _build_graph(coords, size)


def _build_graph(coords: List[Tuple[int, int]], size: float) -> BoardGraph:
    nodes: Dict[str, GraphNode] = {}
    edges: Dict[str, GraphEdge] = {}

    for q, r in coords:
        corners = hex_corners(axial_to_pixel(q, r, size), size)
        ids = []
        for corner in corners:
            node_id = point_to_node_id(corner)
            if node_id not in nodes:
                nodes[node_id] = GraphNode(node_id, round_point(corner))
            ids.append(node_id)
        for i in range(6):
            a, b = sorted((ids[i], ids[(i + 1) % 6]))
            edge_id = edge_id_for(a, b)
            if edge_id not in edges:
                edges[edge_id] = GraphEdge(edge_id, a, b)

    node_neighbors: Dict[str, List[str]] = {node_id: [] for node_id in nodes}
    edge_nodes: Dict[str, Tuple[str, str]] = {}
    for edge in edges.values():
        node_neighbors[edge.a].append(edge.b)
        node_neighbors[edge.b].append(edge.a)
        edge_nodes[edge.id] = (edge.a, edge.b)

    return BoardGraph(
        nodes=list(nodes.values()),
        edges=list(edges.values()),
        node_neighbors=node_neighbors,
        edge_nodes=edge_nodes,
    )


@lru_cache(maxsize=64)
def _cached_graph(coords: Tuple[Tuple[int, int], ...], size: float) -> BoardGraph:
    return _build_graph(list(coords), size)


def board_graph(tiles: Iterable, size: float = HEX_SIZE) -> BoardGraph:
    """Memoized graph for a tile list; the result is shared and must not be mutated."""
    return _cached_graph(tuple((t.q, t.r) for t in tiles), size)


def node_distance_ok(node_id: str, occupied: Set[str], node_neighbors: Dict[str, List[str]]) -> bool:
    """A settlement may go on a node only if it and all its neighbors are empty."""
    if node_id in occupied:
        return False
    for neighbor in node_neighbors.get(node_id, []):
        if neighbor in occupied:
            return False
    return True
