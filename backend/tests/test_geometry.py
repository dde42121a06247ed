"""
Tests for hex geometry: node ids, deduplication of shared corners, the road graph.
"""
from engine.board import radius_coords
from engine.geometry import (
    board_graph,
    build_graph_from_tiles,
    edge_id_for,
    node_distance_ok,
    tile_node_ids,
)
from engine.state import HexTile


def _tiles(coords):
    return [HexTile(id=f"T{i}", q=q, r=r, resource_type=None) for i, (q, r) in enumerate(coords)]


def test_center_hex_node_ids():
    """Corner ids are rounded to 0.1 px with '-' as 'm' and '.' as 'd'."""
    assert tile_node_ids(0, 0) == [
        "N_41d6_m24",
        "N_41d6_24",
        "N_0_48",
        "N_m41d6_24",
        "N_m41d6_m24",
        "N_0_m48",
    ]


def test_single_hex_graph():
    """One hex has six nodes and six edges."""
    graph = build_graph_from_tiles(_tiles([(0, 0)]))
    assert len(graph.nodes) == 6
    assert len(graph.edges) == 6
    assert all(len(nbs) == 2 for nbs in graph.node_neighbors.values())


def test_adjacent_hexes_share_corners():
    """Two neighboring hexes share two nodes and one edge."""
    graph = build_graph_from_tiles(_tiles([(0, 0), (1, 0)]))
    assert len(graph.nodes) == 10
    assert len(graph.edges) == 11
    shared = set(tile_node_ids(0, 0)) & set(tile_node_ids(1, 0))
    assert shared == {"N_41d6_m24", "N_41d6_24"}


def test_classic_board_counts():
    """The 19-hex board has 54 nodes and 72 edges after deduplication."""
    graph = build_graph_from_tiles(_tiles(radius_coords(2)))
    assert len(graph.nodes) == 54
    assert len(graph.edges) == 72
    degrees = {len(nbs) for nbs in graph.node_neighbors.values()}
    assert degrees == {2, 3}


def test_edge_ids_are_order_independent():
    """An edge id does not depend on which end comes first."""
    a, b = "N_0_48", "N_41d6_24"
    assert edge_id_for(a, b) == edge_id_for(b, a) == "E_N_0_48__N_41d6_24"


def test_every_edge_joins_neighbors():
    """edge_nodes and node_neighbors agree."""
    graph = build_graph_from_tiles(_tiles(radius_coords(2)))
    for edge_id, (a, b) in graph.edge_nodes.items():
        assert b in graph.node_neighbors[a]
        assert a in graph.node_neighbors[b]
        assert edge_id == edge_id_for(a, b)


def test_board_graph_is_memoized():
    """The same tile coordinates give back the same graph object."""
    first = board_graph(_tiles(radius_coords(2)))
    second = board_graph(_tiles(radius_coords(2)))
    assert first is second


def test_distance_rule():
    """A node is free only if neither it nor a neighbor is occupied."""
    graph = build_graph_from_tiles(_tiles([(0, 0)]))
    node = "N_0_48"
    neighbor = graph.node_neighbors[node][0]
    assert node_distance_ok(node, set(), graph.node_neighbors)
    assert not node_distance_ok(node, {node}, graph.node_neighbors)
    assert not node_distance_ok(node, {neighbor}, graph.node_neighbors)
    assert node_distance_ok("N_0_m48", {node}, graph.node_neighbors)
