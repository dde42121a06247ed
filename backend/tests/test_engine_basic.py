"""
Unit tests for building, dice and turn flow in the main game.
"""
import pytest

from engine import (
    Action,
    EdgePayload,
    IllegalPlacementError,
    InsufficientResourcesError,
    InvalidTargetError,
    NodePayload,
    NotYourTurnError,
    StaleActionError,
    WrongPhaseError,
    apply_action,
    build_city,
    build_road,
    build_settlement,
    end_turn,
    roll_dice,
)
from engine.geometry import tile_node_ids
from engine.state import ResourceType, empty_resources

from game_helpers import (
    FixedDice,
    free_edge_at,
    give,
    main_game,
    nodes_of,
    started_game,
    tile_touching,
)


def _unconnected_edge(game, player_id):
    """An edge touching none of the player's roads or buildings."""
    mine = set(nodes_of(game, player_id))
    for placement in game.edges.values():
        if placement.player_id == player_id:
            mine.update(game.graph.edge_nodes[placement.edge_id])
    for edge_id, (a, b) in game.graph.edge_nodes.items():
        if edge_id not in game.edges and a not in mine and b not in mine:
            return edge_id
    raise AssertionError("no unconnected edge")


def test_build_road_costs_wood_and_brick():
    """A connected road costs one wood and one brick."""
    game = main_game()
    alice = game.players[0]
    edge = free_edge_at(game, nodes_of(game, alice.id)[0])

    with pytest.raises(InsufficientResourcesError):
        build_road(game, alice.id, edge)

    give(alice, wood=1, brick=1)
    build_road(game, alice.id, edge)
    assert alice.resources == empty_resources()
    assert alice.roads == 3
    assert game.edges[edge].player_id == alice.id


def test_build_road_must_connect():
    """Roads extend the player's own network."""
    game = main_game()
    alice = game.players[0]
    give(alice, wood=1, brick=1)
    with pytest.raises(IllegalPlacementError, match="connect"):
        build_road(game, alice.id, _unconnected_edge(game, alice.id))
    assert alice.resources[ResourceType.WOOD] == 1


def test_build_road_on_taken_edge():
    """An occupied edge cannot be built on again."""
    game = main_game()
    alice = game.players[0]
    give(alice, wood=1, brick=1)
    taken = next(iter(game.edges))
    with pytest.raises(IllegalPlacementError, match="taken"):
        build_road(game, alice.id, taken)


def test_build_settlement_needs_own_road():
    """A new settlement must touch the player's road and respect distance."""
    game = main_game()
    alice = game.players[0]
    give(alice, wood=3, brick=3, wheat=1, sheep=1)

    # Two roads out from a settlement reach a node two steps away
    start = nodes_of(game, alice.id)[0]
    graph = game.graph
    first_edge = free_edge_at(game, start)
    a, b = graph.edge_nodes[first_edge]
    middle = b if a == start else a
    build_road(game, alice.id, first_edge)
    with pytest.raises(IllegalPlacementError):
        build_settlement(game, alice.id, middle)

    second_edge = free_edge_at(game, middle)
    a, b = graph.edge_nodes[second_edge]
    target = b if a == middle else a
    build_road(game, alice.id, second_edge)

    if any(n in game.nodes for n in graph.node_neighbors[target]) or target in game.nodes:
        pytest.skip("board layout put another building next to the target")
    build_settlement(game, alice.id, target)
    assert game.nodes[target].kind == "settlement"
    assert alice.settlements == 3
    assert alice.victory_points == 3
    assert alice.resources == empty_resources()


def test_city_upgrade():
    """A city costs 2 wheat and 3 ore and is worth one more point."""
    game = main_game()
    alice = game.players[0]
    node = nodes_of(game, alice.id)[0]

    with pytest.raises(InsufficientResourcesError):
        build_city(game, alice.id, node)

    give(alice, wheat=2, ore=3)
    build_city(game, alice.id, node)
    assert game.nodes[node].kind == "city"
    assert alice.settlements == 1
    assert alice.cities == 1
    assert alice.victory_points == 3
    assert alice.resources == empty_resources()


def test_city_upgrade_rejections():
    """Only your own settlements can become cities, once."""
    game = main_game()
    alice, bob = game.players
    give(alice, wheat=6, ore=9)

    with pytest.raises(StaleActionError):
        build_city(game, alice.id, nodes_of(game, bob.id)[0])

    empty = next(n.id for n in game.graph.nodes if n.id not in game.nodes)
    with pytest.raises(IllegalPlacementError):
        build_city(game, alice.id, empty)

    node = nodes_of(game, alice.id)[0]
    build_city(game, alice.id, node)
    with pytest.raises(StaleActionError, match="already a city"):
        build_city(game, alice.id, node)


def test_building_outside_main_phase():
    """Paid building is a main-phase action."""
    game = started_game()
    alice = game.players[0]
    give(alice, wood=1, brick=1)
    with pytest.raises(WrongPhaseError):
        build_road(game, alice.id, next(iter(game.graph.edge_nodes)))


def test_roll_distributes_resources():
    """A roll pays 1 per settlement and 2 per city on matching tiles."""
    game = main_game()
    alice, bob = game.players
    node = nodes_of(game, alice.id)[0]
    target = tile_touching(game, node)

    for tile in game.tiles:
        tile.has_robber = False
        tile.number_token = 12
    target.resource_type = ResourceType.ORE
    target.number_token = 5
    other = next(t for t in game.tiles if t is not target)
    other.has_robber = True
    other.number_token = 12

    game.nodes[node].kind = "city"
    corners = set(tile_node_ids(target.q, target.r))
    expected = {p.id: 0 for p in game.players}
    for placement in game.nodes.values():
        if placement.node_id in corners:
            expected[placement.player_id] += 2 if placement.kind == "city" else 1

    roll = roll_dice(game, alice.id, FixedDice(2, 3))
    assert roll.total == 5
    assert game.last_roll.total == 5
    assert game.turn_has_rolled
    assert alice.resources[ResourceType.ORE] == expected[alice.id]
    assert bob.resources[ResourceType.ORE] == expected[bob.id]
    assert expected[alice.id] >= 2
    assert game.stats.roll_counts[5] == 1


def test_robber_blocks_production():
    """The robber's tile produces nothing."""
    game = main_game()
    alice = game.players[0]
    node = nodes_of(game, alice.id)[0]
    target = tile_touching(game, node)
    for tile in game.tiles:
        tile.has_robber = False
        tile.number_token = 12
    target.resource_type = ResourceType.WOOD
    target.number_token = 8
    target.has_robber = True

    roll_dice(game, alice.id, FixedDice(4, 4))
    assert alice.resources[ResourceType.WOOD] == 0


def test_roll_once_per_turn():
    """The dice are rolled once per turn, by the current player."""
    game = main_game()
    alice, bob = game.players
    with pytest.raises(NotYourTurnError):
        roll_dice(game, bob.id, FixedDice(1, 1))
    roll_dice(game, alice.id, FixedDice(1, 2))
    with pytest.raises(StaleActionError):
        roll_dice(game, alice.id, FixedDice(1, 2))


def test_end_turn_passes_to_next_player():
    """Ending a turn moves to the next seat and resets the turn flags."""
    game = main_game()
    alice, bob = game.players
    roll_dice(game, alice.id, FixedDice(1, 2))
    end_turn(game, alice.id)
    assert game.current_player_id == bob.id
    assert game.turn_number == 2
    assert not game.turn_has_rolled
    end_turn(game, bob.id)
    assert game.current_player_id == alice.id
    assert game.turn_number == 3


def test_apply_action_dispatch():
    """apply_action routes to the action and checks the payload type."""
    game = main_game()
    alice = game.players[0]
    give(alice, wood=1, brick=1)
    edge = free_edge_at(game, nodes_of(game, alice.id)[0])

    with pytest.raises(InvalidTargetError, match="payload"):
        apply_action(game, alice.id, Action.BUILD_ROAD, NodePayload(node_id="N_0_48"))
    apply_action(game, alice.id, Action.BUILD_ROAD, EdgePayload(edge_id=edge))
    assert game.edges[edge].player_id == alice.id

    with pytest.raises(InvalidTargetError, match="Unknown player"):
        apply_action(game, "nobody", Action.END_TURN)


def test_rejected_action_leaves_state_unchanged():
    """A failed build changes nothing."""
    game = main_game()
    alice = game.players[0]
    give(alice, wood=1)
    before = (dict(alice.resources), dict(game.edges), alice.roads)
    with pytest.raises(InsufficientResourcesError):
        build_road(game, alice.id, free_edge_at(game, nodes_of(game, alice.id)[0]))
    assert (dict(alice.resources), dict(game.edges), alice.roads) == before
