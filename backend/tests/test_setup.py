"""
Tests for the lobby and the snake-order setup round.
"""
import pytest

from engine import (
    Game,
    GameSettings,
    IllegalPlacementError,
    InvalidTargetError,
    NotYourTurnError,
    StaleActionError,
    WrongPhaseError,
    WrongSetupStepError,
    add_player,
    place_road,
    place_settlement,
    start_if_eligible,
)
from engine.geometry import tile_node_ids
from engine.state import ResourceType, empty_resources

from game_helpers import finish_setup, free_edge_at, free_node, lobby_game, place_pair, started_game


def test_add_player_assigns_colors_and_ids():
    """Players get distinct ids and colors in join order."""
    game = lobby_game(("Alice", "Bob", "Cara"))
    assert [p.name for p in game.players] == ["Alice", "Bob", "Cara"]
    assert len({p.id for p in game.players}) == 3
    assert len({p.color for p in game.players}) == 3
    assert game.phase == "lobby"


def test_add_player_validates_name():
    """Names must be 2-24 characters after trimming."""
    game = Game(game_id="g")
    with pytest.raises(InvalidTargetError):
        add_player(game, " A ")
    with pytest.raises(InvalidTargetError):
        add_player(game, "x" * 25)
    assert game.players == []


def test_add_player_rejects_full_game():
    """No more players than max_players."""
    game = lobby_game(("Alice", "Bob"), max_players=2)
    with pytest.raises(StaleActionError, match="full"):
        add_player(game, "Cara")


def test_add_player_after_start():
    """Joining is only possible in the lobby."""
    game = started_game()
    with pytest.raises(WrongPhaseError):
        add_player(game, "Cara")


def test_start_needs_min_players():
    """One player is not enough to start."""
    game = Game(game_id="solo", settings=GameSettings())
    add_player(game, "Alice")
    assert start_if_eligible(game) is False
    assert game.phase == "lobby"
    assert game.tiles == []


def test_start_builds_board_and_deck():
    """Starting generates the board and dev deck and hands the first placement to seat 1."""
    game = started_game()
    assert game.phase == "setup"
    assert game.setup_step == "place_settlement"
    assert len(game.tiles) == 19
    assert len(game.ports) == 9
    assert len(game.dev_deck) == 25
    assert game.current_player_id == game.players[0].id
    assert start_if_eligible(game) is False


def test_snake_order_two_players():
    """Placement order is A, B, B, A and then A starts the main game."""
    game = started_game()
    a, b = game.players[0].id, game.players[1].id
    assert finish_setup(game) == [a, b, b, a]
    assert game.phase == "main"
    assert game.current_player_id == a
    assert game.turn_number == 1
    assert not game.turn_has_rolled


def test_snake_order_three_players():
    """With three players: A, B, C, C, B, A."""
    game = started_game(("Alice", "Bob", "Cara"))
    a, b, c = (p.id for p in game.players)
    assert finish_setup(game) == [a, b, c, c, b, a]
    assert all(p.settlements == 2 and p.roads == 2 for p in game.players)
    assert all(p.victory_points == 2 for p in game.players)


def test_setup_step_order_enforced():
    """A road cannot come before its settlement and vice versa."""
    game = started_game()
    a = game.players[0].id
    node = free_node(game)
    with pytest.raises(WrongSetupStepError):
        place_road(game, a, free_edge_at(game, node))
    place_settlement(game, a, node)
    with pytest.raises(WrongSetupStepError):
        place_settlement(game, a, free_node(game))


def test_setup_turn_enforced():
    """Only the placing player may act."""
    game = started_game()
    b = game.players[1].id
    with pytest.raises(NotYourTurnError):
        place_settlement(game, b, free_node(game))


def test_setup_distance_rule():
    """No settlement on or next to an existing one."""
    game = started_game()
    first = place_pair(game)
    b = game.players[1].id
    neighbor = game.graph.node_neighbors[first][0]
    with pytest.raises(IllegalPlacementError):
        place_settlement(game, b, first)
    with pytest.raises(IllegalPlacementError):
        place_settlement(game, b, neighbor)
    with pytest.raises(IllegalPlacementError):
        place_settlement(game, b, "N_not_a_node")


def test_setup_road_must_touch_new_settlement():
    """The setup road is attached to the settlement just placed."""
    game = started_game()
    a = game.players[0].id
    node = free_node(game)
    place_settlement(game, a, node)
    far_edge = next(
        edge_id for edge_id, ends in game.graph.edge_nodes.items() if node not in ends
    )
    with pytest.raises(IllegalPlacementError):
        place_road(game, a, far_edge)
    place_road(game, a, free_edge_at(game, node))
    assert game.setup_step == "place_settlement"


def test_second_settlement_pays_starting_resources():
    """Only the second settlement collects one card per adjacent producing tile."""
    game = started_game()
    alice, bob = game.players

    place_pair(game)  # Alice, round 1
    place_pair(game)  # Bob, round 1
    assert bob.resources == empty_resources()

    node = free_node(game)
    expected = empty_resources()
    for tile in game.tiles:
        if not tile.is_desert and not tile.has_robber and node in tile_node_ids(tile.q, tile.r):
            expected[tile.resource_type] += 1

    place_pair(game, node)  # Bob, round 2
    assert bob.resources == expected
    assert alice.resources == empty_resources()


def test_settlement_on_port_grants_port():
    """Settling a port corner unlocks its trade rate."""
    game = started_game()
    alice = game.players[0]
    port = game.ports[0]
    place_pair(game, port.node_a)
    if port.kind == "3:1":
        assert alice.ports.three_to_one
    else:
        assert alice.ports.two_to_one[ResourceType(port.kind)]
