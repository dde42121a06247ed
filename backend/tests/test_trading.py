"""
Tests for bank trades and player-to-player trade offers.
"""
import pytest

from engine import (
    InsufficientResourcesError,
    InvalidTargetError,
    StaleActionError,
    accept_trade_offer,
    bank_rate,
    cancel_trade_offer,
    create_trade_offer,
    end_turn,
    reject_trade_offer,
    trade_with_bank,
)
from engine.state import ResourceType

from game_helpers import give, main_game


def _rolled_game(names=("Alice", "Bob")):
    game = main_game(names)
    game.turn_has_rolled = True
    return game


def test_bank_trade_four_to_one():
    """Without ports the bank takes four of a kind."""
    game = _rolled_game()
    alice = game.players[0]
    give(alice, wheat=4)
    assert trade_with_bank(game, alice.id, "wheat", "ore") == 4
    assert alice.resources[ResourceType.WHEAT] == 0
    assert alice.resources[ResourceType.ORE] == 1


def test_bank_trade_with_wood_port():
    """A 2:1 wood port trades two wood for any one resource."""
    game = _rolled_game()
    alice = game.players[0]
    alice.ports.two_to_one[ResourceType.WOOD] = True
    give(alice, wood=2, sheep=3)

    assert bank_rate(alice, ResourceType.WOOD) == 2
    assert bank_rate(alice, ResourceType.SHEEP) == 4
    trade_with_bank(game, alice.id, "wood", "brick")
    assert alice.resources[ResourceType.WOOD] == 0
    assert alice.resources[ResourceType.BRICK] == 1

    with pytest.raises(InsufficientResourcesError):
        trade_with_bank(game, alice.id, "sheep", "brick")


def test_bank_trade_with_generic_port():
    """A 3:1 port improves every resource without a 2:1 port."""
    game = _rolled_game()
    alice = game.players[0]
    alice.ports.three_to_one = True
    alice.ports.two_to_one[ResourceType.ORE] = True
    assert bank_rate(alice, ResourceType.SHEEP) == 3
    assert bank_rate(alice, ResourceType.ORE) == 2


def test_bank_trade_rules():
    """Roll first, and trade two different resources."""
    game = main_game()
    alice = game.players[0]
    give(alice, wood=4)
    with pytest.raises(StaleActionError):
        trade_with_bank(game, alice.id, "wood", "ore")
    game.turn_has_rolled = True
    with pytest.raises(InvalidTargetError):
        trade_with_bank(game, alice.id, "wood", "wood")
    with pytest.raises(InvalidTargetError):
        trade_with_bank(game, alice.id, "wood", "gold")
    assert alice.resources[ResourceType.WOOD] == 4


def test_offer_accepted_swaps_cards():
    """Accepting moves both sides of the offer."""
    game = _rolled_game()
    alice, bob = game.players
    give(alice, wood=2)
    give(bob, ore=1)

    offer = create_trade_offer(game, alice.id, bob.id, {"wood": 2}, {"ore": 1})
    assert offer.status == "open"
    accept_trade_offer(game, bob.id, offer.id)

    assert offer.status == "accepted"
    assert alice.resources[ResourceType.WOOD] == 0
    assert alice.resources[ResourceType.ORE] == 1
    assert bob.resources[ResourceType.WOOD] == 2
    assert bob.resources[ResourceType.ORE] == 0


def test_open_offer_any_player_can_accept():
    """An offer without a target is open to everyone but the creator."""
    game = _rolled_game(("Alice", "Bob", "Cara"))
    alice, bob, cara = game.players
    give(alice, sheep=1)
    give(cara, brick=1)
    offer = create_trade_offer(game, alice.id, None, {"sheep": 1}, {"brick": 1})

    with pytest.raises(InvalidTargetError):
        accept_trade_offer(game, alice.id, offer.id)
    with pytest.raises(InsufficientResourcesError):
        accept_trade_offer(game, bob.id, offer.id)
    accept_trade_offer(game, cara.id, offer.id)
    assert cara.resources[ResourceType.SHEEP] == 1
    assert alice.resources[ResourceType.BRICK] == 1


def test_offer_validation():
    """Offers need cards on both sides, held by the creator, to someone else."""
    game = _rolled_game()
    alice, bob = game.players
    give(alice, wood=1)

    with pytest.raises(InvalidTargetError):
        create_trade_offer(game, alice.id, bob.id, {}, {"ore": 1})
    with pytest.raises(InvalidTargetError):
        create_trade_offer(game, alice.id, alice.id, {"wood": 1}, {"ore": 1})
    with pytest.raises(InvalidTargetError):
        create_trade_offer(game, alice.id, bob.id, {"wood": -1}, {"ore": 1})
    with pytest.raises(InsufficientResourcesError):
        create_trade_offer(game, alice.id, bob.id, {"wood": 2}, {"ore": 1})
    assert game.trade_offers == []


def test_malformed_offer_lines_are_invalid():
    """Non-numeric amounts and non-object lines are rejected as invalid input."""
    game = _rolled_game()
    alice = game.players[0]
    give(alice, wood=2)

    with pytest.raises(InvalidTargetError, match="amount"):
        create_trade_offer(game, alice.id, None, {"wood": "two"}, {"ore": 1})
    with pytest.raises(InvalidTargetError):
        create_trade_offer(game, alice.id, None, ["wood"], {"ore": 1})
    with pytest.raises(InvalidTargetError):
        create_trade_offer(game, alice.id, None, {"wood": 1}, {"ore": [1]})
    assert game.trade_offers == []


def test_offer_only_accepted_on_creators_turn():
    """Once the creator's turn is over, the offer can no longer be accepted."""
    game = _rolled_game()
    alice, bob = game.players
    give(alice, wood=1)
    give(bob, ore=1)
    offer = create_trade_offer(game, alice.id, bob.id, {"wood": 1}, {"ore": 1})

    end_turn(game, alice.id)
    with pytest.raises(StaleActionError, match="during the creator's turn"):
        accept_trade_offer(game, bob.id, offer.id)
    assert offer.status == "open"
    assert bob.resources[ResourceType.ORE] == 1


def test_offer_rechecks_creator_hand():
    """If the creator spent the cards, accepting fails."""
    game = _rolled_game()
    alice, bob = game.players
    give(alice, wood=1)
    give(bob, ore=1)
    offer = create_trade_offer(game, alice.id, bob.id, {"wood": 1}, {"ore": 1})
    alice.resources[ResourceType.WOOD] = 0
    with pytest.raises(InsufficientResourcesError):
        accept_trade_offer(game, bob.id, offer.id)


def test_reject_and_cancel():
    """The target rejects, the creator cancels; closed offers stay closed."""
    game = _rolled_game()
    alice, bob = game.players
    give(alice, wood=2)

    first = create_trade_offer(game, alice.id, bob.id, {"wood": 1}, {"ore": 1})
    with pytest.raises(InvalidTargetError):
        reject_trade_offer(game, alice.id, first.id)
    reject_trade_offer(game, bob.id, first.id)
    assert first.status == "rejected"
    with pytest.raises(StaleActionError):
        accept_trade_offer(game, bob.id, first.id)

    second = create_trade_offer(game, alice.id, bob.id, {"wood": 1}, {"ore": 1})
    with pytest.raises(InvalidTargetError):
        cancel_trade_offer(game, bob.id, second.id)
    cancel_trade_offer(game, alice.id, second.id)
    assert second.status == "cancelled"
    with pytest.raises(StaleActionError):
        cancel_trade_offer(game, alice.id, second.id)

    with pytest.raises(InvalidTargetError):
        cancel_trade_offer(game, alice.id, "missing")
