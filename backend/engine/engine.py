"""
Rules engine for the hex settlement game.
No I/O, no globals: each action validates against the loaded Game and then
mutates it in place. Nothing is changed when an action is rejected.

The caller must hold exclusive access to the Game for the duration of one
action (see api.database.game_lock).
"""
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from .board import generate_ports, generate_tiles
from .errors import (
    GameError,
    IllegalPlacementError,
    InsufficientResourcesError,
    InvalidTargetError,
    NotYourTurnError,
    StaleActionError,
    WrongPhaseError,
    WrongSetupStepError,
)
from .geometry import node_distance_ok, tile_node_ids
from .ids import new_id
from .rng import rng_from_seed, shuffle
from .scoring import award_largest_army, check_win, recompute_longest_road_award
from .state import (
    COSTS,
    DEV_DECK_COMPOSITION,
    GENERIC_PORT,
    PLAYER_COLORS,
    ChatMessage,
    DevCard,
    DiceRoll,
    EdgePlacement,
    Game,
    NodePlacement,
    Player,
    ResourceType,
    RobberState,
    SetupProgress,
    TradeOffer,
    empty_resources,
    parse_resource,
    utcnow,
)

NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 24
CHAT_MAX_LENGTH = 300
TRADE_LINE_MAX = 10
HAND_LIMIT = 7  # more than this on a 7 means discarding half


def build_dev_deck(game_id: str) -> List[str]:
    """The 25-card development deck, shuffled deterministically for a game."""
    deck = []
    for kind, count in DEV_DECK_COMPOSITION.items():
        deck.extend([kind] * count)
    return shuffle(deck, rng_from_seed(f"{game_id}:devdeck"))


def _format_gains(gains: Dict[ResourceType, int]) -> str:
    return ", ".join(f"+{amount} {rt.value}" for rt, amount in gains.items() if amount > 0)


def _require_turn(game: Game, player_id: str):
    if game.current_player_id != player_id:
        raise NotYourTurnError()


def _require_main(game: Game, message: str):
    if game.phase == "finished":
        raise WrongPhaseError("The game is over.")
    if game.phase != "main":
        raise WrongPhaseError(message)


def _require_rolled(game: Game, message: str = "Roll the dice first."):
    if not game.turn_has_rolled:
        raise StaleActionError(message)


def _require_affordable(player: Player, cost: Dict[ResourceType, int]):
    for rt, amount in cost.items():
        have = player.resources.get(rt, 0)
        if have < amount:
            raise InsufficientResourcesError(f"Not enough {rt.value} ({have}/{amount}).")


def _grant_ports(game: Game, player: Player, node_id: str):
    for port in game.ports:
        if node_id not in (port.node_a, port.node_b):
            continue
        if port.kind == GENERIC_PORT:
            if not player.ports.three_to_one:
                player.ports.three_to_one = True
                game.add_log(f"{player.name} got a 3:1 port.")
        else:
            resource = ResourceType(port.kind)
            if not player.ports.two_to_one[resource]:
                player.ports.two_to_one[resource] = True
                game.add_log(f"{player.name} got a 2:1 {resource.value} port.")


def _start_robber(game: Game, player_id: str, reason: str):
    game.robber = RobberState(pending=True, by_player_id=player_id, reason=reason)


def _clear_robber(game: Game):
    game.robber = RobberState()


# Lobby

def add_player(game: Game, name: str) -> Player:
    """Join a game in the lobby; returns the new player."""
    if game.phase != "lobby":
        raise WrongPhaseError("The game has already started.")
    if len(game.players) >= game.settings.max_players:
        raise StaleActionError(f"The game is full (max {game.settings.max_players} players).")
    name = (name or "").strip()
    if not NAME_MIN_LENGTH <= len(name) <= NAME_MAX_LENGTH:
        raise InvalidTargetError(f"Name must be {NAME_MIN_LENGTH}-{NAME_MAX_LENGTH} characters.")

    player = Player(
        id=new_id(10),
        name=name,
        color=PLAYER_COLORS[len(game.players) % len(PLAYER_COLORS)],
    )
    game.players.append(player)
    game.add_log(f"{name} joined.")
    return player


def start_if_eligible(game: Game) -> bool:
    """Generate the board and enter setup once enough players have joined."""
    if game.phase != "lobby" or len(game.players) < game.settings.min_players:
        return False

    game.tiles = generate_tiles(game.game_id, game.map_type, game.custom_hexes)
    game.ports = generate_ports(game.game_id, game.tiles, game.custom_ports or None)
    game.phase = "setup"
    game.setup_step = "place_settlement"
    game.setup = SetupProgress()
    game.current_player_id = game.players[0].id
    game.turn_has_rolled = False
    game.turn_number = 1
    game.dev_deck = build_dev_deck(game.game_id)
    game.dev_played_this_turn = False
    game.largest_army_player_id = None
    game.largest_army_size = 0
    game.add_log(f"The game has started. {game.players[0].name} places first.")
    return True


# Setup

def place_settlement(game: Game, player_id: str, node_id: str):
    """Place a free setup settlement; the second one pays out starting resources."""
    if game.phase != "setup":
        raise WrongPhaseError("Settlements are placed for free only during setup.")
    if game.setup_step != "place_settlement":
        raise WrongSetupStepError("Place a road next.")
    _require_turn(game, player_id)
    player = game.get_player(player_id)

    done = game.setup.done.get(player_id, 0)
    if done >= 2:
        raise StaleActionError("You already placed both setup settlements.")
    graph = game.graph
    if node_id not in graph.node_neighbors:
        raise IllegalPlacementError("Unknown node.")
    if not node_distance_ok(node_id, set(game.nodes), graph.node_neighbors):
        raise IllegalPlacementError("That spot is taken or next to another settlement.")

    game.nodes[node_id] = NodePlacement(node_id=node_id, player_id=player_id, kind="settlement")
    player.settlements += 1
    player.victory_points += 1
    _grant_ports(game, player, node_id)

    if game.setup.round == 2 and done == 1:
        gains = empty_resources()
        for tile in game.tiles:
            if tile.is_desert or tile.has_robber:
                continue
            if node_id not in tile_node_ids(tile.q, tile.r):
                continue
            player.resources[tile.resource_type] += 1
            gains[tile.resource_type] += 1
            game.stats.record_gain(player_id, tile.resource_type, 1)
        text = _format_gains(gains)
        if text:
            game.add_log(f"{player.name} received starting resources: {text}.")
        else:
            game.add_log(f"{player.name} received no starting resources.")

    game.setup.pending_settlement_node_id = node_id
    game.setup_step = "place_road"
    game.add_log(f"{player.name} placed a settlement.")
    recompute_longest_road_award(game)


def place_road(game: Game, player_id: str, edge_id: str):
    """Place the free setup road next to the settlement just placed, then pass the turn."""
    if game.phase != "setup":
        raise WrongPhaseError("Roads are placed for free only during setup.")
    if game.setup_step != "place_road":
        raise WrongSetupStepError("Place a settlement first.")
    _require_turn(game, player_id)
    player = game.get_player(player_id)

    if edge_id in game.edges:
        raise IllegalPlacementError("That road spot is taken.")
    ends = game.graph.edge_nodes.get(edge_id)
    if ends is None:
        raise IllegalPlacementError("Unknown edge.")
    pending = game.setup.pending_settlement_node_id
    if pending is None or pending not in ends:
        raise IllegalPlacementError("The road must touch the settlement you just placed.")

    game.edges[edge_id] = EdgePlacement(edge_id=edge_id, player_id=player_id)
    player.roads += 1
    game.add_log(f"{player.name} placed a road.")
    recompute_longest_road_award(game)

    game.setup.done[player_id] = game.setup.done.get(player_id, 0) + 1
    game.setup.pending_settlement_node_id = None
    game.setup_step = "place_settlement"
    _advance_setup(game, player_id)


def _advance_setup(game: Game, player_id: str):
    """Snake order: 1..N, then N..1 with the last player placing twice in a row."""
    idx = game.player_index(player_id)
    last = len(game.players) - 1

    if game.setup.direction == "forward":
        if idx == last:
            game.setup.direction = "backward"
            game.setup.round = 2
            game.add_log(f"Setup round 2 (reverse order): {game.players[last].name} places again.")
            return
        game.current_player_id = game.players[idx + 1].id
    elif idx == 0:
        if all(game.setup.done.get(p.id, 0) >= 2 for p in game.players):
            _start_main(game)
            return
        game.current_player_id = game.players[0].id
    else:
        game.current_player_id = game.players[idx - 1].id
    game.add_log(f"Next: {game.current_player.name}.")


def _start_main(game: Game):
    game.phase = "main"
    game.current_player_id = game.players[0].id
    game.turn_has_rolled = False
    game.turn_number = 1
    game.dev_played_this_turn = False
    game.add_log(f"Setup complete. {game.players[0].name} starts the game.")


# Building

def _check_road_spot(game: Game, player_id: str, edge_id: str):
    if edge_id in game.edges:
        raise IllegalPlacementError("That road spot is taken.")
    graph = game.graph
    ends = graph.edge_nodes.get(edge_id)
    if ends is None:
        raise IllegalPlacementError("Unknown edge.")

    for node_id in ends:
        placement = game.nodes.get(node_id)
        if placement is not None and placement.player_id == player_id:
            return
    for placement in game.edges.values():
        if placement.player_id != player_id:
            continue
        other = graph.edge_nodes.get(placement.edge_id)
        if other and (other[0] in ends or other[1] in ends):
            return
    raise IllegalPlacementError("Roads must connect to your own road or building.")


def build_road(game: Game, player_id: str, edge_id: str):
    """Build a road, using a free road from Road Building if one is available."""
    _require_main(game, "Roads can only be built during the main game.")
    _require_turn(game, player_id)
    player = game.get_player(player_id)

    free = player.free_roads_to_place > 0
    if not free:
        _require_affordable(player, COSTS["road"])
    _check_road_spot(game, player_id, edge_id)

    if free:
        player.free_roads_to_place -= 1
        game.add_log(f"{player.name} built a free road.")
    else:
        player.pay(COSTS["road"])
        game.add_log(f"{player.name} built a road.")
    game.edges[edge_id] = EdgePlacement(edge_id=edge_id, player_id=player_id)
    player.roads += 1
    recompute_longest_road_award(game)


def build_settlement(game: Game, player_id: str, node_id: str):
    _require_main(game, "Settlements can only be built during the main game.")
    _require_turn(game, player_id)
    player = game.get_player(player_id)
    _require_affordable(player, COSTS["settlement"])

    graph = game.graph
    if node_id not in graph.node_neighbors:
        raise IllegalPlacementError("Unknown node.")
    if not node_distance_ok(node_id, set(game.nodes), graph.node_neighbors):
        raise IllegalPlacementError("That spot is taken or next to another settlement.")
    touches_road = any(
        placement.player_id == player_id and node_id in graph.edge_nodes.get(placement.edge_id, ())
        for placement in game.edges.values()
    )
    if not touches_road:
        raise IllegalPlacementError("Settlements must connect to your own road.")

    player.pay(COSTS["settlement"])
    game.nodes[node_id] = NodePlacement(node_id=node_id, player_id=player_id, kind="settlement")
    player.settlements += 1
    player.victory_points += 1
    _grant_ports(game, player, node_id)
    game.add_log(f"{player.name} built a settlement.")
    recompute_longest_road_award(game)


def build_city(game: Game, player_id: str, node_id: str):
    """Upgrade one of the player's settlements to a city (+1 VP net)."""
    _require_main(game, "Cities can only be built during the main game.")
    _require_turn(game, player_id)
    player = game.get_player(player_id)
    _require_affordable(player, COSTS["city"])

    placement = game.nodes.get(node_id)
    if placement is None:
        raise IllegalPlacementError("There is no settlement there.")
    if placement.player_id != player_id:
        raise StaleActionError("You can only upgrade your own settlement.")
    if placement.kind != "settlement":
        raise StaleActionError("That is already a city.")

    player.pay(COSTS["city"])
    placement.kind = "city"
    player.cities += 1
    player.settlements -= 1
    player.victory_points += 1
    game.add_log(f"{player.name} upgraded a settlement to a city.")
    recompute_longest_road_award(game)


# Dice

def roll_dice(game: Game, player_id: str, rng=None) -> DiceRoll:
    """
    Roll two dice for the current player.

    A 7 makes everyone holding more than seven cards discard half of them at
    random and puts the robber in the roller's hands. Any other total pays out
    from matching tiles: 1 per settlement, 2 per city.
    """
    rng = rng or random
    _require_main(game, "Dice can only be rolled during the main game.")
    _require_turn(game, player_id)
    if game.turn_has_rolled:
        raise StaleActionError("You already rolled this turn.")
    player = game.get_player(player_id)

    roll = DiceRoll(player_id=player_id, d1=rng.randint(1, 6), d2=rng.randint(1, 6))
    game.last_roll = roll
    game.turn_has_rolled = True
    game.stats.record_roll(roll.total)
    game.add_log(f"{player.name} rolled {roll.total} ({roll.d1}+{roll.d2}).")

    if roll.total == 7:
        _discard_half(game, rng)
        _start_robber(game, player_id, "roll7")
        game.add_log(f"{player.name} must move the robber.")
        return roll

    _distribute_resources(game, roll.total)
    return roll


def _discard_half(game: Game, rng):
    for player in game.players:
        total = player.total_resources()
        if total <= HAND_LIMIT:
            continue
        lost = empty_resources()
        for _ in range(total // 2):
            # Uniform over the cards in hand, so weighted by how many of each are held.
            pick = rng.randrange(player.total_resources())
            for rt in ResourceType:
                if pick < player.resources[rt]:
                    player.resources[rt] -= 1
                    lost[rt] += 1
                    break
                pick -= player.resources[rt]
        detail = ", ".join(f"-{amount} {rt.value}" for rt, amount in lost.items() if amount > 0)
        game.add_log(f"{player.name} had {total} cards and discarded {total // 2} ({detail}).")


def _distribute_resources(game: Game, total: int):
    payouts: Dict[str, Dict[ResourceType, int]] = {}
    for tile in game.tiles:
        if tile.number_token != total or tile.has_robber or tile.is_desert:
            continue
        corners = set(tile_node_ids(tile.q, tile.r))
        for placement in game.nodes.values():
            if placement.node_id not in corners:
                continue
            owner = game.find_player(placement.player_id)
            if owner is None:
                continue
            amount = 2 if placement.kind == "city" else 1
            owner.resources[tile.resource_type] += amount
            game.stats.record_gain(owner.id, tile.resource_type, amount)
            gains = payouts.setdefault(owner.id, empty_resources())
            gains[tile.resource_type] += amount

    parts = [f"{game.get_player(pid).name}: {_format_gains(gains)}" for pid, gains in payouts.items()]
    if parts:
        game.add_log(f"Production ({total}): " + "; ".join(parts))
    else:
        game.add_log(f"Production ({total}): nothing.")


def end_turn(game: Game, player_id: str):
    _require_main(game, "Turns only end during the main game.")
    _require_turn(game, player_id)
    if game.robber.pending:
        raise StaleActionError("Move the robber before ending your turn.")

    next_idx = (game.player_index(player_id) + 1) % len(game.players)
    game.current_player_id = game.players[next_idx].id
    game.turn_has_rolled = False
    game.dev_played_this_turn = False
    game.turn_number += 1
    game.add_log(f"Turn over. Next: {game.players[next_idx].name}.")


# Trading

def bank_rate(player: Player, give: ResourceType) -> int:
    """2 with a port for that resource, 3 with a generic port, otherwise 4."""
    if player.ports.two_to_one.get(give):
        return 2
    if player.ports.three_to_one:
        return 3
    return 4


def trade_with_bank(game: Game, player_id: str, give, get) -> int:
    """Trade `rate` cards of one resource for one of another; returns the rate used."""
    _require_main(game, "Bank trades only happen during the main game.")
    _require_turn(game, player_id)
    _require_rolled(game, "Roll the dice before trading.")
    give, get = parse_resource(give), parse_resource(get)
    if give == get:
        raise InvalidTargetError("Pick two different resources.")
    player = game.get_player(player_id)

    rate = bank_rate(player, give)
    have = player.resources[give]
    if have < rate:
        raise InsufficientResourcesError(f"Not enough {give.value} ({have}/{rate}).")

    player.resources[give] -= rate
    player.resources[get] += 1
    game.add_log(f"{player.name} traded {rate} {give.value} for 1 {get.value} with the bank ({rate}:1).")
    return rate


def normalize_trade_line(line: Optional[Dict[Any, Any]]) -> Dict[ResourceType, int]:
    """Trade line with every resource present; unknown resources are rejected."""
    if line is None:
        line = {}
    if not isinstance(line, dict):
        raise InvalidTargetError("A trade line must map resources to amounts.")
    result = empty_resources()
    for key, value in line.items():
        resource = parse_resource(key)
        try:
            amount = int(value or 0)
        except (TypeError, ValueError):
            raise InvalidTargetError(f"Invalid amount for {resource.value}.")
        if amount < 0:
            raise InvalidTargetError("Trade amounts cannot be negative.")
        result[resource] += amount
    return result


def create_trade_offer(game: Game, player_id: str, to_player_id: Optional[str],
                       give: Dict, get: Dict) -> TradeOffer:
    """Offer cards to one player, or to everyone when `to_player_id` is None."""
    _require_main(game, "Trade offers only happen during the main game.")
    _require_turn(game, player_id)
    _require_rolled(game, "Roll the dice before trading.")
    player = game.get_player(player_id)
    if to_player_id is not None:
        game.get_player(to_player_id)
        if to_player_id == player_id:
            raise InvalidTargetError("You cannot send an offer to yourself.")

    give_line = normalize_trade_line(give)
    get_line = normalize_trade_line(get)
    if sum(give_line.values()) <= 0 or sum(get_line.values()) <= 0:
        raise InvalidTargetError("An offer must give and ask for at least one card.")
    if sum(give_line.values()) > TRADE_LINE_MAX or sum(get_line.values()) > TRADE_LINE_MAX:
        raise InvalidTargetError(f"At most {TRADE_LINE_MAX} cards per side.")
    if not player.can_afford(give_line):
        raise InsufficientResourcesError("You do not have the cards you are offering.")

    offer = TradeOffer(
        id=new_id(10),
        from_player_id=player_id,
        to_player_id=to_player_id,
        give=give_line,
        get=get_line,
    )
    game.trade_offers.append(offer)
    game.add_log(f"{player.name} made a trade offer.")
    return offer


def accept_trade_offer(game: Game, player_id: str, offer_id: str):
    """Accept an offer; both hands are checked again before the swap."""
    _require_main(game, "Trade offers can only be accepted during the main game.")
    offer = game.get_offer(offer_id)
    if offer.status != "open":
        raise StaleActionError("This offer is no longer open.")
    if offer.to_player_id is not None and offer.to_player_id != player_id:
        raise InvalidTargetError("This offer is not addressed to you.")
    if offer.from_player_id == player_id:
        raise InvalidTargetError("You cannot accept your own offer.")
    if game.current_player_id != offer.from_player_id:
        raise StaleActionError("Offers can only be accepted during the creator's turn.")

    creator = game.get_player(offer.from_player_id)
    acceptor = game.get_player(player_id)
    if not creator.can_afford(offer.give):
        raise InsufficientResourcesError(f"{creator.name} no longer has the offered cards.")
    if not acceptor.can_afford(offer.get):
        raise InsufficientResourcesError("You do not have the requested cards.")

    creator.pay(offer.give)
    acceptor.receive(offer.give)
    acceptor.pay(offer.get)
    creator.receive(offer.get)
    offer.status = "accepted"
    game.add_log(f"{acceptor.name} accepted {creator.name}'s offer.")


def reject_trade_offer(game: Game, player_id: str, offer_id: str):
    _require_main(game, "Trade offers can only be rejected during the main game.")
    offer = game.get_offer(offer_id)
    player = game.get_player(player_id)
    if offer.status != "open":
        raise StaleActionError("This offer is no longer open.")
    if offer.from_player_id == player_id:
        raise InvalidTargetError("Cancel your own offer instead of rejecting it.")
    if offer.to_player_id is not None and offer.to_player_id != player_id:
        raise InvalidTargetError("This offer is not addressed to you.")
    offer.status = "rejected"
    game.add_log(f"{player.name} rejected the offer.")


def cancel_trade_offer(game: Game, player_id: str, offer_id: str):
    _require_main(game, "Trade offers can only be cancelled during the main game.")
    offer = game.get_offer(offer_id)
    player = game.get_player(player_id)
    if offer.from_player_id != player_id:
        raise InvalidTargetError("Only the player who made the offer can cancel it.")
    if offer.status != "open":
        raise StaleActionError("This offer is no longer open.")
    offer.status = "cancelled"
    game.add_log(f"{player.name} cancelled the offer.")


# Development cards

def buy_dev_card(game: Game, player_id: str) -> DevCard:
    _require_main(game, "Development cards can only be bought during the main game.")
    _require_turn(game, player_id)
    _require_rolled(game, "Roll the dice before buying a development card.")
    if not game.dev_deck:
        raise StaleActionError("The development deck is empty.")
    player = game.get_player(player_id)
    _require_affordable(player, COSTS["dev_card"])

    player.pay(COSTS["dev_card"])
    card = DevCard(id=new_id(10), kind=game.dev_deck.pop(0), bought_turn=game.turn_number)
    player.dev_cards.append(card)
    if card.kind == "victory":
        player.victory_points += 1
    game.add_log(f"{player.name} bought a development card.")
    return card


def play_dev_card(game: Game, player_id: str, card_id: str, payload: Optional[Dict[str, Any]] = None):
    """
    Play a development card.

    payload: {"r1": .., "r2": ..} for year_of_plenty, {"resource": ..} for
    monopoly; nothing for knight and road_building.
    """
    _require_main(game, "Development cards can only be played during the main game.")
    _require_turn(game, player_id)
    _require_rolled(game, "Roll the dice before playing a development card.")
    if game.dev_played_this_turn:
        raise StaleActionError("You already played a development card this turn.")
    if game.robber.pending:
        raise StaleActionError("Move the robber first.")
    player = game.get_player(player_id)
    card = next((c for c in player.dev_cards if c.id == card_id), None)
    if card is None:
        raise InvalidTargetError("You do not have that card.")
    if card.kind == "victory":
        raise StaleActionError("Victory point cards are never played.")
    if card.bought_turn >= game.turn_number:
        raise StaleActionError("Cards cannot be played on the turn they were bought.")

    payload = payload or {}
    if card.kind == "year_of_plenty":
        picks = [parse_resource(payload.get("r1")), parse_resource(payload.get("r2"))]
    elif card.kind == "monopoly":
        monopoly_resource = parse_resource(payload.get("resource"))
    elif card.kind not in ("knight", "road_building"):
        raise InvalidTargetError(f"Unknown development card: {card.kind}.")

    player.dev_cards.remove(card)
    game.dev_played_this_turn = True

    if card.kind == "road_building":
        player.free_roads_to_place += 2
        game.add_log(f"{player.name} played Road Building (+2 free roads).")
    elif card.kind == "year_of_plenty":
        for rt in picks:
            player.resources[rt] += 1
        game.add_log(f"{player.name} played Year of Plenty (+1 {picks[0].value}, +1 {picks[1].value}).")
    elif card.kind == "monopoly":
        taken = 0
        for other in game.players:
            if other.id == player_id:
                continue
            taken += other.resources[monopoly_resource]
            other.resources[monopoly_resource] = 0
        player.resources[monopoly_resource] += taken
        game.add_log(f"{player.name} played Monopoly on {monopoly_resource.value} (+{taken}).")
    else:
        player.knights_played += 1
        _start_robber(game, player_id, "knight")
        game.add_log(f"{player.name} played a Knight and must move the robber.")
        award_largest_army(game, player)


# Robber

def move_robber(game: Game, player_id: str, tile_id: str):
    """Move the robber and work out who can be robbed."""
    _require_main(game, "The robber only moves during the main game.")
    _require_turn(game, player_id)
    robber = game.robber
    if not robber.pending or robber.by_player_id != player_id or robber.awaiting_steal:
        raise StaleActionError("You cannot move the robber now.")
    tile = game.get_tile(tile_id)
    if tile.has_robber:
        raise IllegalPlacementError("The robber must move to a different tile.")

    for t in game.tiles:
        t.has_robber = False
    tile.has_robber = True

    corners = set(tile_node_ids(tile.q, tile.r))
    candidates: List[str] = []
    for placement in game.nodes.values():
        if placement.node_id not in corners or placement.player_id == player_id:
            continue
        if placement.player_id in candidates:
            continue
        owner = game.find_player(placement.player_id)
        if owner is not None and owner.total_resources() > 0:
            candidates.append(owner.id)

    if not candidates:
        _clear_robber(game)
        game.add_log("The robber moved. There is no one to rob.")
        return
    robber.awaiting_steal = True
    robber.candidates = candidates
    game.add_log("The robber moved. Choose a player to rob.")


def robber_steal(game: Game, player_id: str, target_player_id: str, resource):
    """Take one card of the named resource from a robber candidate."""
    _require_main(game, "The robber only steals during the main game.")
    _require_turn(game, player_id)
    robber = game.robber
    if not robber.pending or robber.by_player_id != player_id or not robber.awaiting_steal:
        raise StaleActionError("You cannot steal now.")
    resource = parse_resource(resource)
    if target_player_id not in robber.candidates:
        raise InvalidTargetError("You cannot steal from that player.")
    thief = game.get_player(player_id)
    victim = game.get_player(target_player_id)
    if victim.resources[resource] <= 0:
        raise InsufficientResourcesError(f"{victim.name} has no {resource.value}.")

    victim.resources[resource] -= 1
    thief.resources[resource] += 1
    game.add_log(f"{thief.name} stole {resource.value} from {victim.name}.")
    _clear_robber(game)


# Chat

def add_chat(game: Game, player_id: str, text: str) -> ChatMessage:
    """Chat is allowed in every phase, including after the game has finished."""
    player = game.get_player(player_id)
    text = (text or "").strip()
    if not 1 <= len(text) <= CHAT_MAX_LENGTH:
        raise InvalidTargetError(f"Messages must be 1-{CHAT_MAX_LENGTH} characters.")
    message = ChatMessage(player_id=player_id, name=player.name, text=text)
    game.add_chat_message(message)
    return message


class Action(Enum):
    """Actions a player can send for a game in progress."""
    PLACE_SETTLEMENT = "place_settlement"
    PLACE_ROAD = "place_road"
    BUILD_SETTLEMENT = "build_settlement"
    BUILD_ROAD = "build_road"
    BUILD_CITY = "build_city"
    ROLL_DICE = "roll"
    END_TURN = "end_turn"
    TRADE_BANK = "trade_bank"
    TRADE_OFFER_CREATE = "trade_offer_create"
    TRADE_OFFER_ACCEPT = "trade_offer_accept"
    TRADE_OFFER_REJECT = "trade_offer_reject"
    TRADE_OFFER_CANCEL = "trade_offer_cancel"
    CHAT = "chat"
    BUY_DEV_CARD = "dev_buy"
    PLAY_DEV_CARD = "dev_play"
    MOVE_ROBBER = "robber_move"
    ROBBER_STEAL = "robber_steal"


@dataclass(frozen=True)
class NodePayload:
    """Payload for PLACE_SETTLEMENT, BUILD_SETTLEMENT and BUILD_CITY."""
    node_id: str


@dataclass(frozen=True)
class EdgePayload:
    """Payload for PLACE_ROAD and BUILD_ROAD."""
    edge_id: str


@dataclass(frozen=True)
class TradeBankPayload:
    give: ResourceType
    get: ResourceType


@dataclass(frozen=True)
class TradeOfferPayload:
    """Payload for TRADE_OFFER_CREATE; to_player_id None = open offer."""
    to_player_id: Optional[str]
    give: Dict[ResourceType, int]
    get: Dict[ResourceType, int]


@dataclass(frozen=True)
class OfferPayload:
    """Payload for accepting, rejecting or cancelling an offer."""
    offer_id: str


@dataclass(frozen=True)
class PlayDevCardPayload:
    card_id: str
    args: Dict[str, Any] = field(default_factory=dict)  # r1/r2 or resource


@dataclass(frozen=True)
class MoveRobberPayload:
    tile_id: str


@dataclass(frozen=True)
class RobberStealPayload:
    target_player_id: str
    resource: ResourceType


@dataclass(frozen=True)
class ChatPayload:
    text: str


ActionPayload = Union[
    NodePayload,
    EdgePayload,
    TradeBankPayload,
    TradeOfferPayload,
    OfferPayload,
    PlayDevCardPayload,
    MoveRobberPayload,
    RobberStealPayload,
    ChatPayload,
]


def _payload(payload: Optional[ActionPayload], expected: type, action: Action):
    if not isinstance(payload, expected):
        raise InvalidTargetError(f"Missing or invalid payload for {action.value}.")
    return payload


def apply_action(game: Game, player_id: str, action: Action,
                 payload: Optional[ActionPayload] = None, rng=None) -> Game:
    """
    Apply one player action to the game in place and check for a winner.

    Raises a GameError subclass, leaving the game untouched, if the action is
    not legal right now.
    """
    if game.phase == "finished" and action != Action.CHAT:
        raise WrongPhaseError("The game is over.")
    game.get_player(player_id)

    if action == Action.PLACE_SETTLEMENT:
        place_settlement(game, player_id, _payload(payload, NodePayload, action).node_id)
    elif action == Action.PLACE_ROAD:
        place_road(game, player_id, _payload(payload, EdgePayload, action).edge_id)
    elif action == Action.BUILD_SETTLEMENT:
        build_settlement(game, player_id, _payload(payload, NodePayload, action).node_id)
    elif action == Action.BUILD_ROAD:
        build_road(game, player_id, _payload(payload, EdgePayload, action).edge_id)
    elif action == Action.BUILD_CITY:
        build_city(game, player_id, _payload(payload, NodePayload, action).node_id)
    elif action == Action.ROLL_DICE:
        roll_dice(game, player_id, rng)
    elif action == Action.END_TURN:
        end_turn(game, player_id)
    elif action == Action.TRADE_BANK:
        p = _payload(payload, TradeBankPayload, action)
        trade_with_bank(game, player_id, p.give, p.get)
    elif action == Action.TRADE_OFFER_CREATE:
        p = _payload(payload, TradeOfferPayload, action)
        create_trade_offer(game, player_id, p.to_player_id, p.give, p.get)
    elif action == Action.TRADE_OFFER_ACCEPT:
        accept_trade_offer(game, player_id, _payload(payload, OfferPayload, action).offer_id)
    elif action == Action.TRADE_OFFER_REJECT:
        reject_trade_offer(game, player_id, _payload(payload, OfferPayload, action).offer_id)
    elif action == Action.TRADE_OFFER_CANCEL:
        cancel_trade_offer(game, player_id, _payload(payload, OfferPayload, action).offer_id)
    elif action == Action.CHAT:
        add_chat(game, player_id, _payload(payload, ChatPayload, action).text)
    elif action == Action.BUY_DEV_CARD:
        buy_dev_card(game, player_id)
    elif action == Action.PLAY_DEV_CARD:
        p = _payload(payload, PlayDevCardPayload, action)
        play_dev_card(game, player_id, p.card_id, p.args)
    elif action == Action.MOVE_ROBBER:
        move_robber(game, player_id, _payload(payload, MoveRobberPayload, action).tile_id)
    elif action == Action.ROBBER_STEAL:
        p = _payload(payload, RobberStealPayload, action)
        robber_steal(game, player_id, p.target_player_id, p.resource)
    else:
        raise GameError(f"Unknown action: {action}")

    check_win(game, player_id)
    game.updated_at = utcnow()
    return game
