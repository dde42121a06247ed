"""
Serialization of game state, and the per-viewer view sent to clients.

serialize_game_state/deserialize_game_state round-trip every field of a Game.
deserialize_game_state is also the only place that fills defaults for fields
missing from older snapshots.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from .engine import (
    Action,
    ActionPayload,
    ChatPayload,
    EdgePayload,
    MoveRobberPayload,
    NodePayload,
    OfferPayload,
    PlayDevCardPayload,
    RobberStealPayload,
    TradeBankPayload,
    TradeOfferPayload,
)
from .board import MapTemplate
from .errors import InvalidTargetError
from .geometry import Point
from .state import (
    ChatMessage,
    DevCard,
    DiceRoll,
    EdgePlacement,
    Game,
    GameSettings,
    GameStats,
    HexTile,
    LogEntry,
    NodePlacement,
    Player,
    PlayerPorts,
    Port,
    ResourceType,
    RobberState,
    SetupProgress,
    TradeOffer,
    parse_resource,
    utcnow,
)


def _dt(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_dt(value: Optional[str], default: Optional[datetime] = None) -> Optional[datetime]:
    if not value:
        return default
    return datetime.fromisoformat(value)


def serialize_resources(resources: Dict[ResourceType, int]) -> Dict[str, int]:
    return {rt.value: resources.get(rt, 0) for rt in ResourceType}


def deserialize_resources(data: Optional[Dict[str, int]]) -> Dict[ResourceType, int]:
    data = data or {}
    return {rt: int(data.get(rt.value, 0)) for rt in ResourceType}


def serialize_game_state(game: Game) -> Dict[str, Any]:
    """
    Serialize a Game to a JSON-serializable dictionary.
    """
    return {
        "game_id": game.game_id,
        "created_at": _dt(game.created_at),
        "updated_at": _dt(game.updated_at),
        "map_type": game.map_type,
        "map_template_id": game.map_template_id,
        "custom_hexes": [dict(h) for h in game.custom_hexes],
        "custom_ports": [dict(p) for p in game.custom_ports],
        "settings": {
            "max_victory_points": game.settings.max_victory_points,
            "max_players": game.settings.max_players,
            "min_players": game.settings.min_players,
        },
        "phase": game.phase,
        "setup_step": game.setup_step,
        "setup": {
            "round": game.setup.round,
            "direction": game.setup.direction,
            "pending_settlement_node_id": game.setup.pending_settlement_node_id,
            "done": dict(game.setup.done),
        },
        "players": [serialize_player(p) for p in game.players],
        "current_player_id": game.current_player_id,
        "tiles": [serialize_tile(t) for t in game.tiles],
        "ports": [serialize_port(p) for p in game.ports],
        "nodes": [
            {"node_id": n.node_id, "player_id": n.player_id, "kind": n.kind}
            for n in game.nodes.values()
        ],
        "edges": [{"edge_id": e.edge_id, "player_id": e.player_id} for e in game.edges.values()],
        "log": [{"ts": _dt(entry.ts), "message": entry.message} for entry in game.log],
        "chat": [
            {"ts": _dt(c.ts), "player_id": c.player_id, "name": c.name, "text": c.text}
            for c in game.chat
        ],
        "trade_offers": [serialize_trade_offer(o) for o in game.trade_offers],
        "last_roll": serialize_roll(game.last_roll),
        "turn_has_rolled": game.turn_has_rolled,
        "turn_number": game.turn_number,
        "dev_deck": list(game.dev_deck),
        "dev_played_this_turn": game.dev_played_this_turn,
        "largest_army_player_id": game.largest_army_player_id,
        "largest_army_size": game.largest_army_size,
        "longest_road_player_id": game.longest_road_player_id,
        "longest_road_length": game.longest_road_length,
        "robber": {
            "pending": game.robber.pending,
            "by_player_id": game.robber.by_player_id,
            "reason": game.robber.reason,
            "awaiting_steal": game.robber.awaiting_steal,
            "candidates": list(game.robber.candidates),
        },
        "winner_player_id": game.winner_player_id,
        "finished_at": _dt(game.finished_at),
        "stats": serialize_stats(game.stats),
    }


def deserialize_game_state(data: Dict[str, Any]) -> Game:
    """
    Deserialize a dictionary to a Game, filling defaults for missing fields.
    """
    settings = data.get("settings") or {}
    setup = data.get("setup") or {}
    robber = data.get("robber") or {}
    now = utcnow()

    return Game(
        game_id=data["game_id"],
        created_at=_parse_dt(data.get("created_at"), now),
        updated_at=_parse_dt(data.get("updated_at"), now),
        map_type=data.get("map_type", "classic"),
        map_template_id=data.get("map_template_id"),
        custom_hexes=[dict(h) for h in data.get("custom_hexes", [])],
        custom_ports=[dict(p) for p in data.get("custom_ports", [])],
        settings=GameSettings(
            max_victory_points=settings.get("max_victory_points", 10),
            max_players=settings.get("max_players", 4),
            min_players=settings.get("min_players", 2),
        ),
        phase=data.get("phase", "lobby"),
        setup_step=data.get("setup_step", "place_settlement"),
        setup=SetupProgress(
            round=setup.get("round", 1),
            direction=setup.get("direction", "forward"),
            pending_settlement_node_id=setup.get("pending_settlement_node_id"),
            done={pid: int(count) for pid, count in (setup.get("done") or {}).items()},
        ),
        players=[deserialize_player(p) for p in data.get("players", [])],
        current_player_id=data.get("current_player_id"),
        tiles=[deserialize_tile(t) for t in data.get("tiles", [])],
        ports=[deserialize_port(p) for p in data.get("ports", [])],
        nodes={
            n["node_id"]: NodePlacement(node_id=n["node_id"], player_id=n["player_id"], kind=n.get("kind", "settlement"))
            for n in data.get("nodes", [])
        },
        edges={
            e["edge_id"]: EdgePlacement(edge_id=e["edge_id"], player_id=e["player_id"])
            for e in data.get("edges", [])
        },
        log=[LogEntry(message=e["message"], ts=_parse_dt(e.get("ts"), now)) for e in data.get("log", [])],
        chat=[
            ChatMessage(player_id=c.get("player_id"), name=c.get("name", ""), text=c["text"], ts=_parse_dt(c.get("ts"), now))
            for c in data.get("chat", [])
        ],
        trade_offers=[deserialize_trade_offer(o) for o in data.get("trade_offers", [])],
        last_roll=deserialize_roll(data.get("last_roll")),
        turn_has_rolled=data.get("turn_has_rolled", False),
        turn_number=data.get("turn_number", 1),
        dev_deck=list(data.get("dev_deck", [])),
        dev_played_this_turn=data.get("dev_played_this_turn", False),
        largest_army_player_id=data.get("largest_army_player_id"),
        largest_army_size=data.get("largest_army_size", 0),
        longest_road_player_id=data.get("longest_road_player_id"),
        longest_road_length=data.get("longest_road_length", 0),
        robber=RobberState(
            pending=robber.get("pending", False),
            by_player_id=robber.get("by_player_id"),
            reason=robber.get("reason"),
            awaiting_steal=robber.get("awaiting_steal", False),
            candidates=list(robber.get("candidates", [])),
        ),
        winner_player_id=data.get("winner_player_id"),
        finished_at=_parse_dt(data.get("finished_at")),
        stats=deserialize_stats(data.get("stats")),
    )


def serialize_player(player: Player) -> Dict[str, Any]:
    """Serialize a Player to a dictionary."""
    return {
        "id": player.id,
        "name": player.name,
        "color": player.color,
        "victory_points": player.victory_points,
        "roads": player.roads,
        "settlements": player.settlements,
        "cities": player.cities,
        "resources": serialize_resources(player.resources),
        "ports": serialize_ports(player.ports),
        "dev_cards": [
            {"id": c.id, "kind": c.kind, "bought_turn": c.bought_turn} for c in player.dev_cards
        ],
        "knights_played": player.knights_played,
        "free_roads_to_place": player.free_roads_to_place,
        "longest_road_award_held": player.longest_road_award_held,
        "largest_army_award_held": player.largest_army_award_held,
    }


def deserialize_player(data: Dict[str, Any]) -> Player:
    """Deserialize a dictionary to a Player."""
    ports = data.get("ports") or {}
    two_to_one = ports.get("two_to_one") or {}
    return Player(
        id=data["id"],
        name=data["name"],
        color=data.get("color", "#FF0000"),
        victory_points=data.get("victory_points", 0),
        roads=data.get("roads", 0),
        settlements=data.get("settlements", 0),
        cities=data.get("cities", 0),
        resources=deserialize_resources(data.get("resources")),
        ports=PlayerPorts(
            three_to_one=ports.get("three_to_one", False),
            two_to_one={rt: bool(two_to_one.get(rt.value, False)) for rt in ResourceType},
        ),
        dev_cards=[
            DevCard(id=c["id"], kind=c["kind"], bought_turn=c.get("bought_turn", 0))
            for c in data.get("dev_cards", [])
        ],
        knights_played=data.get("knights_played", 0),
        free_roads_to_place=data.get("free_roads_to_place", 0),
        longest_road_award_held=data.get("longest_road_award_held", False),
        largest_army_award_held=data.get("largest_army_award_held", False),
    )


def serialize_ports(ports: PlayerPorts) -> Dict[str, Any]:
    return {
        "three_to_one": ports.three_to_one,
        "two_to_one": {rt.value: ports.two_to_one.get(rt, False) for rt in ResourceType},
    }


def serialize_tile(tile: HexTile) -> Dict[str, Any]:
    """Serialize a HexTile to a dictionary."""
    return {
        "id": tile.id,
        "q": tile.q,
        "r": tile.r,
        "resource_type": tile.resource_type.value if tile.resource_type else None,
        "number_token": tile.number_token,
        "has_robber": tile.has_robber,
    }


def deserialize_tile(data: Dict[str, Any]) -> HexTile:
    resource = data.get("resource_type")
    return HexTile(
        id=data["id"],
        q=data["q"],
        r=data["r"],
        resource_type=ResourceType(resource) if resource else None,
        number_token=data.get("number_token"),
        has_robber=data.get("has_robber", False),
    )


def serialize_port(port: Port) -> Dict[str, Any]:
    return {
        "id": port.id,
        "kind": port.kind,
        "node_a": port.node_a,
        "node_b": port.node_b,
        "mid": {"x": port.mid.x, "y": port.mid.y},
    }


def deserialize_port(data: Dict[str, Any]) -> Port:
    mid = data.get("mid") or {}
    return Port(
        id=data["id"],
        kind=data["kind"],
        node_a=data["node_a"],
        node_b=data["node_b"],
        mid=Point(mid.get("x", 0.0), mid.get("y", 0.0)),
    )


def serialize_trade_offer(offer: TradeOffer) -> Dict[str, Any]:
    return {
        "id": offer.id,
        "from_player_id": offer.from_player_id,
        "to_player_id": offer.to_player_id,
        "give": serialize_resources(offer.give),
        "get": serialize_resources(offer.get),
        "status": offer.status,
        "ts": _dt(offer.created_at),
    }


def deserialize_trade_offer(data: Dict[str, Any]) -> TradeOffer:
    return TradeOffer(
        id=data["id"],
        from_player_id=data["from_player_id"],
        to_player_id=data.get("to_player_id"),
        give=deserialize_resources(data.get("give")),
        get=deserialize_resources(data.get("get")),
        status=data.get("status", "open"),
        created_at=_parse_dt(data.get("ts"), utcnow()),
    )


def serialize_roll(roll: Optional[DiceRoll]) -> Optional[Dict[str, Any]]:
    if roll is None:
        return None
    return {
        "ts": _dt(roll.ts),
        "player_id": roll.player_id,
        "d1": roll.d1,
        "d2": roll.d2,
        "sum": roll.total,
    }


def deserialize_roll(data: Optional[Dict[str, Any]]) -> Optional[DiceRoll]:
    if not data:
        return None
    return DiceRoll(
        player_id=data["player_id"],
        d1=data["d1"],
        d2=data["d2"],
        ts=_parse_dt(data.get("ts"), utcnow()),
    )


def serialize_stats(stats: GameStats) -> Dict[str, Any]:
    return {
        "roll_counts": {str(total): count for total, count in sorted(stats.roll_counts.items())},
        "resource_gains": {
            pid: serialize_resources(gains) for pid, gains in stats.resource_gains.items()
        },
    }


def deserialize_stats(data: Optional[Dict[str, Any]]) -> GameStats:
    data = data or {}
    return GameStats(
        roll_counts={int(total): count for total, count in (data.get("roll_counts") or {}).items()},
        resource_gains={
            pid: deserialize_resources(gains) for pid, gains in (data.get("resource_gains") or {}).items()
        },
    )


def project_view(game: Game, viewer_id: Optional[str] = None) -> Dict[str, Any]:
    """
    Client view of a game as seen by `viewer_id`.

    Everyone sees the board and each player's card count. Only the viewer gets
    their own hand, ports and development cards under "you". Robber
    candidates' hands are shown only to the player stealing, and only while
    they are choosing whom to rob.
    """
    state = serialize_game_state(game)
    viewer = game.find_player(viewer_id)

    view = {
        "game_id": game.game_id,
        "created_at": state["created_at"],
        "updated_at": state["updated_at"],
        "map_type": game.map_type,
        "map_template_id": game.map_template_id,
        "settings": state["settings"],
        "winner_player_id": game.winner_player_id,
        "finished_at": state["finished_at"],
        "phase": game.phase,
        "setup_step": game.setup_step,
        "setup_round": game.setup.round,
        "setup_direction": game.setup.direction,
        "players": [_public_player(p) for p in game.players],
        "current_player_id": game.current_player_id,
        "tiles": state["tiles"],
        "ports": state["ports"],
        "nodes": state["nodes"],
        "edges": state["edges"],
        "log": state["log"],
        "chat": state["chat"],
        "trade_offers": state["trade_offers"],
        "last_roll": state["last_roll"],
        "turn_has_rolled": game.turn_has_rolled,
        "turn_number": game.turn_number,
        "dev_deck_count": len(game.dev_deck),
        "dev_played_this_turn": game.dev_played_this_turn,
        "largest_army_player_id": game.largest_army_player_id,
        "largest_army_size": game.largest_army_size,
        "longest_road_player_id": game.longest_road_player_id,
        "longest_road_length": game.longest_road_length,
        "robber": _robber_view(game, viewer),
        "stats": state["stats"],
    }
    if viewer is not None:
        view["you"] = {
            "player_id": viewer.id,
            "name": viewer.name,
            "resources": serialize_resources(viewer.resources),
            "ports": serialize_ports(viewer.ports),
            "dev_cards": [
                {"id": c.id, "kind": c.kind, "bought_turn": c.bought_turn} for c in viewer.dev_cards
            ],
            "knights_played": viewer.knights_played,
            "free_roads_to_place": viewer.free_roads_to_place,
        }
    return view


def _public_player(player: Player) -> Dict[str, Any]:
    return {
        "id": player.id,
        "name": player.name,
        "color": player.color,
        "victory_points": player.victory_points,
        "roads": player.roads,
        "settlements": player.settlements,
        "cities": player.cities,
        "resource_count": player.total_resources(),
        "dev_card_count": len(player.dev_cards),
        "knights_played": player.knights_played,
        "longest_road_award_held": player.longest_road_award_held,
        "largest_army_award_held": player.largest_army_award_held,
    }


def _robber_view(game: Game, viewer: Optional[Player]) -> Dict[str, Any]:
    robber = game.robber
    show_hands = (
        viewer is not None
        and robber.awaiting_steal
        and robber.by_player_id == viewer.id
    )
    candidates = []
    for pid in robber.candidates:
        player = game.find_player(pid)
        if player is None:
            continue
        entry = {
            "player_id": player.id,
            "name": player.name,
            "color": player.color,
            "resource_count": player.total_resources(),
        }
        if show_hands:
            entry["resources"] = serialize_resources(player.resources)
        candidates.append(entry)
    return {
        "pending": robber.pending,
        "by_player_id": robber.by_player_id,
        "reason": robber.reason,
        "awaiting_steal": robber.awaiting_steal,
        "candidates": candidates,
    }


def serialize_action(action: Action) -> str:
    """Serialize an Action to a string."""
    return action.value


def deserialize_action(value: str) -> Action:
    """Deserialize a string to an Action."""
    try:
        return Action(value)
    except ValueError:
        raise InvalidTargetError(f"Unknown action: {value}.")


def _optional_dict(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = data.get(key) or {}
    if not isinstance(value, dict):
        raise InvalidTargetError(f"{key} must be an object.")
    return dict(value)


def _require_str(data: Dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value:
        raise InvalidTargetError(f"Missing {key}.")
    return value


def deserialize_action_payload(action: Action, data: Optional[Dict[str, Any]]) -> Optional[ActionPayload]:
    """Build the payload for an action from its wire form."""
    data = data or {}

    if action in (Action.PLACE_SETTLEMENT, Action.BUILD_SETTLEMENT, Action.BUILD_CITY):
        return NodePayload(node_id=_require_str(data, "node_id"))
    elif action in (Action.PLACE_ROAD, Action.BUILD_ROAD):
        return EdgePayload(edge_id=_require_str(data, "edge_id"))
    elif action == Action.TRADE_BANK:
        return TradeBankPayload(give=parse_resource(data.get("give")), get=parse_resource(data.get("get")))
    elif action == Action.TRADE_OFFER_CREATE:
        return TradeOfferPayload(
            to_player_id=data.get("to_player_id") or None,
            give=_optional_dict(data, "give"),
            get=_optional_dict(data, "get"),
        )
    elif action in (Action.TRADE_OFFER_ACCEPT, Action.TRADE_OFFER_REJECT, Action.TRADE_OFFER_CANCEL):
        return OfferPayload(offer_id=_require_str(data, "offer_id"))
    elif action == Action.CHAT:
        text = data.get("text")
        if not isinstance(text, str):
            raise InvalidTargetError("Missing text.")
        return ChatPayload(text=text)
    elif action == Action.PLAY_DEV_CARD:
        return PlayDevCardPayload(card_id=_require_str(data, "card_id"), args=_optional_dict(data, "args"))
    elif action == Action.MOVE_ROBBER:
        return MoveRobberPayload(tile_id=_require_str(data, "tile_id"))
    elif action == Action.ROBBER_STEAL:
        return RobberStealPayload(
            target_player_id=_require_str(data, "target_player_id"),
            resource=parse_resource(data.get("resource")),
        )
    return None


def serialize_template(template: MapTemplate) -> Dict[str, Any]:
    return {
        "id": template.id,
        "name": template.name,
        "hexes": [dict(h) for h in template.hexes],
        "ports": [dict(p) for p in template.ports],
        "created_at": _dt(template.created_at),
        "updated_at": _dt(template.updated_at),
    }


def list_summaries(games: List[Game]) -> List[Dict[str, Any]]:
    """Lobby listing: one line per game."""
    return [
        {
            "game_id": g.game_id,
            "phase": g.phase,
            "map_type": g.map_type,
            "turn_number": g.turn_number,
            "setup_step": g.setup_step if g.phase == "setup" else None,
            "players": [{"id": p.id, "name": p.name, "color": p.color} for p in g.players],
            "player_count": len(g.players),
            "max_players": g.settings.max_players,
            "updated_at": _dt(g.updated_at),
        }
        for g in games
    ]
