"""API routes for the hex settlement game."""
from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel
from typing import Optional, List, Dict, Any

from engine import (
    MAP_TYPES,
    Game,
    GameError,
    GameSettings,
    MapTemplate,
    apply_action,
    add_player,
    deserialize_action,
    deserialize_action_payload,
    deserialize_game_state,
    list_summaries,
    new_id,
    project_view,
    serialize_game_state,
    serialize_template,
    start_if_eligible,
    validate_template,
)
from engine.engine import NAME_MAX_LENGTH, NAME_MIN_LENGTH
from engine.state import utcnow
from .database import (
    create_game as create_game_in_db,
    create_template as create_template_in_db,
    delete_template as delete_template_in_db,
    game_lock,
    get_latest_state,
    get_template as get_template_from_db,
    list_games as list_games_from_db,
    list_templates as list_templates_from_db,
    save_game_state,
    update_template as update_template_in_db,
)
from .logging_config import activity_logger
from .monitoring import game_actions_total, games_created_total
from .realtime import game_event_stream, notification_bus

router = APIRouter()

# Custom maps come from a saved template, never from map_type
PRESET_MAP_TYPES = tuple(t for t in MAP_TYPES if t != "custom")
LISTED_PHASES = ("lobby", "setup", "main")
LIST_LIMIT_MAX = 50
TEMPLATE_LIST_LIMIT = 100
TEMPLATE_NAME_MIN = 2
TEMPLATE_NAME_MAX = 32
MIN_VICTORY_POINTS = 5
MAX_VICTORY_POINTS = 20
MIN_PLAYERS = 2
MAX_PLAYERS = 4


# Request/Response models
class CreateGameRequest(BaseModel):
    """Request to create a new game; the creator joins it straight away."""
    name: str
    map_type: str = "classic"
    template_id: Optional[str] = None
    max_victory_points: int = 10
    max_players: int = 4


class JoinGameRequest(BaseModel):
    name: str


class JoinGameResponse(BaseModel):
    game_id: str
    player_id: str
    started: bool = False


class ActionRequest(BaseModel):
    """Request to perform an action."""
    player_id: str
    type: str
    payload: Optional[Dict[str, Any]] = None


class HexCoord(BaseModel):
    q: int
    r: int


class TemplatePort(BaseModel):
    q: int
    r: int
    edge: int
    kind: str = "random"


class CreateTemplateRequest(BaseModel):
    name: str
    hexes: List[HexCoord]
    ports: List[TemplatePort] = []


class UpdateTemplateRequest(BaseModel):
    """Fields left out keep their saved values."""
    name: Optional[str] = None
    hexes: Optional[List[HexCoord]] = None
    ports: Optional[List[TemplatePort]] = None


def _hexes_json(hexes: List[HexCoord]) -> List[Dict[str, int]]:
    return [{"q": h.q, "r": h.r} for h in hexes]


def _ports_json(ports: List[TemplatePort]) -> List[Dict[str, Any]]:
    return [{"q": p.q, "r": p.r, "edge": p.edge, "kind": p.kind} for p in ports]


def _check_name(name: str):
    name = (name or "").strip()
    if not NAME_MIN_LENGTH <= len(name) <= NAME_MAX_LENGTH:
        raise HTTPException(
            status_code=400,
            detail=f"Name must be {NAME_MIN_LENGTH}-{NAME_MAX_LENGTH} characters."
        )
    return name


def _check_template_name(name: Optional[str]) -> str:
    name = (name or "").strip()
    if not TEMPLATE_NAME_MIN <= len(name) <= TEMPLATE_NAME_MAX:
        raise HTTPException(
            status_code=400,
            detail=f"Template name must be {TEMPLATE_NAME_MIN}-{TEMPLATE_NAME_MAX} characters."
        )
    return name


def _load_game(game_id: str) -> Game:
    state_json = get_latest_state(game_id)
    if state_json is None:
        raise HTTPException(status_code=404, detail="Game not found")
    return deserialize_game_state(state_json)


@router.post("/games", response_model=JoinGameResponse)
def create_game(request: CreateGameRequest):
    """Create a lobby game and add the creator as its first player."""
    name = _check_name(request.name)
    if not MIN_VICTORY_POINTS <= request.max_victory_points <= MAX_VICTORY_POINTS:
        raise HTTPException(
            status_code=400,
            detail=f"Victory points must be {MIN_VICTORY_POINTS}-{MAX_VICTORY_POINTS}."
        )
    if not MIN_PLAYERS <= request.max_players <= MAX_PLAYERS:
        raise HTTPException(
            status_code=400,
            detail=f"Game must have {MIN_PLAYERS}-{MAX_PLAYERS} players"
        )

    game = Game(
        game_id=new_id(10),
        settings=GameSettings(
            max_victory_points=request.max_victory_points,
            max_players=request.max_players,
        ),
    )
    if request.template_id:
        template = get_template_from_db(request.template_id)
        if template is None:
            raise HTTPException(status_code=404, detail="Template not found")
        game.map_type = "custom"
        game.map_template_id = template["id"]
        game.custom_hexes = template["hexes"]
        game.custom_ports = template["ports"]
    elif request.map_type in PRESET_MAP_TYPES:
        game.map_type = request.map_type
    else:
        raise HTTPException(status_code=400, detail=f"Unknown map type: {request.map_type}")

    player = add_player(game, name)
    create_game_in_db(game.game_id, serialize_game_state(game))

    games_created_total.labels(map_type=game.map_type).inc()
    activity_logger.log_game_created(game.game_id, player.id, game.map_type)
    return JoinGameResponse(game_id=game.game_id, player_id=player.id)


@router.get("/games")
async def list_games(limit: int = 20):
    """Open and running games, most recently active first."""
    if not 1 <= limit <= LIST_LIMIT_MAX:
        raise HTTPException(status_code=400, detail=f"limit must be between 1 and {LIST_LIMIT_MAX}")
    games = [deserialize_game_state(s) for s in list_games_from_db(LISTED_PHASES, limit)]
    return {"games": list_summaries(games)}


@router.post("/games/{game_id}/join", response_model=JoinGameResponse)
def join_game(game_id: str, request: JoinGameRequest):
    """Join a lobby game; the game starts once enough players are in."""
    name = _check_name(request.name)
    with game_lock(game_id):
        game = _load_game(game_id)
        player = add_player(game, name)
        started = start_if_eligible(game)
        save_game_state(game_id, serialize_game_state(game))

    notification_bus.publish(game_id)
    activity_logger.log_player_joined(game_id, player.id, started)
    return JoinGameResponse(game_id=game_id, player_id=player.id, started=started)


@router.get("/games/{game_id}")
async def get_game(game_id: str, player_id: Optional[str] = None):
    """Current game as seen by `player_id` (spectator view without one)."""
    game = _load_game(game_id)
    return project_view(game, player_id)


@router.post("/games/{game_id}/action")
def act(game_id: str, request: ActionRequest):
    """Apply one action and return the acting player's new view."""
    with game_lock(game_id):
        game = _load_game(game_id)
        try:
            action = deserialize_action(request.type)
            payload = deserialize_action_payload(action, request.payload)
            apply_action(game, request.player_id, action, payload)
        except GameError as e:
            game_actions_total.labels(action=request.type, outcome="rejected").inc()
            activity_logger.log_action_rejected(game_id, request.player_id, request.type, e.code, e.message)
            raise
        save_game_state(game_id, serialize_game_state(game))

    game_actions_total.labels(action=action.value, outcome="applied").inc()
    activity_logger.log_game_action(
        game_id,
        request.player_id,
        action.value,
        game.phase,
        details=request.payload,
    )
    notification_bus.publish(game_id)
    return {"view": project_view(game, request.player_id)}


@router.get("/games/{game_id}/events")
async def game_events(game_id: str, request: Request):
    """Server-sent change notifications for one game."""
    if get_latest_state(game_id) is None:
        raise HTTPException(status_code=404, detail="Game not found")
    return StreamingResponse(
        game_event_stream(game_id, request.is_disconnected),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.post("/templates")
def create_template(request: CreateTemplateRequest):
    """Save a custom map that new games can be created from."""
    name = _check_template_name(request.name)
    hexes = _hexes_json(request.hexes)
    ports = _ports_json(request.ports)
    validate_template(hexes, ports)

    now = utcnow()
    template = MapTemplate(id=new_id(10), name=name, hexes=hexes, ports=ports, created_at=now, updated_at=now)
    data = serialize_template(template)
    create_template_in_db(data)
    return data


@router.get("/templates")
async def list_templates():
    """Saved templates, most recently edited first."""
    return {"templates": list_templates_from_db(TEMPLATE_LIST_LIMIT)}


@router.get("/templates/{template_id}")
async def get_template(template_id: str):
    template = get_template_from_db(template_id)
    if template is None:
        raise HTTPException(status_code=404, detail="Template not found")
    return template


@router.put("/templates/{template_id}")
def update_template(template_id: str, request: UpdateTemplateRequest):
    """
    Edit a template. Games already created from it keep the layout they
    started with.
    """
    template = get_template_from_db(template_id)
    if template is None:
        raise HTTPException(status_code=404, detail="Template not found")

    name = _check_template_name(request.name) if request.name is not None else template["name"]
    hexes = _hexes_json(request.hexes) if request.hexes is not None else template["hexes"]
    ports = _ports_json(request.ports) if request.ports is not None else template["ports"]
    validate_template(hexes, ports)

    if not update_template_in_db(template_id, name, hexes, ports, utcnow().isoformat()):
        raise HTTPException(status_code=404, detail="Template not found")
    return get_template_from_db(template_id)


@router.delete("/templates/{template_id}")
def delete_template(template_id: str):
    """Delete a template; deleting an unknown id is not an error."""
    delete_template_in_db(template_id)
    return {"ok": True}
