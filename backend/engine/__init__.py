"""Pure rules engine for the hex settlement game."""
from .board import MAP_TYPES, MapTemplate, generate_ports, generate_tiles, validate_template
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
    accept_trade_offer,
    add_chat,
    add_player,
    apply_action,
    bank_rate,
    build_city,
    build_dev_deck,
    build_road,
    build_settlement,
    buy_dev_card,
    cancel_trade_offer,
    create_trade_offer,
    end_turn,
    move_robber,
    place_road,
    place_settlement,
    play_dev_card,
    reject_trade_offer,
    robber_steal,
    roll_dice,
    start_if_eligible,
    trade_with_bank,
)
from .errors import (
    BoardError,
    GameError,
    IllegalPlacementError,
    InsufficientResourcesError,
    InvalidTargetError,
    NotYourTurnError,
    StaleActionError,
    WrongPhaseError,
    WrongSetupStepError,
)
from .geometry import (
    HEX_SIZE,
    BoardGraph,
    Point,
    axial_to_pixel,
    board_graph,
    build_graph_from_tiles,
    hex_corners,
    node_distance_ok,
    point_to_node_id,
    tile_node_ids,
)
from .ids import new_id
from .scoring import (
    check_win,
    compute_longest_road_for_player,
    expected_victory_points,
    recompute_longest_road_award,
)
from .serialization import (
    deserialize_action,
    deserialize_action_payload,
    deserialize_game_state,
    list_summaries,
    project_view,
    serialize_action,
    serialize_game_state,
    serialize_template,
)
from .state import (
    COSTS,
    DevCard,
    Game,
    GameSettings,
    HexTile,
    NodePlacement,
    EdgePlacement,
    Player,
    Port,
    ResourceType,
    TradeOffer,
)
