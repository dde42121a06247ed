"""
Standings: longest road, largest army, victory points and the winner.
"""
from typing import Dict, FrozenSet, List, Optional, Tuple

from .state import (
    AWARD_POINTS,
    LARGEST_ARMY_MIN,
    LONGEST_ROAD_MIN,
    Game,
    Player,
    utcnow,
)


def _edge_key(a: str, b: str) -> Tuple[str, str]:
    return (a, b) if a < b else (b, a)


def compute_longest_road_for_player(game: Game, player_id: str) -> int:
    """
    Length in edges of the player's longest simple road path.

    A path may end on a node holding an opponent's building but cannot run
    through it. Each stack frame carries its own set of used edges.
    """
    graph = game.graph
    blocked = {node_id for node_id, placement in game.nodes.items() if placement.player_id != player_id}

    adjacency: Dict[str, List[str]] = {}
    for placement in game.edges.values():
        if placement.player_id != player_id:
            continue
        ends = graph.edge_nodes.get(placement.edge_id)
        if ends is None:
            continue
        a, b = ends
        adjacency.setdefault(a, []).append(b)
        adjacency.setdefault(b, []).append(a)

    best = 0
    for start in adjacency:
        stack: List[Tuple[str, FrozenSet[Tuple[str, str]], int]] = [(start, frozenset(), 0)]
        while stack:
            node, used, length = stack.pop()
            if length > best:
                best = length
            if length > 0 and node in blocked:
                continue
            for neighbor in adjacency.get(node, []):
                key = _edge_key(node, neighbor)
                if key in used:
                    continue
                stack.append((neighbor, used | {key}, length + 1))
    return best


def recompute_longest_road_award(game: Game):
    """
    Recompute every player's road length and move the Longest Road award.

    Running it again without a road change is a no-op.
    """
    lengths = {p.id: compute_longest_road_for_player(game, p.id) for p in game.players}
    max_len = 0
    leaders: List[str] = []
    for player_id, length in lengths.items():
        if length > max_len:
            max_len = length
            leaders = [player_id]
        elif length == max_len:
            leaders.append(player_id)

    holder = game.find_player(game.longest_road_player_id)
    cur_len = game.longest_road_length

    if max_len < LONGEST_ROAD_MIN:
        if holder is not None:
            _take_award(holder, "longest_road")
            game.add_log(f"{holder.name} lost Longest Road.")
        game.longest_road_player_id = None
        game.longest_road_length = 0
        return

    # A tie never moves the award.
    if len(leaders) > 1:
        if holder is not None and holder.id in leaders:
            game.longest_road_length = max(cur_len, max_len)
        return

    leader = game.get_player(leaders[0])
    if holder is not None and holder.id == leader.id:
        game.longest_road_length = max(cur_len, max_len)
        return
    if holder is not None and max_len <= cur_len:
        return

    if holder is not None:
        _take_award(holder, "longest_road")
    _give_award(leader, "longest_road")
    game.longest_road_player_id = leader.id
    game.longest_road_length = max_len
    game.add_log(f"{leader.name} took Longest Road ({max_len}).")


def award_largest_army(game: Game, player: Player):
    """Called after a knight is played; moves Largest Army if the player now leads."""
    if player.knights_played < LARGEST_ARMY_MIN:
        return
    if game.largest_army_player_id == player.id:
        game.largest_army_size = max(game.largest_army_size, player.knights_played)
        return
    if player.knights_played <= game.largest_army_size:
        return
    previous = game.find_player(game.largest_army_player_id)
    if previous is not None:
        _take_award(previous, "largest_army")
    _give_award(player, "largest_army")
    game.largest_army_player_id = player.id
    game.largest_army_size = player.knights_played
    game.add_log(f"{player.name} took Largest Army ({player.knights_played}).")


def _give_award(player: Player, award: str):
    player.victory_points += AWARD_POINTS
    if award == "longest_road":
        player.longest_road_award_held = True
    else:
        player.largest_army_award_held = True


def _take_award(player: Player, award: str):
    player.victory_points = max(0, player.victory_points - AWARD_POINTS)
    if award == "longest_road":
        player.longest_road_award_held = False
    else:
        player.largest_army_award_held = False


def expected_victory_points(game: Game, player: Player) -> int:
    """Victory points recomputed from the board and hand, ignoring the cache."""
    points = player.settlements + 2 * player.cities
    points += sum(1 for card in player.dev_cards if card.kind == "victory")
    if game.longest_road_player_id == player.id:
        points += AWARD_POINTS
    if game.largest_army_player_id == player.id:
        points += AWARD_POINTS
    return points


def check_win(game: Game, actor_id: Optional[str] = None) -> Optional[str]:
    """
    Finish the game if someone reached the target; returns the winner id.

    Among players tied on the highest score the actor wins, then the player
    whose turn it is, then whoever comes first in seat order.
    """
    if game.phase == "finished":
        return game.winner_player_id
    if game.phase not in ("setup", "main"):
        return None

    target = game.settings.max_victory_points
    reached = [p for p in game.players if p.victory_points >= target]
    if not reached:
        return None

    best = max(p.victory_points for p in reached)
    tied = [p for p in reached if p.victory_points == best]
    winner = next((p for p in tied if p.id == actor_id), None)
    if winner is None:
        winner = next((p for p in tied if p.id == game.current_player_id), None)
    if winner is None:
        winner = tied[0]

    game.phase = "finished"
    game.winner_player_id = winner.id
    game.finished_at = utcnow()
    game.add_log(f"{winner.name} reached {target} victory points and won the game!")
    return winner.id
