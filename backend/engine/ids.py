"""Short random ids for games, players, offers and cards."""
import uuid


def new_id(size: int = 10) -> str:
    return uuid.uuid4().hex[:size]
