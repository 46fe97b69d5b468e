"""Game history export."""
import json

from treasure_reels.logic.models import GameState, HistoryEntry


def history_records(entries: list[HistoryEntry]) -> list[dict]:
    return [entry.model_dump(mode="json") for entry in entries]


def export_history(state: GameState) -> str:
    """Serialize the spin history as a JSON array with 2-space indentation."""
    return json.dumps(history_records(state.game_history), indent=2)
