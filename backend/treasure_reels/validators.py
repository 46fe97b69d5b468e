"""Request validators for the HTTP adapter."""
from treasure_reels.errors import ErrorCode, GameError
from treasure_reels.logic.rules import GameRules
from treasure_reels.protocol import AutoplayRequest, BetRequest


def validate_bet_request(request: BetRequest, rules: GameRules) -> None:
    """
    Validate a bet change.

    Exactly one of amount/step must be given; amount must be on the ladder.
    """
    if (request.amount is None) == (request.step is None):
        raise GameError(
            ErrorCode.INVALID_REQUEST,
            "Provide exactly one of 'amount' or 'step'.",
        )
    if request.amount is not None and request.amount not in rules.bet_levels:
        raise GameError(
            ErrorCode.INVALID_BET,
            f"Bet amount {request.amount} not allowed. "
            f"Allowed: {list(rules.bet_levels)}",
        )


def validate_autoplay_request(request: AutoplayRequest, rules: GameRules) -> None:
    if request.count is not None and request.count not in rules.autoplay_options:
        raise GameError(
            ErrorCode.INVALID_REQUEST,
            f"Autoplay count {request.count} not allowed. "
            f"Allowed: {list(rules.autoplay_options)}",
        )


def validate_bonus_buy(rules: GameRules) -> None:
    """Raises FEATURE_DISABLED if bonus buy is switched off."""
    if not rules.enable_bonus_buy:
        raise GameError(ErrorCode.FEATURE_DISABLED, "Bonus buy is disabled.")
