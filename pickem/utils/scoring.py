"""
Scoring for the confidence pick'em application

A correct pick earns its confidence value, anything else earns nothing.
Weekly totals are always computed from scratch from picks and games, see
``pickem.services.score_service`` for persisting them.

These functions only read attributes (``status``, ``home_team``,
``home_score``, ``picked_team``, ``confidence_points``...), so they accept
model instances as well as any simple object carrying those fields.
"""


def get_winning_team(game):
    """
    Determine the winning team code for a game.

    Returns None if the game is not final, a score is missing, or it is a tie.
    """
    if game.status != "final":
        return None

    if game.home_score is None or game.away_score is None:
        return None

    if game.home_score > game.away_score:
        return game.home_team
    if game.away_score > game.home_score:
        return game.away_team

    # A tie has no winner
    return None


def is_pick_correct(pick, game):
    """
    Check if a pick is correct.

    Returns True/False once the game has a winner, None otherwise.
    """
    winner = get_winning_team(game)
    if winner is None:
        return None

    return pick.picked_team == winner


def calculate_pick_points(pick, game):
    """
    Calculate points for a single pick.

    Returns:
        The confidence value for a correct pick, 0 for an incorrect one,
        None for an incomplete pick (confidence 0) or a game without a winner
    """
    if pick.confidence_points == 0:
        return None

    correct = is_pick_correct(pick, game)
    if correct is None:
        return None

    return pick.confidence_points if correct else 0


def compute_weekly_score(picks, games):
    """
    Calculate a user's weekly score.

    ``total_picks`` counts every pick with a confidence value assigned, even
    on games that have not finished yet.

    Args:
        picks: The user's picks (only those whose game is in ``games`` count)
        games: The week's games

    Returns:
        dict: {"points", "correct_picks", "total_picks"}
    """
    points = 0
    correct_picks = 0
    total_picks = 0

    games_by_id = {game.id: game for game in games}

    for pick in picks:
        game = games_by_id.get(pick.game_id)
        if game is None:
            continue

        # Incomplete picks don't count at all
        if pick.confidence_points == 0:
            continue

        total_picks += 1

        pick_points = calculate_pick_points(pick, game)
        if pick_points is not None:
            points += pick_points
            if pick_points > 0:
                correct_picks += 1

    return {
        "points": points,
        "correct_picks": correct_picks,
        "total_picks": total_picks,
    }
