from functools import wraps

from flask import current_app, jsonify, request
from flask_login import current_user, login_required

from pickem import limiter
from pickem.errors import ValidationError
from pickem.models import Game, Pick, Score
from pickem.routes.api import bp
from pickem.services.confidence_allocation import (
    CREATE,
    UPDATE,
    ConfidenceAllocationEngine,
)
from pickem.services.score_service import ScoreService
from pickem.utils.cache_utils import cached_route
from pickem.utils.data_sync import GameSync


def add_security_headers(f):
    """Add security headers to API responses"""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        response = current_app.make_response(f(*args, **kwargs))
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-XSS-Protection"] = "1; mode=block"
        response.headers["Cache-Control"] = (
            "no-store, no-cache, must-revalidate, max-age=0"
        )
        return response

    return decorated_function


def admin_required(f):
    """Restrict a route to admin users"""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_user.is_admin:
            return jsonify({"success": False, "error": "Admin access required"}), 403
        return f(*args, **kwargs)

    return decorated_function


def pick_submit_limit():
    return current_app.config.get("PICK_SUBMIT_RATE_LIMIT", "60 per minute")


def _get_json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _parse_int(value, name):
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer")
    if isinstance(value, int):
        return value
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be an integer")
    try:
        return int(value.strip())
    except ValueError:
        raise ValidationError(f"{name} must be an integer") from None


def _parse_pick_payload():
    """Read ``gameId``, ``pickedTeam`` and the confidence value from the body"""
    data = _get_json_body()

    game_id = data.get("gameId")
    if game_id is None or str(game_id).strip() == "":
        raise ValidationError("gameId is required")

    picked_team = data.get("pickedTeam")
    if not isinstance(picked_team, str) or not picked_team.strip():
        raise ValidationError("pickedTeam is required")

    # confidencePoints is accepted for older clients
    confidence = data.get("confidenceValue", data.get("confidencePoints"))
    if confidence is None:
        raise ValidationError("confidenceValue is required")

    return game_id, picked_team, _parse_int(confidence, "confidenceValue")


def _parse_season_week(source):
    season = source.get("season")
    week = source.get("week")

    if season is None or str(season).strip() == "":
        raise ValidationError("season is required")
    if week is None:
        raise ValidationError("week is required")

    week = _parse_int(week, "week")
    if not 1 <= week <= 18:
        raise ValidationError("week must be between 1 and 18")

    return str(season).strip(), week


def _submit(mode):
    game_id, picked_team, confidence = _parse_pick_payload()

    submission = ConfidenceAllocationEngine().submit_pick(
        current_user.id, game_id, picked_team, confidence, mode=mode
    )

    response = {
        "success": True,
        "data": submission.pick.to_dict(),
        "message": "Pick created" if submission.created else "Pick updated",
        "demoted_pick": None,
    }
    if submission.demoted_pick is not None:
        response["demoted_pick"] = submission.demoted_pick.to_dict()
        response["message"] += (
            f"; confidence {confidence} moved from game "
            f"{submission.demoted_pick.game_id}"
        )

    return jsonify(response)


@bp.route("/picks", methods=["POST"])
@login_required
@limiter.limit(pick_submit_limit)
@add_security_headers
def create_pick():
    """Create the caller's pick for a game"""
    return _submit(CREATE)


@bp.route("/picks", methods=["PUT"])
@login_required
@limiter.limit(pick_submit_limit)
@add_security_headers
def update_pick():
    """Update the caller's existing pick for a game"""
    return _submit(UPDATE)


@bp.route("/picks", methods=["GET"])
@login_required
@add_security_headers
def user_picks():
    """Get the caller's picks for a week"""
    season, week = _parse_season_week(request.args)
    picks = Pick.get_user_week_picks(current_user.id, season, week)
    return jsonify({"success": True, "data": [pick.to_dict() for pick in picks]})


@bp.route("/games", methods=["GET"])
@login_required
def week_games():
    """Get a week's games with their lock state"""
    season, week = _parse_season_week(request.args)
    games = Game.get_games_for_week(season, week)
    return jsonify({"success": True, "data": [game.to_dict() for game in games]})


@bp.route("/scores", methods=["GET"])
@cached_route(timeout=300, key_prefix="Score_week")  # Cleared on recompute
def week_scores():
    """Get a week's ranked scores"""
    season, week = _parse_season_week(request.args)
    scores = Score.get_week_scores(season, week)

    rows = []
    for rank, score in enumerate(scores, start=1):
        row = score.to_dict()
        row["rank"] = rank
        row["user"] = score.user.to_dict() if score.user else None
        rows.append(row)

    return {"success": True, "data": rows}


@bp.route("/scores/recompute", methods=["POST"])
@login_required
@admin_required
def recompute_scores():
    """Recompute a week's scores for every affected user"""
    season, week = _parse_season_week(_get_json_body())
    summary = ScoreService().recalculate_week(season, week)
    return jsonify({"success": True, "data": summary})


@bp.route("/games/sync", methods=["POST"])
@login_required
@admin_required
def sync_games():
    """Upsert normalized game records and recompute affected weeks"""
    records = _get_json_body().get("games")
    if not isinstance(records, list):
        raise ValidationError("games must be a list of game records")

    summary = GameSync().upsert_games(records)
    return jsonify({"success": True, "data": summary})


@bp.route("/admin/scheduler", methods=["GET"])
@login_required
@admin_required
def scheduler_status():
    """Get background reconcile status"""
    from pickem.services.scheduler_service import scheduler_service

    return jsonify({"success": True, "data": scheduler_service.get_status()})
