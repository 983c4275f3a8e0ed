"""Career statistics route registration."""

from flask import jsonify, request
from flask_login import current_user, login_required


def register_stats_routes(
    app,
    *,
    db,
    DBUser,
    CareerStats,
    MatchScorecard,
):
    def _career_payload(user):
        stats = db.session.get(CareerStats, user.id) or CareerStats.blank(user.id)
        return {
            "display_name": user.display_name,
            "account_ref": user.stable_id,
            "career": stats.to_dict(),
        }

    @app.route("/stats/career", methods=["GET"])
    @login_required
    def my_career_stats():
        app.logger.info(f"Fetching career stats for user {current_user.id}")
        return jsonify(_career_payload(current_user))

    @app.route("/stats/career/<account_ref>", methods=["GET"])
    @login_required
    def career_stats(account_ref):
        user = DBUser.query.filter_by(stable_id=account_ref).first()
        if user is None:
            return jsonify({"error": "not_found", "message": "No such player account"}), 404
        return jsonify(_career_payload(user))

    @app.route("/stats/career/<account_ref>/innings", methods=["GET"])
    @login_required
    def career_innings(account_ref):
        """Per-innings scorecard rows for an account, newest first."""
        record_type = request.args.get("type", "batting")
        if record_type not in ("batting", "bowling"):
            return jsonify({"error": "invalid_request", "message": "type must be batting or bowling"}), 400
        limit = min(request.args.get("limit", 50, type=int) or 50, 200)
        rows = (
            MatchScorecard.query.filter_by(account_ref=account_ref, record_type=record_type)
            .order_by(MatchScorecard.id.desc())
            .limit(limit)
            .all()
        )
        if record_type == "batting":
            items = [{
                "match_id": r.match_id,
                "innings_number": r.innings_number,
                "runs": r.runs,
                "balls": r.balls,
                "fours": r.fours,
                "sixes": r.sixes,
                "is_out": r.is_out,
                "wicket_type": r.wicket_type,
                "strike_rate": r.strike_rate,
            } for r in rows]
        else:
            items = [{
                "match_id": r.match_id,
                "innings_number": r.innings_number,
                "overs": r.overs,
                "maidens": r.maidens,
                "runs_conceded": r.runs_conceded,
                "wickets": r.wickets,
            } for r in rows]
        return jsonify({"account_ref": account_ref, "type": record_type, "innings": items})
