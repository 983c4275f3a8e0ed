"""Match scoring and spectating route registration."""

import json
import uuid

from flask import Response, jsonify, request, session
from flask_login import current_user, login_required
from werkzeug.security import check_password_hash, generate_password_hash


def _payload():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _text(data, key, default=""):
    value = data.get(key)
    if value is None:
        return default
    return str(value).strip()


def _player_index(data):
    value = data.get("player_index")
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def register_match_routes(
    app,
    *,
    db,
    Match,
    LocalMatch,
    MATCH_INSTANCES,
    MATCH_INSTANCES_LOCK,
    archive_worker,
    build_match_setup,
    build_roster,
    validate_match_overs,
    TossResult,
    resolve_manual_toss,
    resolve_random_toss,
    call_toss,
    decide_random_toss,
    format_scorecard,
    match_config,
    poll_interval,
):
    default_overs = int(match_config.get("default_overs", 20))
    max_overs = int(match_config.get("max_overs", 50))

    # ------------------------------------------------------------------ #
    # Helpers                                                              #
    # ------------------------------------------------------------------ #

    def _not_found(match_id):
        return jsonify({"error": "not_found", "message": f"Match {match_id} not found"}), 404

    def _forbidden(message="Only the match owner can do that"):
        return jsonify({"error": "forbidden", "message": message}), 403

    def _bad_request(message):
        return jsonify({"error": "invalid_request", "message": message}), 400

    def _is_owner(row):
        return current_user.is_authenticated and row.user_id == current_user.id

    def _can_spectate(row):
        if _is_owner(row):
            return True
        if not row.allow_spectators:
            return False
        if row.room_password_hash is None:
            return True
        return row.id in session.get("unlocked_rooms", [])

    def _attach(match):
        """Wire the controller to the archive worker."""
        def publish(snapshot):
            archive_worker.publish_snapshot(match.match_id, snapshot, match.export()["events"])

        def archive(summary):
            archive_worker.archive_summary(summary.to_dict())

        match.on_change(publish)
        match.on_complete(archive)
        return match

    def _get_match(row):
        """Live controller for ``row``, rebuilt from its event log after a restart."""
        with MATCH_INSTANCES_LOCK:
            match = MATCH_INSTANCES.get(row.id)
            if match is not None:
                return match
            if row.status != "live" or not row.toss_json:
                return None
            setup = build_match_setup(json.loads(row.roster_json), TossResult.from_dict(json.loads(row.toss_json)),
                                      match_id=row.id, max_overs=max_overs)
            events = json.loads(row.event_log) if row.event_log else []
            match = Match.replay(setup, events, poll_interval=poll_interval)
            MATCH_INSTANCES[row.id] = _attach(match)
            app.logger.info(f"[Match] Restored {row.id} from {len(events)} recorded events")

        # The last archive attempt gave up before the restart
        if match.summary is not None and not row.summary_json:
            app.logger.warning(f"[Match] {row.id} finished without an archived summary, archiving again")
            archive_worker.archive_summary(match.summary.to_dict())
        return match

    def _owned_live_match(match_id):
        """(match, error_response) for a mutation by the owner."""
        row = db.session.get(LocalMatch, match_id)
        if row is None:
            return None, _not_found(match_id)
        if not _is_owner(row):
            return None, _forbidden()
        match = _get_match(row)
        if match is None:
            return None, (jsonify({"error": "illegal_state_transition",
                                   "message": f"Match is {row.status}, not live"}), 409)
        return match, None

    def _start_match(row, toss):
        setup = build_match_setup(json.loads(row.roster_json), toss, match_id=row.id, max_overs=max_overs)
        match = _attach(Match(setup, poll_interval=poll_interval))
        with MATCH_INSTANCES_LOCK:
            MATCH_INSTANCES[row.id] = match
        row.toss_json = json.dumps(toss.to_dict())
        row.status = "live"
        db.session.commit()
        archive_worker.publish_snapshot(row.id, match.snapshot(), [])
        app.logger.info(
            f"[Toss] {row.id}: {setup.team_name(toss.winner_side)} won the toss ({toss.method}) "
            f"and chose to {toss.decision}"
        )
        return match

    # ------------------------------------------------------------------ #
    # Setup & toss                                                         #
    # ------------------------------------------------------------------ #

    @app.route("/match/setup", methods=["POST"])
    @login_required
    def match_setup():
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return _bad_request("Expected a JSON body")

        home_name = _text(data, "my_team_name") or "Home"
        away_name = _text(data, "opponent_team_name") or "Away"
        home = build_roster(data.get("my_team_players") or [], "home", home_name)
        away = build_roster(data.get("opponent_team_players") or [], "away", away_name)
        overs = validate_match_overs(data.get("match_overs", default_overs), max_overs)

        room_password = _text(data, "room_password") or None
        match_id = str(uuid.uuid4())
        roster_input = {
            "my_team_name": home_name,
            "opponent_team_name": away_name,
            "my_team_players": [p.to_dict() for p in home],
            "opponent_team_players": [p.to_dict() for p in away],
            "match_overs": overs,
            "match_format": _text(data, "match_format") or "T20",
        }
        row = LocalMatch(
            id=match_id,
            user_id=current_user.id,
            name=_text(data, "name") or f"{home_name} vs {away_name}",
            venue=_text(data, "venue") or None,
            home_team_name=home_name,
            away_team_name=away_name,
            match_format=roster_input["match_format"],
            overs_per_side=overs,
            roster_json=json.dumps(roster_input),
            allow_spectators=bool(data.get("allow_spectators", True)),
            room_password_hash=generate_password_hash(room_password) if room_password else None,
            status="toss",
        )
        db.session.add(row)
        db.session.commit()
        app.logger.info(f"[MatchSetup] {match_id}: {home_name} ({len(home)}) vs {away_name} ({len(away)}), {overs} overs")
        return jsonify({
            "match_id": match_id,
            "status": row.status,
            "match_overs": overs,
            "home_players": [p.to_dict() for p in home],
            "away_players": [p.to_dict() for p in away],
        }), 201

    @app.route("/match/<match_id>/toss", methods=["POST"])
    @login_required
    def match_toss(match_id):
        row = db.session.get(LocalMatch, match_id)
        if row is None:
            return _not_found(match_id)
        if not _is_owner(row):
            return _forbidden()
        if row.status != "toss":
            return jsonify({"error": "illegal_state_transition", "message": "The toss has already been decided"}), 409
        if row.toss_json:
            return jsonify({"error": "illegal_state_transition",
                            "message": "The coin has already been tossed; waiting for the decision"}), 409

        data = _payload()
        method = _text(data, "method", "manual").lower() or "manual"
        decision = data.get("decision")

        if method == "manual":
            toss = resolve_manual_toss(data.get("winner_side"), decision)
            match = _start_match(row, toss)
            return jsonify({"toss": toss.to_dict(), "snapshot": match.snapshot()})

        if method != "random":
            return _bad_request(f"Unknown toss method {method!r}")

        if decision:
            toss = resolve_random_toss(data.get("call"), decision, coin=data.get("coin"))
            match = _start_match(row, toss)
            return jsonify({"toss": toss.to_dict(), "snapshot": match.snapshot()})

        called = call_toss(data.get("call"), data.get("coin"))
        row.toss_json = json.dumps(dict(called, method="random"))
        db.session.commit()
        app.logger.info(
            f"[Toss] {match_id}: {called['calling_side']} called {called['call']}, "
            f"coin {called['coin']}, {called['winner_side']} to decide"
        )
        return jsonify({"toss": called, "awaiting_decision": True})

    @app.route("/match/<match_id>/toss/decision", methods=["POST"])
    @login_required
    def match_toss_decision(match_id):
        row = db.session.get(LocalMatch, match_id)
        if row is None:
            return _not_found(match_id)
        if not _is_owner(row):
            return _forbidden()
        if row.status != "toss" or not row.toss_json:
            return jsonify({"error": "illegal_state_transition",
                            "message": "No coin toss is waiting for a decision"}), 409

        toss = decide_random_toss(json.loads(row.toss_json), _payload().get("decision"))
        match = _start_match(row, toss)
        return jsonify({"toss": toss.to_dict(), "snapshot": match.snapshot()})

    # ------------------------------------------------------------------ #
    # Scoring                                                              #
    # ------------------------------------------------------------------ #

    @app.route("/match/<match_id>/opening", methods=["GET", "POST"])
    @login_required
    def match_opening(match_id):
        match, error = _owned_live_match(match_id)
        if error:
            return error
        if request.method == "GET":
            if match.state != "AwaitingOpening":
                return jsonify({"error": "illegal_state_transition",
                                "message": "Opening selection is not in progress"}), 409
            return jsonify({"opening": match.opening.to_dict(), "innings": match.current_innings.number})

        index = _player_index(_payload())
        if index is None:
            return _bad_request("player_index must be an integer")
        step = match.select_opening(index)
        return jsonify({"step": step, "snapshot": match.snapshot()})

    @app.route("/match/<match_id>/opening/back", methods=["POST"])
    @login_required
    def match_opening_back(match_id):
        match, error = _owned_live_match(match_id)
        if error:
            return error
        step = match.opening_back()
        return jsonify({"step": step, "opening": match.opening.to_dict()})

    @app.route("/match/<match_id>/ball", methods=["POST"])
    @login_required
    def match_ball(match_id):
        match, error = _owned_live_match(match_id)
        if error:
            return error
        snapshot = match.record_ball(request.get_json(silent=True))
        app.logger.info(f"[Ball] {match_id}: {snapshot['status_line']}")
        return jsonify({"snapshot": snapshot})

    @app.route("/match/<match_id>/batsmen", methods=["GET"])
    @login_required
    def match_batsmen(match_id):
        match, error = _owned_live_match(match_id)
        if error:
            return error
        return jsonify({"available": [p.to_dict() for p in match.available_batsmen()]})

    @app.route("/match/<match_id>/batsman", methods=["POST"])
    @login_required
    def match_batsman(match_id):
        match, error = _owned_live_match(match_id)
        if error:
            return error
        index = _player_index(_payload())
        if index is None:
            return _bad_request("player_index must be an integer")
        player = match.select_new_batsman(index)
        return jsonify({"batsman": player.to_dict(), "snapshot": match.snapshot()})

    @app.route("/match/<match_id>/bowlers", methods=["GET"])
    @login_required
    def match_bowlers(match_id):
        match, error = _owned_live_match(match_id)
        if error:
            return error
        eligible = match.eligible_bowlers()
        return jsonify({
            "eligible": [p.to_dict() for p in eligible],
            "rotation": match.bowler_manager.rotation_summary(match.current_innings),
        })

    @app.route("/match/<match_id>/bowler", methods=["POST"])
    @login_required
    def match_bowler(match_id):
        match, error = _owned_live_match(match_id)
        if error:
            return error
        index = _player_index(_payload())
        if index is None:
            return _bad_request("player_index must be an integer")
        player = match.select_bowler(index)
        return jsonify({"bowler": player.to_dict(), "snapshot": match.snapshot()})

    @app.route("/match/<match_id>/second-innings", methods=["POST"])
    @login_required
    def match_second_innings(match_id):
        match, error = _owned_live_match(match_id)
        if error:
            return error
        target = match.start_second_innings()
        return jsonify({"target": target, "snapshot": match.snapshot()})

    @app.route("/match/<match_id>/abandon", methods=["POST"])
    @login_required
    def match_abandon(match_id):
        row = db.session.get(LocalMatch, match_id)
        if row is None:
            return _not_found(match_id)
        if not _is_owner(row):
            return _forbidden()
        reason = _text(_payload(), "reason")
        if row.status == "toss":
            row.status = "abandoned"
            db.session.commit()
            return jsonify({"status": row.status})

        match = _get_match(row)
        if match is None:
            return jsonify({"error": "illegal_state_transition", "message": f"Match is already {row.status}"}), 409
        match.abandon(reason)
        app.logger.info(f"[Match] {match_id} abandoned by {current_user.id}")
        return jsonify({"status": "abandoned", "snapshot": match.snapshot()})

    # ------------------------------------------------------------------ #
    # Spectating                                                           #
    # ------------------------------------------------------------------ #

    @app.route("/match/<match_id>/unlock", methods=["POST"])
    def match_unlock(match_id):
        row = db.session.get(LocalMatch, match_id)
        if row is None:
            return _not_found(match_id)
        if not row.allow_spectators:
            return _forbidden("This match is not open to spectators")
        if row.room_password_hash is not None:
            password = _text(_payload(), "password")
            if not check_password_hash(row.room_password_hash, password):
                app.logger.warning(f"[Spectate] Wrong room password for {match_id} from {request.remote_addr}")
                return _forbidden("Wrong room password")
        unlocked = session.get("unlocked_rooms", [])
        if match_id not in unlocked:
            session["unlocked_rooms"] = unlocked + [match_id]
        return jsonify({"unlocked": True})

    @app.route("/match/<match_id>/snapshot", methods=["GET"])
    def match_snapshot(match_id):
        row = db.session.get(LocalMatch, match_id)
        if row is None:
            return _not_found(match_id)
        if not _can_spectate(row):
            return _forbidden("This match room is locked")

        with MATCH_INSTANCES_LOCK:
            match = MATCH_INSTANCES.get(match_id)
        if match is not None:
            return jsonify(match.snapshot())
        if row.snapshot_json:
            return jsonify(json.loads(row.snapshot_json))
        return jsonify({"match_id": match_id, "state": None, "status": row.status,
                        "status_line": "Waiting for the toss", "poll_interval_seconds": poll_interval})

    def _summary_for(row):
        with MATCH_INSTANCES_LOCK:
            match = MATCH_INSTANCES.get(row.id)
        if match is None and row.status == "live" and not row.summary_json:
            match = _get_match(row)
        if match is not None and match.summary is not None:
            return match.summary.to_dict()
        if row.summary_json:
            return json.loads(row.summary_json)
        return None

    @app.route("/match/<match_id>/summary", methods=["GET"])
    def match_summary(match_id):
        row = db.session.get(LocalMatch, match_id)
        if row is None:
            return _not_found(match_id)
        if not _can_spectate(row):
            return _forbidden("This match room is locked")
        summary = _summary_for(row)
        if summary is None:
            return jsonify({"error": "illegal_state_transition", "message": "The match has no result yet"}), 409
        return jsonify(summary)

    @app.route("/match/<match_id>/scorecard.txt", methods=["GET"])
    def match_scorecard_text(match_id):
        row = db.session.get(LocalMatch, match_id)
        if row is None:
            return _not_found(match_id)
        if not _can_spectate(row):
            return _forbidden("This match room is locked")
        summary = _summary_for(row)
        if summary is None:
            return jsonify({"error": "illegal_state_transition", "message": "The match has no result yet"}), 409
        return Response(format_scorecard(summary), mimetype="text/plain")

    @app.route("/my-matches", methods=["GET"])
    @login_required
    def my_matches():
        rows = (
            LocalMatch.query.filter_by(user_id=current_user.id)
            .order_by(LocalMatch.created_at.desc())
            .all()
        )
        return jsonify({"matches": [r.to_dict() for r in rows]})
