"""Authentication and account route registration."""

from datetime import datetime

from flask import jsonify, request, session
from flask_login import current_user, login_required, login_user, logout_user


def _payload():
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def _field(data, key):
    value = data.get(key)
    return "" if value is None else str(value)


def register_auth_routes(
    app,
    *,
    db,
    register_user,
    verify_user,
    validate_password_policy,
    is_valid_email,
    DBUser,
    FailedLoginAttempt,
):
    @app.route("/register", methods=["POST"])
    def register():
        data = _payload()
        display_name = _field(data, "display_name").strip()
        email = _field(data, "email").strip().lower()
        password = _field(data, "password")
        confirm_password = _field(data, "confirm_password") if "confirm_password" in data else password

        if not is_valid_email(email):
            return jsonify({"error": "invalid_email", "message": "Invalid email"}), 400
        if len(display_name) > 50:
            return jsonify({"error": "invalid_display_name",
                            "message": "Display name must be 50 characters or fewer"}), 400
        if password != confirm_password:
            return jsonify({"error": "password_mismatch", "message": "Passwords do not match"}), 400
        ok, policy_error = validate_password_policy(password)
        if not ok:
            return jsonify({"error": "weak_password", "message": policy_error}), 400

        if not register_user(email, password, display_name=display_name or None):
            return jsonify({"error": "registration_failed",
                            "message": "Registration failed. Please try a different email."}), 409
        app.logger.info(f"[Auth] Registered {email}")
        return jsonify({"registered": email}), 201

    @app.route("/login", methods=["POST"])
    def login():
        data = _payload()
        email = _field(data, "email").strip().lower()
        password = _field(data, "password")
        if not email or not password:
            return jsonify({"error": "missing_credentials",
                            "message": "Email and password required"}), 400

        if verify_user(email, password):
            user = db.session.get(DBUser, email)
            user.last_login = datetime.utcnow()
            user.ip_address = request.remote_addr
            db.session.commit()
            login_user(user, remember=True)
            session.permanent = True
            app.logger.info(f"Successful login for {email}")
            return jsonify({"user": email, "display_name": user.display_name,
                            "account_ref": user.stable_id})

        try:
            failed = FailedLoginAttempt(
                email=email,
                ip_address=request.remote_addr,
                user_agent=request.user_agent.string[:300] if request.user_agent.string else None,
            )
            db.session.add(failed)
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            app.logger.error(f"[Auth] Failed-login tracking error: {e}")
        return jsonify({"error": "invalid_credentials", "message": "Invalid email or password"}), 401

    @app.route("/me", methods=["GET"])
    @login_required
    def me():
        return jsonify({
            "user": current_user.id,
            "display_name": current_user.display_name,
            "account_ref": current_user.stable_id,
        })

    @app.route("/logout", methods=["POST"])
    @login_required
    def logout():
        app.logger.info(f"Logout for {current_user.id}")
        session.pop("unlocked_rooms", None)
        logout_user()
        return jsonify({"logged_out": True})
