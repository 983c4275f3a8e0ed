"""
Pytest fixtures for CreaseLive testing.
Provides reusable test fixtures for config, app, clients, users and matches.
"""

import os
import sys
from datetime import datetime, timezone

import pytest
import yaml
from werkzeug.security import generate_password_hash

# Add project root to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from app import MATCH_INSTANCES, create_app, db
from database.models import User
from engine.match import Match
from engine.toss import build_match_setup, resolve_manual_toss


# ==================== Application Fixtures ====================

@pytest.fixture(scope="function")
def test_config(tmp_path):
    """Create a temporary config file for testing."""
    config_path = tmp_path / "config.yaml"
    config_data = {
        "app": {
            "secret_key": "test-secret-key-for-testing-only-12345",
        },
        "database": {
            "uri": f"sqlite:///{(tmp_path / 'pytest_app.db').as_posix()}",
        },
        "logging": {
            "level": "DEBUG",
            "dir": str(tmp_path / "logs"),
            "max_bytes": 1048576,
            "backup_count": 1,
        },
        "match": {
            "default_overs": 20,
            "max_overs": 50,
            "instance_max_age_seconds": 3600,
        },
        "persistence": {
            "async": False,  # Archive jobs run inline so tests can assert on the DB
            "max_retries": 1,
            "retry_delay_seconds": 0,
        },
        "spectators": {
            "poll_interval_seconds": 3,
        },
    }

    config_path.write_text(yaml.safe_dump(config_data, sort_keys=False), encoding="utf-8")
    return config_path


@pytest.fixture(scope="function")
def app(test_config, monkeypatch):
    """Create and configure a test Flask application instance.

    No app context is left pushed while tests run: every test-client request
    gets its own context (and its own flask_login user cache on ``g``), so
    tests that touch the database wrap that code in ``app.app_context()``.
    """
    monkeypatch.setenv("CREASELIVE_CONFIG_PATH", str(test_config))
    monkeypatch.delenv("CREASELIVE_DB_URI", raising=False)
    MATCH_INSTANCES.clear()

    app = create_app()
    app.config.update({
        "TESTING": True,
        "LOGIN_DISABLED": False,
    })

    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()
    MATCH_INSTANCES.clear()


@pytest.fixture(scope="function")
def client(app):
    """Create a test client for the app."""
    return app.test_client()


# ==================== User Fixtures ====================

def _make_user(app, email, password, display_name):
    """Create a user and hand back a detached, fully loaded instance."""
    with app.app_context():
        user = User(
            id=email,
            password_hash=generate_password_hash(password),
            display_name=display_name,
            created_at=datetime.now(timezone.utc),
        )
        db.session.add(user)
        db.session.commit()
        db.session.refresh(user)
        db.session.expunge(user)
    return user


@pytest.fixture(scope="function")
def regular_user(app):
    """The scorer who owns matches."""
    return _make_user(app, "testuser@example.com", "Password123!", "Test User")


@pytest.fixture(scope="function")
def other_user(app):
    """A second account, used as spectator / non-owner."""
    return _make_user(app, "other@example.com", "Password456!", "Other User")


# ==================== Authentication Helpers ====================

def _login(client, email, password):
    response = client.post("/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.get_json()
    return client


@pytest.fixture(scope="function")
def authenticated_client(client, regular_user):
    """Return a client logged in as the match owner."""
    return _login(client, regular_user.email, "Password123!")


@pytest.fixture(scope="function")
def other_client(app, other_user):
    """A separate client logged in as another user."""
    return _login(app.test_client(), other_user.email, "Password456!")


# ==================== Match Fixtures ====================

HOME_PLAYERS = [f"Home {i}" for i in range(1, 12)]
AWAY_PLAYERS = [f"Away {i}" for i in range(1, 12)]


@pytest.fixture(scope="function")
def roster_input():
    return {
        "my_team_name": "Strikers",
        "opponent_team_name": "Chargers",
        "my_team_players": list(HOME_PLAYERS),
        "opponent_team_players": list(AWAY_PLAYERS),
        "match_overs": 20,
    }


def make_match(roster_input, winner_side="home", decision="bat", match_id="m-1"):
    """Match controller with a manual toss, awaiting opening selection."""
    setup = build_match_setup(roster_input, resolve_manual_toss(winner_side, decision), match_id=match_id)
    return Match(setup)


def start_innings(match, striker=0, non_striker=1, bowler=0):
    match.select_opening(striker)
    match.select_opening(non_striker)
    match.select_opening(bowler)


def bowl(match, n, **outcome):
    for _ in range(n):
        match.record_ball(dict(outcome))


def assert_innings_invariants(inn):
    """Counting and figure invariants that must hold between any two balls."""
    assert 0 <= inn.balls_in_current_over < 6
    assert inn.completed_overs <= inn.match_overs
    assert inn.wickets_lost <= inn.max_wickets
    if inn.completed_overs > 0 and inn.current_bowler is not None:
        assert inn.current_bowler != inn.previous_over_bowler
    for idx in inn.batters_at_crease():
        assert not inn.batter_figures[idx].is_out
    batted = sum(f.runs_scored for f in inn.batter_figures.values())
    assert inn.total_runs == batted + inn.extras.total


@pytest.fixture(scope="function")
def live_match(roster_input):
    """Home bats first; openers Home 1 / Home 2, Away 1 opens the bowling."""
    match = make_match(roster_input)
    start_innings(match)
    return match


# ==================== Pytest Configuration ====================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
