from datetime import datetime, timezone
from flask_login import UserMixin
from sqlalchemy.orm import relationship, synonym
from database import db
import uuid

class User(UserMixin, db.Model):
    """User account

    NOTE: id is the email string.  stable_id is the opaque account reference
    handed to the scoring engine as a player's account_ref.
    """
    __tablename__ = 'users'

    id = db.Column(db.String(120), primary_key=True)  # Email as ID
    email = synonym('id')
    stable_id = db.Column(db.String(36), unique=True, default=lambda: str(uuid.uuid4()))
    password_hash = db.Column(db.String(200))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    last_login = db.Column(db.DateTime)
    ip_address = db.Column(db.String(50))
    display_name = db.Column(db.String(100))

    # Relationships: deleting a User removes all owned data
    matches = relationship('LocalMatch', backref='owner', lazy=True, cascade="all, delete-orphan")
    career = relationship('CareerStats', backref='user', uselist=False, cascade="all, delete-orphan")


class LocalMatch(db.Model):
    """A scored match room: setup, live snapshot and final result"""
    __tablename__ = 'local_matches'

    id = db.Column(db.String(36), primary_key=True)  # UUID
    user_id = db.Column(db.String(120), db.ForeignKey('users.id'), nullable=False, index=True)

    name = db.Column(db.String(100))
    venue = db.Column(db.String(100))
    home_team_name = db.Column(db.String(100), nullable=False)
    away_team_name = db.Column(db.String(100), nullable=False)
    match_format = db.Column(db.String(20), default='T20')
    overs_per_side = db.Column(db.Integer, default=20)
    roster_json = db.Column(db.Text, nullable=False)   # RosterInput as submitted

    # Spectating
    allow_spectators = db.Column(db.Boolean, default=True, nullable=False)
    room_password_hash = db.Column(db.String(200), nullable=True)  # NULL = public room

    # Lifecycle: setup -> toss -> live -> completed | abandoned
    status = db.Column(db.String(20), default='setup', nullable=False, index=True)
    toss_json = db.Column(db.Text, nullable=True)
    event_log = db.Column(db.Text, nullable=True)      # accepted commands, for replay
    snapshot_json = db.Column(db.Text, nullable=True)
    snapshot_version = db.Column(db.Integer, default=0)
    summary_json = db.Column(db.Text, nullable=True)   # MatchSummary once completed

    # Result
    result_description = db.Column(db.String(200))     # e.g. "Strikers won by 4 wickets"
    winner_side = db.Column(db.String(10))             # 'home', 'away' or NULL
    margin_type = db.Column(db.String(10))             # 'runs', 'wickets' or NULL for a draw
    margin_value = db.Column(db.Integer)
    man_of_the_match = db.Column(db.String(100))

    home_team_score = db.Column(db.Integer)
    home_team_wickets = db.Column(db.Integer)
    home_team_overs = db.Column(db.String(10))
    away_team_score = db.Column(db.Integer)
    away_team_wickets = db.Column(db.Integer)
    away_team_overs = db.Column(db.String(10))

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    completed_at = db.Column(db.DateTime, nullable=True)

    scorecards = relationship('MatchScorecard', backref='match', cascade="all, delete-orphan")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "venue": self.venue,
            "home_team_name": self.home_team_name,
            "away_team_name": self.away_team_name,
            "match_format": self.match_format,
            "overs_per_side": self.overs_per_side,
            "allow_spectators": self.allow_spectators,
            "password_protected": self.room_password_hash is not None,
            "status": self.status,
            "result_description": self.result_description,
            "winner_side": self.winner_side,
            "margin_type": self.margin_type,
            "margin_value": self.margin_value,
            "man_of_the_match": self.man_of_the_match,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


class MatchScorecard(db.Model):
    """Detailed stats for a player in a specific innings"""
    __tablename__ = 'match_scorecards'

    id = db.Column(db.Integer, primary_key=True)
    match_id = db.Column(db.String(36), db.ForeignKey('local_matches.id'), nullable=False, index=True)
    innings_number = db.Column(db.Integer, default=1, nullable=False)
    record_type = db.Column(db.String(20), default="batting", nullable=False)
    side = db.Column(db.String(10), nullable=False)
    player_index = db.Column(db.Integer, nullable=False)
    player_name = db.Column(db.String(100), nullable=False)
    account_ref = db.Column(db.String(36), nullable=True, index=True)  # users.stable_id
    position = db.Column(db.Integer, nullable=True)

    # Batting
    runs = db.Column(db.Integer, default=0)
    balls = db.Column(db.Integer, default=0)
    fours = db.Column(db.Integer, default=0)
    sixes = db.Column(db.Integer, default=0)
    dot_balls = db.Column(db.Integer, default=0)
    is_out = db.Column(db.Boolean, default=False)
    wicket_type = db.Column(db.String(50), nullable=True)
    wicket_taker_name = db.Column(db.String(100), nullable=True)
    fielder_name = db.Column(db.String(100), nullable=True)
    strike_rate = db.Column(db.Float, default=0.0)

    # Bowling
    overs = db.Column(db.String(10), default='0.0')
    balls_bowled = db.Column(db.Integer, default=0)
    runs_conceded = db.Column(db.Integer, default=0)
    wickets = db.Column(db.Integer, default=0)
    maidens = db.Column(db.Integer, default=0)
    wides = db.Column(db.Integer, default=0)
    noballs = db.Column(db.Integer, default=0)

    __table_args__ = (
        db.Index('ix_scorecard_match_innings', 'match_id', 'innings_number'),
    )


class CareerStats(db.Model):
    """Aggregate career figures for a registered player (updated after every archived match)"""
    __tablename__ = 'career_stats'

    user_id = db.Column(db.String(120), db.ForeignKey('users.id'), primary_key=True)

    matches_played = db.Column(db.Integer, default=0)
    innings_batted = db.Column(db.Integer, default=0)
    total_runs = db.Column(db.Integer, default=0)
    total_balls_faced = db.Column(db.Integer, default=0)
    total_fours = db.Column(db.Integer, default=0)
    total_sixes = db.Column(db.Integer, default=0)
    total_fifties = db.Column(db.Integer, default=0)
    total_centuries = db.Column(db.Integer, default=0)
    highest_score = db.Column(db.Integer, default=0)
    times_out = db.Column(db.Integer, default=0)

    total_balls_bowled = db.Column(db.Integer, default=0)
    total_runs_conceded = db.Column(db.Integer, default=0)
    total_wickets = db.Column(db.Integer, default=0)
    total_maidens = db.Column(db.Integer, default=0)
    best_bowling_wickets = db.Column(db.Integer, default=0)
    best_bowling_runs = db.Column(db.Integer, default=0)

    catches = db.Column(db.Integer, default=0)
    run_outs = db.Column(db.Integer, default=0)
    man_of_the_match_awards = db.Column(db.Integer, default=0)

    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @classmethod
    def blank(cls, user_id):
        """Fresh row with every counter at zero (column defaults only apply on flush)."""
        counters = {
            c.name: 0 for c in cls.__table__.columns
            if isinstance(c.type, db.Integer) and c.name != "user_id"
        }
        return cls(user_id=user_id, **counters)

    @property
    def batting_average(self):
        if not self.times_out:
            return None
        return round(self.total_runs / self.times_out, 2)

    @property
    def strike_rate(self):
        if not self.total_balls_faced:
            return 0.0
        return round(self.total_runs * 100.0 / self.total_balls_faced, 2)

    @property
    def economy(self):
        if not self.total_balls_bowled:
            return 0.0
        return round(self.total_runs_conceded * 6 / self.total_balls_bowled, 2)

    def to_dict(self):
        return {
            "matches_played": self.matches_played,
            "innings_batted": self.innings_batted,
            "total_runs": self.total_runs,
            "total_balls_faced": self.total_balls_faced,
            "total_fours": self.total_fours,
            "total_sixes": self.total_sixes,
            "total_fifties": self.total_fifties,
            "total_centuries": self.total_centuries,
            "highest_score": self.highest_score,
            "times_out": self.times_out,
            "batting_average": self.batting_average,
            "strike_rate": self.strike_rate,
            "total_balls_bowled": self.total_balls_bowled,
            "total_runs_conceded": self.total_runs_conceded,
            "total_wickets": self.total_wickets,
            "total_maidens": self.total_maidens,
            "best_bowling": f"{self.best_bowling_wickets}/{self.best_bowling_runs}",
            "economy": self.economy,
            "catches": self.catches,
            "run_outs": self.run_outs,
            "man_of_the_match_awards": self.man_of_the_match_awards,
        }


class FailedLoginAttempt(db.Model):
    """Track failed login attempts for security monitoring"""
    __tablename__ = 'failed_login_attempts'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), nullable=False, index=True)
    ip_address = db.Column(db.String(50), nullable=True)
    user_agent = db.Column(db.String(300), nullable=True)
    timestamp = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc), nullable=False, index=True)
