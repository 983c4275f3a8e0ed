import json
import logging
import queue
import threading
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from tabulate import tabulate

from database.models import CareerStats, LocalMatch, MatchScorecard, User

logger = logging.getLogger(__name__)

# Engine state -> LocalMatch.status
_STATUS_FOR_STATE = {
    "AwaitingOpening": "live",
    "AwaitingBall": "live",
    "AwaitingBatsman": "live",
    "AwaitingBowler": "live",
    "InningsBreak": "live",
    "MatchComplete": "completed",
    "Abandoned": "abandoned",
}


def format_scorecard(summary: Dict[str, Any]) -> str:
    """Plain-text scorecard (tabulate grids) for a completed MatchSummary dict."""
    output = []
    names = summary["team_names"]
    output.append("=" * 80)
    output.append(f"{names['home']} vs {names['away']}")
    output.append(f"Match ID: {summary['match_id']}  ({summary['match_overs']} overs, {summary['match_format']})")
    output.append("=" * 80)

    ordinals = {1: "1ST", 2: "2ND"}
    for inn in summary["innings"]:
        label = ordinals.get(inn["number"], str(inn["number"]))
        output.append(f"\n{label} INNINGS - {inn['batting_team']} BATTING")
        output.append("-" * 50)
        output.append(_batting_table(inn))
        extras = inn["extras"]
        output.append(
            f"Extras: {extras['total']} (wd {extras['wides']}, nb {extras['no_balls']}, "
            f"b {extras['byes']}, lb {extras['leg_byes']})"
        )
        output.append(f"Total: {inn['total_runs']}/{inn['wickets_lost']} ({inn['overs']} overs)")
        if inn["did_not_bat"]:
            output.append(f"Did not bat: {', '.join(inn['did_not_bat'])}")

        output.append(f"\n{label} INNINGS - {inn['bowling_team']} BOWLING")
        output.append("-" * 50)
        output.append(_bowling_table(inn))

    output.append(f"\nMATCH RESULT: {summary['result']['description']}")
    mom = summary.get("man_of_the_match")
    if mom:
        output.append(f"MAN OF THE MATCH: {mom['player_name']} ({mom['performance_score']} pts)")
    return "\n".join(output)


def _dismissal_text(row: Dict[str, Any]) -> str:
    if not row["is_out"]:
        return "not out"
    method = row["out_method"]
    if method == "Caught":
        return f"c {row['fielder_name'] or '?'} b {row['dismissed_by_name']}"
    if method == "Stumped":
        return f"st {row['fielder_name'] or '?'} b {row['dismissed_by_name']}"
    if method == "Run Out":
        return f"run out ({row['fielder_name']})" if row["fielder_name"] else "run out"
    if method == "LBW":
        return f"lbw b {row['dismissed_by_name']}"
    if method == "Hit Wicket":
        return f"hit wicket b {row['dismissed_by_name']}"
    return f"b {row['dismissed_by_name']}"


def _batting_table(inn: Dict[str, Any]) -> str:
    headers = ['Player', 'Status', 'Runs', 'Balls', '4s', '6s', 'Dots', 'S/R']
    rows = [
        [r["player_name"], _dismissal_text(r), r["runs_scored"], r["balls_faced"],
         r["fours"], r["sixes"], r["dots"], f"{r['strike_rate']:.1f}"]
        for r in inn["batting"]
    ]
    if not rows:
        rows.append(["No batting data available", "-", "-", "-", "-", "-", "-", "-"])
    return tabulate(rows, headers=headers, tablefmt="grid")


def _bowling_table(inn: Dict[str, Any]) -> str:
    headers = ['Bowler', 'Overs', 'Maidens', 'Runs', 'Wickets', 'Economy', 'Wides', 'No Balls']
    rows = [
        [r["player_name"], r["overs"], r["maidens"], r["runs_conceded"], r["wickets_taken"],
         f"{r['economy']:.2f}", r["wides"], r["no_balls"]]
        for r in inn["bowling"] if r["legal_balls_bowled"] > 0 or r["wides"] or r["no_balls"]
    ]
    return tabulate(rows, headers=headers, tablefmt="grid")


class MatchArchiver:
    """Writes live snapshots and completed summaries into the database."""

    def __init__(self, db):
        self.db = db

    def publish_snapshot(self, match_id: str, snapshot: Dict[str, Any],
                         events: Optional[List[Dict[str, Any]]] = None) -> bool:
        row = self.db.session.get(LocalMatch, match_id)
        if row is None:
            logger.warning(f"[Archive] Snapshot for unknown match {match_id} dropped")
            return False
        if (row.snapshot_version or 0) > snapshot["version"]:
            logger.debug(f"[Archive] Stale snapshot v{snapshot['version']} for {match_id} ignored")
            return False

        row.snapshot_json = json.dumps(snapshot)
        row.snapshot_version = snapshot["version"]
        if events is not None:
            row.event_log = json.dumps(events)
        status = _STATUS_FOR_STATE.get(snapshot["state"])
        # completed is set by persist_summary together with the scorecards
        if status and status != "completed" and row.status not in ("completed", "abandoned"):
            row.status = status
        self.db.session.commit()
        logger.debug(f"[Archive] Snapshot v{snapshot['version']} stored for {match_id}")
        return True

    def persist_summary(self, summary: Dict[str, Any]) -> bool:
        match_id = summary["match_id"]
        row = self.db.session.get(LocalMatch, match_id)
        if row is None:
            logger.warning(f"[Archive] Summary for unknown match {match_id} dropped")
            return False
        if row.status == "completed" and row.completed_at is not None:
            logger.info(f"[Archive] Match {match_id} already archived, skipping")
            return False

        result = summary["result"]
        row.status = "completed"
        row.completed_at = datetime.utcnow()
        row.summary_json = json.dumps(summary)
        row.result_description = result["description"]
        row.winner_side = result["winner_side"]
        row.margin_type = result["margin_type"]
        row.margin_value = result["margin"]
        mom = summary.get("man_of_the_match")
        row.man_of_the_match = mom["player_name"] if mom else None

        for inn in summary["innings"]:
            prefix = f"{inn['batting_side']}_team"
            setattr(row, f"{prefix}_score", inn["total_runs"])
            setattr(row, f"{prefix}_wickets", inn["wickets_lost"])
            setattr(row, f"{prefix}_overs", inn["overs"])
            self._add_scorecards(match_id, inn)

        self._update_career_stats(summary)
        self.db.session.commit()
        logger.info(f"[Archive] Match {match_id} archived: {result['description']}")
        return True

    def _add_scorecards(self, match_id: str, inn: Dict[str, Any]) -> None:
        for r in inn["batting"]:
            self.db.session.add(MatchScorecard(
                match_id=match_id,
                innings_number=inn["number"],
                record_type="batting",
                side=inn["batting_side"],
                player_index=r["index"],
                player_name=r["player_name"],
                account_ref=r["account_ref"],
                position=r["batting_position"],
                runs=r["runs_scored"],
                balls=r["balls_faced"],
                fours=r["fours"],
                sixes=r["sixes"],
                dot_balls=r["dots"],
                is_out=r["is_out"],
                wicket_type=r["out_method"],
                wicket_taker_name=r["dismissed_by_name"],
                fielder_name=r["fielder_name"],
                strike_rate=r["strike_rate"],
            ))
        for r in inn["bowling"]:
            self.db.session.add(MatchScorecard(
                match_id=match_id,
                innings_number=inn["number"],
                record_type="bowling",
                side=inn["bowling_side"],
                player_index=r["index"],
                player_name=r["player_name"],
                account_ref=r["account_ref"],
                overs=r["overs"],
                balls_bowled=r["legal_balls_bowled"],
                runs_conceded=r["runs_conceded"],
                wickets=r["wickets_taken"],
                maidens=r["maidens"],
                wides=r["wides"],
                noballs=r["no_balls"],
            ))

    def _update_career_stats(self, summary: Dict[str, Any]) -> None:
        maidens = {}
        batted = set()
        for inn in summary["innings"]:
            for r in inn["bowling"]:
                if r["account_ref"]:
                    maidens[r["account_ref"]] = maidens.get(r["account_ref"], 0) + r["maidens"]
            for r in inn["batting"]:
                if r["account_ref"]:
                    batted.add(r["account_ref"])

        mom = summary.get("man_of_the_match") or {}
        for perf in summary["player_performances"]:
            ref = perf["account_ref"]
            if not ref:
                continue
            user = User.query.filter_by(stable_id=ref).first()
            if user is None:
                logger.warning(f"[Archive] No account for player ref {ref}, career stats skipped")
                continue

            stats = self.db.session.get(CareerStats, user.id)
            if stats is None:
                stats = CareerStats.blank(user.id)
                self.db.session.add(stats)

            stats.matches_played += 1
            if ref in batted:
                stats.innings_batted += 1
                stats.total_runs += perf["runs_scored"]
                stats.total_balls_faced += perf["balls_faced"]
                stats.total_fours += perf["fours"]
                stats.total_sixes += perf["sixes"]
                stats.highest_score = max(stats.highest_score, perf["runs_scored"])
                if perf["runs_scored"] >= 100:
                    stats.total_centuries += 1
                elif perf["runs_scored"] >= 50:
                    stats.total_fifties += 1
                if perf["was_dismissed"]:
                    stats.times_out += 1

            stats.total_balls_bowled += perf["legal_balls_bowled"]
            stats.total_runs_conceded += perf["runs_conceded"]
            stats.total_wickets += perf["wickets_taken"]
            stats.total_maidens += maidens.get(ref, 0)
            if perf["legal_balls_bowled"] and (
                perf["wickets_taken"] > stats.best_bowling_wickets
                or (perf["wickets_taken"] == stats.best_bowling_wickets
                    and perf["runs_conceded"] < stats.best_bowling_runs)
                or (stats.best_bowling_wickets == 0 and stats.best_bowling_runs == 0)
            ):
                stats.best_bowling_wickets = perf["wickets_taken"]
                stats.best_bowling_runs = perf["runs_conceded"]

            stats.catches += perf["catches"]
            stats.run_outs += perf["run_outs"]
            if mom.get("account_ref") == ref:
                stats.man_of_the_match_awards += 1
            logger.debug(f"[Archive] Career stats updated for {user.id}")


class ArchiveWorker:
    """
    Fire-and-forget job queue in front of the MatchArchiver.

    Scoring requests enqueue a job and return at once; a daemon thread runs
    the jobs inside an app context, retrying failures.  With ``run_async``
    off (tests) jobs run inline, with the same retry and error handling.
    """

    def __init__(self, app, archiver: MatchArchiver, max_retries: int = 3,
                 retry_delay: float = 1.0, run_async: bool = True):
        self.app = app
        self.archiver = archiver
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.run_async = run_async
        self._queue: "queue.Queue" = queue.Queue()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if not self.run_async or self._thread is not None:
            return
        self._thread = threading.Thread(target=self._loop, name="archive-worker", daemon=True)
        self._thread.start()
        self.app.logger.info("[Archive] Worker thread started")

    def stop(self, timeout: float = 5.0) -> None:
        if self._thread is None:
            return
        self._queue.put(None)
        self._thread.join(timeout)
        self._thread = None

    def join(self) -> None:
        """Block until every queued job has run."""
        self._queue.join()

    def submit(self, name: str, fn: Callable, *args) -> None:
        if self.run_async:
            self._queue.put((name, fn, args))
        else:
            self._run(name, fn, args)

    def publish_snapshot(self, match_id: str, snapshot: Dict[str, Any],
                         events: Optional[List[Dict[str, Any]]] = None) -> None:
        self.submit(f"snapshot:{match_id}", self.archiver.publish_snapshot, match_id, snapshot, events)

    def archive_summary(self, summary: Dict[str, Any]) -> None:
        self.submit(f"summary:{summary['match_id']}", self.archiver.persist_summary, summary)

    def _loop(self) -> None:
        while True:
            job = self._queue.get()
            try:
                if job is None:
                    return
                self._run(*job)
            finally:
                self._queue.task_done()

    def _run(self, name: str, fn: Callable, args) -> bool:
        attempts = self.max_retries + 1
        for attempt in range(1, attempts + 1):
            with self.app.app_context():
                try:
                    fn(*args)
                    return True
                except Exception as e:
                    self.archiver.db.session.rollback()
                    logger.error(f"[Archive] Job {name} failed (attempt {attempt}/{attempts}): {e}",
                                 exc_info=True)
            if attempt < attempts and self.retry_delay:
                time.sleep(self.retry_delay)
        logger.error(f"[Archive] Giving up on job {name}")
        return False
