import pytest
from starlette.testclient import TestClient

from records.tests.helpers import FlakyStore
from server.app import create_app
from server.settings import ScorerServerSettings
from shared.dal import Table
from shared.db import Database, SqliteRowStore


def _game(game_id: str, *players: tuple[str, int], created_at: str = "2025-03-01T18:00:00Z") -> dict:
    return {
        "id": game_id,
        "createdAt": created_at,
        "players": [{"id": f"slot-{i}", "name": name, "finalScore": score} for i, (name, score) in enumerate(players)],
    }


@pytest.fixture
def settings(tmp_path) -> ScorerServerSettings:
    return ScorerServerSettings(database_path=str(tmp_path / "scorer.db"), log_dir=None, allow_reset=True)


@pytest.fixture
def client(settings):
    with TestClient(create_app(settings=settings)) as test_client:
        yield test_client


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"ok": True, "status": "ok"}


class TestSyncAndHistory:
    def test_sync_then_history(self, client):
        response = client.post("/api/sync", json={"game": _game("g1", ("Ana", 30), ("Bo", 22))})

        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert body["gameId"] == "g1"
        assert body["winner"] == body["playerIds"][0]
        assert body["lineupId"] == f"lu-{body['playerIds'][0]}|{body['playerIds'][1]}"

        history = client.get("/api/history").json()
        assert history["ok"] is True
        assert [g["id"] for g in history["history"]] == ["g1"]
        assert [(r["name"], r["wins"], r["games"]) for r in history["leaderboard"]] == [("Ana", 1, 1), ("Bo", 0, 1)]
        assert history["leaderboard"][0]["avg"] == 30.0
        assert history["warnings"] == []

    def test_resubmitting_a_game_keeps_one_snapshot(self, client):
        client.post("/api/sync", json={"game": _game("g1", ("Ana", 10), ("Bo", 5))})
        client.post("/api/sync", json={"game": _game("g1", ("Ana", 12), ("Bo", 5))})

        history = client.get("/api/history").json()["history"]
        assert len(history) == 1
        assert history[0]["players"][0]["finalScore"] == 12

    @pytest.mark.parametrize(
        "body",
        [
            {},
            {"game": "nope"},
            {"game": {"id": "g1", "players": []}},
            {"game": _game("g1", ("Solo", 4))},
        ],
    )
    def test_invalid_game_is_400(self, client, body):
        response = client.post("/api/sync", json=body)
        assert response.status_code == 400
        assert response.json()["ok"] is False
        assert response.json()["error"]

    def test_malformed_json_is_400(self, client):
        response = client.post("/api/sync", content=b"{not json", headers={"Content-Type": "application/json"})
        assert response.status_code == 400
        assert response.json() == {"ok": False, "error": "Invalid JSON body"}


class TestStoreFailures:
    @pytest.fixture
    def flaky(self, tmp_path):
        db = Database(tmp_path / "flaky.db")
        db.connect()
        yield FlakyStore(SqliteRowStore(db))
        db.close()

    @pytest.fixture
    def flaky_client(self, settings, flaky):
        return TestClient(create_app(settings=settings, store=flaky))

    def test_step_failure_reports_step_and_applied_steps(self, flaky, flaky_client):
        flaky.fail("upsert", Table.PLAYERS)

        response = flaky_client.post("/api/sync", json={"game": _game("g1", ("Ana", 30), ("Bo", 20))})

        assert response.status_code == 500
        body = response.json()
        assert body["ok"] is False
        assert body["step"] == "aggregates"
        assert body["appliedSteps"] == ["identities", "snapshot"]

    def test_unavailable_store_on_read_is_503(self, flaky, flaky_client):
        flaky.fail("select", Table.GAMES)

        response = flaky_client.get("/api/history")

        assert response.status_code == 503
        assert response.json()["ok"] is False
        assert "Store unavailable" in response.json()["error"]

    def test_import_failure_names_step(self, flaky, flaky_client):
        flaky.fail("upsert", Table.GAMES)

        response = flaky_client.post("/api/migrate", json={"history": [_game("g1", ("Ana", 3))]})

        assert response.status_code == 500
        assert response.json()["step"] == "games"

    def test_unexpected_error_is_500_with_message(self, flaky, flaky_client):
        flaky.fail("select", Table.GAMES, KeyError("boom"))

        response = flaky_client.get("/api/history")

        assert response.status_code == 500
        assert response.json() == {"ok": False, "error": "Internal server error"}


class TestMigrateAndReset:
    def test_migrate_imports_cache(self, client):
        payload = {
            "players": [{"id": "p1", "displayName": "Ana", "gamesPlayed": 3, "wins": 2}],
            "history": [_game("g1", ("Ana", 5))],
        }

        response = client.post("/api/migrate", json=payload)

        assert response.status_code == 200
        assert response.json() == {"ok": True, "counts": {"players": 1, "games": 1, "lineups": 0}}
        leaderboard = client.get("/api/history").json()["leaderboard"]
        assert [(r["id"], r["games"], r["wins"]) for r in leaderboard] == [("p1", 3, 2)]

    def test_reset_keeps_players_by_default(self, client):
        client.post("/api/sync", json={"game": _game("g1", ("Ana", 5), ("Bo", 3))})

        response = client.post("/api/reset")

        assert response.json() == {"ok": True, "deleted": {"games": 1, "lineups": 1, "players": 0}}
        assert client.get("/api/history").json()["history"] == []

    def test_reset_can_drop_players(self, client):
        client.post("/api/sync", json={"game": _game("g1", ("Ana", 5), ("Bo", 3))})

        response = client.post("/api/reset", json={"keepPlayers": False})

        assert response.json()["deleted"]["players"] == 2

    def test_reset_disabled_is_403(self, tmp_path):
        settings = ScorerServerSettings(database_path=str(tmp_path / "locked.db"), log_dir=None, allow_reset=False)
        with TestClient(create_app(settings=settings)) as client:
            response = client.post("/api/reset")
        assert response.status_code == 403


class TestSearch:
    def test_search_by_canonical(self, client):
        client.post("/api/sync", json={"game": _game("g1", ("Ana María", 5), ("Anna", 4))})

        body = client.get("/api/players/search", params={"q": "ANA maria"}).json()

        assert body["ok"] is True
        assert body["canonical"] == "ana maria"
        assert [m["displayName"] for m in body["matches"]] == ["Ana María"]
        assert body["suggestions"] == []

    def test_search_suggests_close_names(self, client):
        client.post("/api/sync", json={"game": _game("g1", ("Anna", 4), ("Kit", 2))})

        body = client.get("/api/players/search", params={"q": "ana"}).json()

        assert body["matches"] == []
        assert [s["displayName"] for s in body["suggestions"]] == ["Anna"]


class TestScore:
    def test_scores_and_ranks_players(self, client):
        payload = {
            "players": [
                {"id": "a", "name": "Ana", "paintings": {"red": 1}},
                {
                    "id": "b",
                    "name": "Bo",
                    "paintings": {"red": 3, "blue": 2, "green": 1},
                    "eyelineCountForX5": 2,
                    "decorCount": 4,
                    "completeBoard": True,
                    "penalties": {"unplacedPaintings": 1},
                },
            ],
        }

        body = client.post("/api/score", json=payload).json()

        assert body["ok"] is True
        assert body["bonusColor"] == "blue"
        assert [p["name"] for p in body["players"]] == ["Bo", "Ana"]
        assert body["players"][0]["finalScore"] == 36
        assert body["players"][0]["breakdown"]["eyeline"]["points"] == 6
        assert body["winner"] == "Bo"

    def test_manual_tie_break_override_wins(self, client):
        payload = {
            "players": [
                {"name": "Amy", "paintings": {"red": 2}, "decorCount": 5},
                {"name": "Zed", "paintings": {"red": 2}, "decorCount": 5, "tieBreakWinner": True},
            ],
        }

        body = client.post("/api/score", json=payload).json()

        assert body["winner"] == "Zed"
        assert [p["name"] for p in body["players"]] == ["Amy", "Zed"]
        assert [p["tieBreakWinner"] for p in body["players"]] == [False, True]

    def test_first_flagged_in_entry_order_wins(self, client):
        payload = {
            "players": [
                {"name": "Zed", "paintings": {"red": 2}, "tieBreakWinner": True},
                {"name": "Amy", "paintings": {"red": 2}, "tieBreakWinner": True},
            ],
        }

        body = client.post("/api/score", json=payload).json()

        assert body["winner"] == "Zed"

    def test_custom_prestige_order(self, client):
        order = [
            {"color": "red", "multiplier": 5},
            {"color": "blue", "multiplier": 4},
            {"color": "yellow", "multiplier": 3},
            {"color": "green", "multiplier": 2},
        ]

        body = client.post("/api/score", json={"prestigeOrder": order, "players": [{"paintings": {"red": 2}}, {}]}).json()

        assert body["bonusColor"] == "red"
        assert body["players"][0]["finalScore"] == 10

    @pytest.mark.parametrize(
        "payload",
        [
            {"players": []},
            {"players": [{"name": "Solo", "paintings": {"red": 1}}]},
            {"players": [{"decorCount": 21}, {}]},
            {"prestigeOrder": [{"color": "red", "multiplier": 4}], "players": [{}, {}]},
        ],
    )
    def test_invalid_input_is_400(self, client, payload):
        response = client.post("/api/score", json=payload)
        assert response.status_code == 400
        assert response.json()["ok"] is False
