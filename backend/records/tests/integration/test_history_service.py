import pytest

from records.stats import HistoryService
from records.tests.helpers import at, make_scored_game
from shared.dal import SchemaMismatchError, StoreUnavailableError, Table


async def _save(store, *games):
    await store.upsert(Table.GAMES, [game.to_row() for game in games])


class TestHistoryService:
    async def test_history_is_newest_first(self, store):
        await _save(
            store,
            make_scored_game("old", {"Ana": 1}, created_at=at(1)),
            make_scored_game("new", {"Ana": 2}, created_at=at(30)),
            make_scored_game("mid", {"Ana": 3}, created_at=at(10)),
        )

        view = await HistoryService(store).load()

        assert [game.id for game in view.history] == ["new", "mid", "old"]
        assert view.warnings == ()

    async def test_leaderboard_from_history_without_identities(self, store):
        await _save(store, make_scored_game("g1", {"Ana": 2, "Bo": 1}))

        view = await HistoryService(store).load()

        assert [(row.name, row.wins) for row in view.leaderboard] == [("Ana", 1), ("Bo", 0)]

    async def test_malformed_rows_are_skipped(self, store):
        await _save(store, make_scored_game("g1", {"Ana": 2}))
        await store.upsert(Table.GAMES, [{"id": "broken", "created_at": "not a date", "players": "?"}])
        await store.upsert(Table.PLAYERS, [{"id": "p1", "games_played": "lots"}])

        view = await HistoryService(store).load()

        assert [game.id for game in view.history] == ["g1"]
        assert [row.name for row in view.leaderboard] == ["Ana"]

    async def test_missing_players_table_degrades_to_history(self, flaky):
        await _save(flaky.inner, make_scored_game("g1", {"Ana": 2}))
        flaky.fail("select", Table.PLAYERS, SchemaMismatchError("no such table: players", table=Table.PLAYERS))

        view = await HistoryService(flaky).load()

        assert [row.name for row in view.leaderboard] == ["Ana"]
        assert len(view.warnings) == 1
        assert "leaderboard computed from history" in view.warnings[0]

    async def test_missing_games_table_degrades_to_empty_history(self, flaky):
        flaky.fail("select", Table.GAMES, SchemaMismatchError("no such table: games", table=Table.GAMES))

        view = await HistoryService(flaky).load()

        assert view.history == ()
        assert len(view.warnings) == 1

    async def test_unavailable_store_propagates(self, flaky):
        flaky.fail("select", Table.GAMES)

        with pytest.raises(StoreUnavailableError):
            await HistoryService(flaky).load()

    async def test_dropped_players_table_degrades(self, db, store):
        await _save(store, make_scored_game("g1", {"Ana": 2}))
        db.connection.execute("DROP TABLE players")

        view = await HistoryService(store).load()

        assert [row.name for row in view.leaderboard] == ["Ana"]
        assert view.warnings
