"""Tests for the full-text search index."""

from __future__ import annotations

import pytest
import pytest_asyncio

from ccrecall.models.transcript import ParsedMessage
from ccrecall.store.errors import SearchQueryError
from ccrecall.store.search import escape_query


@pytest_asyncio.fixture
async def corpus(store):
    """Two sessions in different projects with three searchable messages."""
    messages = [
        ("m1", "sess-a", "Fix the authentication bug in the login flow", 1_000),
        ("m2", "sess-a", "I will investigate the authentication issue and fix the login", 2_000),
        ("m3", "sess-b", "Add a new feature for user profiles", 3_000),
    ]
    async with store.transaction():
        await store.upsert_session("sess-a", project_path="/home/user/alpha", timestamp=1_000)
        await store.upsert_session("sess-b", project_path="/home/user/beta", timestamp=3_000)
        for uuid, session_id, text, ts in messages:
            await store.insert_message(
                ParsedMessage(
                    uuid=uuid, session_id=session_id, type="user", content_text=text, timestamp=ts
                )
            )
    return store


class TestEscapeQuery:
    @pytest.mark.parametrize(
        ("query", "expected"),
        [
            ("authentication", "authentication"),
            ("auth*", "auth*"),
            ('"authentication bug"', '"authentication bug"'),
            ("login AND bug", "login AND bug"),
            ("login NOT bug", "login NOT bug"),
            ("Downloads/transcripts", '"Downloads/transcripts"'),
            ("meeting-notes.txt", '"meeting-notes.txt"'),
            ("Downloads/*", '"Downloads/"*'),
            ('say"hi', '"say""hi"'),
            ("  spaced   out  ", "spaced out"),
        ],
    )
    def test_escaping(self, query: str, expected: str) -> None:
        assert escape_query(query) == expected


class TestSearch:
    async def test_term_matches_both_session_a_messages(self, corpus):
        results = await corpus.search("authentication")
        assert len(results) == 2
        assert {r.session_id for r in results} == {"sess-a"}
        assert {r.uuid for r in results} == {"m1", "m2"}

    async def test_project_filter_excludes_other_projects(self, corpus):
        assert await corpus.search("authentication", project="beta") == []
        assert len(await corpus.search("authentication", project="alpha")) == 2

    async def test_prefix_query(self, corpus):
        prefix = await corpus.search("auth*")
        exact = await corpus.search("authentication")
        assert {r.uuid for r in prefix} == {r.uuid for r in exact}

    async def test_phrase_query(self, corpus):
        results = await corpus.search('"authentication bug"')
        assert [r.uuid for r in results] == ["m1"]

    async def test_snippet_markers(self, corpus):
        (result,) = await corpus.search("profiles")
        assert ">>>profiles<<<" in result.snippet
        assert result.project_path == "/home/user/beta"
        assert result.content_text == "Add a new feature for user profiles"

    async def test_ranked_best_first(self, corpus):
        results = await corpus.search("fix OR login")
        ranks = [r.rank for r in results]
        assert ranks == sorted(ranks)

    async def test_limit(self, corpus):
        assert len(await corpus.search("authentication", limit=1)) == 1

    async def test_path_like_tokens(self, store):
        async with store.transaction():
            await store.upsert_session("s", project_path="/p", timestamp=1)
            await store.insert_message(
                ParsedMessage(
                    uuid="p1",
                    session_id="s",
                    type="user",
                    content_text="Open ~/Downloads/transcripts/meeting-notes.txt please",
                    timestamp=1,
                )
            )
        assert len(await store.search("Downloads/transcripts")) == 1
        assert len(await store.search("meeting-notes.txt")) == 1

    async def test_messages_without_text_not_indexed(self, store):
        async with store.transaction():
            await store.upsert_session("s", project_path="/p", timestamp=1)
            await store.insert_message(
                ParsedMessage(uuid="x", session_id="s", type="assistant", timestamp=1)
            )
        assert (await store.get_stats()).messages == 1
        assert await store.search("anything") == []

    async def test_empty_query_raises(self, corpus):
        with pytest.raises(SearchQueryError):
            await corpus.search("   ")

    async def test_syntax_error_raises(self, corpus):
        with pytest.raises(SearchQueryError):
            await corpus.search("authentication AND")

    async def test_rebuild_restores_index(self, corpus):
        conn = corpus._conn_or_raise()
        await conn.execute("INSERT INTO messages_fts(messages_fts) VALUES ('delete-all')")
        await conn.commit()
        assert await corpus.search("authentication") == []

        await corpus.rebuild_index()
        assert len(await corpus.search("authentication")) == 2
