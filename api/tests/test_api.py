"""HTTP surface: routing, auth, error envelopes and rate limiting."""

import asyncio

from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy import select

from conftest import auth, make_account, make_article, make_edit
from farpedia.database import get_db
from farpedia.errors import Unavailable
from farpedia.main import app
from farpedia.models import Account, UserPoints


class TestHealth:
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    async def test_metrics(self, client):
        response = await client.get("/metrics")
        assert response.status_code == 200
        assert "farpedia_edit_approvals" in response.text


class TestAuth:
    async def test_missing_token_is_401(self, client):
        response = await client.get("/api/v1/auth/me")

        assert response.status_code == 401
        assert response.json()["error"] == "invalid_token"

    async def test_rejected_token_is_401(self, client):
        response = await client.get("/api/v1/auth/me", headers=auth("bad-token"))
        assert response.status_code == 401

    async def test_me_upserts_account(self, client, session_factory):
        response = await client.get("/api/v1/auth/me", headers=auth("200"))

        assert response.status_code == 200
        body = response.json()
        assert body["fid"] == "200"
        assert body["account"]["username"] == "user200"
        assert body["total_points"] == 0
        async with session_factory() as session:
            account = (await session.execute(select(Account).where(Account.fid == "200"))).scalar_one()
        assert account.username == "user200"


class TestArticleEndpoints:
    async def test_create_article_then_approve_initial_edit(self, client):
        payload = {
            "slug": "acme-token",
            "title": "Acme",
            "body": "The Acme token.",
            "metadata": {"category": "token"},
        }
        created = await client.post("/api/v1/articles", json=payload, headers=auth("100"))

        assert created.status_code == 201
        data = created.json()
        assert data["article"]["published"] is False
        assert data["article"]["neynar_score"] == 0.9
        assert data["article"]["metadata"] == {"category": "token"}

        listed = await client.get("/api/v1/articles")
        assert listed.json()["total"] == 0

        approved = await client.post(
            f"/api/v1/articles/acme-token/edits/{data['initial_edit_id']}/approve",
            headers=auth("100"),
        )
        assert approved.status_code == 200
        assert approved.json()["first_publication"] is True

        listed = await client.get("/api/v1/articles", params={"category": "token"})
        assert [a["slug"] for a in listed.json()["items"]] == ["acme-token"]

    async def test_low_reputation_is_403_with_score(self, client):
        payload = {"slug": "meh", "title": "Meh", "body": "..."}

        response = await client.post("/api/v1/articles", json=payload, headers=auth("300"))

        assert response.status_code == 403
        body = response.json()
        assert body["error"] == "quality_too_low"
        assert body["score"] == 0.5
        assert body["threshold"] == 0.5

    async def test_invalid_slug_is_422(self, client):
        payload = {"slug": "Not A Slug!", "title": "x", "body": "y"}
        response = await client.post("/api/v1/articles", json=payload, headers=auth("100"))
        assert response.status_code == 422

    async def test_duplicate_slug_is_409(self, client, db):
        await make_article(db, slug="acme-token")
        payload = {"slug": "acme-token", "title": "Acme", "body": "again"}

        response = await client.post("/api/v1/articles", json=payload, headers=auth("100"))

        assert response.status_code == 409
        assert response.json()["error"] == "conflict"

    async def test_get_missing_article_is_404(self, client):
        response = await client.get("/api/v1/articles/nope")

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    async def test_check_slug(self, client, db):
        await make_article(db, slug="taken")

        free = await client.post("/api/v1/articles/check-slug", json={"slug": "Free"})
        taken = await client.post("/api/v1/articles/check-slug", json={"slug": "taken"})

        assert free.status_code == 200
        assert free.json() == {"slug": "free", "available": True}
        assert taken.status_code == 409
        assert taken.json()["available"] is False

    async def test_counts(self, client, db):
        await make_article(db, slug="acme-token")
        await client.post("/api/v1/articles/acme-token/like", headers=auth("200"))

        response = await client.post(
            "/api/v1/articles/counts", json={"slugs": ["acme-token", "ghost"]}
        )

        assert response.json()["counts"] == {
            "acme-token": {"likes": 1, "flags": 0},
            "ghost": {"likes": 0, "flags": 0},
        }


class TestEditEndpoints:
    async def test_propose_list_and_approve(self, client, db):
        await make_article(db, slug="acme-token", author_fid="100")

        proposed = await client.post(
            "/api/v1/articles/acme-token/edits",
            json={"body": "v2", "summary": "update supply"},
            headers=auth("200"),
        )
        assert proposed.status_code == 201
        edit_id = proposed.json()["id"]
        assert proposed.json()["status"] == "pending"

        edits = await client.get("/api/v1/articles/acme-token/edits")
        assert [e["id"] for e in edits.json()["edits"]] == [edit_id]

        approved = await client.post(
            f"/api/v1/articles/acme-token/edits/{edit_id}/approve", headers=auth("100")
        )
        assert approved.status_code == 200
        body = approved.json()
        assert body["article"]["body"] == "v2"
        assert body["article"]["published"] is True
        assert body["edit"]["status"] == "approved"
        assert body["approved_by"] == "100"

        again = await client.post(
            f"/api/v1/articles/acme-token/edits/{edit_id}/approve", headers=auth("100")
        )
        assert again.status_code == 409
        assert again.json()["error"] == "already_approved"

    async def test_non_author_without_role_is_403(self, client, db):
        article = await make_article(db, slug="acme-token", author_fid="100")
        edit = await make_edit(db, article, author_fid="200")

        response = await client.post(
            f"/api/v1/articles/acme-token/edits/{edit.id}/approve", headers=auth("300")
        )

        assert response.status_code == 403
        assert response.json()["error"] == "forbidden"

    async def test_approval_refreshes_user_summary(self, client, db, app_settings):
        article = await make_article(db, slug="acme-token", author_fid="100")
        edit = await make_edit(db, article, author_fid="200")

        before = await client.get("/api/v1/users/200")
        assert before.json()["total_points"] == 0

        await client.post(f"/api/v1/articles/acme-token/edits/{edit.id}/approve", headers=auth("100"))

        after = await client.get("/api/v1/users/200")
        assert after.json()["total_points"] == app_settings.points_initial
        assert after.json()["contributions"][0]["source_url"] == (
            f"/articles/acme-token/edits/{edit.id}"
        )


class TestReactionEndpoints:
    async def test_like_is_idempotent(self, client, db):
        await make_article(db, slug="acme-token", author_fid="100")

        first = await client.post("/api/v1/articles/acme-token/like", headers=auth("200"))
        second = await client.post("/api/v1/articles/acme-token/like", headers=auth("200"))

        assert first.status_code == 200
        assert first.json()["created"] is True
        assert second.status_code == 200
        assert second.json()["created"] is False
        assert second.json()["count"] == 1

    async def test_flag_with_and_without_body(self, client, db):
        await make_article(db, slug="acme-token")

        first = await client.post(
            "/api/v1/articles/acme-token/flag", json={"reason": "scam"}, headers=auth("200")
        )
        second = await client.post("/api/v1/articles/acme-token/flag", headers=auth("300"))

        assert first.json()["count"] == 1
        assert second.json()["count"] == 2

    async def test_write_rate_limit_is_429(self, client, db, fake_redis):
        await make_article(db, slug="acme-token")
        fake_redis.allowed = False

        response = await client.post("/api/v1/articles/acme-token/like", headers=auth("200"))

        assert response.status_code == 429
        assert response.headers["retry-after"] == "60"
        assert fake_redis.keys == ["rl:200:write"]


class TestAdminEndpoints:
    async def test_non_admin_is_403(self, client):
        response = await client.get("/api/v1/admin/accounts", headers=auth("300"))
        assert response.status_code == 403

    async def test_admin_lists_and_updates_roles(self, client, db):
        await make_account(db, "1", is_admin=True)

        updated = await client.patch(
            "/api/v1/admin/accounts",
            json={"fid": "300", "is_reviewer": True},
            headers=auth("1"),
        )
        assert updated.status_code == 200
        assert updated.json()["is_reviewer"] is True

        listed = await client.get("/api/v1/admin/accounts", headers=auth("1"))
        assert listed.json()["total"] == 2

    async def test_roles_update_requires_a_flag(self, client, db):
        await make_account(db, "1", is_admin=True)

        response = await client.patch(
            "/api/v1/admin/accounts", json={"fid": "300"}, headers=auth("1")
        )

        assert response.status_code == 422

    async def test_flagged_queue(self, client, db):
        await make_account(db, "1", is_admin=True)
        await make_article(db, slug="acme-token")
        await client.post("/api/v1/articles/acme-token/flag", headers=auth("200"))

        response = await client.get("/api/v1/moderation/flagged", headers=auth("1"))

        assert response.status_code == 200
        items = response.json()["items"]
        assert [(a["slug"], a["flag_count"]) for a in items] == [("acme-token", 1)]

    async def test_airdrop_export(self, client, db):
        await make_account(db, "1", is_admin=True)
        db.add_all(
            [
                UserPoints(fid="100", total_points=50),
                UserPoints(fid="200", total_points=30),
                UserPoints(fid="300", total_points=20),
            ]
        )
        await db.commit()

        response = await client.get("/api/v1/admin/airdrop", params={"top": 2}, headers=auth("1"))

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert 'filename="airdrop_top_2.csv"' in response.headers["content-disposition"]
        assert response.text.splitlines() == [
            "fid,total_points,share",
            "100,50,0.500000",
            "200,30,0.300000",
        ]

    async def test_airdrop_top_is_clamped(self, client, db):
        await make_account(db, "1", is_admin=True)
        db.add(UserPoints(fid="100", total_points=0))
        await db.commit()

        low = await client.get("/api/v1/admin/airdrop", params={"top": 0}, headers=auth("1"))
        high = await client.get("/api/v1/admin/airdrop", params={"top": 99999}, headers=auth("1"))

        assert 'filename="airdrop_top_1.csv"' in low.headers["content-disposition"]
        assert low.text.splitlines() == ["fid,total_points,share", "100,0,0"]
        assert 'filename="airdrop_top_10000.csv"' in high.headers["content-disposition"]

    async def test_airdrop_requires_admin(self, client):
        response = await client.get("/api/v1/admin/airdrop", headers=auth("300"))
        assert response.status_code == 403


class TestUserCacheInvalidation:
    async def test_like_refreshes_author_summary(self, client, db, app_settings):
        await make_article(db, slug="acme-token", author_fid="100")

        before = await client.get("/api/v1/users/100")
        assert before.json()["total_points"] == 0

        await client.post("/api/v1/articles/acme-token/like", headers=auth("200"))

        after = await client.get("/api/v1/users/100")
        assert after.json()["total_points"] == app_settings.points_like_received


class KeyServiceDown:
    async def verify(self, token: str, domain: str) -> str:
        raise Unavailable("QuickAuth key service returned HTTP 404", retryable=False)


class StalledSession:
    async def execute(self, *args, **kwargs):
        raise asyncio.TimeoutError()


class TestUpstreamFailures:
    async def test_redis_outage_is_503(self, client, db, fake_redis):
        await make_article(db, slug="acme-token")
        fake_redis.error = RedisConnectionError("redis down")

        response = await client.post("/api/v1/articles/acme-token/like", headers=auth("200"))

        assert response.status_code == 503
        body = response.json()
        assert body["error"] == "unavailable"
        assert body["retryable"] is True

    async def test_non_retryable_upstream_failure_is_502(self, client):
        app.state.verifier = KeyServiceDown()

        response = await client.get("/api/v1/auth/me", headers=auth("200"))

        assert response.status_code == 502
        assert response.json()["retryable"] is False

    async def test_store_timeout_is_503(self, client):
        async def _stalled_db():
            yield StalledSession()

        app.dependency_overrides[get_db] = _stalled_db

        response = await client.get("/api/v1/articles/acme-token")

        assert response.status_code == 503
        assert response.json() == {
            "error": "unavailable",
            "detail": "Upstream timed out",
            "retryable": True,
        }
