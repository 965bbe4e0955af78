"""Integration tests for Perpetua governance API endpoints"""
import pytest
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch
from httpx import AsyncClient
from sqlalchemy.exc import OperationalError

from app.clock import utcnow
from app.models.token import LockStatus, TokenLock
from app.models.user import UserRole

API = "/api/v1"


class TestHealthEndpoint:
    """Tests for health check endpoint"""

    @pytest.mark.asyncio
    async def test_health_check(self, client: AsyncClient):
        """Test that health endpoint returns healthy status"""
        response = await client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "version" in data
        assert "cluster" in data


class TestSlotEndpoint:
    """Tests for the attestation cluster slot endpoint"""

    @pytest.mark.asyncio
    async def test_current_slot(self, client: AsyncClient):
        solana_client = MagicMock()
        solana_client.get_slot = AsyncMock(return_value=312_456_789)

        with patch("app.main.get_solana_client", AsyncMock(return_value=solana_client)):
            response = await client.get("/slot")

        assert response.status_code == 200
        data = response.json()
        assert data["slot"] == 312_456_789
        assert "cluster" in data
        solana_client.get_slot.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_rpc_failure(self, client: AsyncClient):
        connect = AsyncMock(side_effect=ConnectionError("rpc unreachable"))

        with patch("app.main.get_solana_client", connect):
            response = await client.get("/slot")

        assert response.status_code == 200
        data = response.json()
        assert data["slot"] is None
        assert data["error"] == "rpc unreachable"


class TestAuthentication:
    """Tests for bearer token handling"""

    @pytest.mark.asyncio
    async def test_missing_token(self, client: AsyncClient, make_user):
        user_id = await make_user(balance=10)
        response = await client.get(f"{API}/token/balance/{user_id}")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_invalid_token(self, client: AsyncClient, make_user):
        user_id = await make_user(balance=10)
        response = await client.get(
            f"{API}/token/balance/{user_id}",
            headers={"Authorization": "Bearer not-a-jwt"},
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_other_users_ledger_is_forbidden(self, client: AsyncClient, make_user, auth_headers):
        alice = await make_user(balance=100)
        mallory = await make_user()

        response = await client.post(
            f"{API}/token/lock",
            json={"user_id": alice, "amount": 50, "duration_days": 30},
            headers=auth_headers(mallory),
        )

        assert response.status_code == 403
        assert response.json()["code"] == "forbidden"

    @pytest.mark.asyncio
    async def test_admin_can_read_any_balance(self, client: AsyncClient, make_user, auth_headers):
        alice = await make_user(balance=100)
        admin = await make_user(role=UserRole.ADMIN)

        response = await client.get(f"{API}/token/balance/{alice}", headers=auth_headers(admin, UserRole.ADMIN))

        assert response.status_code == 200
        assert response.json()["balance"] == 100


class TestTokenEndpoints:
    """Tests for the token ledger endpoints"""

    @pytest.mark.asyncio
    async def test_lock_flow(self, client: AsyncClient, make_user, auth_headers):
        alice = await make_user(balance=1000)
        headers = auth_headers(alice)

        response = await client.post(
            f"{API}/token/lock",
            json={"user_id": alice, "amount": 400, "duration_days": 90},
            headers=headers,
        )
        assert response.status_code == 201
        assert response.json()["status"] == "locked"

        balance = await client.get(f"{API}/token/balance/{alice}", headers=headers)
        assert balance.json()["balance"] == 600

        locked = await client.get(f"{API}/token/locked/{alice}", headers=headers)
        assert locked.status_code == 200
        assert locked.json()["total_locked"] == 400
        assert len(locked.json()["locked_tokens"]) == 1

        unlocked = await client.post(f"{API}/token/unlock-expired/{alice}", headers=headers)
        assert unlocked.status_code == 200
        assert unlocked.json()["unlocked_amount"] == 0

        activity = await client.get(f"{API}/token/activity/{alice}", headers=headers)
        assert [a["activity_type"] for a in activity.json()] == ["token_lock"]

    @pytest.mark.asyncio
    async def test_lock_insufficient_balance(self, client: AsyncClient, make_user, auth_headers):
        alice = await make_user(balance=10)

        response = await client.post(
            f"{API}/token/lock",
            json={"user_id": alice, "amount": 11, "duration_days": 30},
            headers=auth_headers(alice),
        )

        assert response.status_code == 400
        assert response.json()["code"] == "insufficient_balance"

    @pytest.mark.asyncio
    async def test_lock_rejects_zero_duration(self, client: AsyncClient, make_user, auth_headers):
        alice = await make_user(balance=10)
        response = await client.post(
            f"{API}/token/lock",
            json={"user_id": alice, "amount": 5, "duration_days": 0},
            headers=auth_headers(alice),
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_delegate_and_revoke(self, client: AsyncClient, make_user, auth_headers):
        alice = await make_user(balance=500)
        bob = await make_user()

        response = await client.post(
            f"{API}/token/delegate",
            json={"from_user_id": alice, "to_user_id": bob, "amount": 200, "duration_days": 10},
            headers=auth_headers(alice),
        )
        assert response.status_code == 201
        delegation = response.json()
        assert delegation["is_expired"] is False

        incoming = await client.get(f"{API}/token/delegations/{bob}", headers=auth_headers(bob))
        assert [d["id"] for d in incoming.json()["incoming"]] == [delegation["id"]]

        power = await client.get(f"{API}/voting-power/{bob}", headers=auth_headers(bob))
        assert power.json()["voting_power"] == 200

        # The recipient does not own the delegation
        forbidden = await client.post(
            f"{API}/token/revoke-delegation/{delegation['id']}", headers=auth_headers(bob)
        )
        assert forbidden.status_code == 403

        revoked = await client.post(
            f"{API}/token/revoke-delegation/{delegation['id']}", headers=auth_headers(alice)
        )
        assert revoked.status_code == 200

        balance = await client.get(f"{API}/token/balance/{alice}", headers=auth_headers(alice))
        assert balance.json()["balance"] == 500

    @pytest.mark.asyncio
    async def test_self_delegation(self, client: AsyncClient, make_user, auth_headers):
        alice = await make_user(balance=500)
        response = await client.post(
            f"{API}/token/delegate",
            json={"from_user_id": alice, "to_user_id": alice, "amount": 10},
            headers=auth_headers(alice),
        )
        assert response.status_code == 400
        assert response.json()["code"] == "self_delegation"

    @pytest.mark.asyncio
    async def test_delegate_to_unknown_user(self, client: AsyncClient, make_user, auth_headers):
        alice = await make_user(balance=500)
        response = await client.post(
            f"{API}/token/delegate",
            json={"from_user_id": alice, "to_user_id": "no-such-user", "amount": 10},
            headers=auth_headers(alice),
        )
        assert response.status_code == 404
        assert response.json()["code"] == "recipient_not_found"

    @pytest.mark.asyncio
    async def test_unlock_expired(self, client: AsyncClient, make_user, auth_headers, db_session):
        alice = await make_user(balance=100)
        bob = await make_user(balance=10)
        now = utcnow()
        db_session.add_all([
            TokenLock(
                user_id=alice,
                amount=60,
                lock_date=now - timedelta(days=40),
                unlock_date=now - timedelta(days=10),
                status=LockStatus.LOCKED,
            ),
            TokenLock(
                user_id=alice,
                amount=25,
                lock_date=now - timedelta(days=5),
                unlock_date=now + timedelta(days=25),
                status=LockStatus.LOCKED,
            ),
        ])
        await db_session.commit()

        forbidden = await client.post(f"{API}/token/unlock-expired/{alice}", headers=auth_headers(bob))
        assert forbidden.status_code == 403

        response = await client.post(f"{API}/token/unlock-expired/{alice}", headers=auth_headers(alice))
        assert response.status_code == 200
        assert response.json()["unlocked_amount"] == 60

        balance = await client.get(f"{API}/token/balance/{alice}", headers=auth_headers(alice))
        assert balance.json()["balance"] == 160

        locked = await client.get(f"{API}/token/locked/{alice}", headers=auth_headers(alice))
        assert locked.json()["total_locked"] == 25

        again = await client.post(f"{API}/token/unlock-expired/{alice}", headers=auth_headers(alice))
        assert again.json()["unlocked_amount"] == 0

    @pytest.mark.asyncio
    async def test_store_failure_is_service_unavailable(
        self, client: AsyncClient, make_user, auth_headers, db_session
    ):
        alice = await make_user(balance=100)

        failure = OperationalError("SELECT", {}, Exception("database is locked"))
        with patch.object(db_session, "execute", side_effect=failure):
            response = await client.get(f"{API}/token/balance/{alice}", headers=auth_headers(alice))

        assert response.status_code == 503
        assert response.json()["code"] == "store_unavailable"


class TestVotingPowerEndpoints:
    """Tests for the voting power endpoints"""

    @pytest.mark.asyncio
    async def test_unknown_user(self, client: AsyncClient, make_user, auth_headers):
        alice = await make_user()
        response = await client.get(f"{API}/voting-power/no-such-user", headers=auth_headers(alice))
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_breakdown(self, client: AsyncClient, make_user, auth_headers):
        alice = await make_user(balance=100)

        response = await client.get(f"{API}/voting-power/{alice}/breakdown", headers=auth_headers(alice))

        assert response.status_code == 200
        data = response.json()
        assert data["investment_power"]["value"] == 0
        assert "details" in data["activity_power"]
        assert data["total_voting_power"] == (
            data["investment_power"]["value"]
            + data["account_age_power"]["value"]
            + data["activity_power"]["value"]
        )


class TestGovernanceEndpoints:
    """Tests for governance proposal and voting endpoints"""

    @pytest.mark.asyncio
    async def test_create_and_vote(self, client: AsyncClient, make_user, auth_headers, mock_proposal):
        creator = await make_user(balance=150)
        voter = await make_user(balance=40)

        created = await client.post(
            f"{API}/governance/proposals", json=mock_proposal, headers=auth_headers(creator)
        )
        assert created.status_code == 201
        proposal = created.json()
        assert proposal["is_active"] is True
        assert [o["text"] for o in proposal["options"]] == ["Approve", "Reject"]
        approve = proposal["options"][0]["id"]

        voted = await client.post(
            f"{API}/governance/proposals/{proposal['id']}/vote",
            json={"option_id": approve},
            headers=auth_headers(voter),
        )
        assert voted.status_code == 200
        assert voted.json()["data"]["voting_power"] == 40

        again = await client.post(
            f"{API}/governance/proposals/{proposal['id']}/vote",
            json={"option_id": proposal["options"][1]["id"]},
            headers=auth_headers(voter),
        )
        assert again.status_code == 409
        assert again.json()["code"] == "already_voted"

        detail = await client.get(
            f"{API}/governance/proposals/{proposal['id']}", headers=auth_headers(voter)
        )
        data = detail.json()
        assert data["options"][0]["vote_count"] == 40
        assert data["options"][0]["percentage"] == 100
        assert data["user_vote"]["option_id"] == approve

        listing = await client.get(f"{API}/governance/proposals?status=active")
        assert listing.json()["meta"]["total"] == 1

        history = await client.get(f"{API}/governance/voting-history", headers=auth_headers(voter))
        assert history.json()["data"][0]["option_text"] == "Approve"

    @pytest.mark.asyncio
    async def test_create_requires_auth(self, client: AsyncClient, mock_proposal):
        response = await client.post(f"{API}/governance/proposals", json=mock_proposal)
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_create_rejects_short_title(self, client: AsyncClient, make_user, auth_headers, mock_proposal):
        creator = await make_user(balance=150)
        response = await client.post(
            f"{API}/governance/proposals",
            json={**mock_proposal, "title": "Hi"},
            headers=auth_headers(creator),
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_create_rejects_duplicate_options(
        self, client: AsyncClient, make_user, auth_headers, mock_proposal
    ):
        creator = await make_user(balance=150)
        response = await client.post(
            f"{API}/governance/proposals",
            json={**mock_proposal, "options": ["Yes", "Yes"]},
            headers=auth_headers(creator),
        )
        assert response.status_code == 400
        assert response.json()["code"] == "validation_error"

    @pytest.mark.asyncio
    async def test_create_rejects_short_voting_period(
        self, client: AsyncClient, make_user, auth_headers, mock_proposal
    ):
        creator = await make_user(balance=150)
        response = await client.post(
            f"{API}/governance/proposals",
            json={**mock_proposal, "end_date": (utcnow() + timedelta(hours=1)).isoformat()},
            headers=auth_headers(creator),
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_create_requires_voting_power(
        self, client: AsyncClient, make_user, auth_headers, mock_proposal
    ):
        creator = await make_user(balance=10)
        response = await client.post(
            f"{API}/governance/proposals", json=mock_proposal, headers=auth_headers(creator)
        )
        assert response.status_code == 403
        assert response.json()["code"] == "insufficient_voting_power"

    @pytest.mark.asyncio
    async def test_proposal_not_found(self, client: AsyncClient):
        response = await client.get(f"{API}/governance/proposals/no-such-proposal")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_invalid_status_filter(self, client: AsyncClient):
        response = await client.get(f"{API}/governance/proposals?status=pending")
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_categories_and_voting_power(
        self, client: AsyncClient, make_user, auth_headers, mock_proposal
    ):
        creator = await make_user(balance=150)
        await client.post(f"{API}/governance/proposals", json=mock_proposal, headers=auth_headers(creator))
        await client.post(
            f"{API}/governance/proposals",
            json={**mock_proposal, "category": None},
            headers=auth_headers(creator),
        )

        categories = await client.get(f"{API}/governance/categories")
        assert categories.json()["data"] == ["finance"]

        power = await client.get(f"{API}/governance/voting-power", headers=auth_headers(creator))
        assert power.json()["voting_power"] == 150

    @pytest.mark.asyncio
    async def test_store_failure_is_service_unavailable(self, client: AsyncClient, db_session):
        failure = OperationalError("SELECT", {}, Exception("database is locked"))
        with patch.object(db_session, "execute", side_effect=failure):
            categories = await client.get(f"{API}/governance/categories")
            proposals = await client.get(f"{API}/governance/proposals")

        assert categories.status_code == 503
        assert categories.json()["code"] == "store_unavailable"
        assert proposals.status_code == 503
