"""
Tests for authorization boundaries — cross-user isolation.

A logged-in user must not be able to read, modify, or spend through another
user's cards and transactions. Resources that exist but belong to someone
else answer 403; resources that do not exist answer 404 (or, for card
removal, succeed as a no-op).

Together, these tests ensure that authentication alone is insufficient —
every card and transaction operation checks ownership.
"""

import uuid


async def alice_card(client) -> str:
    response = await client.post(
        "/cards", json={"brand": "Visa", "last4": "4242", "token": "tok_alice"}
    )
    return response.json()["id"]


async def alice_transaction(client, amount: str = "50.00") -> str:
    card_id = await alice_card(client)
    response = await client.post(
        "/transactions", json={"card_id": card_id, "amount": amount}
    )
    return response.json()["id"]


class TestCrossUserCardAccess:
    """A logged-in user cannot touch another user's cards."""

    async def test_cannot_remove_other_users_card(
        self, authenticated_client, other_user_headers
    ):
        """Bob's delete of Alice's card is forbidden and changes nothing."""
        card_id = await alice_card(authenticated_client)

        resp = await authenticated_client.delete(f"/cards/{card_id}", headers=other_user_headers)
        assert resp.status_code == 403
        assert resp.json()["error_type"] == "forbidden"

        cards = await authenticated_client.get("/cards")
        assert [c["id"] for c in cards.json()] == [card_id]

    async def test_cannot_remove_other_users_removed_card(
        self, authenticated_client, other_user_headers
    ):
        """Ownership is checked before the already-removed shortcut."""
        card_id = await alice_card(authenticated_client)
        await authenticated_client.delete(f"/cards/{card_id}")

        resp = await authenticated_client.delete(f"/cards/{card_id}", headers=other_user_headers)
        assert resp.status_code == 403

    async def test_cannot_pay_with_other_users_card(
        self, authenticated_client, other_user_headers
    ):
        card_id = await alice_card(authenticated_client)

        resp = await authenticated_client.post(
            "/transactions",
            json={"card_id": card_id, "amount": "10.00"},
            headers=other_user_headers,
        )
        assert resp.status_code == 403

        history = await authenticated_client.get("/transactions")
        assert history.json() == []

    async def test_cannot_list_other_users_card_history(
        self, authenticated_client, other_user_headers
    ):
        card_id = await alice_card(authenticated_client)

        resp = await authenticated_client.get(
            f"/cards/{card_id}/transactions", headers=other_user_headers
        )
        assert resp.status_code == 403


class TestCrossUserTransactionAccess:
    """A user cannot view, list or reverse another user's transactions."""

    async def test_cannot_view_other_users_transaction(
        self, authenticated_client, other_user_headers
    ):
        txn_id = await alice_transaction(authenticated_client)

        resp = await authenticated_client.get(f"/transactions/{txn_id}", headers=other_user_headers)
        assert resp.status_code == 403

    async def test_cannot_reverse_other_users_transaction(
        self, authenticated_client, other_user_headers
    ):
        txn_id = await alice_transaction(authenticated_client)

        resp = await authenticated_client.post(
            f"/transactions/{txn_id}/reverse", headers=other_user_headers
        )
        assert resp.status_code == 403

        mine = await authenticated_client.get(f"/transactions/{txn_id}")
        assert mine.json()["status"] == "approved"

    async def test_cannot_list_other_users_transactions(
        self, authenticated_client, other_user_headers
    ):
        await alice_transaction(authenticated_client)

        resp = await authenticated_client.get("/transactions", headers=other_user_headers)
        assert resp.status_code == 200
        assert resp.json() == []

    async def test_unknown_transaction_is_not_found_not_forbidden(
        self, authenticated_client, other_user_headers
    ):
        resp = await authenticated_client.get(
            f"/transactions/{uuid.uuid4()}", headers=other_user_headers
        )
        assert resp.status_code == 404


class TestUnauthenticatedAccess:
    """Every card and transaction endpoint requires a valid access token."""

    async def test_all_resource_endpoints_require_token(self, client):
        some_id = uuid.uuid4()
        calls = [
            client.get("/cards"),
            client.post("/cards", json={}),
            client.delete(f"/cards/{some_id}"),
            client.get(f"/cards/{some_id}/transactions"),
            client.get("/transactions"),
            client.post("/transactions", json={}),
            client.get(f"/transactions/{some_id}"),
            client.post(f"/transactions/{some_id}/reverse"),
        ]
        for call in calls:
            resp = await call
            assert resp.status_code == 401
