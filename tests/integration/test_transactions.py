"""
Integration tests for the order (transaction) workflow, listing and statistics.
"""

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from bookstore.db.gateway import Gateway
from bookstore.db.models import Order, OrderItem

pytestmark = pytest.mark.asyncio


@pytest_asyncio.fixture
async def genre(create_genre):
    return await create_genre("Programming")


@pytest.fixture
def place(client, auth_headers, user):
    async def _place(*items, user_id=None):
        payload = {
            "user_id": user_id or user.id,
            "items": [{"book_id": book_id, "quantity": quantity} for book_id, quantity in items],
        }
        return await client.post("/transactions", json=payload, headers=auth_headers)
    return _place


async def stock_of(client, book_id: str) -> int:
    return (await client.get(f"/books/{book_id}")).json()["data"]["stock_quantity"]


def order_count(gateway) -> int:
    with gateway.transaction() as db:
        return db.scalar(select(func.count(Order.id)))


def item_count(gateway) -> int:
    with gateway.transaction() as db:
        return db.scalar(select(func.count(OrderItem.id)))


class TestPlaceOrder:

    async def test_success_takes_stock(self, client, place, create_book, genre):
        book = await create_book(genre["id"], price=100000, stock_quantity=5)
        other = await create_book(genre["id"], title="Refactoring", price=50000, stock_quantity=2)

        response = await place((book["id"], 2), (other["id"], 1))
        assert response.status_code == 201
        body = response.json()
        assert body["message"] == "Transaction created successfully"
        assert body["data"]["transaction_id"]
        assert body["data"]["total_quantity"] == 3
        assert body["data"]["total_price"] == 250000.0

        assert await stock_of(client, book["id"]) == 3
        assert await stock_of(client, other["id"]) == 1

    async def test_duplicate_lines_are_merged(self, client, auth_headers, place, create_book, genre):
        book = await create_book(genre["id"], price=1000, stock_quantity=5)

        response = await place((book["id"], 1), (book["id"], 2))
        assert response.status_code == 201
        assert response.json()["data"]["total_quantity"] == 3
        assert await stock_of(client, book["id"]) == 2

        order_id = response.json()["data"]["transaction_id"]
        detail = (await client.get(f"/transactions/{order_id}", headers=auth_headers)).json()["data"]
        assert len(detail["items"]) == 1
        assert detail["items"][0]["quantity"] == 3

    async def test_insufficient_stock_creates_nothing(self, client, gateway, place, create_book, genre):
        book = await create_book(genre["id"], stock_quantity=5)
        other = await create_book(genre["id"], title="Refactoring", stock_quantity=1)

        response = await place((book["id"], 2), (other["id"], 3))
        assert response.status_code == 400
        assert response.json()["message"] == "Insufficient stock for book: Refactoring"

        assert order_count(gateway) == 0
        assert await stock_of(client, book["id"]) == 5
        assert await stock_of(client, other["id"]) == 1

    async def test_sequential_orders_cannot_oversell(self, client, place, create_book, genre):
        book = await create_book(genre["id"], stock_quantity=3)

        assert (await place((book["id"], 2))).status_code == 201
        response = await place((book["id"], 2))
        assert response.status_code == 400
        assert response.json()["message"] == "Insufficient stock for book: Clean Code"
        assert await stock_of(client, book["id"]) == 1

    async def test_unknown_user(self, place, create_book, genre):
        book = await create_book(genre["id"])
        response = await place((book["id"], 1), user_id="missing-user")
        assert response.status_code == 404
        assert response.json()["message"] == "User not found"

    async def test_unknown_book(self, gateway, place, create_book, genre):
        book = await create_book(genre["id"])
        response = await place((book["id"], 1), ("missing-book", 1))
        assert response.status_code == 404
        assert response.json()["message"] == "Book missing-book not found"
        assert order_count(gateway) == 0

    async def test_deleted_book_cannot_be_ordered(self, client, auth_headers, place, create_book, genre):
        book = await create_book(genre["id"])
        await client.delete(f"/books/{book['id']}", headers=auth_headers)
        response = await place((book["id"], 1))
        assert response.status_code == 404

    @pytest.mark.parametrize("payload", [
        {},
        {"items": [{"book_id": "x", "quantity": 1}]},
        {"user_id": "u", "items": []},
        {"user_id": "u", "items": [{"book_id": "x", "quantity": 0}]},
        {"user_id": "u", "items": [{"book_id": "   ", "quantity": 1}]},
        {"user_id": "u", "items": [{"quantity": 1}]},
    ])
    async def test_invalid_request(self, client, auth_headers, payload):
        response = await client.post("/transactions", json=payload, headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["message"] == "Invalid request data"

    async def test_failure_mid_order_rolls_back(self, client, gateway, monkeypatch, place, create_book, genre):
        book = await create_book(genre["id"], stock_quantity=5)
        other = await create_book(genre["id"], title="Refactoring", stock_quantity=5)

        original = Gateway._decrement_stock
        calls = []

        def flaky(self, db, target, quantity):
            calls.append(target.id)
            if len(calls) == 2:
                raise OperationalError("UPDATE books", {}, Exception("connection lost"))
            return original(self, db, target, quantity)

        monkeypatch.setattr(Gateway, "_decrement_stock", flaky)

        response = await place((book["id"], 1), (other["id"], 1))
        assert response.status_code == 500
        assert response.json() == {"success": False, "message": "Internal server error"}

        monkeypatch.undo()
        assert order_count(gateway) == 0
        assert item_count(gateway) == 0
        assert await stock_of(client, book["id"]) == 5
        assert await stock_of(client, other["id"]) == 5

    async def test_requires_auth(self, client):
        response = await client.post("/transactions", json={"user_id": "u", "items": []})
        assert response.status_code == 401
        assert response.json()["message"] == "Token not found"


class TestListOrders:

    async def test_sort_by_amount(self, client, auth_headers, place, create_book, genre):
        book = await create_book(genre["id"], price=100, stock_quantity=20)
        ids = {}
        for quantity in (1, 3, 2):
            response = await place((book["id"], quantity))
            ids[quantity] = response.json()["data"]["transaction_id"]

        response = await client.get("/transactions", params={"orderByAmount": "desc"}, headers=auth_headers)
        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Get all transaction successfully"
        assert [o["id"] for o in body["data"]] == [ids[3], ids[2], ids[1]]
        assert [o["total_price"] for o in body["data"]] == [300.0, 200.0, 100.0]
        assert [o["total_quantity"] for o in body["data"]] == [3, 2, 1]
        assert body["meta"] == {"page": 1, "limit": 10, "prev_page": None, "next_page": None}

    async def test_sort_by_id(self, client, auth_headers, place, create_book, genre):
        book = await create_book(genre["id"], stock_quantity=20)
        ids = [(await place((book["id"], 1))).json()["data"]["transaction_id"] for _ in range(3)]

        response = await client.get("/transactions", params={"orderById": "asc"}, headers=auth_headers)
        assert [o["id"] for o in response.json()["data"]] == sorted(ids)

    async def test_pagination(self, client, auth_headers, place, create_book, genre):
        book = await create_book(genre["id"], stock_quantity=20)
        for _ in range(3):
            await place((book["id"], 1))

        response = await client.get("/transactions", params={"page": 2, "limit": 2}, headers=auth_headers)
        body = response.json()
        assert len(body["data"]) == 1
        assert body["meta"] == {"page": 2, "limit": 2, "prev_page": 1, "next_page": None}

    async def test_search_by_id(self, client, auth_headers, place, create_book, genre):
        book = await create_book(genre["id"], stock_quantity=20)
        wanted = (await place((book["id"], 1))).json()["data"]["transaction_id"]
        await place((book["id"], 1))

        response = await client.get("/transactions", params={"search": wanted.upper()}, headers=auth_headers)
        assert [o["id"] for o in response.json()["data"]] == [wanted]

        response = await client.get("/transactions", params={"search": wanted[:8]}, headers=auth_headers)
        assert response.json()["data"] == []

    async def test_requires_auth(self, client):
        response = await client.get("/transactions")
        assert response.status_code == 401


class TestOrderDetail:

    async def test_detail(self, client, auth_headers, user, place, create_book, genre):
        book = await create_book(genre["id"], price=150000, stock_quantity=5)
        other = await create_book(genre["id"], title="Refactoring", price=50000, stock_quantity=5)
        order_id = (await place((book["id"], 2), (other["id"], 1))).json()["data"]["transaction_id"]

        response = await client.get(f"/transactions/{order_id}", headers=auth_headers)
        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Get transaction detail successfully"
        data = body["data"]
        assert data["id"] == order_id
        assert data["user_id"] == user.id
        assert data["created_at"]
        assert data["items"] == [
            {"book_id": book["id"], "book_title": "Clean Code", "quantity": 2,
             "unit_price": 150000.0, "subtotal_price": 300000.0},
            {"book_id": other["id"], "book_title": "Refactoring", "quantity": 1,
             "unit_price": 50000.0, "subtotal_price": 50000.0},
        ]
        assert data["total_quantity"] == 3
        assert data["total_price"] == 350000.0

    async def test_price_is_kept_after_book_changes(self, client, auth_headers, place, create_book, genre):
        book = await create_book(genre["id"], price=1000, stock_quantity=5)
        order_id = (await place((book["id"], 1))).json()["data"]["transaction_id"]

        await client.patch(f"/books/{book['id']}", json={"price": 9999}, headers=auth_headers)
        await client.delete(f"/books/{book['id']}", headers=auth_headers)

        data = (await client.get(f"/transactions/{order_id}", headers=auth_headers)).json()["data"]
        assert data["items"][0]["book_title"] == "Clean Code"
        assert data["items"][0]["unit_price"] == 1000.0
        assert data["total_price"] == 1000.0

    async def test_not_found(self, client, auth_headers):
        response = await client.get("/transactions/missing", headers=auth_headers)
        assert response.status_code == 404
        assert response.json()["message"] == "Transaction not found"


class TestStatistics:

    async def test_empty(self, client, auth_headers):
        response = await client.get("/transactions/statistics", headers=auth_headers)
        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Get transactions statistics successfully"
        assert body["data"] == {
            "total_transactions": 0,
            "average_transaction_amount": 0,
            "most_book_sales_genre": "N/A",
            "fewest_book_sales_genre": "N/A",
        }

    async def test_extremes_and_average(self, client, auth_headers, create_genre, place, create_book):
        fiction = await create_genre("Fiction")
        history = await create_genre("History")
        novel = await create_book(fiction["id"], title="Novel", price=100, stock_quantity=10)
        chronicle = await create_book(history["id"], title="Chronicle", price=200, stock_quantity=10)

        await place((novel["id"], 4))
        await place((chronicle["id"], 1))

        data = (await client.get("/transactions/statistics", headers=auth_headers)).json()["data"]
        assert data == {
            "total_transactions": 2,
            "average_transaction_amount": 300,
            "most_book_sales_genre": "Fiction",
            "fewest_book_sales_genre": "History",
        }

    async def test_average_rounds_half_up_and_ties_break_on_name(
        self, client, auth_headers, create_genre, place, create_book
    ):
        poetry = await create_genre("Poetry")
        drama = await create_genre("Drama")
        poem = await create_book(poetry["id"], title="Poem", price=100, stock_quantity=10)
        play = await create_book(drama["id"], title="Play", price=101, stock_quantity=10)

        await place((poem["id"], 1))
        await place((play["id"], 1))

        data = (await client.get("/transactions/statistics", headers=auth_headers)).json()["data"]
        assert data["average_transaction_amount"] == 101
        assert data["most_book_sales_genre"] == "Drama"
        assert data["fewest_book_sales_genre"] == "Drama"

    async def test_route_not_shadowed_by_detail(self, client, auth_headers):
        response = await client.get("/transactions/statistics", headers=auth_headers)
        assert response.json()["message"] != "Transaction not found"
