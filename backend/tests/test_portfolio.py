"""Portfolio summary, analytics and the bulk price update."""

from conftest import add_coin, register


class TestPortfolioSummary:
    def test_empty_portfolio(self, client, auth_headers):
        resp = client.get("/api/portfolio", headers=auth_headers)
        assert resp.status_code == 200
        body = resp.json()
        assert body["message"] == "No coins in portfolio"
        portfolio = body["data"]["portfolio"]
        assert portfolio["coinCount"] == 0
        assert portfolio["totalInvested"] == 0
        assert portfolio["topPerformer"] is None
        assert body["data"]["analytics"]["coinBreakdown"] == []

    def test_summary_and_analytics(self, client, auth_headers):
        add_coin(client, auth_headers, symbol="BTC", quantity=1, averageBuyPrice=100, currentPrice=150)
        add_coin(client, auth_headers, symbol="ETH", name="Ethereum", quantity=2, averageBuyPrice=25,
                 currentPrice=25)
        add_coin(client, auth_headers, symbol="SOL", name="Solana", quantity=1, averageBuyPrice=50,
                 currentPrice=10, isActive=False)

        body = client.get("/api/portfolio", headers=auth_headers).json()
        assert body.get("message") is None
        portfolio = body["data"]["portfolio"]
        assert portfolio["coinCount"] == 2
        assert portfolio["totalInvested"] == 150
        assert portfolio["currentValue"] == 200
        assert portfolio["totalProfitLoss"] == 50
        assert portfolio["totalProfitLossPercentage"] == 33.33
        assert portfolio["topPerformer"]["symbol"] == "BTC"
        assert portfolio["worstPerformer"]["symbol"] == "ETH"

        analytics = body["data"]["analytics"]
        assert [b["symbol"] for b in analytics["coinBreakdown"]] == ["BTC", "ETH"]
        assert analytics["coinBreakdown"][0]["allocation"] == 75
        assert analytics["performance"] == {
            "totalCoins": 2,
            "profitableCoins": 1,
            "losingCoins": 0,
            "largestPosition": 100,
            "averagePosition": 75,
        }

    def test_scoped_to_caller(self, client, auth_headers):
        add_coin(client, register(client, "bob"), currentPrice=50000)
        body = client.get("/api/portfolio", headers=auth_headers).json()
        assert body["data"]["portfolio"]["coinCount"] == 0


class TestBulkPriceUpdate:
    def test_partial_success(self, client, auth_headers):
        add_coin(client, auth_headers, symbol="BTC")
        add_coin(client, auth_headers, symbol="ETH", name="Ethereum", quantity=2, averageBuyPrice=2000)

        resp = client.put("/api/portfolio", headers=auth_headers, json={"prices": [
            {"symbol": "BTC", "price": 67000},
            {"symbol": "eth", "price": 2500},
            {"symbol": "SOL", "price": -1},
        ]})
        assert resp.status_code == 200
        body = resp.json()
        assert body["message"] == "Price update completed"
        results = {r["symbol"]: r for r in body["data"]["updateResults"]}
        assert results["BTC"]["success"] is True
        assert results["BTC"]["updatedCount"] == 1
        assert results["eth"]["success"] is True
        assert results["SOL"] == {
            "symbol": "SOL", "success": False, "updatedCount": None, "error": "Price cannot be negative",
        }

        coins = {c["symbol"]: c for c in client.get("/api/coins", headers=auth_headers).json()["data"]}
        assert coins["BTC"]["currentValue"] == 33500
        assert coins["BTC"]["profitLoss"] == 11000
        assert coins["BTC"]["profitLossPercentage"] == 48.89
        assert coins["BTC"]["lastPriceUpdate"] is not None
        assert coins["ETH"]["currentValue"] == 5000

    def test_only_active_holdings_are_repriced(self, client, auth_headers):
        add_coin(client, auth_headers, isActive=False)
        resp = client.put("/api/portfolio", headers=auth_headers, json={
            "prices": [{"symbol": "BTC", "price": 60000}],
        })
        assert resp.json()["data"]["updateResults"][0]["updatedCount"] == 0

    def test_other_users_untouched(self, client, auth_headers):
        bob = register(client, "bob")
        add_coin(client, bob)
        client.put("/api/portfolio", headers=auth_headers, json={
            "prices": [{"symbol": "BTC", "price": 60000}],
        })
        assert client.get("/api/coins", headers=bob).json()["data"][0]["currentPrice"] is None

    def test_missing_prices(self, client, auth_headers):
        resp = client.put("/api/portfolio", headers=auth_headers, json={})
        assert resp.status_code == 400
        assert resp.json()["error"] == "Invalid request"
        assert resp.json()["message"] == "Prices array is required"

    def test_prices_not_a_list(self, client, auth_headers):
        resp = client.put("/api/portfolio", headers=auth_headers, json={"prices": "BTC=1"})
        assert resp.status_code == 400

    def test_summary_reflects_new_prices(self, client, auth_headers):
        add_coin(client, auth_headers)
        client.put("/api/portfolio", headers=auth_headers, json={
            "prices": [{"symbol": "BTC", "price": 67000}],
        })
        portfolio = client.get("/api/portfolio", headers=auth_headers).json()["data"]["portfolio"]
        assert portfolio["currentValue"] == 33500
        assert portfolio["totalProfitLoss"] == 11000

    def test_overflowing_price_fails_only_its_symbol(self, client, auth_headers):
        add_coin(client, auth_headers, symbol="BTC")
        add_coin(client, auth_headers, symbol="ETH", name="Ethereum", quantity=2, averageBuyPrice=2000)

        resp = client.put("/api/portfolio", headers=auth_headers, json={"prices": [
            {"symbol": "BTC", "price": 67000},
            {"symbol": "ETH", "price": 1e308},
        ]})
        assert resp.status_code == 200
        results = {r["symbol"]: r for r in resp.json()["data"]["updateResults"]}
        assert results["BTC"]["success"] is True
        assert results["ETH"]["success"] is False
        assert results["ETH"]["error"] == "Failed to update price"

        coins = {c["symbol"]: c for c in client.get("/api/coins", headers=auth_headers).json()["data"]}
        assert coins["BTC"]["currentValue"] == 33500
        assert coins["ETH"]["currentPrice"] is None

    def test_infinite_price_is_rejected(self, client, auth_headers):
        resp = client.put(
            "/api/portfolio",
            content='{"prices": [{"symbol": "BTC", "price": Infinity}]}',
            headers={**auth_headers, "Content-Type": "application/json"},
        )
        assert resp.status_code == 400
