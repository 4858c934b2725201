"""Read-only FastAPI dashboard over the tracked wallets."""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse

from .state import DashboardState

HTML_TEMPLATE = """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8" />
  <title>Wallet P&amp;L Tracker</title>
  <style>
    body { font-family: Arial, sans-serif; margin: 0; background: #111; color: #f5f5f5; }
    header { padding: 16px 24px; background: #1f1f1f; }
    main { padding: 24px; }
    table { width: 100%; border-collapse: collapse; }
    th, td { padding: 6px 8px; border-bottom: 1px solid #333; text-align: left; }
    .pos { color: #6adc6a; }
    .neg { color: #f2777a; }
  </style>
</head>
<body>
  <header><h1>Wallet P&amp;L Tracker</h1></header>
  <main><div id="wallets"><em>Loading...</em></div></main>
  <script>
    const token = new URLSearchParams(window.location.search).get('token');
    const headers = token ? { 'X-Auth-Token': token } : {};
    function usd(value) {
      if (value === null || value === undefined) { return 'n/a'; }
      return new Intl.NumberFormat('en-US', { style: 'currency', currency: 'USD' }).format(value);
    }
    function cls(value) { return value >= 0 ? 'pos' : 'neg'; }
    async function refresh() {
      const el = document.getElementById('wallets');
      try {
        const response = await fetch('/api/wallets', { headers });
        if (!response.ok) { throw new Error(`Request failed: ${response.status}`); }
        const wallets = await response.json();
        if (!wallets.length) { el.innerHTML = '<em>No trades yet</em>'; return; }
        const rows = wallets.map((w) => `
          <tr>
            <td><code>${w.wallet_address}</code></td>
            <td>${w.total_trades}</td>
            <td>${w.win_rate.toFixed(1)}%</td>
            <td class="${cls(w.total_realized_pnl)}">${usd(w.total_realized_pnl)}</td>
            <td class="${cls(w.total_unrealized_pnl)}">${usd(w.total_unrealized_pnl)}</td>
            <td class="${cls(w.total_pnl)}">${usd(w.total_pnl)}</td>
            <td>${w.roi.toFixed(2)}%</td>
            <td>${w.open_positions}</td>
          </tr>`).join('');
        el.innerHTML = `<table><thead><tr><th>Wallet</th><th>Trades</th><th>Win rate</th><th>Realized</th><th>Unrealized</th><th>Total</th><th>ROI</th><th>Open</th></tr></thead><tbody>${rows}</tbody></table>`;
      } catch (err) {
        el.innerHTML = `<span class="neg">${err}</span>`;
      }
    }
    refresh();
    setInterval(refresh, 5000);
  </script>
</body>
</html>
"""


def _found(body: Any) -> JSONResponse:
    if body is None:
        raise HTTPException(status_code=404, detail="Unknown wallet")
    return JSONResponse(body)


def create_dashboard_app(state: DashboardState) -> FastAPI:
    app = FastAPI(title="Wallet P&L Tracker", version="1.0.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    expected_token = state.config.dashboard.read_only_token

    async def require_auth(
        header_token: Optional[str] = Header(default=None, alias="X-Auth-Token"),
        query_token: Optional[str] = Query(default=None, alias="token"),
    ) -> None:
        if expected_token and (header_token or query_token) != expected_token:
            raise HTTPException(status_code=401, detail="Invalid token")

    @app.get("/", response_class=HTMLResponse)
    async def index() -> str:
        return HTML_TEMPLATE

    @app.get("/health")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    @app.get("/metrics", response_class=PlainTextResponse)
    async def prometheus_metrics() -> str:
        return state.prometheus()

    @app.get("/api/wallets")
    async def api_wallets(_: None = Depends(require_auth)) -> JSONResponse:
        return JSONResponse(state.wallets())

    @app.get("/api/wallets/{wallet}")
    async def api_wallet(wallet: str, _: None = Depends(require_auth)) -> JSONResponse:
        return _found(state.wallet(wallet))

    @app.get("/api/wallets/{wallet}/positions")
    async def api_positions(
        wallet: str,
        limit: int = Query(20, ge=1, le=500),
        _: None = Depends(require_auth),
    ) -> JSONResponse:
        return _found(state.positions(wallet, limit))

    @app.get("/api/wallets/{wallet}/trades")
    async def api_trades(
        wallet: str,
        limit: int = Query(50, ge=1, le=500),
        _: None = Depends(require_auth),
    ) -> JSONResponse:
        return _found(state.trades(wallet, limit))

    @app.get("/api/events")
    async def api_events(
        limit: int = Query(200, ge=1, le=1000),
        _: None = Depends(require_auth),
    ) -> JSONResponse:
        return JSONResponse(state.event_history(limit=limit))

    return app


__all__ = ["create_dashboard_app"]
