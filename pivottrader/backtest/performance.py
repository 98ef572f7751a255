from __future__ import annotations

from collections.abc import Sequence

from pivottrader.backtest.trade_collector import Trade


def calculate_metrics(trades: Sequence[Trade]) -> dict:
    if not trades:
        return {
            "total_trades": 0, "winning_trades": 0, "losing_trades": 0,
            "win_rate": 0.0, "profit_factor": 0.0, "total_points": 0.0,
            "avg_points": 0.0, "max_drawdown_points": 0.0,
        }

    points = [t.points for t in trades]
    wins = [p for p in points if p > 0]
    losses = [p for p in points if p < 0]

    total_wins = sum(wins)
    total_losses = abs(sum(losses))

    # Cumulative points curve for drawdown
    running = 0.0
    peak = 0.0
    max_dd = 0.0
    for p in points:
        running += p
        if running > peak:
            peak = running
        if peak - running > max_dd:
            max_dd = peak - running

    return {
        "total_trades": len(points),
        "winning_trades": len(wins),
        "losing_trades": len(points) - len(wins),
        "win_rate": len(wins) / len(points),
        "profit_factor": total_wins / total_losses if total_losses > 0 else float("inf"),
        "total_points": sum(points),
        "avg_points": sum(points) / len(points),
        "max_drawdown_points": max_dd,
    }
