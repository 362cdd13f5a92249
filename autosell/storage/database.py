# autosell/storage/database.py
import time

import aiosqlite

from .models import SellWave, Trade


class Database:
    def __init__(self, path: str):
        self.path = path
        self.conn: aiosqlite.Connection | None = None

    async def init(self) -> None:
        self.conn = await aiosqlite.connect(self.path)
        await self._create_tables()

    async def close(self) -> None:
        if self.conn:
            await self.conn.close()
            self.conn = None

    async def _create_tables(self) -> None:
        assert self.conn is not None
        await self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS trades (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                mint TEXT NOT NULL,
                timestamp INTEGER NOT NULL,
                side TEXT NOT NULL,
                usd_amount REAL NOT NULL,
                signature TEXT,
                token_amount REAL,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );
            CREATE INDEX IF NOT EXISTS idx_trades_mint_time ON trades(mint, timestamp);

            CREATE TABLE IF NOT EXISTS cooldowns (
                mint TEXT PRIMARY KEY,
                last_sell_at INTEGER NOT NULL
            );

            CREATE TABLE IF NOT EXISTS sell_waves (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                mint TEXT NOT NULL,
                started_at INTEGER NOT NULL,
                reason TEXT NOT NULL,
                net_usd REAL NOT NULL,
                sell_usd REAL NOT NULL,
                successful INTEGER NOT NULL,
                failed INTEGER NOT NULL,
                total_sold_tokens REAL NOT NULL,
                total_received_sol REAL NOT NULL,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );
            CREATE INDEX IF NOT EXISTS idx_waves_mint_time ON sell_waves(mint, started_at);
        """)
        await self.conn.commit()

    async def insert_trade(self, trade: Trade) -> int:
        assert self.conn is not None
        cursor = await self.conn.execute(
            """INSERT INTO trades (mint, timestamp, side, usd_amount, signature, token_amount)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (
                trade.mint,
                trade.timestamp,
                trade.side,
                trade.usd_amount,
                trade.signature,
                trade.token_amount,
            ),
        )
        await self.conn.commit()
        return cursor.lastrowid or 0

    async def get_trades(self, mint: str, seconds: int, now_ms: int | None = None) -> list[Trade]:
        assert self.conn is not None
        if now_ms is None:
            now_ms = int(time.time() * 1000)
        cutoff = now_ms - seconds * 1000
        cursor = await self.conn.execute(
            """SELECT mint, timestamp, side, usd_amount, signature, token_amount
               FROM trades WHERE mint = ? AND timestamp >= ?
               ORDER BY timestamp ASC""",
            (mint, cutoff),
        )
        rows = await cursor.fetchall()
        return [Trade(*row) for row in rows]

    async def get_last_sell_at(self, mint: str) -> int:
        assert self.conn is not None
        cursor = await self.conn.execute(
            "SELECT last_sell_at FROM cooldowns WHERE mint = ?",
            (mint,),
        )
        row = await cursor.fetchone()
        return int(row[0]) if row else 0

    async def set_last_sell_at(self, mint: str, ts: int) -> None:
        assert self.conn is not None
        await self.conn.execute(
            """INSERT INTO cooldowns (mint, last_sell_at) VALUES (?, ?)
               ON CONFLICT(mint) DO UPDATE SET last_sell_at = excluded.last_sell_at""",
            (mint, ts),
        )
        await self.conn.commit()

    async def insert_sell_wave(self, wave: SellWave) -> int:
        assert self.conn is not None
        cursor = await self.conn.execute(
            """INSERT INTO sell_waves
               (mint, started_at, reason, net_usd, sell_usd, successful, failed,
                total_sold_tokens, total_received_sol)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                wave.mint,
                wave.started_at,
                wave.reason,
                wave.net_usd,
                wave.sell_usd,
                wave.successful,
                wave.failed,
                wave.total_sold_tokens,
                wave.total_received_sol,
            ),
        )
        await self.conn.commit()
        return cursor.lastrowid or 0

    async def get_recent_waves(self, mint: str, limit: int = 10) -> list[SellWave]:
        assert self.conn is not None
        cursor = await self.conn.execute(
            """SELECT id, mint, started_at, reason, net_usd, sell_usd, successful, failed,
                      total_sold_tokens, total_received_sol
               FROM sell_waves WHERE mint = ?
               ORDER BY started_at DESC LIMIT ?""",
            (mint, limit),
        )
        rows = await cursor.fetchall()
        return [SellWave(*row) for row in rows]

    async def cleanup_old_data(self, retention_days: int = 7) -> dict[str, int]:
        """删除过期数据, 返回每张表删除的行数"""
        assert self.conn is not None
        cutoff = int(time.time() * 1000) - retention_days * 24 * 3600 * 1000
        deleted: dict[str, int] = {}
        for table, column in (("trades", "timestamp"), ("sell_waves", "started_at")):
            cursor = await self.conn.execute(f"DELETE FROM {table} WHERE {column} < ?", (cutoff,))
            deleted[table] = cursor.rowcount
        await self.conn.commit()
        return deleted
