# autosell/config.py
import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, field_validator


class TriggerConfig(BaseModel):
    mode: Literal["netflow", "perbuy"] = "netflow"
    window_seconds: int = Field(default=120, gt=0)
    net_fraction: float = Field(default=0.25, gt=0, le=1)
    min_net_usd: float = Field(default=0, ge=0)
    cooldown_seconds: float = Field(default=0, ge=0)
    max_sell_usd: float = Field(default=0, ge=0)  # 0 = 不限制
    percentage_of_balance: float = Field(default=25, gt=0, le=100)
    slippage_bps: int = Field(default=2000, gt=0, le=10000)
    poll_interval_seconds: float = Field(default=10, gt=0)
    push_grace_seconds: float = Field(default=2, ge=0)
    price_timeout_seconds: float = Field(default=10, gt=0)

    @field_validator("mode", mode="before")
    @classmethod
    def _lower_mode(cls, v: str) -> str:
        return v.lower() if isinstance(v, str) else v

    @property
    def cooldown_ms(self) -> int:
        return int(self.cooldown_seconds * 1000)


class ExecutionConfig(BaseModel):
    limit_wallets: int = Field(default=65, gt=0)
    max_concurrency: int = Field(default=65, gt=0)
    wave_timeout_seconds: float = Field(default=60, gt=0)
    balance_timeout_seconds: float = Field(default=10, gt=0)
    build_timeout_seconds: float = Field(default=12, gt=0)
    broadcast_timeout_seconds: float = Field(default=8, gt=0)
    min_sell_ui: float = Field(default=0.000001, ge=0)
    broadcast_retries: int = Field(default=0, ge=0)
    rpc_max_retries: int = Field(default=2, ge=0)
    priority_fee_lamports: int = 30000
    relay_compute_price: int = 8_000_000


class WalletsConfig(BaseModel):
    private_keys: list[str] = []
    env_var: str = "AUTO_SELL_WALLETS"

    def resolve(self) -> list[str]:
        if self.private_keys:
            return self.private_keys
        raw = os.environ.get(self.env_var, "")
        # JSON 数组格式的私钥本身含逗号, 只支持 base58 逗号分隔
        return [k.strip() for k in raw.split(",") if k.strip()]


class ExecutorConfig(BaseModel):
    url: str | None = None
    secret: str | None = None
    timeout_seconds: float = 60

    @property
    def configured(self) -> bool:
        return bool(self.url and self.secret)


class RpcConfig(BaseModel):
    url: str = "https://api.mainnet-beta.solana.com"


class JupiterConfig(BaseModel):
    base_url: str = "https://quote-api.jup.ag"
    api_key: str | None = None
    quote_mint: str = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"  # USDC
    quote_decimals: int = 6
    price_url: str = "https://price.jup.ag/v6/price"


class BloxrouteConfig(BaseModel):
    api_key: str | None = None
    region_url: str = "https://ny.solana.dex.blxrbdn.com"
    submit_url: str = "https://global.solana.dex.blxrbdn.com"


class NetflowSourceConfig(BaseModel):
    aggregator_endpoint: str | None = None
    helius_rpc_url: str | None = None


class DatabaseConfig(BaseModel):
    path: str = "data/autosell.db"
    retention_days: int = 7
    cleanup_hours: int = 24


class TelegramConfig(BaseModel):
    bot_token: str
    chat_id: str


class ApiConfig(BaseModel):
    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = 8080
    webhook_secret: str | None = None


class Config(BaseModel):
    mint: str | None = None
    trigger: TriggerConfig = TriggerConfig()
    execution: ExecutionConfig = ExecutionConfig()
    wallets: WalletsConfig = WalletsConfig()
    executor: ExecutorConfig = ExecutorConfig()
    rpc: RpcConfig = RpcConfig()
    jupiter: JupiterConfig = JupiterConfig()
    bloxroute: BloxrouteConfig = BloxrouteConfig()
    netflow_source: NetflowSourceConfig = NetflowSourceConfig()
    database: DatabaseConfig = DatabaseConfig()
    telegram: TelegramConfig | None = None
    api: ApiConfig = ApiConfig()


def load_config(path: Path) -> Config:
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    return Config(**data)
