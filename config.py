# config.py
"""
Roulette Orchestrator: Config
Centralized environment + constants, powered by pydantic-settings (Pydantic v2).
"""

from __future__ import annotations
import json
from typing import Annotated, Optional, List
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class BetGroup(BaseModel):
    """A wallet sub-directory betting one token with a list of amount ranges (whole tokens)."""

    name: str
    mint: str
    decimals: int = 6
    # one bet per range per wallet per round
    amount_ranges: List[List[int]] = Field(default_factory=list)

    @field_validator("amount_ranges")
    @classmethod
    def _check_ranges(cls, v: List[List[int]]) -> List[List[int]]:
        for rng in v:
            if len(rng) != 2 or rng[0] < 0 or rng[0] > rng[1]:
                raise ValueError(f"invalid amount range {rng!r}; expected [min, max]")
        return v


def _default_bet_groups() -> List[BetGroup]:
    # every range twice: ten bets per wallet per round
    return [
        BetGroup(name="GRN", mint="DhsFPhLMN1Bq8YQorjZZrYkZoZGHZxc6eemS3zzW5SCu", decimals=9,
                 amount_ranges=[[400, 600], [600, 800], [800, 1000], [1000, 1200], [700, 900]] * 2),
        BetGroup(name="MAR", mint="E3GVbwcczoM6HJnWHR1NJ2bJbpB5kDDTYqNpusEUec8M", decimals=6,
                 amount_ranges=[[600, 900], [900, 1200], [1200, 1500], [1500, 1800], [1000, 1400]] * 2),
        BetGroup(name="SAO", mint="GyGq8CNEJuY6Dmefjut2jBCEuVAaFyBHCiqdUboHKXcS", decimals=6,
                 amount_ranges=[[300, 450], [450, 600], [600, 750], [750, 900], [500, 700]] * 2),
        BetGroup(name="LOI", mint="Fvmu22STa3mYx2bHQHMeiSGYYCjtuAsMLFsVpNWuRwcJ", decimals=6,
                 amount_ranges=[[50, 75], [75, 100], [100, 125], [125, 150], [80, 120]] * 2),
        BetGroup(name="USDC", mint="4FiYqUg9gw5wyQ2po9RGp3EXZns48ZUD4quMwq53sdwT", decimals=6,
                 amount_ranges=[[2, 3], [3, 4], [4, 5], [5, 6], [3, 5]] * 2),
        BetGroup(name="OLS", mint="5ei1ggNH5vjdMVvXbAENiehBmwhHhB2v45ddTigVgdUM", decimals=6,
                 amount_ranges=[[36000, 54000], [54000, 72000], [72000, 90000], [90000, 108000], [60000, 80000]] * 2),
    ]


class Settings(BaseSettings):
    # pydantic-settings config
    model_config = SettingsConfigDict(
        env_file=".roulette.env",
        env_prefix="",            # read raw names (e.g., RPC_ENDPOINTS)
        extra="ignore",
        case_sensitive=False,
    )

    # =========================
    # App / API
    # =========================
    API_PREFIX: str = "/api"
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    LOG_LEVEL: str = "INFO"
    # start the round controller with the web app
    RUN_CONTROLLER: bool = True

    # normalize API_PREFIX (no trailing slash; always starts with '/')
    @field_validator("API_PREFIX")
    @classmethod
    def _norm_api_prefix(cls, v: str) -> str:
        v = (v or "/api").strip()
        if not v.startswith("/"):
            v = "/" + v
        if v != "/" and v.endswith("/"):
            v = v[:-1]
        return v

    # =========================
    # RPC endpoints (ordered, rotated on transient errors)
    # =========================
    # comma-separated or a JSON list: RPC_ENDPOINTS=https://a,https://b
    RPC_ENDPOINTS: Annotated[List[str], NoDecode] = ["https://api.devnet.solana.com"]
    RPC_SETTLE_DELAY_MS: int = 2000

    @field_validator("RPC_ENDPOINTS", mode="before")
    @classmethod
    def _split_endpoints(cls, v):
        if isinstance(v, str):
            text = v.strip()
            v = json.loads(text) if text.startswith("[") else text.split(",")
        urls = [str(u).strip() for u in (v or []) if str(u).strip()]
        if not urls:
            raise ValueError("RPC_ENDPOINTS needs at least one endpoint")
        return urls

    # =========================
    # Program / off-chain API
    # =========================
    PROGRAM_ID: str = "11111111111111111111111111111111"
    # optional Anchor IDL; discriminators are derived from names when unset
    PROGRAM_IDL_PATH: Optional[str] = None
    # game_session stores a 32-byte authority before current_round
    GAME_SESSION_HAS_AUTHORITY: bool = True
    API_BASE_URL: str = "https://api.0xroulette.com/api"
    API_TIMEOUT_S: float = 15.0
    API_VERIFY_TLS: bool = True

    @field_validator("API_BASE_URL")
    @classmethod
    def _norm_api_base(cls, v: str) -> str:
        return (v or "").strip().rstrip("/")

    # =========================
    # Wallets
    # =========================
    WALLETS_DIR: str = "test-wallets"
    BET_GROUPS: List[BetGroup] = Field(default_factory=_default_bet_groups)

    # =========================
    # Task runner
    # =========================
    CONCURRENCY_LIMIT: int = Field(default=40, ge=1)
    CLAIM_CONCURRENCY_LIMIT: int = Field(default=20, ge=1)
    PACE_DELAY_MS: int = Field(default=80, ge=0)
    CLAIM_PACE_DELAY_MS: int = Field(default=80, ge=0)

    # =========================
    # Transactions
    # =========================
    BET_COMPUTE_UNITS: int = 400_000
    RANDOM_COMPUTE_UNITS: int = 200_000
    CONFIRM_MAX_POLLS: int = 30
    CONFIRM_POLL_INTERVAL_MS: int = 1000

    # =========================
    # Round timings
    # =========================
    BETTING_DURATION_MS: int = 60_000
    # measure the betting window from the on-chain start time when available
    BETTING_DEADLINE_FROM_START: bool = True
    COOLDOWN_AFTER_CLOSE_MS: int = 15_000
    COOLDOWN_AFTER_RANDOM_MS: int = 30_000
    SETTLE_DELAY_MS: int = 5_000

    # =========================
    # Retry / backoff
    # =========================
    REVEAL_MAX_ATTEMPTS: int = Field(default=3, ge=1)
    REVEAL_RETRY_DELAY_MS: int = 5_000
    # 0 = retry claims forever
    CLAIM_MAX_ATTEMPTS: int = Field(default=0, ge=0)
    CLAIM_RETRY_DELAY_MS: int = 10_000
    TRANSIENT_BACKOFF_MS: int = 5_000
    ERROR_BACKOFF_MS: int = 30_000
    ALERT_AFTER_FAILURES: int = 5

    # =========================
    # Secrets / Webhooks
    # =========================
    SLACK_WEBHOOK_URL: Optional[str] = None
    SLACK_TIMEOUT_S: float = 10.0

    # -------------------------
    # Derived helpers
    # -------------------------
    @property
    def pace_delay_s(self) -> float:
        return self.PACE_DELAY_MS / 1000.0

    @property
    def claim_pace_delay_s(self) -> float:
        return self.CLAIM_PACE_DELAY_MS / 1000.0

    @property
    def claim_max_attempts(self) -> Optional[int]:
        """None means unbounded."""
        return self.CLAIM_MAX_ATTEMPTS or None

    def seconds(self, name: str) -> float:
        """Read a *_MS setting as seconds, e.g. settings.seconds("BETTING_DURATION_MS")."""
        return int(getattr(self, name)) / 1000.0


# Instantiate global settings (values resolved from environment)
settings = Settings()
