"""
Reclaim Bot Configuration
=========================
Environment-driven configuration with fail-fast validation.

Values are read from the process environment after `.env` is loaded with
python-dotenv. Any invalid value raises ConfigurationError before a single
remote call is made.
"""

import os
from dataclasses import dataclass, field
from typing import List, Mapping, Optional

from dotenv import load_dotenv
from solders.pubkey import Pubkey

from kora_reclaim.shared.errors import ConfigurationError
from kora_reclaim.shared.infrastructure.retry import RetryPolicy
from kora_reclaim.shared.system.logging import LEVELS, Logger

CLUSTERS = ("devnet", "mainnet-beta", "testnet")


@dataclass
class TelegramConfig:
    bot_token: str
    chat_id: str
    enabled: bool = True


@dataclass
class ReclaimConfig:
    """Validated bot configuration."""

    # Network
    rpc_url: str
    cluster: str
    fee_payer: str

    # Operator credential (one of the two)
    operator_keypair_path: Optional[str] = None
    operator_private_key: Optional[str] = field(default=None, repr=False)
    treasury: Optional[str] = None

    # Safety
    min_account_age_days: float = 7
    min_reclaim_lamports: int = 890_880
    max_batch_size: int = 50
    dry_run: bool = False
    allowed_programs: List[str] = field(default_factory=list)
    blocked_programs: List[str] = field(default_factory=list)

    # Alerting
    telegram: Optional[TelegramConfig] = field(default=None, repr=False)
    alert_threshold_sol: float = 1.0

    # Scheduling
    monitor_interval_minutes: int = 360
    auto_reclaim: bool = False
    reclaim_interval_minutes: int = 10080

    # Storage / logging
    database_path: str = "./data/kora-reclaim.db"
    log_level: str = "info"
    log_file_path: Optional[str] = None

    # Remote calls
    rpc_rate_limit: int = 10
    tx_delay_ms: int = 1000
    confirm_timeout_seconds: float = 60.0
    retry: RetryPolicy = field(default_factory=RetryPolicy)

    @property
    def operator_credential(self) -> str:
        return self.operator_keypair_path or self.operator_private_key

    @property
    def audit_log_path(self) -> str:
        directory = os.path.dirname(self.log_file_path) if self.log_file_path else "logs"
        return os.path.join(directory or ".", "audit.log")


# =============================================================================
# PARSERS
# =============================================================================

def _validate_pubkey(value: str, name: str) -> str:
    try:
        return str(Pubkey.from_string(value.strip()))
    except ValueError:
        raise ConfigurationError(f"Invalid public key for {name}: {value}")


def _parse_pubkey_list(value: Optional[str], name: str) -> List[str]:
    if not value or not value.strip():
        return []
    keys = []
    for index, item in enumerate(s.strip() for s in value.split(",")):
        if not item:
            continue
        try:
            keys.append(str(Pubkey.from_string(item)))
        except ValueError:
            raise ConfigurationError(f"Invalid public key at position {index + 1} in {name}: {item}")
    return keys


def _parse_bool(value: Optional[str]) -> bool:
    return (value or "").strip().lower() == "true"


def _parse_int(env: Mapping[str, str], name: str, default: int, minimum: int = None, maximum: int = None) -> int:
    raw = env.get(name) or str(default)
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")
    if minimum is not None and value < minimum:
        raise ConfigurationError(_range_message(name, minimum, maximum))
    if maximum is not None and value > maximum:
        raise ConfigurationError(_range_message(name, minimum, maximum))
    return value


def _parse_float(env: Mapping[str, str], name: str, default: float, minimum: float = 0.0, strict: bool = False) -> float:
    raw = env.get(name) or str(default)
    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")
    if value < minimum or (strict and value == minimum):
        qualifier = "a positive" if strict else "a non-negative"
        raise ConfigurationError(f"{name} must be {qualifier} number")
    return value


def _range_message(name: str, minimum: Optional[int], maximum: Optional[int]) -> str:
    if maximum is not None:
        return f"{name} must be between {minimum} and {maximum}"
    if minimum == 0:
        return f"{name} must be a non-negative number"
    return f"{name} must be >= {minimum}"


# =============================================================================
# SECURITY CHECKS
# =============================================================================

def check_env_security(root: Optional[str] = None) -> bool:
    """Warn when .gitignore exists but does not mention .env."""
    gitignore = os.path.join(root or os.getcwd(), ".gitignore")
    if not os.path.exists(gitignore):
        return True
    with open(gitignore, "r", encoding="utf-8") as f:
        if ".env" in f.read():
            return True
    Logger.warning("⚠️ [CONFIG] .env is not in .gitignore! Add it before committing.")
    return False


def check_keypair_security(path: str) -> bool:
    """Warn when the keypair file is group or world readable."""
    try:
        mode = os.stat(path).st_mode & 0o777
    except OSError:
        return True
    if mode & 0o044:
        Logger.warning(
            f"⚠️ [CONFIG] Keypair file {path} has loose permissions ({oct(mode)}). "
            f"Run 'chmod 600 {path}'"
        )
        return False
    return True


# =============================================================================
# LOADER
# =============================================================================

def load_config(env: Optional[Mapping[str, str]] = None, dotenv_path: Optional[str] = None) -> ReclaimConfig:
    """
    Build a ReclaimConfig from the environment.

    Args:
        env: mapping to read instead of os.environ (no .env loading)
        dotenv_path: explicit .env file, defaults to python-dotenv discovery

    Raises:
        ConfigurationError: on the first missing or invalid value
    """
    if env is None:
        load_dotenv(dotenv_path)
        env = os.environ
        check_env_security()

    rpc_url = (env.get("SOLANA_RPC_URL") or "").strip()
    if not rpc_url:
        raise ConfigurationError("SOLANA_RPC_URL is required")

    cluster = (env.get("SOLANA_CLUSTER") or "").strip()
    if cluster not in CLUSTERS:
        raise ConfigurationError("SOLANA_CLUSTER must be devnet, mainnet-beta, or testnet")

    fee_payer_raw = env.get("KORA_FEE_PAYER_PUBKEY")
    if not fee_payer_raw:
        raise ConfigurationError("KORA_FEE_PAYER_PUBKEY is required")
    fee_payer = _validate_pubkey(fee_payer_raw, "KORA_FEE_PAYER_PUBKEY")

    keypair_path = env.get("OPERATOR_KEYPAIR_PATH") or None
    private_key = env.get("OPERATOR_PRIVATE_KEY") or None
    if not keypair_path and not private_key:
        raise ConfigurationError("Either OPERATOR_KEYPAIR_PATH or OPERATOR_PRIVATE_KEY is required")
    if keypair_path:
        if not os.path.exists(keypair_path):
            raise ConfigurationError(f"Keypair file not found: {keypair_path}")
        check_keypair_security(keypair_path)

    treasury = None
    if env.get("TREASURY_PUBKEY"):
        treasury = _validate_pubkey(env["TREASURY_PUBKEY"], "TREASURY_PUBKEY")

    min_age = _parse_float(env, "MIN_ACCOUNT_AGE_DAYS", 7)
    min_reclaim = _parse_int(env, "MIN_RECLAIM_LAMPORTS", 890_880, minimum=0)
    max_batch = _parse_int(env, "MAX_BATCH_SIZE", 50, minimum=1, maximum=1000)

    telegram = None
    if _parse_bool(env.get("ENABLE_TELEGRAM")):
        token = env.get("TELEGRAM_BOT_TOKEN")
        chat_id = env.get("TELEGRAM_CHAT_ID")
        if not token or not chat_id:
            raise ConfigurationError(
                "TELEGRAM_BOT_TOKEN and TELEGRAM_CHAT_ID are required when ENABLE_TELEGRAM is true"
            )
        telegram = TelegramConfig(bot_token=token, chat_id=chat_id)

    auto_reclaim = _parse_bool(env.get("AUTO_RECLAIM"))
    if auto_reclaim and cluster == "mainnet-beta":
        Logger.warning("⚠️ [CONFIG] AUTO_RECLAIM is enabled on mainnet. Reclaims will execute unattended.")

    database_path = env.get("DATABASE_PATH") or "./data/kora-reclaim.db"
    os.makedirs(os.path.dirname(os.path.abspath(database_path)), exist_ok=True)

    log_level = (env.get("LOG_LEVEL") or "info").strip().lower()
    if log_level not in LEVELS:
        raise ConfigurationError("LOG_LEVEL must be error, warn, info, or debug")

    log_file_path = env.get("LOG_FILE_PATH") or None
    if log_file_path:
        os.makedirs(os.path.dirname(os.path.abspath(log_file_path)), exist_ok=True)

    retry = RetryPolicy(
        max_attempts=_parse_int(env, "RPC_MAX_ATTEMPTS", 3, minimum=1),
        initial_delay_ms=_parse_int(env, "RPC_INITIAL_DELAY_MS", 1000, minimum=1),
        max_delay_ms=_parse_int(env, "RPC_MAX_DELAY_MS", 30000, minimum=1),
        backoff_multiplier=_parse_float(env, "RPC_BACKOFF_MULTIPLIER", 2.0, strict=True),
    )

    return ReclaimConfig(
        rpc_url=rpc_url,
        cluster=cluster,
        fee_payer=fee_payer,
        operator_keypair_path=keypair_path,
        operator_private_key=private_key,
        treasury=treasury,
        min_account_age_days=min_age,
        min_reclaim_lamports=min_reclaim,
        max_batch_size=max_batch,
        dry_run=_parse_bool(env.get("DRY_RUN")),
        allowed_programs=_parse_pubkey_list(env.get("ALLOWED_PROGRAMS"), "ALLOWED_PROGRAMS"),
        blocked_programs=_parse_pubkey_list(env.get("BLOCKED_PROGRAMS"), "BLOCKED_PROGRAMS"),
        telegram=telegram,
        alert_threshold_sol=_parse_float(env, "ALERT_THRESHOLD_SOL", 1.0),
        monitor_interval_minutes=_parse_int(env, "MONITOR_INTERVAL_MINUTES", 360, minimum=1),
        auto_reclaim=auto_reclaim,
        reclaim_interval_minutes=_parse_int(env, "RECLAIM_INTERVAL_MINUTES", 10080, minimum=1),
        database_path=database_path,
        log_level=log_level,
        log_file_path=log_file_path,
        rpc_rate_limit=_parse_int(env, "RPC_RATE_LIMIT", 10, minimum=1),
        tx_delay_ms=_parse_int(env, "TX_DELAY_MS", 1000, minimum=0),
        confirm_timeout_seconds=_parse_float(env, "CONFIRM_TIMEOUT_SECONDS", 60.0, strict=True),
        retry=retry,
    )


# =============================================================================
# DISPLAY
# =============================================================================

def mask_url(url: str) -> str:
    """Hide API keys carried in the RPC URL path or query."""
    if "?" in url:
        url = url.split("?", 1)[0] + "?***"
    scheme, sep, rest = url.partition("://")
    if not sep:
        return url
    host, slash, path = rest.partition("/")
    if slash and path and path != "?***":
        return f"{scheme}://{host}/***"
    return url


def print_config(config: ReclaimConfig) -> None:
    Logger.section("Configuration")
    Logger.info(f"[CONFIG] Cluster:        {config.cluster}")
    Logger.info(f"[CONFIG] RPC URL:        {mask_url(config.rpc_url)}")
    Logger.info(f"[CONFIG] Fee payer:      {config.fee_payer}")
    Logger.info(f"[CONFIG] Treasury:       {config.treasury or '(operator)'}")
    Logger.info(f"[CONFIG] Min age:        {config.min_account_age_days:g} days")
    Logger.info(f"[CONFIG] Min reclaim:    {config.min_reclaim_lamports} lamports")
    Logger.info(f"[CONFIG] Batch size:     {config.max_batch_size}")
    Logger.info(f"[CONFIG] Dry run:        {config.dry_run}")
    Logger.info(f"[CONFIG] Allowed:        {len(config.allowed_programs)} programs")
    Logger.info(f"[CONFIG] Blocked:        {len(config.blocked_programs)} programs")
    Logger.info(f"[CONFIG] Telegram:       {'enabled' if config.telegram else 'disabled'}")
    Logger.info(f"[CONFIG] Auto reclaim:   {config.auto_reclaim}")
    Logger.info(f"[CONFIG] RPC rate limit: {config.rpc_rate_limit}/s")
