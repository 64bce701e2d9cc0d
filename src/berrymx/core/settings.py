"""Global settings for BerryMX."""

import os
import logging
from typing import Optional
from pydantic import BaseModel, ConfigDict
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

DEFAULT_ADMIN_ROOT = "/var/berrymx"
FALLBACK_ADMIN_ROOT = "/var/tmp/berrymx"


class Settings(BaseSettings):
    """应用程序设置"""
    # 管理目录设置
    BERRYMX_ADMIN_ROOT: Optional[str] = None
    BERRYMX_DATA_DIR: Optional[str] = None
    BERRYMX_KEYS_DIR: Optional[str] = None
    BERRYMX_ALLOWED_SIGNERS: Optional[str] = None
    BERRYMX_SEED_DIR: Optional[str] = None
    BERRYMX_SITE_ROOT: Optional[str] = None

    # 签名设置
    SSH_NAMESPACE: str = "berrymx-api"
    SSH_KEYGEN_PATH: str = "ssh-keygen"
    CLOCK_SKEW_SECONDS: int = 5 * 60

    # 翻译代理
    BERRYMX_TRANSLATE_URL: str = "https://libretranslate.com/translate"
    BERRYMX_TRANSLATE_KEY: str = ""
    TRANSLATE_TIMEOUT: float = 15.0

    # API设置
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    MAX_BODY_BYTES: int = 1_000_000
    API_TITLE: str = "BerryMX API"
    API_DESCRIPTION: str = "Flat-file JSON content API"
    API_VERSION: str = "1.0.0"

    # 日志设置
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    LOG_FILE: Optional[str] = None
    LOG_MAX_BYTES: int = 10 * 1024 * 1024  # 10MB
    LOG_BACKUP_COUNT: int = 5

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    @property
    def has_explicit_admin_path(self) -> bool:
        return any([
            self.BERRYMX_ADMIN_ROOT,
            self.BERRYMX_DATA_DIR,
            self.BERRYMX_KEYS_DIR,
            self.BERRYMX_ALLOWED_SIGNERS,
        ])


class ServerConfig(BaseModel):
    """启动时解析一次的只读配置"""
    admin_root: str
    data_dir: str
    keys_dir: str
    allowed_signers: str
    ssh_namespace: str = "berrymx-api"
    ssh_keygen_path: str = "ssh-keygen"
    clock_skew_seconds: int = 5 * 60
    max_body_bytes: int = 1_000_000
    translate_url: str = ""
    translate_key: str = ""
    translate_timeout: float = 15.0
    seed_dir: Optional[str] = None
    site_root: Optional[str] = None
    host: str = "0.0.0.0"
    port: int = 3000
    api_title: str = "BerryMX API"
    api_description: str = ""
    api_version: str = "1.0.0"
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    log_file: Optional[str] = None
    log_max_bytes: int = 10 * 1024 * 1024
    log_backup_count: int = 5

    model_config = ConfigDict(frozen=True)


def ensure_dir(path: str) -> bool:
    """创建目录，失败时返回 False"""
    try:
        os.makedirs(path, exist_ok=True)
        return True
    except OSError as e:
        logger.warning(f"Could not create {path}: {str(e)}")
        return False


def _admin_dirs(root: str, settings: Settings):
    data_dir = settings.BERRYMX_DATA_DIR or os.path.join(root, "data")
    keys_dir = settings.BERRYMX_KEYS_DIR or os.path.join(root, "keys")
    return data_dir, keys_dir


def resolve_config(settings: Optional[Settings] = None) -> ServerConfig:
    """Resolve directories (with the temp fallback) into a frozen config."""
    settings = settings or Settings()

    admin_root = settings.BERRYMX_ADMIN_ROOT or DEFAULT_ADMIN_ROOT
    data_dir, keys_dir = _admin_dirs(admin_root, settings)

    data_ready = ensure_dir(data_dir)
    keys_ready = ensure_dir(keys_dir)
    if (not data_ready or not keys_ready) and not settings.has_explicit_admin_path:
        admin_root = FALLBACK_ADMIN_ROOT
        data_dir = os.path.join(admin_root, "data")
        keys_dir = os.path.join(admin_root, "keys")
        ensure_dir(data_dir)
        ensure_dir(keys_dir)
        logger.warning(f"Falling back to {admin_root} for admin storage.")

    log_file = settings.LOG_FILE
    if log_file is None:
        log_file = os.path.join(admin_root, "logs", "berrymx.log")

    return ServerConfig(
        admin_root=admin_root,
        data_dir=data_dir,
        keys_dir=keys_dir,
        allowed_signers=settings.BERRYMX_ALLOWED_SIGNERS or os.path.join(keys_dir, "allowed_signers"),
        ssh_namespace=settings.SSH_NAMESPACE,
        ssh_keygen_path=settings.SSH_KEYGEN_PATH,
        clock_skew_seconds=settings.CLOCK_SKEW_SECONDS,
        max_body_bytes=settings.MAX_BODY_BYTES,
        translate_url=settings.BERRYMX_TRANSLATE_URL,
        translate_key=settings.BERRYMX_TRANSLATE_KEY,
        translate_timeout=settings.TRANSLATE_TIMEOUT,
        seed_dir=settings.BERRYMX_SEED_DIR,
        site_root=settings.BERRYMX_SITE_ROOT,
        host=settings.HOST,
        port=settings.PORT,
        api_title=settings.API_TITLE,
        api_description=settings.API_DESCRIPTION,
        api_version=settings.API_VERSION,
        log_level=settings.LOG_LEVEL,
        log_format=settings.LOG_FORMAT,
        log_file=log_file or None,
        log_max_bytes=settings.LOG_MAX_BYTES,
        log_backup_count=settings.LOG_BACKUP_COUNT,
    )
