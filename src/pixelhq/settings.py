"""本地设置持久化

~/.pixelhq/ 下保存两份文件：
- config.json: 公司名等显示设置
- token: 6 位配对 token

写入使用 temp + rename 原子替换；读写失败时回退默认值，不中断启动。
"""

import json
import os
import secrets
import tempfile
from dataclasses import dataclass
from pathlib import Path

from .config import (
    CONFIG_DIR,
    CONFIG_FILE_NAME,
    DEFAULT_COMPANY_NAME,
    TOKEN_FILE_NAME,
    TOKEN_LENGTH,
)
from .telemetry import get_logger

logger = get_logger(__name__)


@dataclass
class Settings:
    """持久化设置"""
    company_name: str = DEFAULT_COMPANY_NAME


def _atomic_write(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_path = tempfile.mkstemp(prefix="pixelhq_", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(temp_path, path)
    except Exception:
        if os.path.exists(temp_path):
            os.unlink(temp_path)
        raise


def load_settings(config_dir: Path | None = None) -> Settings:
    """读取 config.json，未知字段忽略，损坏时返回默认值"""
    path = (config_dir or CONFIG_DIR) / CONFIG_FILE_NAME
    if not path.exists():
        return Settings()

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning(f"[Settings] Ignoring unreadable {path}: {e}")
        return Settings()

    if not isinstance(data, dict):
        logger.warning(f"[Settings] Ignoring {path}: not an object")
        return Settings()

    company_name = data.get("companyName", DEFAULT_COMPANY_NAME)
    if not isinstance(company_name, str) or not company_name:
        company_name = DEFAULT_COMPANY_NAME
    return Settings(company_name=company_name)


def save_settings(settings: Settings, config_dir: Path | None = None) -> bool:
    """写入 config.json

    Returns:
        是否成功
    """
    path = (config_dir or CONFIG_DIR) / CONFIG_FILE_NAME
    data = {"companyName": settings.company_name}
    try:
        _atomic_write(path, json.dumps(data, ensure_ascii=False, indent=2))
    except OSError as e:
        logger.warning(f"[Settings] Save failed: {e}")
        return False
    return True


def generate_token() -> str:
    """生成 6 位数字 token（100000-999999）"""
    return str(100000 + secrets.randbelow(900000))


def get_or_create_token(config_dir: Path | None = None) -> str:
    """读取已保存的 token，没有或格式不对时生成新的

    写入失败时返回的 token 只在本次进程有效。
    """
    path = (config_dir or CONFIG_DIR) / TOKEN_FILE_NAME
    try:
        existing = path.read_text(encoding="utf-8").strip()
        if len(existing) == TOKEN_LENGTH:
            return existing
    except OSError:
        pass

    token = generate_token()
    try:
        _atomic_write(path, token)
    except OSError as e:
        logger.warning(f"[Settings] Could not persist token, using ephemeral token: {e}")
    return token
