"""設定型定義と設定ファイル読み込み"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from .exceptions import QuotaError, QuotaErrorCodes

ENVIRONMENT_VARIABLE = "APP_ENV"

LimitValue = int | Literal["unlimited"]


class MetricSection(BaseModel):
    """メトリクス定義。"""

    reset: str
    error_code: str = ""


class PlanSection(BaseModel):
    """ティアごとの機能一覧と制約。"""

    features: list[str] = Field(default_factory=list)
    restrictions: dict[str, int | bool | str] = Field(default_factory=dict)


class ServiceSection(BaseModel):
    """サービス単位のメトリクスとティア別上限。"""

    name: str = ""
    metrics: dict[str, MetricSection] = Field(default_factory=dict)
    tiers: dict[str, dict[str, LimitValue]] = Field(default_factory=dict)
    plans: dict[str, PlanSection] = Field(default_factory=dict)
    top_tier: str = "enterprise"

    @field_validator("tiers")
    @classmethod
    def _check_limits(
        cls, tiers: dict[str, dict[str, LimitValue]]
    ) -> dict[str, dict[str, LimitValue]]:
        for tier, limits in tiers.items():
            for metric, limit in limits.items():
                if isinstance(limit, int) and limit < -1:
                    raise ValueError(
                        f"limit for {tier}.{metric} must be >= 0, -1 or 'unlimited'"
                    )
        return tiers


class RedisSection(BaseModel):
    """Redis 接続設定。"""

    host: str = "localhost"
    port: int = Field(default=6379, ge=1, le=65535)
    password: str = ""
    db: int = 0
    key_prefix: str = "quota:"

    @property
    def url(self) -> str:
        auth = f":{self.password}@" if self.password else ""
        return f"redis://{auth}{self.host}:{self.port}/{self.db}"


class StoreSection(BaseModel):
    """カウンターストア設定。"""

    backend: Literal["memory", "redis"] = "memory"
    redis: RedisSection = Field(default_factory=RedisSection)


class QuotaSection(BaseModel):
    """クォータ全体設定。"""

    environment: str = "development"
    failure_mode: Literal["open", "closed"] = "open"
    store_timeout_seconds: float = Field(default=0.5, gt=0)
    sweep_interval_seconds: float = Field(default=6 * 60 * 60, gt=0)
    default_tier: str = "free"
    store: StoreSection = Field(default_factory=StoreSection)
    services: dict[str, ServiceSection] = Field(default_factory=dict)


class LogSection(BaseModel):
    """ログ設定。"""

    level: str = "INFO"
    format: Literal["json", "text"] = "json"


class QuotaConfig(BaseModel):
    """設定全体。起動時に一度だけ読み込み、以後は変更しない。"""

    model_config = {"frozen": True}

    quota: QuotaSection = Field(default_factory=QuotaSection)
    logging: LogSection = Field(default_factory=LogSection)


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """base と override をディープマージして新しい辞書を返す。

    override の値が優先される。リストは置換（マージしない）。
    """
    result: dict[str, Any] = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _read_yaml(path: Path) -> dict[str, Any]:
    """YAML ファイルを読み込む。"""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise QuotaError(
            code=QuotaErrorCodes.READ_FILE,
            message=f"Failed to read config file: {path}",
            cause=e,
        ) from e
    try:
        data: dict[str, Any] = yaml.safe_load(text) or {}
    except yaml.YAMLError as e:
        raise QuotaError(
            code=QuotaErrorCodes.PARSE_YAML,
            message=f"Failed to parse YAML: {path}",
            cause=e,
        ) from e
    return data


def load(base_path: Path, env_path: Path | None = None) -> QuotaConfig:
    """設定ファイルを読み込んで QuotaConfig を返す。

    base_path: ベース設定ファイルパス（必須）
    env_path: 環境別設定ファイルパス（オプション）。存在する場合はベースにマージ。
    """
    data = _read_yaml(base_path)
    if env_path is not None and env_path.exists():
        env_data = _read_yaml(env_path)
        data = deep_merge(data, env_data)
    try:
        return QuotaConfig.model_validate(data)
    except ValidationError as e:
        raise QuotaError(
            code=QuotaErrorCodes.VALIDATION,
            message=f"Config validation failed: {e}",
            cause=e,
        ) from e


def load_for_environment(config_dir: Path, environment: str | None = None) -> QuotaConfig:
    """config_dir/quota.yaml に config_dir/quota.<environment>.yaml を重ねて読み込む。

    environment 未指定時は環境変数 APP_ENV、それも無ければ development。
    """
    environment = environment or os.environ.get(ENVIRONMENT_VARIABLE, "development")
    config = load(config_dir / "quota.yaml", config_dir / f"quota.{environment}.yaml")
    if config.quota.environment != environment:
        quota = config.quota.model_copy(update={"environment": environment})
        config = config.model_copy(update={"quota": quota})
    return config
