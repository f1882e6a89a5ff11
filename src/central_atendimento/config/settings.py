"""Configurações da aplicação via variáveis de ambiente.

Todas as configurações são carregadas de env vars (ou arquivo .env em dev).
Nunca hardcode secrets ou valores sensíveis.
"""

from __future__ import annotations

from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic_settings import BaseSettings, SettingsConfigDict

# -----------------------------------------------------------------------------
# Constantes da Graph API Meta/WhatsApp
# -----------------------------------------------------------------------------
GRAPH_API_VERSION: str = "v24.0"
GRAPH_API_BASE_URL: str = "https://graph.facebook.com"


class Settings(BaseSettings):
    """Configurações lidas do ambiente."""

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=False)

    # Aplicação
    service_name: str = "central_atendimento"
    version: str = "0.1.0"
    environment: str = "development"
    log_level: str = "INFO"
    log_format: str = "json"  # json | text
    timezone: str = "America/Sao_Paulo"
    company_name: str = "Central de Atendimento"
    correlation_id_header: str = "X-Correlation-ID"

    # Store
    store_backend: str = "memory"  # memory | redis
    redis_url: str | None = None
    redis_key_prefix: str = "atd:"
    history_max_entries: int = 5000  # avaliações/eventos mantidos no Redis

    # Agendador e timeouts
    scheduler_enabled: bool = True
    tick_interval_seconds: float = 5.0
    chat_idle_timeout_minutes: int = 20
    rating_idle_timeout_minutes: int = 5
    avg_service_minutes: int = 5  # usado na estimativa de espera

    # Comandos (comparados após strip + lower)
    close_command: str = "encerrar"
    confirm_command: str = "sim"
    decline_command: str = "nao"
    decline_command_aliases: list[str] = ["não"]
    menu_command: str = "menu"
    transfer_command: str = "/transferir"
    transfer_command_aliases: list[str] = ["/transfer"]

    # Transporte
    transport_backend: str = "log"  # log | whatsapp
    whatsapp_access_token: str | None = None
    whatsapp_phone_number_id: str | None = None
    whatsapp_api_version: str = GRAPH_API_VERSION
    whatsapp_api_base_url: str = GRAPH_API_BASE_URL
    whatsapp_request_timeout_seconds: float = 30.0

    # Segurança do endpoint de eventos inbound (HMAC SHA-256)
    inbound_webhook_secret: str | None = None

    @property
    def whatsapp_api_endpoint(self) -> str:
        """Retorna a URL base completa da API WhatsApp (versão + base)."""
        return f"{self.whatsapp_api_base_url}/{self.whatsapp_api_version}"

    @property
    def decline_tokens(self) -> frozenset[str]:
        return frozenset([self.decline_command, *self.decline_command_aliases])

    @property
    def transfer_tokens(self) -> tuple[str, ...]:
        return (self.transfer_command, *self.transfer_command_aliases)

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @property
    def is_production(self) -> bool:
        """Retorna True se ambiente é produção."""
        return self.environment.lower() in ("production", "prod")

    @property
    def is_staging(self) -> bool:
        """Retorna True se ambiente é staging."""
        return self.environment.lower() in ("staging", "stage")

    @property
    def is_development(self) -> bool:
        """Retorna True se ambiente é desenvolvimento."""
        return self.environment.lower() in ("development", "dev", "local")

    def validate_store_config(self) -> list[str]:
        """Valida backend do store por ambiente.

        Em staging/prod, memory é proibido (estado perdido a cada restart).
        Retorna lista de erros (vazia = tudo OK).
        """
        errors: list[str] = []
        backend = self.store_backend.lower()

        valid_backends = {"memory", "redis"}
        if backend not in valid_backends:
            errors.append(
                f"STORE_BACKEND '{backend}' inválido. Valores válidos: {sorted(valid_backends)}"
            )

        if backend == "memory" and (self.is_staging or self.is_production):
            errors.append(
                "STORE_BACKEND=memory é proibido em staging/production. Configure 'redis'."
            )

        if backend == "redis" and not self.redis_url:
            errors.append("STORE_BACKEND=redis requer REDIS_URL configurado")

        return errors

    def validate_timing_config(self) -> list[str]:
        """Valida intervalos do agendador e timeouts de inatividade."""
        errors: list[str] = []
        if self.tick_interval_seconds <= 0:
            errors.append("TICK_INTERVAL_SECONDS deve ser > 0")
        if self.chat_idle_timeout_minutes <= 0:
            errors.append("CHAT_IDLE_TIMEOUT_MINUTES deve ser > 0")
        if self.rating_idle_timeout_minutes <= 0:
            errors.append("RATING_IDLE_TIMEOUT_MINUTES deve ser > 0")
        if self.avg_service_minutes < 0:
            errors.append("AVG_SERVICE_MINUTES deve ser >= 0")
        try:
            ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            errors.append(f"TIMEZONE '{self.timezone}' desconhecido")
        return errors

    def validate_commands(self) -> list[str]:
        """Comandos precisam ser não vazios e distintos entre si."""
        errors: list[str] = []
        tokens = [
            self.close_command,
            self.confirm_command,
            *self.decline_tokens,
            self.menu_command,
        ]
        normalized = [t.strip().lower() for t in tokens]
        if any(not t for t in normalized):
            errors.append("Comandos não podem ser vazios")
        if len(set(normalized)) != len(normalized):
            errors.append("Comandos de encerrar/sim/não/menu devem ser distintos")
        if not self.transfer_command.strip():
            errors.append("TRANSFER_COMMAND não pode ser vazio")
        return errors

    def validate_transport_config(self) -> list[str]:
        """Valida transporte e credenciais WhatsApp quando aplicável."""
        errors: list[str] = []
        backend = self.transport_backend.lower()
        if backend not in {"log", "whatsapp"}:
            errors.append("TRANSPORT_BACKEND inválido: use log | whatsapp")
        if backend == "whatsapp":
            if not self.whatsapp_phone_number_id:
                errors.append("WHATSAPP_PHONE_NUMBER_ID não configurado")
            if not self.whatsapp_access_token:
                errors.append("WHATSAPP_ACCESS_TOKEN não configurado")
        if backend == "log" and (self.is_staging or self.is_production):
            errors.append("TRANSPORT_BACKEND=log é proibido em staging/production")
        if (self.is_staging or self.is_production) and not self.inbound_webhook_secret:
            errors.append("INBOUND_WEBHOOK_SECRET obrigatório em staging/production")
        return errors

    def validate_all(self) -> list[str]:
        return [
            *self.validate_store_config(),
            *self.validate_timing_config(),
            *self.validate_commands(),
            *self.validate_transport_config(),
        ]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Retorna uma instância cacheada de Settings.

    A cache garante que mesmo múltiplas injeções não criam novos objetos.
    """
    return Settings()
