import logging

from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_prefix="CONTAS_", extra="ignore")

    store_backend: str = "local"

    db_url: str = "sqlite:///contas.db"

    local_store_path: str = "./data"
    local_store_key: str = "it-bills-dashboard"

    owner_email: str = ""

    nocodb_base_url: str = ""
    nocodb_api_token: str = ""
    nocodb_project_id: str = ""
    nocodb_page_size: int = 200
    nocodb_timeout: float = 30.0

    nocodb_table_setores: str = ""
    nocodb_table_contas: str = ""
    nocodb_table_categorias: str = ""
    nocodb_table_empresas_fornecedores: str = ""
    nocodb_table_recorrencia: str = ""
    nocodb_table_geracoes_recorrencia: str = ""

    nocodb_link_setor_contas: str = ""
    nocodb_link_setores_categorias: str = ""
    nocodb_link_setores_empresas_fornecedores: str = ""
    nocodb_link_conta_setor: str = ""
    nocodb_link_conta_categoria: str = ""
    nocodb_link_conta_empresa: str = ""
    nocodb_link_conta_geracoes_recorrencia: str = ""
    nocodb_link_recorrencia_empresa: str = ""
    nocodb_link_recorrencia_conta: str = ""
    nocodb_link_recorrencia_categoria: str = ""
    nocodb_link_recorrencia_geracoes: str = ""
    nocodb_link_geracao_recorrencia: str = ""

    log_level: str = "INFO"
    log_json: bool = False

    def require(self, field_name: str) -> str:
        """Return a non-empty setting or raise ConfigurationError naming its env var."""
        from contas.exceptions import ConfigurationError

        value = getattr(self, field_name)
        if not value:
            env_name = f"{self.model_config['env_prefix']}{field_name.upper()}"
            logger.warning("Missing required setting %s", env_name)
            raise ConfigurationError(f"Missing required setting: {env_name}")
        return value


settings = Settings()
