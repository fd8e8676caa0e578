from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    database_url: str = "sqlite:///./sticker_crm.db"
    storage_backend: str = "sql"  # sql/memory
    log_level: str = "INFO"

    director_role: str = "Менеджер"
    default_managers: list[dict] = [
        {"name": "Софа", "salary_percentage": 22},
        {"name": "Лена", "salary_percentage": 22},
    ]
    default_order_sources: list[str] = [
        "По совету знакомых",
        "Инстаграм",
        "Вконтакте",
        "Наши друзья",
        "Знакомые",
        "Повторный клиент",
    ]
    expense_categories: list[str] = ["Смола", "Расходники", "Печать", "Прочее"]

    model_config = SettingsConfigDict(env_file=".env", env_prefix="STICKER_CRM_", case_sensitive=False)


settings = Settings()
