from typing import List, Optional

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Embedding provider defaults (seed for each new workspace session)
    embedding_host: str = ""
    embedding_model: str = ""
    embedding_api_key: Optional[SecretStr] = None
    embedding_batch_size: int = Field(default=64, gt=0)
    embedding_timeout: float = 120.0

    # LLM provider used by the exhaustive classifier
    llm_host: str = ""
    llm_model: str = ""
    llm_api_key: Optional[SecretStr] = None
    llm_timeout: float = 60.0

    # Chunking / retrieval defaults
    chunk_size: int = 1200
    chunk_overlap: int = 200
    per_doc_n: int = 3

    # Per-subscriber event buffer; oldest events are dropped when full
    event_queue_size: int = 256

    document_extensions: str = ".pdf"

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="LITNAV_",
        extra="ignore",
    )

    @property
    def document_extension_list(self) -> List[str]:
        return [
            ext.strip().lower()
            for ext in self.document_extensions.split(",")
            if ext.strip()
        ]


settings = Settings()
