from pydantic_settings import BaseSettings


class Settings(BaseSettings):

    db_path: str = "~/.skillsearch/skills.db"

    # "local" (numpy, persisted under vector_data_dir) or "chroma"
    vector_backend: str = "local"
    vector_data_dir: str = "~/.skillsearch/vectors"

    chroma_host: str = "localhost"
    chroma_port: int = 8001
    chroma_collection: str = "skills"

    embedding_model: str = "intfloat/multilingual-e5-base"
    embedding_batch_size: int = 32

    # Indexing
    index_batch_size: int = 50
    index_retry_attempts: int = 3
    index_retry_base_delay: float = 1.0

    # Search
    search_min_similarity: float = 0.6
    search_max_results: int = 50
    search_max_snippets: int = 3

    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_prefix = "SKILLSEARCH_"
        extra = "ignore"


settings = Settings()
