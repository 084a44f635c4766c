from pydantic_settings import BaseSettings, SettingsConfigDict


class ClientSettings(BaseSettings):
    """
    Settings for the job client, read from ``WARDROBE_CLIENT_*`` variables
    or a ``.env`` file.
    """

    supabase_url: str = ""
    supabase_anon_key: str = ""
    runner_url: str = "http://localhost:8765/ai-job-runner"
    dev_mode: bool = False

    # Polling
    initial_interval_ms: int = 2000
    max_interval_ms: int = 10000
    failure_threshold: int = 5

    # Trigger
    trigger_timeout: float = 5.0

    model_config = SettingsConfigDict(
        env_prefix="WARDROBE_CLIENT_", env_file=".env", extra="ignore"
    )

    @property
    def max_attempts(self) -> int:
        return 30 if self.dev_mode else 60
