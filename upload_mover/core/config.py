"""
MoverConfig - process configuration for the upload mover.

Collects every environment-driven setting in one object that is built
once at startup and passed into the components that need it. Missing
required values raise MissingConfigurationError before any work starts.

Example:
    >>> from upload_mover.core.config import MoverConfig
    >>>
    >>> config = MoverConfig.from_env()
    >>> config.file_move_timeout
    3600.0
"""

from __future__ import annotations

from dataclasses import dataclass

from upload_mover.core.env import EnvManager, get_env
from upload_mover.core.logger import get_logger

DEFAULT_FILE_MOVE_TIMEOUT_MINUTES = 60
DEFAULT_WORKERS = 20
DEFAULT_COPY_WORKERS = 10
DEFAULT_REGION = "us-east-1"
DEFAULT_POSTGRES_DB = "pennsieve_postgres"


def file_move_timeout_minutes(env: EnvManager | None = None) -> int:
    """
    Per-file copy timeout in minutes.

    Reads FILE_MOVE_TIMEOUT; absent, empty or non-numeric values fall
    back to 60 minutes.
    """
    env = env or get_env()
    raw = env.get("FILE_MOVE_TIMEOUT")
    if raw is None:
        return DEFAULT_FILE_MOVE_TIMEOUT_MINUTES
    try:
        return int(raw)
    except ValueError:
        get_logger(__name__).warning(
            f"Ignoring non-numeric FILE_MOVE_TIMEOUT={raw!r}, "
            f"using {DEFAULT_FILE_MOVE_TIMEOUT_MINUTES} minutes"
        )
        return DEFAULT_FILE_MOVE_TIMEOUT_MINUTES


@dataclass
class PostgresConfig:
    """
    Connection settings for the relational metadata store.

    When ``password`` is empty the connection authenticates with an RDS
    IAM auth token minted for ``user`` against ``host``.
    """

    host: str
    port: int = 5432
    database: str = DEFAULT_POSTGRES_DB
    user: str = ""
    password: str = ""
    region: str = DEFAULT_REGION
    min_size: int = 1
    max_size: int = 10

    @property
    def uses_iam_auth(self) -> bool:
        return not self.password

    @property
    def url(self) -> str:
        return f"postgresql://{self.user}@{self.host}:{self.port}/{self.database}"


@dataclass
class MoverConfig:
    """
    Configuration for one mover run.

    Attributes:
        manifest_table: DynamoDB table holding manifests
        file_table: DynamoDB table holding manifest files
        upload_bucket: Staging bucket files are copied from
        default_storage_bucket: Bucket used when an organization has none
        region: Region of the process (upload bucket, DynamoDB)
        file_move_timeout_minutes: Deadline for copying a single file
        workers: Size of the outer migration pool
        copy_workers: Size of the inner part-copy pool
        delete_source: Delete the staged object after a successful move
        postgres: Relational store settings, None when RDS_PROXY_ENDPOINT is unset
        log_level: Logging level name
        log_json: Emit single-line JSON logs
        metrics_port: Prometheus port, 0 disables the exporter
    """

    manifest_table: str
    file_table: str
    upload_bucket: str
    default_storage_bucket: str
    region: str = DEFAULT_REGION
    file_move_timeout_minutes: int = DEFAULT_FILE_MOVE_TIMEOUT_MINUTES
    workers: int = DEFAULT_WORKERS
    copy_workers: int = DEFAULT_COPY_WORKERS
    delete_source: bool = True
    postgres: PostgresConfig | None = None
    log_level: str = "INFO"
    log_json: bool = False
    metrics_port: int = 0

    def __post_init__(self) -> None:
        if self.workers < 1:
            msg = f"workers must be at least 1, got {self.workers}"
            raise ValueError(msg)
        if self.copy_workers < 1:
            msg = f"copy_workers must be at least 1, got {self.copy_workers}"
            raise ValueError(msg)

    @property
    def file_move_timeout(self) -> float:
        """Per-file timeout in seconds."""
        return float(self.file_move_timeout_minutes * 60)

    @classmethod
    def from_env(cls, env: EnvManager | None = None) -> MoverConfig:
        """
        Build the configuration from environment variables.

        Raises:
            MissingConfigurationError: If a required variable is unset
        """
        env = env or get_env()
        region = env.get_first("REGION", "AWS_REGION", default=DEFAULT_REGION)

        postgres = None
        host = env.get("RDS_PROXY_ENDPOINT")
        if host:
            postgres = PostgresConfig(
                host=host,
                port=env.get_int("POSTGRES_PORT", 5432),
                database=env.get("POSTGRES_DB", DEFAULT_POSTGRES_DB),
                user=env.get("POSTGRES_USER", required=True),
                password=env.get("POSTGRES_PASSWORD", ""),
                region=region,
            )

        return cls(
            manifest_table=env.get("MANIFEST_TABLE", required=True),
            file_table=env.get_first("MANIFEST_FILE_TABLE", "FILES_TABLE", required=True),
            upload_bucket=env.get("UPLOAD_BUCKET", required=True),
            default_storage_bucket=env.get("STORAGE_BUCKET", required=True),
            region=region,
            file_move_timeout_minutes=file_move_timeout_minutes(env),
            workers=env.get_int("MOVER_WORKERS", DEFAULT_WORKERS),
            copy_workers=env.get_int("MOVER_COPY_WORKERS", DEFAULT_COPY_WORKERS),
            delete_source=env.get_bool("MOVER_DELETE_SOURCE", default=True),
            postgres=postgres,
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
            log_json=env.get_bool("LOG_JSON", default=False),
            metrics_port=env.get_int("METRICS_PORT", 0),
        )
