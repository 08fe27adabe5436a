import os
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field


class Environment(Enum):
    DEVELOPMENT = "development"
    PRODUCTION = "production"
    TEST = "test"


# Collections of each environment live side by side in one backend.
COLLECTION_PREFIXES = {
    Environment.DEVELOPMENT: "dev_",
    Environment.TEST: "test_",
    Environment.PRODUCTION: "",
}

DEFAULT_DATA_DIR = Path.home() / ".local" / "share" / "goalshare" / "data"


class Settings(BaseModel):
    """Runtime configuration, read from GOALSHARE_* environment variables."""

    environment: Environment = Field(default=Environment.PRODUCTION, description="Deployment environment")
    data_dir: Path = Field(default=DEFAULT_DATA_DIR, description="Root of the YAML document store")
    collection_prefix_override: Optional[str] = Field(
        default=None,
        description="Explicit collection prefix, replacing the environment's"
    )

    @property
    def collection_prefix(self) -> str:
        if self.collection_prefix_override is not None:
            return self.collection_prefix_override
        return COLLECTION_PREFIXES[self.environment]

    @classmethod
    def from_env(cls, environ=None) -> 'Settings':
        environ = os.environ if environ is None else environ
        values = {}
        if environ.get("GOALSHARE_ENV"):
            values["environment"] = environ["GOALSHARE_ENV"].lower()
        if environ.get("GOALSHARE_DATA_DIR"):
            values["data_dir"] = Path(environ["GOALSHARE_DATA_DIR"]).expanduser()
        if "GOALSHARE_COLLECTION_PREFIX" in environ:
            values["collection_prefix_override"] = environ["GOALSHARE_COLLECTION_PREFIX"]
        return cls(**values)
