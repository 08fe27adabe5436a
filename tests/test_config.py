"""Tests for environment-driven settings."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from goalshare.config import DEFAULT_DATA_DIR, Environment, Settings


class TestSettings:

    def test_defaults(self):
        settings = Settings.from_env({})
        assert settings.environment == Environment.PRODUCTION
        assert settings.collection_prefix == ""
        assert settings.data_dir == DEFAULT_DATA_DIR

    @pytest.mark.parametrize("value,prefix", [("development", "dev_"), ("TEST", "test_"), ("production", "")])
    def test_environment_prefixes(self, value, prefix):
        assert Settings.from_env({"GOALSHARE_ENV": value}).collection_prefix == prefix

    def test_prefix_override(self):
        """An explicit prefix wins, even an empty one."""
        settings = Settings.from_env({"GOALSHARE_ENV": "test", "GOALSHARE_COLLECTION_PREFIX": ""})
        assert settings.collection_prefix == ""

        settings = Settings.from_env({"GOALSHARE_COLLECTION_PREFIX": "staging_"})
        assert settings.collection_prefix == "staging_"

    def test_data_dir(self, tmp_path):
        settings = Settings.from_env({"GOALSHARE_DATA_DIR": str(tmp_path)})
        assert settings.data_dir == Path(tmp_path)

    def test_unknown_environment(self):
        with pytest.raises(ValidationError):
            Settings.from_env({"GOALSHARE_ENV": "qa"})
