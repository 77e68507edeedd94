import os
from unittest.mock import patch

import pydantic
import pytest
from upath import UPath

from nlcd.config import TIGER_BLOCKS_TEMPLATE, NLCDConfig, load_config
from nlcd.types import ExecutorKind, GeoLevel, TableKind

# ============= Mock and Fixture Helpers =============


@pytest.fixture
def clean_env():
    """Run without any NLCD_* variables from the surrounding environment."""
    env = {k: v for k, v in os.environ.items() if not k.upper().startswith('NLCD_')}
    with patch.dict(os.environ, env, clear=True):
        yield


@pytest.fixture
def sample_config(tmp_path, clean_env):
    return NLCDConfig(storage_root=str(tmp_path))


# ============= NLCDConfig Tests =============


class TestNLCDConfig:
    """Test the NLCDConfig settings."""

    def test_defaults(self, sample_config):
        assert sample_config.raster_path is None
        assert sample_config.blocks_template == TIGER_BLOCKS_TEMPLATE
        assert sample_config.block_id_column == 'GEOID20'
        assert sample_config.nodata is None
        assert sample_config.raster_chunk_size == 4096
        assert sample_config.max_workers is None
        assert sample_config.executor == ExecutorKind.THREAD
        assert sample_config.write_proportions is True
        assert sample_config.debug is False

    def test_storage_root_required(self, clean_env):
        with pytest.raises(pydantic.ValidationError):
            NLCDConfig()

    def test_env_overrides(self, tmp_path, clean_env):
        env = {
            'NLCD_STORAGE_ROOT': str(tmp_path),
            'NLCD_RASTER_PATH': '/data/nlcd_2021_land_cover_l48.tif',
            'NLCD_NODATA': '250',
            'NLCD_MAX_WORKERS': '6',
            'NLCD_EXECUTOR': 'process',
            'NLCD_WRITE_PROPORTIONS': 'false',
        }
        with patch.dict(os.environ, env):
            config = NLCDConfig()
        assert config.storage_root == str(tmp_path)
        assert config.raster_path == '/data/nlcd_2021_land_cover_l48.tif'
        assert config.nodata == 250
        assert config.max_workers == 6
        assert config.executor == ExecutorKind.PROCESS
        assert config.write_proportions is False

    def test_lowercase_env(self, tmp_path, clean_env):
        with patch.dict(os.environ, {'nlcd_storage_root': str(tmp_path)}):
            assert NLCDConfig().storage_root == str(tmp_path)

    def test_template_requires_placeholder(self, tmp_path, clean_env):
        with pytest.raises(pydantic.ValidationError, match='placeholder'):
            NLCDConfig(storage_root=str(tmp_path), blocks_template='blocks.parquet')

    def test_invalid_max_workers(self, tmp_path, clean_env):
        with pytest.raises(pydantic.ValidationError):
            NLCDConfig(storage_root=str(tmp_path), max_workers=0)

    def test_invalid_executor(self, tmp_path, clean_env):
        with pytest.raises(pydantic.ValidationError):
            NLCDConfig(storage_root=str(tmp_path), executor='cluster')

    def test_directories_created(self, sample_config, tmp_path):
        assert isinstance(sample_config.checkpoint_dir, UPath)
        assert sample_config.checkpoint_dir.exists()
        assert sample_config.tables_dir.exists()
        assert str(sample_config.tables_dir) == str(tmp_path / 'tables')

    def test_checkpoint_uri(self, sample_config, tmp_path):
        uri = sample_config.checkpoint_uri('06')
        assert str(uri) == str(tmp_path / 'checkpoints' / 'state_06_block_counts.csv')

    def test_table_uri(self, sample_config, tmp_path):
        uri = sample_config.table_uri(GeoLevel.TRACT, TableKind.PROP, '41')
        assert str(uri) == str(tmp_path / 'tables' / 'nlcd_tract_prop_41.csv.gz')

    def test_pretty_paths(self, sample_config):
        with patch('nlcd.config.console') as mock_console:
            sample_config.pretty_paths()
        mock_console.print.assert_called_once()


class TestLoadConfig:
    def test_without_file_reads_environment(self, tmp_path, clean_env):
        with patch.dict(os.environ, {'NLCD_STORAGE_ROOT': str(tmp_path)}):
            assert load_config(None).storage_root == str(tmp_path)

    def test_env_file(self, tmp_path, clean_env):
        env_file = tmp_path / '.env'
        env_file.write_text(
            f'NLCD_STORAGE_ROOT={tmp_path / "store"}\nNLCD_MAX_WORKERS=3\nNLCD_DEBUG=true\n'
        )
        config = load_config(env_file)
        assert config.storage_root == str(tmp_path / 'store')
        assert config.max_workers == 3
        assert config.debug is True
