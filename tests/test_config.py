"""
Unit tests for repokeeper.config (tool settings)
"""
import unittest
import tempfile
import os
import shutil
import json
import logging
from pathlib import Path
from unittest.mock import patch

import yaml

from repokeeper.config import (
    apply_env_overrides,
    configure_logging,
    get_config_path,
    get_default_config,
    load_config,
    merge_configs,
    save_config,
)
from repokeeper.exit_codes import SETTINGS_ERROR, SettingsError


class TestConfigManagement(unittest.TestCase):
    """Test settings loading and saving"""

    def setUp(self):
        """Set up test environment"""
        self.temp_dir = tempfile.mkdtemp()
        self.env = patch.dict(os.environ, {'HOME': self.temp_dir}, clear=False)
        self.env.start()
        for key in [k for k in os.environ if k.startswith('REPOKEEPER_')]:
            del os.environ[key]

    def tearDown(self):
        """Clean up test environment"""
        self.env.stop()
        shutil.rmtree(self.temp_dir)

    def test_get_default_config(self):
        """Test default settings structure"""
        config = get_default_config()

        self.assertEqual(config['general']['config_file'], 'config.xml')
        self.assertEqual(config['general']['default_branch'], 'main')
        self.assertEqual(config['general']['protected'], ['admin'])
        self.assertEqual(config['git']['timeout'], 60)
        self.assertEqual(config['remotes'], {})

    def test_load_config_no_file(self):
        """Test loading settings when no file exists"""
        self.assertEqual(load_config(), get_default_config())

    def test_default_path(self):
        self.assertEqual(get_config_path(), Path(self.temp_dir) / '.repokeeper' / 'config.yaml')

    def test_load_yaml_merges_with_defaults(self):
        """Test a partial YAML file is merged over the defaults"""
        path = Path(self.temp_dir) / '.repokeeper' / 'config.yaml'
        path.parent.mkdir()
        path.write_text("general:\n  default_branch: trunk\nremotes:\n  prod: /srv/admin/config.xml\n")

        config = load_config()

        self.assertEqual(config['general']['default_branch'], 'trunk')
        self.assertEqual(config['general']['config_file'], 'config.xml')
        self.assertEqual(config['remotes'], {'prod': '/srv/admin/config.xml'})

    def test_load_toml_and_json(self):
        """Test TOML and JSON settings files"""
        toml_path = Path(self.temp_dir) / 'settings.toml'
        toml_path.write_text('[git]\nbinary = "/opt/git/bin/git"\n')
        with patch.dict(os.environ, {'REPOKEEPER_CONFIG': str(toml_path)}):
            self.assertEqual(load_config()['git']['binary'], '/opt/git/bin/git')

        json_path = Path(self.temp_dir) / 'settings.json'
        json_path.write_text(json.dumps({'logging': {'level': 'DEBUG'}}))
        with patch.dict(os.environ, {'REPOKEEPER_CONFIG': str(json_path)}):
            self.assertEqual(load_config()['logging']['level'], 'DEBUG')

    def test_invalid_file_raises_settings_error(self):
        """Test that a broken settings file is reported, not ignored"""
        path = Path(self.temp_dir) / 'broken.yaml'
        path.write_text("general: [unclosed\n")

        with patch.dict(os.environ, {'REPOKEEPER_CONFIG': str(path)}):
            with self.assertRaises(SettingsError) as ctx:
                load_config()

        self.assertEqual(ctx.exception.exit_code, SETTINGS_ERROR)

    def test_non_mapping_file_rejected(self):
        path = Path(self.temp_dir) / 'list.yaml'
        path.write_text("- a\n- b\n")

        with patch.dict(os.environ, {'REPOKEEPER_CONFIG': str(path)}):
            with self.assertRaises(SettingsError):
                load_config()

    def test_save_config_round_trips_yaml(self):
        """Test saving settings"""
        config = get_default_config()
        config['remotes']['prod'] = '/srv/admin/config.xml'

        path = save_config(config)

        self.assertEqual(path.suffix, '.yaml')
        self.assertEqual(yaml.safe_load(path.read_text())['remotes'], {'prod': '/srv/admin/config.xml'})


class TestEnvOverrides(unittest.TestCase):
    """REPOKEEPER_SECTION_KEY environment overrides"""

    def test_nested_key_with_underscores(self):
        with patch.dict(os.environ, {'REPOKEEPER_GENERAL_DEFAULT_BRANCH': 'trunk'}):
            config = apply_env_overrides(get_default_config())

        self.assertEqual(config['general']['default_branch'], 'trunk')

    def test_integer_coercion(self):
        with patch.dict(os.environ, {'REPOKEEPER_GIT_TIMEOUT': '5'}):
            config = apply_env_overrides(get_default_config())

        self.assertEqual(config['git']['timeout'], 5)

    def test_list_values_split_on_commas(self):
        with patch.dict(os.environ, {'REPOKEEPER_GENERAL_PROTECTED': 'admin, infra'}):
            config = apply_env_overrides(get_default_config())

        self.assertEqual(config['general']['protected'], ['admin', 'infra'])

    def test_unknown_keys_are_ignored(self):
        with patch.dict(os.environ, {'REPOKEEPER_NOPE_VALUE': 'x'}):
            config = apply_env_overrides(get_default_config())

        self.assertEqual(config, get_default_config())

    def test_merge_configs_is_recursive(self):
        merged = merge_configs({'a': {'b': 1, 'c': 2}}, {'a': {'c': 3}, 'd': 4})

        self.assertEqual(merged, {'a': {'b': 1, 'c': 3}, 'd': 4})


class TestConfigureLogging(unittest.TestCase):

    def setUp(self):
        self.original = logging.getLogger().level

    def tearDown(self):
        logging.getLogger().setLevel(self.original)

    def test_level_from_settings(self):
        configure_logging({'logging': {'level': 'warning'}})

        self.assertEqual(logging.getLogger().level, logging.WARNING)

    def test_debug_flag_wins(self):
        configure_logging({'logging': {'level': 'ERROR'}}, debug=True)

        self.assertEqual(logging.getLogger().level, logging.DEBUG)
