"""Tests for vault_sync.config_loader: hierarchical config loading."""

import textwrap

import pytest
import yaml

from vault_sync.config_loader import (
    _interpolate_recursive,
    _load_yaml_with_includes,
    discover_config_files,
    interpolate_env_vars,
    load_hierarchical_config,
)


@pytest.fixture
def isolated(tmp_path, monkeypatch):
    """CWD and HOME inside tmp_path, no explicit config path."""
    monkeypatch.delenv("VAULT_SYNC_CONFIG", raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    return tmp_path


def _project_config(root, text: str, name: str = "config.yml"):
    path = root / ".vault_sync" / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(text))
    return path


def _global_config(root, text: str):
    path = root / "home" / ".config" / "vault_sync" / "config.yml"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(text))
    return path


# -------------------------------------------------------------------------
# Env var interpolation
# -------------------------------------------------------------------------


class TestInterpolateEnvVars:
    """Tests for ${VAR} and ${VAR:-default} substitution."""

    def test_replaces_set_var(self, monkeypatch):
        monkeypatch.setenv("VAULT_OWNER", "alice")
        assert interpolate_env_vars("${VAULT_OWNER}") == "alice"

    def test_unset_var_replaced_with_empty(self, monkeypatch):
        monkeypatch.delenv("UNSET_VAR_XYZ", raising=False)
        assert interpolate_env_vars("${UNSET_VAR_XYZ}") == ""

    def test_default_used_when_unset_or_empty(self, monkeypatch):
        monkeypatch.delenv("UNSET_VAR_XYZ", raising=False)
        monkeypatch.setenv("EMPTY_VAR", "")
        assert interpolate_env_vars("${UNSET_VAR_XYZ:-main}") == "main"
        assert interpolate_env_vars("${EMPTY_VAR:-main}") == "main"

    def test_default_ignored_when_set(self, monkeypatch):
        monkeypatch.setenv("SYNC_BRANCH", "devices")
        assert interpolate_env_vars("${SYNC_BRANCH:-main}") == "devices"

    def test_multiple_vars_in_one_string(self, monkeypatch):
        monkeypatch.setenv("OWNER_A", "alice")
        monkeypatch.setenv("REPO_A", "notes")
        assert interpolate_env_vars("${OWNER_A}/${REPO_A}") == "alice/notes"

    def test_literal_dollar_brace_no_closing(self):
        assert interpolate_env_vars("${NO_CLOSE") == "${NO_CLOSE"

    def test_nested_structures(self, monkeypatch):
        monkeypatch.setenv("TOKEN_VAL", "t0k")
        data = {"remote": {"token": "${TOKEN_VAL}", "max_retries": 3}, "x": ["${TOKEN_VAL}", 1]}
        assert _interpolate_recursive(data) == {
            "remote": {"token": "t0k", "max_retries": 3},
            "x": ["t0k", 1],
        }


# -------------------------------------------------------------------------
# YAML !include support
# -------------------------------------------------------------------------


class TestIncludeDirective:
    def test_include_relative_file(self, tmp_path):
        (tmp_path / "secrets.yml").write_text("token: secret123\n")
        main = tmp_path / "config.yml"
        main.write_text("remote: !include secrets.yml\n")

        assert _load_yaml_with_includes(main) == {"remote": {"token": "secret123"}}

    def test_include_absolute_path(self, tmp_path):
        secrets = tmp_path / "abs.yml"
        secrets.write_text("token: abc\n")
        main = tmp_path / "config.yml"
        main.write_text(f"remote: !include {secrets}\n")

        assert _load_yaml_with_includes(main) == {"remote": {"token": "abc"}}

    def test_include_nonexistent_raises(self, tmp_path):
        main = tmp_path / "config.yml"
        main.write_text("data: !include missing.yml\n")
        with pytest.raises(FileNotFoundError, match="missing.yml"):
            _load_yaml_with_includes(main)

    def test_circular_include_raises(self, tmp_path):
        (tmp_path / "a.yml").write_text("x: !include b.yml\n")
        (tmp_path / "b.yml").write_text("y: !include a.yml\n")
        with pytest.raises(ValueError, match="Circular include"):
            _load_yaml_with_includes(tmp_path / "a.yml")

    def test_nested_includes(self, tmp_path):
        (tmp_path / "c.yml").write_text("val: deep\n")
        (tmp_path / "b.yml").write_text("inner: !include c.yml\n")
        (tmp_path / "a.yml").write_text("outer: !include b.yml\n")
        assert _load_yaml_with_includes(tmp_path / "a.yml") == {
            "outer": {"inner": {"val": "deep"}}
        }

    def test_global_safe_loader_not_polluted(self, tmp_path):
        cfg = tmp_path / "test.yml"
        cfg.write_text("x: !include other.yml\n")
        with pytest.raises(yaml.constructor.ConstructorError):
            with open(cfg) as fh:
                yaml.safe_load(fh)


# -------------------------------------------------------------------------
# Convention-based file discovery
# -------------------------------------------------------------------------


class TestDiscoverConfigFiles:
    def test_env_var_takes_highest_precedence(self, isolated, monkeypatch):
        custom = isolated / "custom.yml"
        custom.write_text("remote: {}\n")
        _project_config(isolated, "sync: {}\n")
        monkeypatch.setenv("VAULT_SYNC_CONFIG", str(custom))

        result = discover_config_files()
        assert result[0] == custom.resolve()
        assert len(result) == 2

    def test_project_before_global(self, isolated):
        proj = _project_config(isolated, "project: true\n")
        glob = _global_config(isolated, "global: true\n")

        result = discover_config_files()
        assert result.index(proj) < result.index(glob)

    def test_yaml_extension(self, isolated):
        alt = _project_config(isolated, "alt: true\n", name="config.yaml")
        assert discover_config_files() == [alt]

    def test_missing_files_excluded(self, isolated):
        assert discover_config_files() == []


# -------------------------------------------------------------------------
# Hierarchical merge
# -------------------------------------------------------------------------


class TestLoadHierarchicalConfig:
    def test_project_overrides_global_at_section_level(self, isolated):
        _global_config(
            isolated,
            """\
            remote:
              owner: alice
              token: global-token
            sync:
              conflict_handling: overwrite_local
            """,
        )
        _project_config(
            isolated,
            """\
            remote:
              owner: team
            """,
        )

        result = load_hierarchical_config()
        # Project remote replaces global remote entirely (shallow merge)
        assert result["remote"] == {"owner": "team"}
        assert result["sync"]["conflict_handling"] == "overwrite_local"

    def test_env_var_interpolation_after_merge(self, isolated, monkeypatch):
        monkeypatch.setenv("MY_TOKEN", "s3cret")
        _project_config(
            isolated,
            """\
            remote:
              token: "${MY_TOKEN}"
            """,
        )
        assert load_hierarchical_config()["remote"]["token"] == "s3cret"

    def test_zero_config_returns_empty_dict(self, isolated):
        assert load_hierarchical_config() == {}

    def test_include_within_merged_config(self, isolated):
        (isolated / ".vault_sync").mkdir()
        (isolated / ".vault_sync" / "secrets.yml").write_text("token: key123\n")
        _project_config(
            isolated,
            """\
            remote: !include secrets.yml
            sync:
              vault_root: ~/notes
            """,
        )

        result = load_hierarchical_config()
        assert result["remote"]["token"] == "key123"
        assert result["sync"]["vault_root"] == "~/notes"

    def test_non_dict_root_skipped(self, isolated, monkeypatch):
        bad = isolated / "bad.yml"
        bad.write_text("- item1\n- item2\n")
        monkeypatch.setenv("VAULT_SYNC_CONFIG", str(bad))
        assert load_hierarchical_config() == {}

    def test_invalid_yaml_raises(self, isolated):
        _project_config(isolated, "remote: [unclosed\n")
        with pytest.raises(yaml.YAMLError):
            load_hierarchical_config()
