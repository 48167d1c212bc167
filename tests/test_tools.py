"""
Tests for the enhanced tool providers.
"""

import subprocess
from unittest.mock import MagicMock, patch

import pytest

from beni.domain.models import BuildConfiguration, ContentKind
from beni.infra.tools import (
    BaselineProvider,
    NodeToolProvider,
    OptimizationDelegationFailure,
    select_provider,
    tool_arguments,
)


class TestSelectProvider:
    """Tests for select_provider()."""

    def test_provider_none_is_baseline(self, tmp_path):
        config = BuildConfiguration(root=tmp_path, tools={"provider": "none"})
        assert isinstance(select_provider(config), BaselineProvider)

    def test_optimize_off_is_baseline(self, tmp_path):
        config = BuildConfiguration(root=tmp_path, optimize=False)
        assert isinstance(select_provider(config), BaselineProvider)

    @patch("beni.infra.tools.shutil.which")
    def test_auto_uses_tools_on_path(self, mock_which, tmp_path):
        """Only the tools that resolve on PATH are supported."""
        mock_which.side_effect = lambda tool: "/usr/bin/terser" if tool == "terser" else None
        provider = select_provider(BuildConfiguration(root=tmp_path))

        assert isinstance(provider, NodeToolProvider)
        assert provider.supports(ContentKind.SCRIPT)
        assert not provider.supports(ContentKind.STYLESHEET)
        assert not provider.supports(ContentKind.MARKUP)
        assert provider.describe() == "node tools: script=terser"

    @patch("beni.infra.tools.shutil.which", return_value=None)
    def test_nothing_found(self, mock_which, tmp_path):
        provider = select_provider(BuildConfiguration(root=tmp_path, tools={"provider": "node"}))
        assert not any(provider.supports(kind) for kind in ContentKind)
        assert mock_which.call_count == 3


class TestNodeToolProvider:
    """Tests for NodeToolProvider.run()."""

    @pytest.fixture
    def provider(self):
        return NodeToolProvider(
            {ContentKind.SCRIPT: "/usr/bin/terser"},
            {ContentKind.SCRIPT: ["--compress"]},
            timeout=5,
        )

    @patch("beni.infra.tools.subprocess.run")
    def test_success_returns_stdout(self, mock_run, provider):
        mock_run.return_value = MagicMock(returncode=0, stdout="a=1", stderr="")
        assert provider.run(ContentKind.SCRIPT, "a = 1") == "a=1"

        args, kwargs = mock_run.call_args
        assert args[0] == ["/usr/bin/terser", "--compress"]
        assert kwargs["input"] == "a = 1"
        assert kwargs["timeout"] == 5

    @patch("beni.infra.tools.subprocess.run")
    def test_nonzero_exit_raises(self, mock_run, provider):
        mock_run.return_value = MagicMock(returncode=1, stdout="", stderr="warn\nParse error")
        with pytest.raises(OptimizationDelegationFailure) as exc_info:
            provider.run(ContentKind.SCRIPT, "a =")
        assert "Parse error" in str(exc_info.value)
        assert exc_info.value.kind is ContentKind.SCRIPT
        assert exc_info.value.tool == "/usr/bin/terser"

    @patch("beni.infra.tools.subprocess.run")
    def test_timeout_raises(self, mock_run, provider):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="terser", timeout=5)
        with pytest.raises(OptimizationDelegationFailure, match="timed out"):
            provider.run(ContentKind.SCRIPT, "x")

    @patch("beni.infra.tools.subprocess.run")
    def test_missing_binary_raises(self, mock_run, provider):
        mock_run.side_effect = FileNotFoundError("gone")
        with pytest.raises(OptimizationDelegationFailure, match="could not be started"):
            provider.run(ContentKind.SCRIPT, "x")

    def test_unsupported_kind_raises(self, provider):
        with pytest.raises(OptimizationDelegationFailure):
            provider.run(ContentKind.MARKUP, "<p>")


class TestToolArguments:
    """Tests for tool_arguments()."""

    def test_script_arguments(self, tmp_path):
        args = tool_arguments(BuildConfiguration(root=tmp_path))[ContentKind.SCRIPT]
        assert args[:2] == [
            "--compress",
            'passes=2,drop_debugger=true,pure_funcs=["console.log","console.info","console.debug"]',
        ]
        assert "--mangle" in args
        assert "drop_console" not in args[1]

    def test_script_arguments_follow_pure_funcs(self, tmp_path):
        config = BuildConfiguration(
            root=tmp_path, minification={"script": {"pure_funcs": ["console.trace"]}}
        )
        assert tool_arguments(config)[ContentKind.SCRIPT][1].endswith(
            'pure_funcs=["console.trace"]'
        )

    def test_script_arguments_keep_diagnostics(self, tmp_path):
        config = BuildConfiguration(root=tmp_path, drop_diagnostics=False)
        args = tool_arguments(config)[ContentKind.SCRIPT]
        assert args[1] == "passes=2,drop_debugger=false"

    def test_markup_flags_follow_settings(self, tmp_path):
        config = BuildConfiguration(
            root=tmp_path, minification={"markup": {"remove_comments": False}}
        )
        args = tool_arguments(config)[ContentKind.MARKUP]
        assert "--collapse-whitespace" in args
        assert "--remove-comments" not in args

    def test_stylesheet_level(self, tmp_path):
        config = BuildConfiguration(root=tmp_path, minification={"stylesheet": {"level": 2}})
        assert tool_arguments(config)[ContentKind.STYLESHEET] == ["-O2"]
