"""Unit tests for confined-root path resolution."""

import os

import pytest

from codespace_agent.domain.sandbox import (
    ConfinedRoot,
    PathEscape,
    resolve_sandbox_path,
)

ROOT = ConfinedRoot(os.path.join(os.sep, "work"))


def test_resolve_sandbox_path_accepts_nested_file():
    assert resolve_sandbox_path(ROOT, "src/app.py") == os.path.join(
        ROOT.path, "src", "app.py"
    )


def test_resolve_sandbox_path_collapses_inner_traversal():
    assert resolve_sandbox_path(ROOT, "src/../README.md") == os.path.join(
        ROOT.path, "README.md"
    )


@pytest.mark.parametrize("candidate", ["", ".", "src/..", "./"])
def test_resolve_sandbox_path_maps_to_root(candidate):
    assert resolve_sandbox_path(ROOT, candidate) == ROOT.path


@pytest.mark.parametrize(
    "candidate",
    ["../etc/passwd", "../../x", "src/../../etc", "../work2/secret"],
)
def test_resolve_sandbox_path_blocks_traversal(candidate):
    with pytest.raises(PathEscape) as excinfo:
        resolve_sandbox_path(ROOT, candidate)
    assert excinfo.value.candidate == candidate


def test_resolve_sandbox_path_enforces_separator_boundary():
    """A sibling sharing the root's name as a prefix is still outside."""
    with pytest.raises(PathEscape):
        resolve_sandbox_path(ROOT, os.path.join(os.sep, "work2", "file"))


def test_resolve_sandbox_path_absolute_candidate_must_stay_inside():
    inside = os.path.join(ROOT.path, "notes.txt")
    assert resolve_sandbox_path(ROOT, inside) == inside
    with pytest.raises(PathEscape):
        resolve_sandbox_path(ROOT, os.path.join(os.sep, "etc", "passwd"))


def test_resolve_sandbox_path_blocks_null_bytes():
    with pytest.raises(PathEscape):
        resolve_sandbox_path(ROOT, "notes\x00.txt")


def test_confined_root_requires_absolute_non_empty_path():
    with pytest.raises(ValueError):
        ConfinedRoot("")
    with pytest.raises(ValueError):
        ConfinedRoot("relative/dir")


def test_confined_root_normalizes_and_exposes_prefix():
    root = ConfinedRoot(os.path.join(os.sep, "work", "sub", "..") + os.sep)
    assert root.path == ROOT.path
    assert root.prefix == ROOT.path + os.sep
    assert str(root) == ROOT.path


def test_filesystem_root_prefix_has_single_separator():
    root = ConfinedRoot(os.sep)
    assert root.prefix == os.sep
    assert resolve_sandbox_path(root, "etc") == os.path.join(os.sep, "etc")


def test_discover_uses_parent_of_agent_directory(tmp_path):
    agent_dir = tmp_path / ".codespace-agent"
    assert ConfinedRoot.discover(str(agent_dir)).path == str(tmp_path)
    assert ConfinedRoot.discover(str(tmp_path)).path == str(tmp_path)


def test_resolution_is_lexical_and_does_not_follow_links(tmp_path):
    root = ConfinedRoot(str(tmp_path / "root"))
    (tmp_path / "root").mkdir()
    (tmp_path / "root" / "out").symlink_to(tmp_path)
    # The link target lies outside the root; only the path string is checked
    assert resolve_sandbox_path(root, "out/secret") == os.path.join(
        root.path, "out", "secret"
    )
