import pytest

from workbench.errors import TreeCollision
from workbench.models.tree import DirectoryNode, FileNode
from workbench.workspace import tree as vtree
from workbench.workspace.state import WorkspaceState


def test_insert_into_empty_tree_creates_parent_directory() -> None:
    tree = vtree.insert(vtree.empty_tree(), "/src/index.js", "console.log(1)")

    assert len(tree.children) == 1
    src = tree.children[0]
    assert isinstance(src, DirectoryNode)
    assert src.path == "/src"
    assert src.name == "src"
    assert src.children == (FileNode(path="/src/index.js", name="index.js", content="console.log(1)"),)


def test_insert_same_file_twice_is_idempotent() -> None:
    once = vtree.insert(vtree.empty_tree(), "/a/b.txt", "hi")
    twice = vtree.insert(once, "/a/b.txt", "hi")

    assert twice == once
    assert twice is once


def test_insert_replaces_file_in_place() -> None:
    tree = vtree.empty_tree()
    for path in ("/b.txt", "/a.txt", "/c.txt"):
        tree = vtree.insert(tree, path, "old")

    updated = vtree.insert(tree, "/a.txt", "new")

    assert [child.name for child in updated.children] == ["b.txt", "a.txt", "c.txt"]
    assert vtree.find(updated, "/a.txt").content == "new"


def test_insert_shares_untouched_branches() -> None:
    tree = vtree.insert(vtree.empty_tree(), "/lib/util.js", "x")
    tree = vtree.insert(tree, "/src/main.js", "y")

    updated = vtree.insert(tree, "/src/other.js", "z")

    assert vtree.find(updated, "/lib") is vtree.find(tree, "/lib")
    assert vtree.find(updated, "/src") is not vtree.find(tree, "/src")
    assert vtree.find(tree, "/src/other.js") is None


def test_insert_rejects_file_directory_collisions() -> None:
    tree = vtree.insert(vtree.empty_tree(), "/src/index.js", "")

    with pytest.raises(TreeCollision):
        vtree.insert(tree, "/src", "not a directory")
    with pytest.raises(TreeCollision):
        vtree.insert(tree, "/src/index.js/inner.js", "")


def test_remove_keeps_empty_parents() -> None:
    tree = vtree.insert(vtree.empty_tree(), "/src/deep/a.js", "a")

    pruned = vtree.remove(tree, "/src/deep/a.js")

    deep = vtree.find(pruned, "/src/deep")
    assert isinstance(deep, DirectoryNode)
    assert deep.children == ()


def test_remove_directory_drops_subtree() -> None:
    tree = vtree.rebuild({"/src/a.js": "a", "/src/lib/b.js": "b", "/README.md": "r"})

    pruned = vtree.remove(tree, "/src")

    assert [file.path for file in vtree.iter_files(pruned)] == ["/README.md"]


def test_remove_missing_path_returns_same_tree() -> None:
    tree = vtree.rebuild({"/a.txt": "a"})

    assert vtree.remove(tree, "/missing.txt") is tree
    assert vtree.remove(tree, "/a.txt/nested") is tree


def test_rebuild_is_independent_of_map_order() -> None:
    files = {"/src/b.js": "b", "/src/a.js": "a", "/package.json": "{}", "/docs/x.md": "x"}
    reordered = dict(reversed(list(files.items())))

    assert vtree.rebuild(files) == vtree.rebuild(reordered)


def test_rebuild_matches_incremental_updates() -> None:
    state = WorkspaceState()
    state.apply_write("/src/z.js", "z")
    state.apply_write("/src/a.js", "a")
    state.apply_write("/tmp/scratch.txt", "s")
    state.apply_write("/README.md", "r")
    state.apply_delete("/tmp/scratch.txt")
    state.apply_write("/src/a.js", "a2")

    rebuilt = vtree.rebuild(state.snapshot_map())
    pruned = vtree.remove(state.tree, "/tmp")

    assert vtree.canonical(pruned) == vtree.canonical(rebuilt)
    assert {file.path: file.content for file in vtree.iter_files(state.tree)} == dict(state.snapshot_map())


def test_sorted_children_lists_directories_first() -> None:
    tree = vtree.rebuild({"/b.txt": "", "/a/x.txt": "", "/C.txt": "", "/z/y.txt": ""})

    assert [child.name for child in vtree.sorted_children(tree)] == ["a", "z", "b.txt", "C.txt"]


def test_normalize_path() -> None:
    assert vtree.normalize_path("src//index.js") == "/src/index.js"
    assert vtree.normalize_path("/src/./lib/") == "/src/lib"
    assert vtree.normalize_path("") == "/"
    with pytest.raises(ValueError):
        vtree.normalize_path("/src/../etc/passwd")


def test_to_dict_sorts_for_display() -> None:
    tree = vtree.rebuild({"/b.txt": "b", "/a/x.txt": "x"})

    payload = vtree.to_dict(tree, include_content=True)

    assert payload["path"] == "/"
    assert [child["name"] for child in payload["children"]] == ["a", "b.txt"]
    assert payload["children"][1] == {"type": "file", "path": "/b.txt", "name": "b.txt", "content": "b"}


def test_state_delete_drops_nested_map_entries() -> None:
    state = WorkspaceState()
    state.replace_all({"/src/a.js": "a", "/src/lib/b.js": "b", "/srcfile.txt": "s"})

    state.apply_delete("/src")

    assert dict(state.snapshot_map()) == {"/srcfile.txt": "s"}
    assert state.get_file_content("srcfile.txt") == "s"
    assert state.get_file_content("/src/a.js") == ""


def test_state_snapshot_is_read_only() -> None:
    state = WorkspaceState()
    state.apply_write("/a.txt", "a")
    snapshot = state.snapshot_map()

    with pytest.raises(TypeError):
        snapshot["/b.txt"] = "b"  # type: ignore[index]
    state.apply_write("/b.txt", "b")
    assert "/b.txt" not in snapshot
