"""Tests for the virtual filesystem store."""
import pytest

from terminality.game import filesystem as vfs


# ── Helpers ──────────────────────────────────────────────────────────────────

def _sample():
    """/a (dir) holding /a/c (file), plus /b.txt and an /etc dir."""
    nodes = vfs.create_empty()
    nodes = vfs.insert_node(nodes, vfs.make_dir("/a"))
    nodes = vfs.insert_node(nodes, vfs.make_file("/a/c", "hello"))
    nodes = vfs.insert_node(nodes, vfs.make_file("/b.txt", "b"))
    nodes = vfs.insert_node(nodes, vfs.make_dir("/etc"))
    return nodes


def _all_children(nodes):
    return [c for node in nodes.values() for c in (node.children or [])]


# ── Paths ────────────────────────────────────────────────────────────────────

@pytest.mark.parametrize("raw, expected", [
    ("", "/"),
    ("   ", "/"),
    ("/", "/"),
    ("//var///logs//", "/var/logs"),
    ("var/logs", "/var/logs"),
    ("\\var\\logs\\", "/var/logs"),
    ("\\\\", "/"),
    ("/a/b/", "/a/b"),
])
def test_normalize_path(raw, expected):
    """Backslashes, slash runs and trailing slashes are canonicalized."""
    assert vfs.normalize_path(raw) == expected


@pytest.mark.parametrize("raw", ["", "//x//", "a\\b\\\\c", " /x/ ", "/", "\\/\\/"])
def test_normalize_path_is_idempotent(raw):
    """Normalizing an already normalized path changes nothing."""
    once = vfs.normalize_path(raw)
    assert vfs.normalize_path(once) == once


def test_normalize_path_handles_none():
    """None is treated like an empty path."""
    assert vfs.normalize_path(None) == "/"


def test_resolve_path_dot_segments():
    """Relative targets resolve against the cwd, '..' stops at the root."""
    assert vfs.resolve_path("/var/logs", "evidence.log") == "/var/logs/evidence.log"
    assert vfs.resolve_path("/var/logs", "../tmp") == "/var/tmp"
    assert vfs.resolve_path("/var", "../../..") == "/"
    assert vfs.resolve_path("/var", "/etc/./motd") == "/etc/motd"
    assert vfs.resolve_path("/var", None) == "/var"


def test_parent_and_basename():
    """Parent of a top-level path is the root."""
    assert vfs.get_parent_path("/a") == "/"
    assert vfs.get_parent_path("/a/b/c") == "/a/b"
    assert vfs.get_parent_path("/") == "/"
    assert vfs.basename("/a/b/c.txt") == "c.txt"


# ── Clone and merge ──────────────────────────────────────────────────────────

def test_clone_is_deep():
    """A clone is equal in content but shares no node objects."""
    nodes = _sample()
    copied = vfs.clone(nodes)
    assert {k: v.model_dump() for k, v in copied.items()} == {k: v.model_dump() for k, v in nodes.items()}
    for path in nodes:
        assert copied[path] is not nodes[path]


def test_clone_repairs_missing_root():
    """A map without a root gets one listing its top-level paths."""
    nodes = {"/x": vfs.make_file("/x")}
    copied = vfs.clone(nodes)
    assert copied["/"].is_dir
    assert copied["/"].children == ["/x"]


def test_merge_with_empty_override_is_a_clone():
    """Merging nothing yields the same keys and content."""
    nodes = _sample()
    merged = vfs.merge_filesystem(nodes, {})
    assert set(merged) == set(nodes)
    assert merged["/a/c"].content == "hello"
    assert merged["/a/c"] is not nodes["/a/c"]


def test_merge_replaces_nodes_wholesale():
    """Override nodes replace base nodes; new paths can be linked afterwards."""
    nodes = _sample()
    override = {
        "/a/c": vfs.make_file("/a/c", "patched"),
        "/a/d": vfs.make_file("/a/d", "new"),
    }
    merged = vfs.merge_filesystem(nodes, override)
    assert merged["/a/c"].content == "patched"
    assert "/a/d" not in merged["/a"].children
    linked = vfs.link_overlay_paths(merged, ["/a/d"])
    assert linked["/a"].children == ["/a/c", "/a/d"]


def test_merge_never_replaces_the_root_with_a_file():
    """A file override of / is ignored so the root stays a directory."""
    nodes = _sample()
    merged = vfs.merge_filesystem(nodes, {"/": vfs.make_file("/", "oops")})
    assert merged["/"].type == "dir"
    assert merged["/"].children == nodes["/"].children


def test_link_overlay_paths_scaffolds_parents():
    """Overlay paths whose parents are missing get directories created."""
    merged = vfs.merge_filesystem(vfs.create_empty(), {"/opt/tools/kit.bin": vfs.make_file("/opt/tools/kit.bin")})
    linked = vfs.link_overlay_paths(merged, ["/opt/tools/kit.bin"])
    assert linked["/opt"].is_dir
    assert linked["/opt/tools"].children == ["/opt/tools/kit.bin"]
    assert "/opt" in linked["/"].children


def test_find_orphan_paths():
    """Only override paths whose parent exists nowhere are orphans."""
    base = _sample()
    override = {
        "/a/new": vfs.make_file("/a/new"),
        "/ghost/file": vfs.make_file("/ghost/file"),
        "/x": vfs.make_dir("/x"),
        "/x/y": vfs.make_file("/x/y"),
    }
    assert vfs.find_orphan_paths(base, override) == ["/ghost/file"]


# ── Structural edits ─────────────────────────────────────────────────────────

def test_insert_scaffolds_and_links():
    """Inserting a deep file creates and links its ancestor directories."""
    nodes = vfs.insert_node(vfs.create_empty(), vfs.make_file("/var/logs/system.log", "ok"))
    assert nodes["/"].children == ["/var"]
    assert nodes["/var"].children == ["/var/logs"]
    assert nodes["/var/logs"].children == ["/var/logs/system.log"]


def test_insert_is_noop_for_existing_or_under_file():
    """Taken paths and paths below a file return the input map itself."""
    nodes = _sample()
    assert vfs.insert_node(nodes, vfs.make_file("/a/c", "other")) is nodes
    assert vfs.insert_node(nodes, vfs.make_file("/b.txt/inner")) is nodes
    assert vfs.insert_node(nodes, vfs.make_dir("/")) is nodes


def test_rename_directory_rewrites_subtree():
    """Renaming /a to /b moves /a/c to /b/c and purges every old reference."""
    nodes = _sample()
    renamed = vfs.rename_node(nodes, "/a", "b")
    assert "/b" in renamed and "/b/c" in renamed
    assert "/a" not in renamed and "/a/c" not in renamed
    assert renamed["/b"].children == ["/b/c"]
    assert renamed["/b/c"].name == "c"
    assert "/a" not in _all_children(renamed)
    assert "/a/c" not in _all_children(renamed)
    # Sibling order is kept.
    assert renamed["/"].children[0] == "/b"
    # The input is untouched.
    assert "/a" in nodes


def test_rename_purges_dangling_references():
    """Stale references to the renamed path elsewhere in the map are removed."""
    nodes = _sample()
    nodes["/etc"].children.append("/a/c")
    renamed = vfs.rename_node(nodes, "/a", "b")
    assert "/a/c" not in renamed["/etc"].children


def test_rename_rejects_bad_names_and_collisions():
    """Invalid names and existing targets are no-ops."""
    nodes = _sample()
    assert vfs.rename_node(nodes, "/a", "x/y") is nodes
    assert vfs.rename_node(nodes, "/a", "..") is nodes
    assert vfs.rename_node(nodes, "/a", "etc") is nodes
    assert vfs.rename_node(nodes, "/missing", "z") is nodes
    assert vfs.rename_node(nodes, "/", "z") is nodes


def test_move_node_appends_to_new_parent():
    """A moved file is listed last in its new parent."""
    nodes = _sample()
    moved = vfs.move_node(nodes, "/b.txt", "/a")
    assert moved["/a"].children == ["/a/c", "/a/b.txt"]
    assert "/b.txt" not in moved["/"].children


def test_move_into_own_subtree_is_noop():
    """A directory cannot be moved inside itself."""
    nodes = vfs.insert_node(_sample(), vfs.make_dir("/a/sub"))
    assert vfs.move_node(nodes, "/a", "/a/sub") is nodes


def test_move_is_noop_for_missing_or_taken_paths():
    """Missing sources, taken destinations and non-directory parents return the input map."""
    nodes = vfs.insert_node(_sample(), vfs.make_file("/etc/b.txt", "taken"))
    assert vfs.move_node(nodes, "/missing", "/a") is nodes
    assert vfs.move_node(nodes, "/b.txt", "/etc") is nodes
    assert vfs.move_node(nodes, "/b.txt", "/nowhere") is nodes
    assert vfs.move_node(nodes, "/b.txt", "/a/c") is nodes
    assert vfs.move_node(nodes, "/", "/a") is nodes


def test_delete_removes_subtree():
    """Deleting a directory removes every descendant and its parent entry."""
    nodes = _sample()
    pruned = vfs.delete_node(nodes, "/a")
    assert "/a" not in pruned and "/a/c" not in pruned
    assert "/a" not in pruned["/"].children
    assert vfs.delete_node(nodes, "/") is nodes
    assert vfs.delete_node(nodes, "/missing") is nodes


def test_scaffold_directories_is_idempotent():
    """Scaffolding existing directories adds nothing."""
    nodes = vfs.scaffold_directories(_sample(), ["/a", "/etc/ssh"])
    again = vfs.scaffold_directories(nodes, ["/a", "/etc/ssh"])
    assert set(again) == set(nodes)
    assert again["/etc"].children == ["/etc/ssh"]


# ── Listing ──────────────────────────────────────────────────────────────────

def test_list_child_paths_prefers_recorded_children():
    """Recorded order wins and dangling entries are filtered out."""
    nodes = _sample()
    nodes["/"].children = ["/etc", "/missing", "/a", "/b.txt"]
    assert vfs.list_child_paths(nodes, "/") == ["/etc", "/a", "/b.txt"]


def test_list_child_paths_fallback_and_strict_mode():
    """A directory without children falls back to a sorted scan unless strict."""
    nodes = _sample()
    nodes["/"].children = None
    assert vfs.list_child_paths(nodes, "/", strict=False) == ["/a", "/b.txt", "/etc"]
    assert vfs.list_child_paths(nodes, "/", strict=True) == []


def test_normalize_filesystem_map_from_loose_payload():
    """Loose snapshot payloads are canonicalized and made consistent."""
    raw = {
        "/": {"type": "folder", "children": ["/docs", "/nowhere"]},
        "docs/": {"type": "folder", "children": ["docs/readme.txt"]},
        "/docs/readme.txt": {"type": "file", "content": "hi"},
        "/orphan/leaf.txt": {"type": "file", "content": ""},
    }
    nodes = vfs.normalize_filesystem_map(raw)
    assert nodes["/"].children[:1] == ["/docs"]
    assert "/nowhere" not in nodes["/"].children
    assert nodes["/docs"].children == ["/docs/readme.txt"]
    assert nodes["/docs/readme.txt"].name == "readme.txt"
    assert nodes["/orphan"].children == ["/orphan/leaf.txt"]


def test_build_filesystem_from_tree():
    """Nested designer trees flatten into a map rooted at '/'."""
    tree = {
        "name": "root",
        "type": "folder",
        "children": [
            {"name": "home", "type": "folder", "children": [
                {"name": "notes.txt", "type": "file", "content": "x", "tags": ["clue"]},
            ]},
        ],
    }
    nodes = vfs.build_filesystem_from_tree(tree)
    assert nodes["/"].children == ["/home"]
    assert nodes["/home/notes.txt"].tags == ["clue"]


def test_create_system_layout():
    """A new system gets a README, config and logs directory."""
    nodes = vfs.create_system_layout("relay", scope="global")
    assert "/README.txt" in nodes
    assert "/config/system.json" in nodes
    assert "/logs/.gitkeep" in nodes
    assert "relay" in nodes["/README.txt"].content
