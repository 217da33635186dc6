"""Virtual filesystem store -- path-indexed node maps for remote systems.

A ``FilesystemMap`` maps canonical paths to ``FilesystemNode`` objects.  The
root ``/`` is always a directory, the parent of every key is itself a key,
and a directory's ``children`` list is the authoritative (ordered) child set.

Every operation here is a pure function ``(map) -> map'``.  Structural edits
that address a missing node return the *input map object itself*, so callers
detect "nothing happened" by identity and skip redundant saves.  Malformed
paths never raise: everything is funnelled through :func:`normalize_path`.
"""
import json
import logging
import re
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import ValidationError

from terminality.config import settings
from terminality.models.filesystem import FilesystemMap, FilesystemNode, root_node

log = logging.getLogger(__name__)

ROOT = "/"
_SLASH_RUNS = re.compile(r"/+")


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------


def _normalize_once(value: str) -> str:
    path = _SLASH_RUNS.sub("/", value.strip().replace("\\", "/"))
    if not path:
        return ROOT
    if not path.startswith("/"):
        path = "/" + path
    if len(path) > 1 and path.endswith("/"):
        path = path[:-1]
    return path


def normalize_path(value: Any) -> str:
    """Canonicalize *value* into an absolute path.

    Backslashes become slashes, runs of slashes collapse, a single leading
    slash is forced and a trailing slash dropped.  Empty or whitespace input
    yields ``/``.  Total and idempotent.
    """
    if value is None:
        return ROOT
    path = str(value)
    while True:
        nxt = _normalize_once(path)
        if nxt == path:
            return path
        path = nxt


def get_parent_path(path: str) -> str:
    path = normalize_path(path)
    if path == ROOT:
        return ROOT
    segments = [s for s in path.split("/") if s]
    if len(segments) <= 1:
        return ROOT
    return "/" + "/".join(segments[:-1])


def basename(path: str) -> str:
    path = normalize_path(path)
    if path == ROOT:
        return ROOT
    return path.rsplit("/", 1)[-1]


def join_path(parent: str, name: str) -> str:
    parent = normalize_path(parent)
    if parent == ROOT:
        return normalize_path("/" + name)
    return normalize_path(f"{parent}/{name}")


def resolve_path(cwd: str, target: str | None) -> str:
    """Resolve *target* against *cwd* the way a shell would (``.``/``..``)."""
    if not target or not target.strip():
        return normalize_path(cwd)
    target = target.strip()
    raw = target if target.startswith(("/", "\\")) else f"{cwd}/{target}"
    stack: list[str] = []
    for part in normalize_path(raw).split("/"):
        if part in ("", "."):
            continue
        if part == "..":
            if stack:
                stack.pop()
            continue
        stack.append(part)
    return "/" + "/".join(stack)


def _in_subtree(path: str, top: str) -> bool:
    return path == top or path.startswith(top + "/")


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


def create_empty() -> FilesystemMap:
    return {ROOT: root_node()}


def make_dir(path: str) -> FilesystemNode:
    path = normalize_path(path)
    return FilesystemNode(type="dir", name=basename(path), path=path, children=[])


def make_file(path: str, content: str = "", tags: Iterable[str] | None = None) -> FilesystemNode:
    path = normalize_path(path)
    return FilesystemNode(
        type="file",
        name=basename(path),
        path=path,
        content=content,
        tags=list(tags) if tags else None,
    )


def clone(nodes: Mapping[str, FilesystemNode] | None) -> FilesystemMap:
    """Deep copy of *nodes*; a missing or non-directory root is repaired."""
    copied: FilesystemMap = {
        path: node.model_copy(deep=True) for path, node in (nodes or {}).items()
    }
    root = copied.get(ROOT)
    if root is None or not root.is_dir:
        repaired = root_node()
        repaired.children = sorted(p for p in copied if p != ROOT and get_parent_path(p) == ROOT)
        copied[ROOT] = repaired
    return copied


def _coerce_node(key: str, raw: Any) -> FilesystemNode | None:
    data = raw.model_dump(by_alias=True) if isinstance(raw, FilesystemNode) else raw
    if not isinstance(data, Mapping):
        return None
    data = dict(data)
    path = normalize_path(data.get("path") or key)
    data["path"] = path
    if not data.get("name"):
        data["name"] = basename(path)
    children = data.get("children")
    if isinstance(children, list):
        data["children"] = list(dict.fromkeys(normalize_path(c) for c in children if isinstance(c, str)))
    elif children is not None:
        data["children"] = None
    try:
        return FilesystemNode.model_validate(data)
    except ValidationError as exc:
        log.warning("Dropping malformed filesystem node %s: %s", path, exc.errors()[0].get("msg"))
        return None


def normalize_overlay_map(raw: Any) -> FilesystemMap:
    """Canonicalize an override map without injecting a root node."""
    if not isinstance(raw, Mapping):
        return {}
    nodes: FilesystemMap = {}
    for key, value in raw.items():
        node = _coerce_node(str(key), value)
        if node is not None:
            nodes[node.path] = node
    return nodes


def normalize_filesystem_map(raw: Any) -> FilesystemMap:
    """Boundary normalization of a loosely typed snapshot map.

    Keys, paths and children are canonicalized, names derived from paths,
    dangling children dropped and the root repaired.  Nodes whose parent is
    missing get their ancestors scaffolded so the map invariants hold.
    """
    nodes = clone(normalize_overlay_map(raw))
    for node in nodes.values():
        if node.is_dir and node.children is not None:
            node.children = [c for c in node.children if c in nodes and c != node.path]
        elif not node.is_dir:
            node.children = None
    orphans = [p for p in nodes if p != ROOT and get_parent_path(p) not in nodes]
    return link_overlay_paths(nodes, orphans)


def build_filesystem_from_tree(tree: Mapping[str, Any]) -> FilesystemMap:
    """Flatten a designer's nested ``folder``/``file`` tree into a map.

    The top node always becomes the root, whatever its name.
    """
    nodes = create_empty()

    def walk(entry: Mapping[str, Any], path: str) -> None:
        kind = str(entry.get("type", "folder")).lower()
        if path != ROOT:
            if kind == "file":
                nodes[path] = FilesystemNode(
                    type="file",
                    name=basename(path),
                    path=path,
                    content=entry.get("content") or "",
                    tags=entry.get("tags") or None,
                    log_options=entry.get("logOptions"),
                )
                return
            nodes[path] = make_dir(path)
        elif kind == "file":
            return
        node = nodes[path]
        for child in entry.get("children") or []:
            if not isinstance(child, Mapping) or not child.get("name"):
                continue
            child_path = join_path(path, str(child["name"]))
            if child_path in nodes or child_path == ROOT:
                continue
            node.children.append(child_path)
            walk(child, child_path)

    if isinstance(tree, Mapping):
        walk(tree, ROOT)
    return nodes


def create_system_layout(
    system_id: str,
    scope: str = "global",
    root_path: str = "/",
    template_snapshot: Mapping[str, FilesystemNode] | None = None,
) -> FilesystemMap:
    """Default starter layout for a freshly authored system.

    A template snapshot, when given, is used verbatim (cloned).
    """
    if template_snapshot:
        return clone(template_snapshot)
    base = normalize_path(root_path)
    config_dir = join_path(base, "config")
    logs_dir = join_path(base, "logs")
    nodes = scaffold_directories(create_empty(), [base, config_dir, logs_dir])
    readme = "\n".join([
        f"System: {system_id}",
        f"Scope: {scope}",
        "",
        "Customize this host to guide the quest narrative.",
    ])
    nodes = insert_node(nodes, make_file(join_path(base, "README.txt"), readme))
    nodes = insert_node(
        nodes,
        make_file(
            join_path(config_dir, "system.json"),
            json.dumps({"systemId": system_id, "version": 1}, indent=2),
        ),
    )
    return insert_node(nodes, make_file(join_path(logs_dir, ".gitkeep"), ""))


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def list_child_paths(
    nodes: Mapping[str, FilesystemNode], parent_path: str, strict: bool | None = None
) -> list[str]:
    """Children of *parent_path*, in authored order.

    Directories without a recorded ``children`` list fall back to a
    structural scan (sorted by path) unless strict listing is on.
    """
    parent_path = normalize_path(parent_path)
    node = nodes.get(parent_path)
    if node is not None and not node.is_dir:
        return []
    if node is not None and node.children is not None:
        return [c for c in node.children if c in nodes]
    if strict is None:
        strict = settings.STRICT_CHILD_LISTING
    if strict:
        return []
    return sorted(p for p in nodes if p != parent_path and get_parent_path(p) == parent_path)


def list_directory(nodes: Mapping[str, FilesystemNode], path: str) -> list[FilesystemNode] | None:
    node = nodes.get(normalize_path(path))
    if node is None or not node.is_dir:
        return None
    return [nodes[p] for p in list_child_paths(nodes, node.path)]


def get_node(nodes: Mapping[str, FilesystemNode], path: str) -> FilesystemNode | None:
    return nodes.get(normalize_path(path))


def find_orphan_paths(
    base: Mapping[str, FilesystemNode] | None, override: Mapping[str, FilesystemNode] | None
) -> list[str]:
    """Override paths whose parent exists neither in *base* nor *override*."""
    base = base or {}
    override = override or {}
    return sorted(
        path for path in override
        if path != ROOT
        and get_parent_path(path) not in base
        and get_parent_path(path) not in override
    )


# ---------------------------------------------------------------------------
# Structural edits
# ---------------------------------------------------------------------------


def _ensure_directory(nodes: FilesystemMap, path: str) -> bool:
    """Create *path* and its ancestors in place.  False if blocked by a file."""
    if path == ROOT:
        return nodes[ROOT].is_dir
    parent = get_parent_path(path)
    if not _ensure_directory(nodes, parent):
        return False
    existing = nodes.get(path)
    if existing is None:
        nodes[path] = make_dir(path)
    elif not existing.is_dir:
        return False
    _link_child(nodes, parent, path)
    return True


def _link_child(nodes: FilesystemMap, parent: str, child: str) -> None:
    parent_node = nodes[parent]
    if parent_node.children is None:
        parent_node.children = [
            p for p in list_child_paths(nodes, parent, strict=False) if p != child
        ]
    if child not in parent_node.children:
        parent_node.children.append(child)


def scaffold_directories(nodes: Mapping[str, FilesystemNode], paths: Iterable[str]) -> FilesystemMap:
    """Ensure every directory in *paths* exists, linked into its ancestors.

    Idempotent; existing nodes are never removed or replaced.
    """
    result = clone(nodes)
    for raw in paths:
        target = normalize_path(raw)
        if not _ensure_directory(result, target):
            log.debug("Cannot scaffold %s: a file is in the way", target)
    return result


def insert_node(nodes: FilesystemMap, node: FilesystemNode) -> FilesystemMap:
    """Add *node* (and any missing ancestor directories).

    No-op if the path is taken, is the root, or sits under a file.
    """
    path = normalize_path(node.path)
    if path == ROOT or path in nodes:
        return nodes
    parent = get_parent_path(path)
    parent_node = nodes.get(parent)
    if parent_node is not None and not parent_node.is_dir:
        return nodes
    result = clone(nodes)
    if not _ensure_directory(result, parent):
        return nodes
    fresh = node.model_copy(deep=True)
    fresh.path = path
    fresh.name = basename(path)
    if fresh.is_dir and fresh.children is None:
        fresh.children = []
    result[path] = fresh
    _link_child(result, parent, path)
    return result


def _relocate(nodes: FilesystemMap, old: str, new: str, keep_position: bool) -> FilesystemMap:
    if old == ROOT or old not in nodes or new == old or new in nodes:
        return nodes
    new_parent = get_parent_path(new)
    target = nodes.get(new_parent)
    if target is None or not target.is_dir or _in_subtree(new_parent, old):
        return nodes

    renames = {path: new + path[len(old):] for path in nodes if _in_subtree(path, old)}
    old_parent = nodes.get(get_parent_path(old))
    siblings = (old_parent.children if old_parent is not None else None) or []
    position = siblings.index(old) if keep_position and old in siblings else None

    result: FilesystemMap = {}
    for path, node in nodes.items():
        if path in renames:
            continue
        copy = node.model_copy(deep=True)
        if copy.children is not None:
            # Purges the old subtree from every list, dangling references included.
            copy.children = [c for c in copy.children if c not in renames]
        result[path] = copy
    for path, new_path in renames.items():
        copy = nodes[path].model_copy(deep=True)
        copy.path = new_path
        copy.name = basename(new_path)
        if copy.children is not None:
            copy.children = [renames.get(c, c) for c in copy.children]
        result[new_path] = copy

    parent_node = result[new_parent]
    if parent_node.children is None:
        parent_node.children = [
            p for p in list_child_paths(result, new_parent, strict=False) if p != new
        ]
    if position is None or position > len(parent_node.children):
        parent_node.children.append(new)
    else:
        parent_node.children.insert(position, new)
    return result


def rename_node(nodes: FilesystemMap, path: str, new_name: str) -> FilesystemMap:
    """Rename *path* in place; descendants and every reference follow."""
    new_name = (new_name or "").strip()
    if not new_name or "/" in new_name or "\\" in new_name or new_name in (".", ".."):
        return nodes
    old = normalize_path(path)
    return _relocate(nodes, old, join_path(get_parent_path(old), new_name), keep_position=True)


def move_node(nodes: FilesystemMap, path: str, new_parent: str) -> FilesystemMap:
    """Move *path* under the directory *new_parent*, appended last."""
    old = normalize_path(path)
    destination = join_path(new_parent, basename(old))
    return _relocate(nodes, old, destination, keep_position=False)


def delete_node(nodes: FilesystemMap, path: str) -> FilesystemMap:
    """Remove *path* and its whole subtree.  The root cannot be deleted."""
    target = normalize_path(path)
    if target == ROOT or target not in nodes:
        return nodes
    result: FilesystemMap = {}
    for key, node in nodes.items():
        if _in_subtree(key, target):
            continue
        copy = node.model_copy(deep=True)
        if copy.children is not None:
            copy.children = [c for c in copy.children if not _in_subtree(c, target)]
        result[key] = copy
    return result


# ---------------------------------------------------------------------------
# Overlays
# ---------------------------------------------------------------------------


def merge_filesystem(
    base: Mapping[str, FilesystemNode] | None,
    override: Mapping[str, FilesystemNode] | None = None,
) -> FilesystemMap:
    """Per-path replace merge of *override* onto a clone of *base*.

    Nodes are replaced wholesale, children and content verbatim.  Paths only
    present in *override* are added; linking them into their parents is the
    caller's job (see :func:`link_overlay_paths`).  The root stays a
    directory: a non-directory override of ``/`` is ignored.
    """
    merged = clone(base)
    for raw_path, node in (override or {}).items():
        path = normalize_path(raw_path)
        if path == ROOT and not node.is_dir:
            log.warning("Ignoring %s override of the filesystem root", node.type)
            continue
        copy = node.model_copy(deep=True)
        copy.path = path
        merged[path] = copy
    return merged


def link_overlay_paths(nodes: FilesystemMap, paths: Iterable[str]) -> FilesystemMap:
    """Scaffold parents for overlay-added *paths* and list each in its parent."""
    wanted = sorted({normalize_path(p) for p in paths} - {ROOT})
    wanted = [p for p in wanted if p in nodes]
    if not wanted:
        return nodes
    result = clone(nodes)
    for path in wanted:
        parent = get_parent_path(path)
        if _ensure_directory(result, parent):
            _link_child(result, parent, path)
    return result
