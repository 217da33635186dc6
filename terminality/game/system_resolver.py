"""System resolver -- folds quest-scoped overrides onto global systems.

A system is authored once per scope.  ``global`` definitions are the bases;
``quest_template`` and ``quest_instance`` definitions either stand alone or
point at what they customize through ``extendsSystemId``.  Resolution for a
context picks the scoped definitions whose ``appliesTo`` predicate matches,
sorts each base's overrides by scope tier (instance after template, so the
instance always wins) and folds them onto the base one field at a time.

Resolution never mutates its inputs: every returned definition is a fresh
object graph.
"""
import copy
import logging
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import ValidationError

from terminality.errors import SystemResolutionCycleError, ValidationWarning
from terminality.game import filesystem as vfs
from terminality.models.filesystem import FilesystemMap
from terminality.models.system import (
    SCOPE_PRIORITY,
    Credentials,
    FilesystemConfig,
    NetworkBindings,
    ResolutionContext,
    ResolvedSystemInstance,
    SystemDefinition,
    TerminalHostConfig,
    ToolBinding,
    ToolBindingConfig,
)

log = logging.getLogger(__name__)

# Fields an override replaces outright when it sets them.
_SCALAR_FIELDS = ("description", "personality_blurb", "difficulty")
_IDENTITY_FIELDS = ("key", "name", "label")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def matches_context(definition: SystemDefinition, context: Mapping[str, str]) -> bool:
    """Does *definition* apply to *context*?

    Without ``appliesTo`` only global definitions match.  Every key present
    in ``appliesTo`` must equal the context value; absent keys are wildcards.
    """
    if definition.applies_to is None:
        return definition.scope == "global"
    return all(context.get(key) == value for key, value in definition.applies_to.items() if value)


def resolve_systems_for_context(
    definitions: Iterable[SystemDefinition],
    context: ResolutionContext | Mapping[str, str] | None = None,
) -> list[SystemDefinition]:
    """Resolve every system visible in *context*.

    Returns the folded global bases (input order) followed by standalone
    scoped definitions (input order).  Overrides whose chain never reaches a
    global base are kept as standalone systems rather than dropped.

    Raises :class:`SystemResolutionCycleError` for a looping
    ``extendsSystemId`` chain.
    """
    definitions = list(definitions)
    ctx = _context_dict(context)

    bases = [d for d in definitions if d.scope == "global"]
    base_ids = {d.id for d in bases}
    scoped_by_id = {d.id: d for d in definitions if d.scope != "global"}

    groups: dict[str, list[tuple[int, int, int, SystemDefinition]]] = {}
    standalone: list[SystemDefinition] = []
    for index, definition in enumerate(definitions):
        if definition.scope == "global" or not matches_context(definition, ctx):
            continue
        if not definition.extends_system_id:
            standalone.append(definition)
            continue
        chain = _override_chain(definition, scoped_by_id, base_ids)
        root = chain[-1]
        if root not in base_ids:
            log.warning(
                "System %s extends unknown system %s; treating it as standalone",
                definition.id, root,
            )
            standalone.append(definition)
            continue
        depth = len(chain) - 1
        groups.setdefault(root, []).append(
            (SCOPE_PRIORITY[definition.scope], depth, index, definition)
        )

    resolved: list[SystemDefinition] = []
    for base in bases:
        acc = base.model_copy(deep=True)
        for _priority, _depth, _index, override in sorted(groups.get(base.id, []), key=lambda e: e[:3]):
            acc = merge_system_definitions(acc, override)
        resolved.append(acc)
    resolved.extend(d.model_copy(deep=True) for d in standalone)
    return resolved


def merge_system_definitions(base: SystemDefinition, override: SystemDefinition) -> SystemDefinition:
    """Fold one *override* onto *base*, field by field.

    ``id``, ``scope`` and ``kind`` always stay the base's: the result is the
    base system as customized.  Identity names only count when the author
    gave them; the id fallback the model fills in is ignored.
    """
    updates: dict[str, Any] = {}
    for field in _IDENTITY_FIELDS:
        if field in override.model_fields_set:
            updates[field] = getattr(override, field)
    for field in _SCALAR_FIELDS:
        value = getattr(override, field)
        if value:
            updates[field] = value
    if "type" in override.model_fields_set:
        updates["type"] = override.type
    if override.tags:
        updates["tags"] = list(override.tags)

    updates["network"] = NetworkBindings(
        primary_ip=override.network.primary_ip or base.network.primary_ip,
        ips=override.network.ips or base.network.ips,
        hostnames=override.network.hostnames or base.network.hostnames,
    )
    updates["credentials"] = Credentials(
        username=override.credentials.username or base.credentials.username,
        starting_path=override.credentials.starting_path or base.credentials.starting_path,
        password=override.credentials.password or base.credentials.password,
    )
    updates["metadata"] = {**base.metadata, **override.metadata}
    updates["filesystem"] = merge_filesystem_config(base.filesystem, override.filesystem)
    for field in ("tools", "host", "doors", "security_rules"):
        value = getattr(override, field)
        updates[field] = value if value is not None else getattr(base, field)
    updates["applies_to"] = override.applies_to or base.applies_to

    return base.model_copy(update=copy.deepcopy(updates), deep=True)


def merge_filesystem_config(
    base: FilesystemConfig | None, override: FilesystemConfig | None
) -> FilesystemConfig | None:
    if base is None and override is None:
        return None
    if base is None:
        merged = override.model_copy(deep=True)
        merged.snapshot = vfs.clone(override.snapshot)
        return merged
    if override is None:
        merged = base.model_copy(deep=True)
        merged.snapshot = vfs.clone(base.snapshot)
        return merged

    overrides = None
    if base.overrides is not None or override.overrides is not None:
        # Overlays combine per path without a root of their own.
        combined = {**(base.overrides or {}), **(override.overrides or {})}
        overrides = {path: node.model_copy(deep=True) for path, node in combined.items()}

    return FilesystemConfig(
        root_path=override.root_path or base.root_path,
        template_key=override.template_key or base.template_key,
        read_only=override.read_only if override.read_only is not None else base.read_only,
        snapshot=vfs.merge_filesystem(base.snapshot, override.snapshot),
        overrides=overrides,
    )


def resolve_system_instance(
    definition: SystemDefinition, override: FilesystemMap | None = None
) -> ResolvedSystemInstance:
    """Build the concrete filesystem a session plays against.

    The snapshot is overlaid by the definition's own ``overrides`` and then
    by *override*; paths the overlays add are linked into their parents.
    """
    config = definition.filesystem
    snapshot = config.snapshot if config else {}
    overlay: FilesystemMap = {}
    if config and config.overrides:
        overlay.update(config.overrides)
    if override:
        overlay.update(vfs.normalize_overlay_map(override))

    warnings = [
        ValidationWarning(
            "orphan_override_path",
            "parent directory is missing from the base snapshot and the override",
            subject=path,
        )
        for path in vfs.find_orphan_paths(snapshot, overlay)
    ]
    root = overlay.get(vfs.ROOT)
    if root is not None and not root.is_dir:
        warnings.append(ValidationWarning(
            "root_not_directory",
            f"override of / must be a dir, not {root.type}; kept the base root",
            subject=f"{definition.id}:/",
        ))
    merged = vfs.merge_filesystem(snapshot, overlay)
    added = [p for p in overlay if p not in snapshot]
    added += [p for p in merged if p != vfs.ROOT and vfs.get_parent_path(p) not in merged]
    filesystem = vfs.link_overlay_paths(merged, added)

    return ResolvedSystemInstance(
        definition=definition.model_copy(deep=True),
        filesystem=filesystem,
        source="override" if override else "definition",
        warnings=warnings,
    )


def profile_to_definition(profile: Mapping[str, Any], kind: str = "profile") -> SystemDefinition:
    """Adapt a legacy "system profile" payload to a :class:`SystemDefinition`.

    Profiles carry addresses under ``identifiers`` and login details, host
    and tool bindings under ``metadata``.  Malformed bindings are dropped.
    """
    identifiers = profile.get("identifiers") or {}
    metadata = profile.get("metadata") or {}
    ips = _clean_strings(identifiers.get("ips"))
    hostnames = _clean_strings(identifiers.get("hostnames"))
    label = str(profile.get("label") or profile.get("id") or "").strip()
    username = _clean(metadata.get("username")) or "guest"
    starting_path = _clean(metadata.get("startingPath")) or "/"
    description = _clean(profile.get("description")) or label
    kind = "template" if kind == "template" else "profile"

    definition = SystemDefinition(
        id=profile["id"],
        key=profile["id"],
        name=label,
        label=label,
        description=description,
        type="filesystem",
        scope="quest_template" if kind == "template" else "global",
        kind=kind,
        network=NetworkBindings(primary_ip=ips[0] if ips else None, ips=ips, hostnames=hostnames),
        credentials=Credentials(username=username, starting_path=starting_path),
        metadata={
            "description": description,
            "footprint": _clean(metadata.get("footprint")) or "",
            "tags": [],
        },
        filesystem=FilesystemConfig(
            root_path=starting_path,
            read_only=False,
            snapshot=vfs.normalize_filesystem_map(profile.get("filesystem")),
        ),
        host=_sanitize_host(metadata.get("hostConfig")),
        tools=_sanitize_tools(metadata.get("toolBindings")),
        applies_to=_sanitize_bindings(metadata.get("scopeBindings")),
    )
    return definition


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _context_dict(context: ResolutionContext | Mapping[str, str] | None) -> dict[str, str]:
    if context is None:
        return {}
    if isinstance(context, ResolutionContext):
        return context.as_dict()
    return {str(k): v for k, v in context.items() if isinstance(v, str) and v}


def _override_chain(
    definition: SystemDefinition,
    scoped_by_id: Mapping[str, SystemDefinition],
    base_ids: set[str],
) -> list[str]:
    """Ids from *definition* up to the id its chain ends on.

    The last element is a global base id when the chain resolves.
    """
    chain = [definition.id]
    current = definition
    while True:
        target = current.extends_system_id
        if target in base_ids:
            return chain + [target]
        if target in chain:
            raise SystemResolutionCycleError(chain + [target])
        nxt = scoped_by_id.get(target)
        if nxt is None or not nxt.extends_system_id:
            return chain + [target]
        chain.append(target)
        current = nxt


def _clean(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _clean_strings(values: Any) -> list[str]:
    if not isinstance(values, list):
        return []
    return [v.strip() for v in values if isinstance(v, str) and v.strip()]


def _sanitize_host(raw: Any) -> TerminalHostConfig | None:
    if not isinstance(raw, Mapping) or not _clean(raw.get("hostId")):
        return None
    data: dict[str, Any] = {"hostId": _clean(raw["hostId"])}
    if _clean(raw.get("address")):
        data["address"] = _clean(raw["address"])
    port = raw.get("port")
    if isinstance(port, int) and not isinstance(port, bool) and 1 <= port <= 65535:
        data["port"] = port
    if raw.get("protocol") in ("ssh", "ws", "local"):
        data["protocol"] = raw["protocol"]
    ports = _clean_strings(raw.get("openPorts"))
    if ports:
        data["openPorts"] = ports
    if isinstance(raw.get("flags"), Mapping) and raw["flags"]:
        data["flags"] = {str(k): bool(v) for k, v in raw["flags"].items()}
    return TerminalHostConfig.model_validate(data)


def _sanitize_tools(raw: Any) -> ToolBindingConfig | None:
    if not isinstance(raw, Mapping) or not isinstance(raw.get("tools"), list):
        return None
    tools = []
    for entry in raw["tools"]:
        if not isinstance(entry, Mapping):
            continue
        fields = {k: _clean(entry.get(k)) for k in ("id", "name", "command")}
        if not all(fields.values()):
            continue
        if _clean(entry.get("description")):
            fields["description"] = _clean(entry["description"])
        for key in ("inputSchema", "options"):
            if isinstance(entry.get(key), Mapping):
                fields[key] = dict(entry[key])
        try:
            tools.append(ToolBinding.model_validate(fields))
        except ValidationError:
            log.debug("Skipping tool binding %s", fields["id"])
    return ToolBindingConfig(tools=tools) if tools else None


def _sanitize_bindings(raw: Any) -> dict[str, str] | None:
    if not isinstance(raw, Mapping):
        return None
    bindings = {str(k): _clean(v) for k, v in raw.items() if _clean(v)}
    return bindings or None
