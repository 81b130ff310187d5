"""
specflow state - Inspect and edit the workflow state document.
"""

import json

from specflow.lib.config import ProjectPaths, ProjectProfile
from specflow.lib.output import print_json, report_error, status_line
from specflow.lib.state import SchemaError, StateStore, WriteError, parse_value


def _store(paths: ProjectPaths) -> StateStore:
    return StateStore(paths.state_file)


def cmd_state_init(args, paths: ProjectPaths, profile: ProjectProfile) -> int:
    """Create a fresh state document."""
    store = _store(paths)
    try:
        store.init(force=args.force, project_name=args.name)
    except WriteError as e:
        report_error(str(e), args.json)
        return 1
    if args.json:
        print_json({"ok": True, "path": str(store.path)})
    else:
        print(f"Initialized {store.path}")
    return 0


def cmd_state_get(args, paths: ProjectPaths, profile: ProjectProfile) -> int:
    """Print a value (or the whole document) by dotted key path."""
    store = _store(paths)
    missing = object()
    try:
        value = store.get(args.key, missing)
    except SchemaError as e:
        report_error(f"{e} (run `specflow state init --force` to recreate)", args.json)
        return 1
    except KeyError as e:
        report_error(str(e), args.json)
        return 1
    if value is missing:
        report_error(f"Key not found: {args.key}", args.json)
        return 1

    if args.json or isinstance(value, (dict, list)):
        print_json(value)
    elif value is None:
        print("null")
    elif isinstance(value, bool):
        print(json.dumps(value))
    else:
        print(value)
    return 0


def cmd_state_set(args, paths: ProjectPaths, profile: ProjectProfile) -> int:
    """Set one or more key=value pairs in a single write."""
    changes = []
    for assignment in args.assignments:
        if "=" not in assignment:
            report_error(f"Expected key=value, got '{assignment}'", args.json)
            return 1
        key, raw = assignment.split("=", 1)
        changes.append((key.strip(), parse_value(raw)))

    store = _store(paths)
    try:
        store.set_many(changes)
    except SchemaError as e:
        report_error(f"{e} (run `specflow state init --force` to recreate)", args.json)
        return 1
    except (WriteError, KeyError) as e:
        report_error(str(e), args.json)
        return 1

    if args.json:
        print_json({"ok": True, "set": {key: value for key, value in changes}})
    else:
        for key, value in changes:
            print(f"Set {key} = {json.dumps(value)}")
    return 0


def cmd_state_validate(args, paths: ProjectPaths, profile: ProjectProfile) -> int:
    """Report structural problems in the state document."""
    store = _store(paths)
    try:
        state = store.load()
    except SchemaError as e:
        report_error(f"{e} (run `specflow state init --force` to recreate)", args.json)
        return 1

    if args.json:
        print_json({
            "valid": not state.problems,
            "schema_version": state.schema_version,
            "migrated_from": state.migrated_from,
            "problems": state.problems,
        })
    else:
        print(f"State: {store.path}")
        if not state.problems:
            status_line("ok", f"Valid (schema {state.schema_version})")
        for problem in state.problems:
            status_line("warn", problem)
    return 0 if not state.problems else 1


def cmd_state_reset(args, paths: ProjectPaths, profile: ProjectProfile) -> int:
    """Reset progress, keeping config and project unless --full."""
    store = _store(paths)
    try:
        store.reset(full=args.full)
    except SchemaError as e:
        report_error(f"{e} (run `specflow state init --force` to recreate)", args.json)
        return 1
    except WriteError as e:
        report_error(str(e), args.json)
        return 1
    if args.json:
        print_json({"ok": True, "full": args.full})
    else:
        print("State reset" + (" (including config)" if args.full else ""))
    return 0


def cmd_state_migrate(args, paths: ProjectPaths, profile: ProjectProfile) -> int:
    """Persist an older schema version as the current one, with a backup."""
    store = _store(paths)
    try:
        version, backup = store.migrate_schema()
    except (SchemaError, WriteError) as e:
        report_error(str(e), args.json)
        return 1

    if args.json:
        print_json({"migrated": version is not None, "from": version, "backup": str(backup) if backup else None})
    elif version is None:
        print("State already at current schema, nothing to migrate")
    else:
        print(f"Migrated state from {version}")
        print(f"Backup: {backup}")
    return 0


def cmd_state_path(args, paths: ProjectPaths, profile: ProjectProfile) -> int:
    if args.json:
        print_json({"path": str(paths.state_file), "exists": paths.state_file.exists()})
    else:
        print(paths.state_file)
    return 0
