"""
specflow phase - Look up, list, and archive roadmap phases.
"""

from specflow.lib.config import ProjectPaths, ProjectProfile
from specflow.lib.output import print_json, report_error, status_line
from specflow.lib.roadmap import find_storage_conflicts, load_phases
from specflow.lib.state import SchemaError, StateStore, WriteError
from specflow.workflow.archive import ArchiveError, archive_phase, is_archived
from specflow.workflow.migrate import AmbiguousInput, normalize_fuzzy

STATUS_MARKS = {
    "complete": "ok",
    "in_progress": "pending",
    "awaiting_user": "warn",
    "blocked": "error",
    "not_started": "skip",
}


def cmd_phase_find(args, paths: ProjectPaths, profile: ProjectProfile) -> int:
    """Resolve loose input ('42', '042') to a roadmap phase number."""
    number = normalize_fuzzy(args.input, paths.roadmap_file)
    if number is None:
        report_error(f"No phase matches '{args.input}' in {paths.roadmap_file.name}", args.json)
        return 1
    if args.json:
        print_json({"input": args.input, "phase_number": number})
    else:
        print(number)
    return 0


def cmd_phase_status(args, paths: ProjectPaths, profile: ProjectProfile) -> int:
    """List roadmap phases with status and storage."""
    if not paths.roadmap_file.is_file():
        report_error(f"ROADMAP not found: {paths.roadmap_file}", args.json)
        return 1
    phases = load_phases(paths.roadmap_file, paths.phases_dir)
    conflicts = {c.number for c in find_storage_conflicts(paths.roadmap_file, paths.phases_dir)}

    if args.json:
        print_json({
            "phases": [
                {**p.to_dict(), "conflict": p.number in conflicts,
                 "archived": is_archived(paths.history_file, p.number)}
                for p in phases
            ],
            "complete": sum(1 for p in phases if p.status == "complete"),
            "total": len(phases),
        })
        return 0

    for phase in phases:
        note = " [stored twice]" if phase.number in conflicts else ""
        status_line(STATUS_MARKS.get(phase.status, "skip"), f"{phase.number}  {phase.name} ({phase.status}){note}")
    done = sum(1 for p in phases if p.status == "complete")
    print(f"\n{done}/{len(phases)} phases complete")
    return 0


def cmd_phase_archive(args, paths: ProjectPaths, profile: ProjectProfile) -> int:
    """Move a completed phase into HISTORY.md."""
    number = normalize_fuzzy(args.number, paths.roadmap_file)
    if number is None:
        report_error(f"No phase matches '{args.number}' in {paths.roadmap_file.name}", args.json)
        return 1
    try:
        result = archive_phase(paths, number, StateStore(paths.state_file), dry_run=args.dry_run)
    except SchemaError as e:
        report_error(f"{e} (run `specflow state init --force` to recreate)", args.json)
        return 1
    except (ArchiveError, AmbiguousInput, WriteError) as e:
        report_error(str(e), args.json)
        return 1

    if args.json:
        print_json(result.to_dict())
        return 0
    if args.dry_run:
        print(f"Would archive phase {number} to {result.history_file}:\n")
        print(result.entry)
    else:
        print(f"Archived phase {number} to {result.history_file}")
        if result.source == "file":
            print(f"Removed {result.removed}")
        elif result.source == "inline":
            print(f"Removed inline section from {result.removed}")
    return 0
