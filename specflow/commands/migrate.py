"""
specflow migrate roadmap - Convert 3-digit phase numbers to 4-digit.
"""

from specflow.lib.config import ProjectPaths, ProjectProfile
from specflow.lib.output import print_json, report_error
from specflow.lib.state import SchemaError, StateStore
from specflow.workflow.migrate import AmbiguousInput, MigrationError, migrate_roadmap


def cmd_migrate_roadmap(args, paths: ProjectPaths, profile: ProjectProfile) -> int:
    try:
        result = migrate_roadmap(
            paths,
            StateStore(paths.state_file),
            dry_run=args.dry_run,
            backup=not args.no_backup,
        )
    except (AmbiguousInput, MigrationError, SchemaError) as e:
        report_error(str(e), args.json)
        return 1

    if args.json:
        print_json(result.to_dict())
        return 0

    if not result.conversions:
        print(f"{paths.roadmap_file.name} already uses 4-digit phase numbers (2.1)")
        return 0

    prefix = "Would convert" if args.dry_run else "Converted"
    print(f"{prefix} {len(result.conversions)} phase(s): {result.from_format} -> {result.to_format}")
    for old, new in result.conversions.items():
        print(f"  {old} -> {new}")
    if args.dry_run:
        for n, before, after in result.roadmap_changes:
            print(f"  line {n}:")
            print(f"    - {before}")
            print(f"    + {after}")
    for key, (before, after) in result.state_changes.items():
        print(f"  {key}: {before} -> {after}")
    if result.backup:
        print(f"Backup: {result.backup}")
    return 0
