"""
specflow doctor - Report project health without changing anything.
"""

from specflow.lib.config import ProjectPaths, ProjectProfile
from specflow.lib.output import header, print_json, status_line
from specflow.lib.state import StateStore
from specflow.workflow.health import run_doctor


def cmd_doctor(args, paths: ProjectPaths, profile: ProjectProfile) -> int:
    report = run_doctor(paths, StateStore(paths.state_file), profile)
    if args.json:
        print_json(report.to_dict())
        return 0 if report.healthy else 1

    header(f"Doctor: {paths.root}")
    for check in report.checks:
        status_line(check.status, f"{check.area}: {check.message}")
        if check.suggestion and check.status in ("warn", "error"):
            print(f"         -> {check.suggestion}")
    print(f"\n{len(report.issues)} issue(s), {len(report.warnings)} warning(s)")
    return 0 if report.healthy else 1
