"""
specflow reconcile - Detect and repair drift between state and files.
"""

from specflow.lib.config import ProjectPaths, ProjectProfile
from specflow.lib.output import header, print_json, report_error, status_line
from specflow.lib.state import SchemaError, StateStore, WriteError
from specflow.workflow.reconcile import Reconciler, TrustMode


def cmd_reconcile(args, paths: ProjectPaths, profile: ProjectProfile) -> int:
    """Exit 0 when in sync or fully repaired, 2 with unresolved drift, 1 on error."""
    trust = TrustMode.STATE if args.trust_state else TrustMode.FILES
    reconciler = Reconciler(paths, StateStore(paths.state_file))
    try:
        result = reconciler.reconcile(trust_mode=trust, dry_run=args.dry_run)
    except SchemaError as e:
        report_error(f"{e} (run `specflow state init --force` to recreate)", args.json)
        return 1
    except WriteError as e:
        report_error(str(e), args.json)
        return 1

    if args.json:
        print_json(result.to_dict())
        return result.exit_code

    header(f"Reconcile (trust {trust.value}{', dry run' if args.dry_run else ''})")
    if result.in_sync:
        status_line("ok", "State and files are in sync")
        return 0

    for diff in result.differences:
        status = "warn" if diff.severity == "soft" else "error"
        status_line(status, f"{diff.area}: {diff.description} (state={diff.recorded}, files={diff.observed})")
    for fix in result.applied:
        status_line("ok", f"Fixed {fix.description}")
    for fix in result.planned:
        status_line("pending", f"Would fix {fix.description}")
    if result.reported:
        print(f"\n{len(result.reported)} difference(s) unresolved")
    return result.exit_code
