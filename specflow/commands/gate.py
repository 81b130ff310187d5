"""
specflow gate - Evaluate quality gates for the active phase.
"""

from typing import Optional

from specflow.lib.config import ProjectPaths, ProjectProfile, active_feature_dir
from specflow.lib.output import detail_lines, header, print_json, report_error, status_line
from specflow.lib.state import STEP_NAMES, SchemaError, StateStore, WorkflowState
from specflow.workflow.gates import (
    GateResult,
    Severity,
    Verdict,
    evaluate_all,
    evaluate_gate,
    gate_status,
)


def _load_state(paths: ProjectPaths) -> Optional[WorkflowState]:
    """State if present. A damaged document raises SchemaError."""
    store = StateStore(paths.state_file)
    if not store.exists():
        return None
    return store.load()


def print_gate_result(result: GateResult) -> None:
    title = f"Gate: {result.gate}"
    if result.artifact:
        title += f" ({result.artifact})"
    header(title)
    for key, value in result.summary.items():
        print(f"  {key.replace('_', ' ')}: {value}")
    if result.test_run is not None and result.test_run.passed:
        status_line("ok", f"Tests passing ({result.test_run.command})")
    for finding in result.findings:
        status_line("error" if finding.severity == Severity.ERROR else "warn", finding.message)
        detail_lines(finding.details)

    verdict = result.verdict.value
    if result.verdict_strict != result.verdict:
        verdict += f" (strict: {result.verdict_strict.value})"
    status = {"PASS": "ok", "PASS_WITH_WARNINGS": "warn", "FAIL": "error"}[result.verdict.value]
    status_line(status, f"{verdict}: {result.errors} errors, {result.warnings} warnings")


def cmd_gate(args, paths: ProjectPaths, profile: ProjectProfile) -> int:
    """Run one gate, all artifact gates, or show gate readiness."""
    try:
        state = _load_state(paths)
    except SchemaError as e:
        report_error(f"{e} (run `specflow state init --force` to recreate)", args.json)
        return 1

    feature_dir = active_feature_dir(paths, state)

    if args.gate == "status":
        statuses = {name: state.step(name).status for name in STEP_NAMES} if state else {}
        rows = gate_status(feature_dir, statuses)
        if args.json:
            print_json({
                "feature_dir": str(feature_dir) if feature_dir else None,
                "gates": [r.to_dict() for r in rows],
            })
            return 0
        print(f"Feature directory: {feature_dir or '(not found)'}")
        for row in rows:
            artifact = row.artifact.name if row.artifact else "-"
            readiness = "ready" if row.ready else "blocked"
            step = f", step {row.step_status}" if row.step_status else ""
            status_line("ok" if row.ready else "pending", f"{row.gate:<10} {artifact:<10} {readiness}{step}")
        return 0

    if args.gate == "all":
        results = evaluate_all(feature_dir, paths, profile, strict=args.strict)
        failed = any(r.verdict == Verdict.FAIL for r in results)
        if args.json:
            print_json({
                "feature_dir": str(feature_dir) if feature_dir else None,
                "passed": not failed,
                "results": [r.to_dict() for r in results],
            })
        elif not results:
            print("No artifacts found to check")
        else:
            for result in results:
                print_gate_result(result)
        return 1 if failed else 0

    result = evaluate_gate(
        args.gate,
        feature_dir,
        paths,
        profile,
        strict=args.strict,
        skip_tests=args.skip_tests,
    )
    if args.json:
        print_json(result.to_dict())
    else:
        print_gate_result(result)
    return 0 if result.passed else 1
