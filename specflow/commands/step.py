"""
specflow step - Move a workflow step through its lifecycle.
"""

from specflow.lib.config import ProjectPaths, ProjectProfile
from specflow.lib.output import print_json, report_error
from specflow.lib.state import SchemaError, StateStore, WriteError
from specflow.workflow.state_machine import GateBlocked, InvalidTransition, advance_step
from specflow.commands.gate import print_gate_result


def cmd_step(args, paths: ProjectPaths, profile: ProjectProfile) -> int:
    """Apply start/complete/fail/retry to a step."""
    store = StateStore(paths.state_file)
    try:
        outcome = advance_step(
            store,
            paths,
            profile,
            args.step,
            args.trigger,
            strict=args.strict,
            skip_tests=args.skip_tests,
        )
    except SchemaError as e:
        report_error(f"{e} (run `specflow state init --force` to recreate)", args.json)
        return 1
    except GateBlocked as e:
        if args.json:
            print_json({"ok": False, "error": str(e), "gate": e.result.to_dict()})
        else:
            print_gate_result(e.result)
            report_error(str(e))
        return 1
    except (InvalidTransition, WriteError, KeyError) as e:
        report_error(str(e), args.json)
        return 1

    if args.json:
        print_json(outcome.to_dict())
        return 0
    if outcome.gate is not None:
        print_gate_result(outcome.gate)
    if outcome.changed:
        print(f"{outcome.step}: {outcome.from_state} -> {outcome.to_state}")
    else:
        print(f"{outcome.step}: already {outcome.to_state}")
    return 0
