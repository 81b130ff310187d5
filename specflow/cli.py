#!/usr/bin/env python3
"""specflow CLI entrypoint."""

import sys
import argparse
import logging
from pathlib import Path

from specflow.lib.config import find_project_root, load_paths, load_profile
from specflow.commands import state as cmd_state_module
from specflow.commands import step as cmd_step_module
from specflow.commands import gate as cmd_gate_module
from specflow.commands import reconcile as cmd_reconcile_module
from specflow.commands import migrate as cmd_migrate_module
from specflow.commands import phase as cmd_phase_module
from specflow.commands import doctor as cmd_doctor_module
from specflow.lib.state import STEP_NAMES
from specflow.workflow.fsm import TRIGGERS


def get_project(args):
    """Resolve project paths and profile from --project-dir or the cwd."""
    start = Path(args.project_dir) if args.project_dir else None
    root = find_project_root(start)
    paths = load_paths(root)
    return paths, load_profile(paths.specify_dir)


def _dispatch(handler):
    def run(args):
        paths, profile = get_project(args)
        return handler(args, paths, profile)
    return run


cmd_state_init = _dispatch(cmd_state_module.cmd_state_init)
cmd_state_get = _dispatch(cmd_state_module.cmd_state_get)
cmd_state_set = _dispatch(cmd_state_module.cmd_state_set)
cmd_state_validate = _dispatch(cmd_state_module.cmd_state_validate)
cmd_state_reset = _dispatch(cmd_state_module.cmd_state_reset)
cmd_state_migrate = _dispatch(cmd_state_module.cmd_state_migrate)
cmd_state_path = _dispatch(cmd_state_module.cmd_state_path)
cmd_step = _dispatch(cmd_step_module.cmd_step)
cmd_gate = _dispatch(cmd_gate_module.cmd_gate)
cmd_reconcile = _dispatch(cmd_reconcile_module.cmd_reconcile)
cmd_migrate_roadmap = _dispatch(cmd_migrate_module.cmd_migrate_roadmap)
cmd_phase_find = _dispatch(cmd_phase_module.cmd_phase_find)
cmd_phase_status = _dispatch(cmd_phase_module.cmd_phase_status)
cmd_phase_archive = _dispatch(cmd_phase_module.cmd_phase_archive)
cmd_doctor = _dispatch(cmd_doctor_module.cmd_doctor)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='specflow', description='Spec-driven workflow state and gates')
    parser.add_argument('--project-dir', '-C', help='Project directory (default: nearest with .specify/)')
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging to stderr')
    subparsers = parser.add_subparsers(dest='command', required=True)

    # Shared by every subcommand so --json works after the subcommand name
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument('--json', action='store_true', help='Machine-readable output')

    # specflow state
    p_state = subparsers.add_parser('state', help='Inspect and edit the state document')
    state_sub = p_state.add_subparsers(dest='state_cmd', required=True)

    p_init = state_sub.add_parser('init', parents=[common], help='Create a fresh state document')
    p_init.add_argument('--force', action='store_true', help='Overwrite an existing document')
    p_init.add_argument('--name', help='Project name')
    p_init.set_defaults(func=cmd_state_init)

    p_get = state_sub.add_parser('get', parents=[common], help='Read a value by dotted key')
    p_get.add_argument('key', nargs='?', help='e.g. orchestration.steps.plan.status (omit for all)')
    p_get.set_defaults(func=cmd_state_get)

    p_set = state_sub.add_parser('set', parents=[common], help='Set values (key=value ...)')
    p_set.add_argument('assignments', nargs='+', help='key=value; values parsed as JSON when possible')
    p_set.set_defaults(func=cmd_state_set)

    p_validate = state_sub.add_parser('validate', parents=[common], help='Report structural problems')
    p_validate.set_defaults(func=cmd_state_validate)

    p_reset = state_sub.add_parser('reset', parents=[common], help='Reset progress')
    p_reset.add_argument('--full', action='store_true', help='Also reset config and project')
    p_reset.set_defaults(func=cmd_state_reset)

    p_smigrate = state_sub.add_parser('migrate', parents=[common], help='Upgrade an older schema version')
    p_smigrate.set_defaults(func=cmd_state_migrate)

    p_path = state_sub.add_parser('path', parents=[common], help='Show the state file location')
    p_path.set_defaults(func=cmd_state_path)

    # specflow step
    p_step = subparsers.add_parser('step', parents=[common], help='Advance a workflow step')
    p_step.add_argument('trigger', choices=TRIGGERS)
    p_step.add_argument('step', choices=STEP_NAMES)
    p_step.add_argument('--strict', action='store_true', help='Treat gate warnings as failures')
    p_step.add_argument('--skip-tests', action='store_true', help='Do not run the test suite')
    p_step.set_defaults(func=cmd_step)

    # specflow gate
    p_gate = subparsers.add_parser('gate', parents=[common], help='Evaluate quality gates')
    p_gate.add_argument('gate', choices=['specify', 'plan', 'tasks', 'implement', 'all', 'status'])
    p_gate.add_argument('--strict', action='store_true', help='Treat warnings as failures')
    p_gate.add_argument('--skip-tests', action='store_true', help='Do not run the test suite')
    p_gate.set_defaults(func=cmd_gate)

    # specflow reconcile
    p_rec = subparsers.add_parser('reconcile', parents=[common], help='Detect and repair state drift')
    p_rec.add_argument('--dry-run', action='store_true', help='Show fixes without applying them')
    trust = p_rec.add_mutually_exclusive_group()
    trust.add_argument('--trust-files', action='store_true', help='Repair state from files (default)')
    trust.add_argument('--trust-state', action='store_true', help='Report only; state is authoritative')
    p_rec.set_defaults(func=cmd_reconcile)

    # specflow migrate
    p_migrate = subparsers.add_parser('migrate', help='Migrations')
    migrate_sub = p_migrate.add_subparsers(dest='migrate_cmd', required=True)
    p_mroad = migrate_sub.add_parser('roadmap', parents=[common], help='Convert 3-digit phases to 4-digit')
    p_mroad.add_argument('--dry-run', action='store_true', help='Show changes without writing')
    p_mroad.add_argument('--no-backup', action='store_true', help='Skip ROADMAP.md.bak')
    p_mroad.set_defaults(func=cmd_migrate_roadmap)

    # specflow phase
    p_phase = subparsers.add_parser('phase', help='Roadmap phases')
    phase_sub = p_phase.add_subparsers(dest='phase_cmd', required=True)

    p_find = phase_sub.add_parser('find', parents=[common], help='Resolve a phase number')
    p_find.add_argument('input', help='e.g. 42, 042, 0420')
    p_find.set_defaults(func=cmd_phase_find)

    p_pstatus = phase_sub.add_parser('status', parents=[common], help='List phases and status')
    p_pstatus.set_defaults(func=cmd_phase_status)

    p_archive = phase_sub.add_parser('archive', parents=[common], help='Move a completed phase to HISTORY.md')
    p_archive.add_argument('number', help='Phase number')
    p_archive.add_argument('--dry-run', action='store_true', help='Show the history entry without writing')
    p_archive.set_defaults(func=cmd_phase_archive)

    # specflow doctor
    p_doctor = subparsers.add_parser('doctor', parents=[common], help='Report project health')
    p_doctor.set_defaults(func=cmd_doctor)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(levelname)s %(name)s: %(message)s',
    )
    return args.func(args)


if __name__ == '__main__':
    sys.exit(main())
