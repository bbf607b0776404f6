#!/usr/bin/env python3
"""ralph CLI entrypoint."""

import sys
import argparse
import logging

from ralph import __version__
from ralph.lib.config import ConfigError, resolve_config
from ralph.lib.constants import DEFAULT_CHECK_TAIL_LINES, DEFAULT_MAX_ITERATIONS, EXIT_CONFIG, EXIT_ERROR
from ralph.workspace.errors import WorkspaceError
from ralph.commands import attach as cmd_attach_module
from ralph.commands import check as cmd_check_module
from ralph.commands import daemon as cmd_daemon_module
from ralph.commands import done as cmd_done_module
from ralph.commands import init as cmd_init_module
from ralph.commands import overview as cmd_overview_module
from ralph.commands import rebase as cmd_rebase_module
from ralph.commands import run as cmd_run_module
from ralph.commands import shell_init as cmd_shell_init_module
from ralph.commands import status as cmd_status_module
from ralph.commands import stop as cmd_stop_module
from ralph.commands import workspaces as cmd_workspaces_module


def get_project_config(args):
    """Load project config from --config or by discovery."""
    try:
        return resolve_config(args.config)
    except ConfigError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(EXIT_CONFIG)


def with_config(func):
    """Wrap a command module function taking (args, config)."""
    def wrapper(args):
        config = get_project_config(args)
        try:
            return func(args, config)
        except WorkspaceError as e:
            print(f"ERROR: {e}", file=sys.stderr)
            return EXIT_ERROR
        except ConfigError as e:
            print(f"ERROR: {e}", file=sys.stderr)
            return EXIT_CONFIG
    return wrapper


cmd_run = with_config(cmd_run_module.cmd_run)
cmd_attach = with_config(cmd_attach_module.cmd_attach)
cmd_stop = with_config(cmd_stop_module.cmd_stop)
cmd_status = with_config(cmd_status_module.cmd_status)
cmd_overview = with_config(cmd_overview_module.cmd_overview)
cmd_workspaces_new = with_config(cmd_workspaces_module.cmd_workspaces_new)
cmd_workspaces_list = with_config(cmd_workspaces_module.cmd_workspaces_list)
cmd_workspaces_remove = with_config(cmd_workspaces_module.cmd_workspaces_remove)
cmd_workspaces_switch = with_config(cmd_workspaces_module.cmd_workspaces_switch)
cmd_rebase = with_config(cmd_rebase_module.cmd_rebase)
cmd_done = with_config(cmd_done_module.cmd_done)
cmd_daemon = with_config(cmd_daemon_module.cmd_daemon)


def cmd_check(args):
    return cmd_check_module.cmd_check(args)


def cmd_init(args):
    return cmd_init_module.cmd_init(args)


def cmd_shell_init(args):
    return cmd_shell_init_module.cmd_shell_init(args)


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='ralph', description='Autonomous agent loop over a PRD')
    parser.add_argument('--config', '-c', help='Path to .ralph/ralph.yaml (default: discover from cwd)')
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')
    parser.add_argument('--version', action='version', version=f'ralph {__version__}')
    subparsers = parser.add_subparsers(dest='command', required=True)

    # ralph init
    p_init = subparsers.add_parser('init', help='Scaffold .ralph/ in this repository')
    p_init.add_argument('--base', default='main', help='Default base branch (default: main)')
    p_init.set_defaults(func=cmd_init)

    # ralph run
    p_run = subparsers.add_parser('run', help='Start the loop daemon and attach')
    p_run.add_argument('--workspace', '-w', help='Workspace name (default: current)')
    p_run.add_argument('--max-iterations', type=int, default=DEFAULT_MAX_ITERATIONS,
                       help=f'Iteration budget (default: {DEFAULT_MAX_ITERATIONS})')
    p_run.add_argument('--no-tui', action='store_true', help='Plain-text output instead of the dashboard')
    p_run.set_defaults(func=cmd_run)

    # ralph attach
    p_attach = subparsers.add_parser('attach', help='Follow a running daemon')
    p_attach.add_argument('--workspace', '-w', help='Workspace name (default: current)')
    p_attach.add_argument('--no-tui', action='store_true', help='Plain-text output instead of the dashboard')
    p_attach.set_defaults(func=cmd_attach)

    # ralph stop
    p_stop = subparsers.add_parser('stop', help='Stop a running daemon')
    p_stop.add_argument('--workspace', '-w', help='Workspace name (default: current)')
    p_stop.set_defaults(func=cmd_stop)

    # ralph status
    p_status = subparsers.add_parser('status', help='Show PRD progress and daemon state')
    p_status.add_argument('--workspace', '-w', help='Workspace name (default: current)')
    p_status.add_argument('--short', action='store_true', help='One line for shell prompts')
    p_status.set_defaults(func=cmd_status)

    # ralph overview
    p_overview = subparsers.add_parser('overview', help='Dashboard of all running workspaces')
    p_overview.set_defaults(func=cmd_overview)

    # ralph check
    p_check = subparsers.add_parser('check', help='Run a quality gate command with logged output')
    p_check.add_argument('--tail', type=int, default=DEFAULT_CHECK_TAIL_LINES,
                         help=f'Output lines shown on failure (default: {DEFAULT_CHECK_TAIL_LINES})')
    p_check.add_argument('cmd', nargs=argparse.REMAINDER, help='Command to run (after --)')
    p_check.set_defaults(func=cmd_check)

    # ralph workspaces
    p_ws = subparsers.add_parser('workspaces', help='Manage workspaces')
    p_ws.set_defaults(func=cmd_workspaces_list)
    ws_sub = p_ws.add_subparsers(dest='workspaces_command')

    p_ws_new = ws_sub.add_parser('new', help='Create a workspace')
    p_ws_new.add_argument('name', help='Workspace name')
    p_ws_new.add_argument('--prd', help='PRD file to copy into the workspace')
    p_ws_new.add_argument('--fresh', action='store_true', help='Delete an existing branch instead of resuming it')
    p_ws_new.set_defaults(func=cmd_workspaces_new)

    p_ws_list = ws_sub.add_parser('list', help='List workspaces')
    p_ws_list.set_defaults(func=cmd_workspaces_list)

    p_ws_remove = ws_sub.add_parser('remove', help='Remove a workspace and its branch')
    p_ws_remove.add_argument('name', help='Workspace name')
    p_ws_remove.set_defaults(func=cmd_workspaces_remove)

    p_ws_switch = ws_sub.add_parser('switch', help='Print the path of a workspace tree')
    p_ws_switch.add_argument('name', help='Workspace name, or "base"')
    p_ws_switch.set_defaults(func=cmd_workspaces_switch)

    # ralph rebase
    p_rebase = subparsers.add_parser('rebase', help='Rebase onto the base branch, resolving conflicts')
    p_rebase.add_argument('target', nargs='?', help='Branch to rebase onto (default: repo.default_base)')
    p_rebase.add_argument('--workspace', '-w', help='Workspace name (default: current)')
    p_rebase.set_defaults(func=cmd_rebase)

    # ralph done
    p_done = subparsers.add_parser('done', help='Squash-merge the workspace into its base and remove it')
    p_done.add_argument('--workspace', '-w', help='Workspace name (default: current)')
    p_done.add_argument('--yes', '-y', action='store_true', help='Accept the generated commit message')
    p_done.add_argument('--message', '-m', help='Commit message')
    p_done.set_defaults(func=cmd_done)

    # ralph shell-init
    p_shell = subparsers.add_parser('shell-init', help='Print the shell integration function')
    p_shell.set_defaults(func=cmd_shell_init)

    # ralph _daemon (hidden)
    p_daemon = subparsers.add_parser('_daemon')
    p_daemon.add_argument('--workspace', '-w', required=True)
    p_daemon.add_argument('--max-iterations', type=int, default=DEFAULT_MAX_ITERATIONS)
    p_daemon.add_argument('--foreground', action='store_true', help='Do not detach')
    p_daemon.set_defaults(func=cmd_daemon)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)
    return args.func(args)


if __name__ == '__main__':
    sys.exit(main())
