"""
ralph shell-init - Print a shell function so workspace commands can cd.

Install with: eval "$(ralph shell-init)"
"""

import os
import sys
from pathlib import Path

from ralph.lib.constants import EXIT_ERROR, EXIT_SUCCESS

SUPPORTED_SHELLS = ("bash", "zsh")

SHELL_FUNCTION = r'''ralph() {
    export RALPH_SHELL_INIT=1

    __ralph_cd() {
        __output=$(command ralph "$@")
        __exit=$?
        if [ $__exit -ne 0 ]; then
            return $__exit
        fi
        __path=$(printf '%s\n' "$__output" | tail -n 1)
        if [ -n "$__path" ] && [ -d "$__path" ]; then
            cd "$__path" || return 1
            return 0
        fi
        return 2
    }

    case "$1" in
        workspaces)
            case "$2" in
                new|switch)
                    __ralph_cd "$@" || return $?
                    if [ "$3" = "base" ]; then
                        unset RALPH_WORKSPACE
                    elif [ -n "$3" ]; then
                        export RALPH_WORKSPACE="$3"
                    fi
                    ;;
                remove)
                    __ralph_cd "$@"
                    __exit=$?
                    if [ $__exit -eq 0 ]; then
                        unset RALPH_WORKSPACE
                    elif [ $__exit -ne 2 ]; then
                        return $__exit
                    fi
                    ;;
                *)
                    command ralph "$@"
                    ;;
            esac
            ;;
        done)
            __ralph_cd "$@" || return $?
            unset RALPH_WORKSPACE
            ;;
        *)
            command ralph "$@"
            ;;
    esac
}
'''


def shell_function(shell_path: str) -> str:
    """
    Raises:
        ValueError: For shells other than bash and zsh
    """
    name = Path(shell_path).name if shell_path else ""
    if name not in SUPPORTED_SHELLS:
        raise ValueError(f"only bash and zsh are supported (detected: {shell_path or 'unknown'})")
    return SHELL_FUNCTION


def cmd_shell_init(args) -> int:
    try:
        sys.stdout.write(shell_function(os.environ.get("SHELL", "")))
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_ERROR
    return EXIT_SUCCESS
