#!/usr/bin/env python
"""
The main module provides the executable entrypoint for the backplane operator
"""

# Standard
from typing import Dict, List, Tuple
import argparse

# First Party
import aconfig
import alog

# Local
from . import config
from .cmd import CmdBase, RunOperatorCmd
from .config import library_config
from .log_format import BackplaneJsonFormatter

log = alog.use_channel("MAIN")

## Helpers #####################################################################


def add_library_config_args(
    parser, config_obj=None, path: List[str] = None
) -> Dict[str, List[str]]:
    """Automatically add args for all elements of the library config"""
    path = path or []
    setters = {}
    config_obj = config_obj or library_config
    for key, val in config_obj.items():
        sub_path = path + [key]

        # If this is a nested arg, recurse
        if isinstance(val, aconfig.AttributeAccessDict):
            setters.update(
                add_library_config_args(parser, config_obj=val, path=sub_path)
            )
            continue

        arg_name = ".".join(sub_path)
        dest_name = "_".join(sub_path)
        kwargs = {
            "default": val,
            "dest": dest_name,
            "help": f"Library config override for {arg_name} (see backplane.config)",
        }
        if isinstance(val, list):
            kwargs["nargs"] = "*"
        elif isinstance(val, bool):
            kwargs["action"] = "store_true"
        elif val is not None:
            kwargs["type"] = type(val)

        if (
            f"--{arg_name}"
            not in parser._option_string_actions  # pylint: disable=protected-access
        ):
            parser.add_argument(f"--{arg_name}", **kwargs)
            setters[dest_name] = sub_path
    return setters


def update_library_config(args: argparse.Namespace, setters: Dict[str, List[str]]):
    """Update the library config values based on the parsed arguments"""
    for dest_name, config_path in setters.items():
        config_obj = library_config
        while len(config_path) > 1:
            config_obj = config_obj[config_path[0]]
            config_path = config_path[1:]
        config_obj[config_path[0]] = getattr(args, dest_name)


def add_command(
    subparsers: argparse._SubParsersAction,
    cmd: CmdBase,
) -> Tuple[argparse.ArgumentParser, Dict[str, List[str]]]:
    """Add the subcommand along with a flag for every library config key"""
    parser = cmd.add_subparser(subparsers)
    library_args = parser.add_argument_group("Library Configuration")
    library_config_setters = add_library_config_args(library_args)
    return parser, library_config_setters


## Main ########################################################################


def main(argv: List[str] = None):
    """The main module provides the executable entrypoint for the operator"""
    parser = argparse.ArgumentParser(description=__doc__)
    subparsers = parser.add_subparsers(help="Available commands", dest="command")
    _, library_config_setters = add_command(subparsers, RunOperatorCmd())

    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return

    # Provide overrides to the library configs
    update_library_config(args, library_config_setters)

    # Reconfigure logging
    alog.configure(
        default_level=config.log_level,
        filters=config.log_filters,
        formatter=BackplaneJsonFormatter() if config.log_json else "pretty",
        thread_id=config.log_thread_id,
    )

    args.func(args)


if __name__ == "__main__":  # pragma: no cover
    main()
